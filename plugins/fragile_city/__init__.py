"""
Fragile City Plugin - scrapes the city index, wars and per-city pages of fragile.city.
"""

from .fetcher import FragileCityFetcher
from .parser import CityListParser, WarsParser, CityDetailParser
from .scraper import FragileCityScraper
from .sinks import JsonFileSink, FragileCityDatabase

__all__ = [
    "FragileCityFetcher",
    "CityListParser",
    "WarsParser",
    "CityDetailParser",
    "FragileCityScraper",
    "JsonFileSink",
    "FragileCityDatabase",
]
