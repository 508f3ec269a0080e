"""
Fragile City fetcher - downloads the index page and per-city pages.
"""

import logging
from typing import Optional
from urllib.parse import quote

from bs4 import BeautifulSoup

from core.infra.http import HttpClient


logger = logging.getLogger(__name__)

BASE_URL = "https://fragile.city"

# Punctuation left unescaped in city paths
URI_SAFE = "!~*'()"

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "X-Requested-With": "SwitchScraper/1.0",
}


class FragileCityFetcher:
    """Fetches pages from fragile.city and hands back parsed documents."""

    name = "FragileCityFetcher"

    def __init__(
        self,
        base_url: str = BASE_URL,
        *,
        http: Optional[HttpClient] = None,
        **kwargs,
    ):
        self.base_url = base_url.rstrip("/")
        self.http = http or HttpClient(default_headers=HEADERS, **kwargs)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        await self.close()

    async def close(self) -> None:
        await self.http.close()

    def city_url(self, city_name: str) -> str:
        return f"{self.base_url}/city/{quote(city_name, safe=URI_SAFE)}"

    async def fetch_document(self, url: str) -> BeautifulSoup:
        """GET *url* (with retries) and parse it.  Network errors propagate."""
        html = await self.http.get_text(url)
        logger.debug(f"Fetched {url}: {len(html)} chars")
        return BeautifulSoup(html, "html.parser")

    async def fetch_index(self) -> BeautifulSoup:
        return await self.fetch_document(self.base_url)

    async def fetch_city(self, city_name: str) -> BeautifulSoup:
        return await self.fetch_document(self.city_url(city_name))
