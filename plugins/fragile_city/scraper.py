"""fragile_city.scraper – one complete scrape run.

Phases, each awaited before the next begins:

1. index page → global stats + city list, cities.json   (fatal on failure)
2. index page → wars, enriched with active-city flags, wars.json   (fatal on failure)
3. every listed city's page, in paced windows (per-city failures tolerated)
4. run metadata, city_details.json, then the database
"""
from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup

from core.config import ScraperSettings
from core.infra.batch import process_batch
from core.models import Diagnostics, utc_now

from .fetcher import FragileCityFetcher
from .models import (
    CityDetail,
    CityDetailRecord,
    CityListResult,
    CityListing,
    FailedCityDetail,
    RunResult,
    ScrapeRunMetadata,
    War,
)
from .parser import CityDetailParser, CityListParser, WarsParser
from .sinks import FragileCityDatabase, JsonFileSink

logger = logging.getLogger(__name__)

__all__ = ["FragileCityScraper", "enrich_wars", "VERSION"]

VERSION = "1.0.0"


def enrich_wars(wars: Sequence[War], active_cities: Sequence[str]) -> List[War]:
    """Flag each side of every war as active when it is in *active_cities*."""
    active = set(active_cities)
    return [war.with_active_cities(active) for war in wars]


class FragileCityScraper:
    """Sequences the phases of a run and hands the result to the output sinks."""

    def __init__(
        self,
        settings: Optional[ScraperSettings] = None,
        *,
        fetcher: Optional[FragileCityFetcher] = None,
        files: Optional[JsonFileSink] = None,
        database: Optional[FragileCityDatabase] = None,
    ) -> None:
        self.settings = settings or ScraperSettings()
        self.version = VERSION
        self.fetcher = fetcher or FragileCityFetcher(
            self.settings.base_url,
            max_retries=self.settings.max_retries,
            base_delay=self.settings.retry_delay,
            timeout=self.settings.timeout,
        )
        self.files = files
        self.database = database
        self.diagnostics = Diagnostics()

        self.city_list_parser = CityListParser(self.fetcher.base_url)
        self.wars_parser = WarsParser(self.fetcher.base_url)
        self.city_parser = CityDetailParser()
        self._index_doc: Optional[BeautifulSoup] = None

    async def __aenter__(self) -> "FragileCityScraper":
        return self

    async def __aexit__(self, *_) -> None:
        await self.close()

    async def close(self) -> None:
        await self.fetcher.close()
        if self.database is not None:
            await self.database.close()

    # ------------------------------------------------------------------- #
    # Phases
    async def scrape_city_list(self) -> CityListResult:
        logger.info("Fetching city list from %s...", self.fetcher.base_url)
        try:
            doc = await self.fetcher.fetch_index()
            self._index_doc = doc
            return self.city_list_parser.extract(doc, self.diagnostics)
        except Exception as e:
            logger.error(f"Error scraping city list: {e}")
            self.diagnostics.add_error("cityList", str(e))
            raise

    async def scrape_wars(self) -> List[War]:
        logger.info("Fetching war data...")
        try:
            if self.settings.reuse_index_for_wars and self._index_doc is not None:
                doc = self._index_doc
            else:
                doc = await self.fetcher.fetch_index()
            return self.wars_parser.extract(doc, self.diagnostics)
        except Exception as e:
            logger.error(f"Error scraping wars: {e}")
            self.diagnostics.add_error("wars", str(e))
            raise

    async def scrape_city(self, city_name: str) -> CityDetailRecord:
        """Detail page for one city; any failure yields a :class:`FailedCityDetail`."""
        url = self.fetcher.city_url(city_name)
        logger.info(f"  Scraping: {city_name}...")
        try:
            doc = await self.fetcher.fetch_document(url)
            return self.city_parser.extract(doc, self.diagnostics, name=city_name, url=url)
        except Exception as e:
            logger.error(f"Error scraping city {city_name}: {e}")
            self.diagnostics.add_error("city", str(e), city=city_name)
            return FailedCityDetail(name=city_name, url=url, error=str(e))

    async def _scrape_listing(self, city: CityListing) -> CityDetailRecord:
        return await self.scrape_city(city.name)

    # ------------------------------------------------------------------- #
    async def run_full_scrape(self) -> RunResult:
        """Run every phase.  Raises only when phase 1 or 2 fails."""
        started = time.monotonic()
        self.diagnostics.clear()
        self._index_doc = None
        logger.info("=== Starting Full Scrape ===")

        city_list = await self.scrape_city_list()
        if self.files is not None:
            self.files.write_cities(city_list, self.version)

        wars = enrich_wars(await self.scrape_wars(), [c.name for c in city_list.cities])
        if self.files is not None:
            self.files.write_wars(wars, self.version)

        concurrency = self.settings.concurrency
        logger.info(f"Scraping individual city pages ({concurrency} concurrent)...")
        batch = await process_batch(
            city_list.cities,
            self._scrape_listing,
            concurrency,
            delay=self.settings.request_delay,
        )
        for failure in batch.errors:
            self.diagnostics.add_error("city", failure.error, city=failure.item.name)

        details: List[CityDetailRecord] = batch.results
        duration = round(time.monotonic() - started, 2)
        successful = sum(1 for d in details if isinstance(d, CityDetail))
        failed = len(details) - successful + len(batch.errors)

        metadata = ScrapeRunMetadata(
            scraped_at=utc_now(),
            version=self.version,
            total_cities=len(city_list.cities),
            successful_scrapes=successful,
            failed_scrapes=failed,
            scrape_duration=duration,
            concurrency=concurrency,
            average_time_per_city=round(duration / successful, 2) if successful else None,
            errors=self.diagnostics.errors,
            warnings=self.diagnostics.warnings,
        )
        result = RunResult(city_list=city_list, wars=wars, city_details=details, metadata=metadata)

        await self._emit(result)
        self._log_summary(result)
        return result

    async def _emit(self, result: RunResult) -> None:
        """Details file first (errors propagate), then the database (errors are recorded)."""
        if self.files is not None:
            self.files.write_details(result.city_details, result.metadata)

        if self.database is not None:
            logger.info("Saving to database...")
            try:
                await self.database.handle(result)
            except Exception as e:
                logger.error(f"Database error: {e}")
                error = self.diagnostics.add_error("database", f"Database save failed: {e}")
                result.metadata.errors.append(error)

    def _log_summary(self, result: RunResult) -> None:
        meta = result.metadata
        logger.info("=== Scrape Complete ===")
        logger.info(f"Total cities: {meta.total_cities}")
        logger.info(f"Total wars: {len(result.wars)}")
        logger.info(f"Wars with both cities active: {sum(1 for w in result.wars if w.both_active)}")
        logger.info(f"City details scraped: {meta.successful_scrapes} ({meta.failed_scrapes} failed)")
        logger.info(f"Duration: {meta.scrape_duration:.2f}s")
        if self.diagnostics.errors:
            logger.info(f"Errors encountered: {len(self.diagnostics.errors)}")
        if self.diagnostics.warnings:
            logger.info(f"Warnings: {len(self.diagnostics.warnings)}")
