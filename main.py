"""
Main entry point: one complete Fragile City scrape, meant to be run by an external timer (cron).

Exit status is 0 on success and 1 when the city list or the wars could not be fetched.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.config import ScraperSettings, load_settings
from core.infra.logs import setup_logging
from plugins.fragile_city import FragileCityDatabase, FragileCityScraper, JsonFileSink


def build_scraper(settings: ScraperSettings) -> FragileCityScraper:
    database = FragileCityDatabase(settings.database_url) if settings.enable_database else None
    return FragileCityScraper(
        settings,
        files=JsonFileSink(str(settings.output_dir)),
        database=database,
    )


async def run(settings: ScraperSettings) -> int:
    logger = logging.getLogger(__name__)

    async with build_scraper(settings) as scraper:
        try:
            await scraper.run_full_scrape()
        except Exception as e:
            logger.error(f"Scraping failed: {e}", exc_info=True)
            return 1

    if settings.enable_database:
        logger.info(f"Database: {settings.database_url}")
    logger.info("Scraping completed successfully!")
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrape fragile.city once and store the snapshot.")
    parser.add_argument("--config", default=os.getenv("SCRAPER_CONFIG"), help="optional YAML settings file")
    parser.add_argument("--no-database", action="store_true", help="write JSON files only")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.config)
    if args.no_database:
        settings = settings.model_copy(update={"enable_database": False})

    log_file = setup_logging(
        logging.DEBUG if args.verbose else logging.INFO,
        log_dir=settings.log_dir,
        retention_days=settings.log_retention_days,
    )
    logger = logging.getLogger(__name__)
    logger.info("=== Starting Fragile City Scrape ===")
    if log_file:
        logger.info(f"Logging to {log_file}")

    code = asyncio.run(run(settings))
    logger.info("=== Scrape Finished ===")
    return code


if __name__ == "__main__":
    sys.exit(main())
