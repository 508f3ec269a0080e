"""
Configuration loading: defaults < YAML file < environment variables.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# field name -> environment variable
ENV_VARS: Dict[str, str] = {
    "base_url": "FRAGILE_CITY_BASE_URL",
    "max_retries": "SCRAPER_MAX_RETRIES",
    "retry_delay": "SCRAPER_RETRY_DELAY",
    "concurrency": "SCRAPER_CONCURRENCY",
    "request_delay": "SCRAPER_REQUEST_DELAY",
    "timeout": "SCRAPER_TIMEOUT",
    "reuse_index_for_wars": "SCRAPER_REUSE_INDEX_FOR_WARS",
    "enable_database": "SCRAPER_ENABLE_DATABASE",
    "database_url": "DATABASE_URL",
    "output_dir": "SCRAPER_OUTPUT_DIR",
    "log_dir": "SCRAPER_LOG_DIR",
    "log_retention_days": "SCRAPER_LOG_RETENTION_DAYS",
}


class ScraperSettings(BaseModel):
    """Runtime settings for one scrape run."""

    base_url: str = "https://fragile.city"
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    concurrency: int = Field(default=5, ge=1)
    request_delay: float = Field(default=0.1, ge=0)
    timeout: float = Field(default=30.0, gt=0)
    # Wars live on the index page; by default they are fetched with a second request.
    reuse_index_for_wars: bool = False
    enable_database: bool = True
    database_url: str = "fragile-city.db"
    output_dir: Path = Path(".")
    log_dir: Optional[Path] = None
    log_retention_days: float = Field(default=7, ge=0)


def load_config(path: str) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def settings_from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for field_name, var in ENV_VARS.items():
        raw = environ.get(var)
        if raw is not None and raw.strip() != "":
            values[field_name] = raw.strip()
    return values


def load_settings(
    config_path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    use_dotenv: bool = True,
) -> ScraperSettings:
    """Build :class:`ScraperSettings` from defaults, an optional YAML file and the environment."""
    if use_dotenv and environ is None:
        load_dotenv()
    environ = os.environ if environ is None else environ

    values: Dict[str, Any] = {}
    if config_path:
        if Path(config_path).exists():
            file_cfg = load_config(config_path)
            # Accept either a flat mapping or one nested under "scraper"
            values.update(file_cfg.get("scraper", file_cfg))
            logger.info(f"Loaded settings from {config_path}")
        else:
            logger.warning(f"Config file not found: {config_path}")

    values.update(settings_from_env(environ))
    return ScraperSettings(**values)
