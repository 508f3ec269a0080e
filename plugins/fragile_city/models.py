"""fragile_city.models – typed records produced by one scrape run."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from core.models import RunError, RunWarning, utc_now

from .units import StatValue


class GlobalStats(BaseModel):
    """World-level counters from the index page; ``None`` means not found."""
    model_config = ConfigDict(frozen=True)

    year: Optional[int] = None
    day: Optional[int] = None
    total_cities: Optional[int] = None
    active_cities: Optional[int] = None
    total_citizens: Optional[int] = None
    total_pollution: Optional[int] = None
    daily_pollution: Optional[int] = None


class CityListing(BaseModel):
    """One row of the city index."""
    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    pollution: int
    citizens: int
    email_verified: bool = False
    is_patron: bool = False
    has_contributed: bool = False


class War(BaseModel):
    """An ongoing war.  The ``*_active`` flags are filled in by the scraper."""
    model_config = ConfigDict(frozen=True)

    attacker: str
    attacker_url: str
    defender: str
    defender_url: str
    missiles: Optional[int] = None
    attacker_active: bool = False
    defender_active: bool = False
    both_active: bool = False

    def with_active_cities(self, active: Set[str]) -> War:
        attacker_active = self.attacker in active
        defender_active = self.defender in active
        return self.model_copy(
            update={
                "attacker_active": attacker_active,
                "defender_active": defender_active,
                "both_active": attacker_active and defender_active,
            }
        )


class JobLevel(BaseModel):
    level: int
    tax_rate: Optional[float] = None
    citizens: int = 0
    total_jobs: int = 0
    available_jobs: int = 0


class CityDetail(BaseModel):
    """Per-city deep snapshot."""
    name: Optional[str] = None
    url: str
    region: Optional[str] = None
    year: Optional[int] = None
    day: Optional[int] = None
    season: Optional[str] = None
    citizens: Optional[int] = None
    stats: Dict[str, StatValue] = Field(default_factory=dict)
    job_levels: List[JobLevel] = Field(default_factory=list)
    resources: Dict[str, StatValue] = Field(default_factory=dict)
    buildings: Dict[str, int] = Field(default_factory=dict)
    sanctioned_by: List[str] = Field(default_factory=list)
    scraped_at: datetime = Field(default_factory=utc_now)

    @property
    def failed(self) -> bool:
        return False


class FailedCityDetail(BaseModel):
    """What is left of a city whose page could not be fetched or extracted."""
    name: str
    url: str
    error: str
    scraped_at: datetime = Field(default_factory=utc_now)

    @property
    def failed(self) -> bool:
        return True


CityDetailRecord = Union[CityDetail, FailedCityDetail]


class CityListResult(BaseModel):
    global_stats: GlobalStats
    cities: List[CityListing]
    scraped_at: datetime = Field(default_factory=utc_now)


class ScrapeRunMetadata(BaseModel):
    """Payload handed to persistence as the scrape-run row."""
    scraped_at: datetime = Field(default_factory=utc_now)
    version: str
    total_cities: int = 0
    successful_scrapes: int = 0
    failed_scrapes: int = 0
    scrape_duration: float = 0.0
    concurrency: int = 0
    average_time_per_city: Optional[float] = None
    errors: List[RunError] = Field(default_factory=list)
    warnings: List[RunWarning] = Field(default_factory=list)


class RunResult(BaseModel):
    """Everything one orchestration pass produced."""
    city_list: CityListResult
    wars: List[War]
    city_details: List[CityDetailRecord]
    metadata: ScrapeRunMetadata
    run_id: Optional[int] = None
