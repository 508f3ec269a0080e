"""fragile_city.validators – minimal contracts for extracted records.

A validator returns ``False`` only when a record cannot be identified
(missing name / URL / core counters).  Every other defect is queued as a
warning on the run's diagnostics and the record is kept.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from core.models import Diagnostics

__all__ = ["WarningType", "validate_city", "validate_war", "validate_city_details"]


class WarningType(str, Enum):
    INVALID_CITY_DATA = "InvalidCityData"
    INVALID_WAR_DATA = "InvalidWarData"
    INVALID_CITY_DETAILS = "InvalidCityDetails"
    INCOMPLETE_CITY_DETAILS = "IncompleteCityDetails"


CITY_REQUIRED = ("name", "url", "pollution", "citizens")
WAR_REQUIRED = ("attacker", "defender", "attacker_url", "defender_url")


def _is_count(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


def validate_city(city: Mapping[str, Any], diagnostics: Diagnostics) -> bool:
    missing = [f for f in CITY_REQUIRED if city.get(f) is None]
    if missing:
        diagnostics.add_warning(
            WarningType.INVALID_CITY_DATA,
            f"Missing required fields: {', '.join(missing)}",
            city=city.get("name"),
        )
        return False

    if not _is_count(city["citizens"]):
        diagnostics.add_warning(
            WarningType.INVALID_CITY_DATA,
            f"Invalid citizens count: {city['citizens']}",
            city=city["name"],
        )
    return True


def validate_war(war: Mapping[str, Any], diagnostics: Diagnostics) -> bool:
    label = f"{war.get('attacker')} vs {war.get('defender')}"
    missing = [f for f in WAR_REQUIRED if not war.get(f)]
    if missing:
        diagnostics.add_warning(
            WarningType.INVALID_WAR_DATA,
            f"Missing required fields: {', '.join(missing)}",
            war=label,
        )
        return False

    if not _is_count(war.get("missiles")):
        diagnostics.add_warning(
            WarningType.INVALID_WAR_DATA,
            f"Invalid missiles count: {war.get('missiles')}",
            war=label,
        )
    return True


def validate_city_details(details: Mapping[str, Any], diagnostics: Diagnostics) -> bool:
    """Check a detail record.  Callers keep the record whatever this returns."""
    name = details.get("name")
    if not name:
        diagnostics.add_warning(WarningType.INVALID_CITY_DETAILS, "City name is missing")
        return False

    for key, label in (
        ("stats", "stats"),
        ("job_levels", "job levels"),
        ("resources", "resources"),
        ("buildings", "buildings"),
    ):
        if not details.get(key):
            diagnostics.add_warning(
                WarningType.INCOMPLETE_CITY_DETAILS, f"No {label} data found", city=name
            )

    citizens = details.get("citizens")
    if citizens is not None and not _is_count(citizens):
        diagnostics.add_warning(
            WarningType.INVALID_CITY_DETAILS, f"Invalid citizens: {citizens}", city=name
        )
    return True
