#!/usr/bin/env python3
"""
Tests for record validators and the diagnostics they write into.
"""

from core.models import Diagnostics
from plugins.fragile_city.validators import (
    WarningType,
    validate_city,
    validate_city_details,
    validate_war,
)


def _city(**overrides):
    city = {"name": "Paris", "url": "https://fragile.city/city/Paris", "pollution": 10, "citizens": 500}
    city.update(overrides)
    return city


def _war(**overrides):
    war = {
        "attacker": "A",
        "defender": "B",
        "attacker_url": "https://fragile.city/city/A",
        "defender_url": "https://fragile.city/city/B",
        "missiles": 3,
    }
    war.update(overrides)
    return war


def test_valid_city_has_no_warnings():
    diagnostics = Diagnostics()
    assert validate_city(_city(), diagnostics)
    assert diagnostics.warnings == []


def test_city_missing_fields_is_rejected():
    diagnostics = Diagnostics()
    assert not validate_city(_city(pollution=None, citizens=None), diagnostics)
    assert len(diagnostics.warnings) == 1
    warning = diagnostics.warnings[0]
    assert warning.type == WarningType.INVALID_CITY_DATA.value
    assert "pollution" in warning.message and "citizens" in warning.message
    assert warning.context["city"] == "Paris"


def test_city_with_negative_citizens_is_kept_with_warning():
    diagnostics = Diagnostics()
    assert validate_city(_city(citizens=-4), diagnostics)
    assert [w.type for w in diagnostics.warnings] == ["InvalidCityData"]


def test_war_without_defender_is_rejected():
    diagnostics = Diagnostics()
    assert not validate_war(_war(defender=""), diagnostics)
    assert diagnostics.warnings[0].type == "InvalidWarData"


def test_war_without_missiles_is_kept_with_warning():
    diagnostics = Diagnostics()
    assert validate_war(_war(missiles=None), diagnostics)
    assert len(diagnostics.warnings) == 1
    assert diagnostics.warnings[0].context["war"] == "A vs B"


def test_details_without_name_are_invalid():
    diagnostics = Diagnostics()
    assert not validate_city_details({"name": None, "stats": {"money": 1.0}}, diagnostics)
    assert diagnostics.warnings[0].type == "InvalidCityDetails"


def test_empty_detail_sections_are_reported_individually():
    diagnostics = Diagnostics()
    details = {
        "name": "Paris",
        "stats": {"money": 1.0},
        "job_levels": [],
        "resources": {},
        "buildings": {"farm": 0},
    }
    assert validate_city_details(details, diagnostics)
    messages = sorted(w.message for w in diagnostics.warnings)
    assert messages == ["No job levels data found", "No resources data found"]
    assert all(w.type == "IncompleteCityDetails" for w in diagnostics.warnings)


def test_diagnostics_clear():
    diagnostics = Diagnostics()
    diagnostics.add_warning(WarningType.INVALID_WAR_DATA, "bad")
    diagnostics.add_error("city", "boom", city="Paris")
    assert diagnostics.errors[0].city == "Paris"
    diagnostics.clear()
    assert diagnostics.warnings == [] and diagnostics.errors == []
