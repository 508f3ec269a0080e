#!/usr/bin/env python3
"""
Tests for the SQLite history store and its read-side queries.
"""

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from core.infra.db import Database, resolve_db_path
from plugins.fragile_city.models import (
    CityDetail,
    CityListing,
    CityListResult,
    FailedCityDetail,
    GlobalStats,
    RunResult,
    ScrapeRunMetadata,
    War,
)
from plugins.fragile_city.sinks import FragileCityDatabase

BASE = "https://fragile.city"
T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _run(at, cities, details, duration=10.0):
    listings = [
        CityListing(name=name, url=f"{BASE}/city/{name}", pollution=pollution, citizens=citizens)
        for name, pollution, citizens in cities
    ]
    return RunResult(
        city_list=CityListResult(
            global_stats=GlobalStats(year=1, total_cities=len(cities)),
            cities=listings,
            scraped_at=at,
        ),
        wars=[
            War(
                attacker="Alpha",
                attacker_url=f"{BASE}/city/Alpha",
                defender="Beta",
                defender_url=f"{BASE}/city/Beta",
                missiles=7,
                attacker_active=True,
                defender_active=True,
                both_active=True,
            )
        ],
        city_details=details,
        metadata=ScrapeRunMetadata(
            scraped_at=at,
            version="1.0.0",
            total_cities=len(cities),
            successful_scrapes=sum(1 for d in details if isinstance(d, CityDetail)),
            failed_scrapes=sum(1 for d in details if isinstance(d, FailedCityDetail)),
            scrape_duration=duration,
            concurrency=5,
        ),
    )


def _detail(name, citizens, buildings):
    return CityDetail(name=name, url=f"{BASE}/city/{name}", citizens=citizens, year=1, day=1, buildings=buildings)


def test_resolve_db_path():
    assert resolve_db_path("fragile-city.db") == Path("fragile-city.db")
    assert resolve_db_path("sqlite:///data/fc.db") == Path("data/fc.db")
    assert resolve_db_path("sqlite+aiosqlite:///fc.db") == Path("fc.db")
    assert resolve_db_path("file:fc.db") == Path("fc.db")


def test_database_creates_parent_directory(tmp_path):
    async def scenario():
        db = Database(str(tmp_path / "nested" / "x.db"))
        await db.connect()
        await db.execute("CREATE TABLE t (v INTEGER)")
        assert await db.insert_many("INSERT INTO t VALUES (?)", [(1,), (2,)]) == 2
        assert await db.insert_many("INSERT INTO t VALUES (?)", []) == 0
        row = await db.fetch_one("SELECT COUNT(*) AS n FROM t")
        await db.close()
        return row["n"]

    assert asyncio.run(scenario()) == 2
    assert (tmp_path / "nested" / "x.db").exists()


def test_history_queries(tmp_path):
    store = FragileCityDatabase(str(tmp_path / "fc.db"))

    first = _run(
        T0,
        [("Alpha", 10, 100), ("Beta", 30, 50)],
        [_detail("Alpha", 100, {"farm": 2, "mine": 0}), FailedCityDetail(name="Beta", url=f"{BASE}/city/Beta", error="timeout")],
        duration=12.0,
    )
    second = _run(
        T0 + timedelta(hours=1),
        [("Alpha", 15, 140), ("Beta", 5, 60), ("Gamma", 40, 10)],
        [_detail("Alpha", 140, {"farm": 3, "mine": 1, "school": 0}), _detail("Beta", 60, {})],
        duration=8.0,
    )

    async def scenario():
        try:
            await store.handle(first)
            await store.handle(second)
            return {
                "runs": await store.get_scrape_run_stats(),
                "global": await store.get_latest_global_stats(),
                "growth": await store.get_city_growth("Alpha"),
                "beta": await store.get_city_growth("Beta"),
                "compare": await store.compare_latest_runs(),
                "polluters": await store.get_top_polluters(2),
                "wars": await store.get_latest_wars(),
                "buildings": await store.get_building_inventory("Alpha"),
                "perf": await store.get_performance_stats(),
            }
        finally:
            await store.close()

    out = asyncio.run(scenario())

    assert first.run_id == 1 and second.run_id == 2
    assert [r["id"] for r in out["runs"]] == [2, 1]
    assert out["runs"][1]["failed_scrapes"] == 1

    assert out["global"]["total_cities"] == 3
    assert out["global"]["day"] is None

    assert [r["citizens"] for r in out["growth"]] == [140, 100]
    # failed detail records are not stored
    assert [r["citizens"] for r in out["beta"]] == [60]

    latest, previous = out["compare"]
    assert (latest["city_count"], latest["total_citizens"]) == (3, 210)
    assert (previous["city_count"], previous["total_citizens"]) == (2, 150)

    assert [p["name"] for p in out["polluters"]] == ["Gamma", "Alpha"]
    assert len(out["wars"]) == 1 and out["wars"][0]["both_active"] == 1

    assert out["buildings"] == [
        {"building_name": "farm", "count": 3},
        {"building_name": "mine", "count": 1},
    ]

    assert out["perf"]["avg_duration"] == 10.0
    assert out["perf"]["min_duration"] == 8.0
    assert out["perf"]["max_duration"] == 12.0


def test_empty_database_reads(tmp_path):
    store = FragileCityDatabase(str(tmp_path / "empty.db"))

    async def scenario():
        try:
            await store.initialize()
            return (
                await store.get_scrape_run_stats(),
                await store.get_latest_global_stats(),
                await store.compare_latest_runs(),
                await store.get_building_inventory("Nowhere"),
            )
        finally:
            await store.close()

    runs, stats, compare, buildings = asyncio.run(scenario())
    assert runs == [] and stats is None and compare == [] and buildings == []


def test_read_only_connection(tmp_path):
    missing = Database(str(tmp_path / "missing.db"))
    with pytest.raises(FileNotFoundError):
        asyncio.run(missing.connect(read_only=True))
    assert not (tmp_path / "missing.db").exists()

    async def scenario():
        writer = Database(str(tmp_path / "ro.db"))
        await writer.execute("CREATE TABLE t (v INTEGER)")
        await writer.insert("INSERT INTO t VALUES (?)", (1,))
        await writer.close()

        reader = Database(str(tmp_path / "ro.db"))
        await reader.connect(read_only=True)
        try:
            row = await reader.fetch_one("SELECT COUNT(*) AS n FROM t")
            with pytest.raises(sqlite3.OperationalError):
                await reader.execute("INSERT INTO t VALUES (2)")
            return row["n"]
        finally:
            await reader.close()

    assert asyncio.run(scenario()) == 1
