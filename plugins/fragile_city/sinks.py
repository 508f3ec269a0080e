"""
Output sinks for a finished Fragile City run: JSON snapshots and SQLite history.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from core.infra.db import Database
from core.interfaces import Sink
from core.models import utc_now

from .models import (
    CityDetail,
    CityDetailRecord,
    CityListResult,
    CityListing,
    GlobalStats,
    RunResult,
    ScrapeRunMetadata,
    War,
)


logger = logging.getLogger(__name__)

CITIES_FILE = "cities.json"
WARS_FILE = "wars.json"
DETAILS_FILE = "city_details.json"


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json")


class JsonFileSink(Sink):
    """Writes the three per-run JSON documents, overwriting previous ones."""

    name = "JsonFileSink"

    def __init__(self, output_dir: str = ".", **kwargs):
        self.output_dir = Path(output_dir)

    def write(self, filename: str, payload: Dict[str, Any]) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / filename
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info(f"Data saved to {path}")
        return path

    def write_cities(self, city_list: CityListResult, version: str) -> Path:
        stats = city_list.global_stats
        return self.write(CITIES_FILE, {
            "global_stats": _dump(stats),
            "cities": [_dump(c) for c in city_list.cities],
            "metadata": {
                "scraped_at": city_list.scraped_at.isoformat(),
                "version": version,
                "total_cities": stats.total_cities,
                "active_cities": stats.active_cities,
                "scraped_active_cities": len(city_list.cities),
            },
        })

    def write_wars(self, wars: List[War], version: str, scraped_at: Optional[datetime] = None) -> Path:
        return self.write(WARS_FILE, {
            "wars": [_dump(w) for w in wars],
            "metadata": {
                "scraped_at": (scraped_at or utc_now()).isoformat(),
                "version": version,
                "total_wars": len(wars),
                "active_wars": sum(1 for w in wars if w.both_active),
            },
        })

    def write_details(self, details: List[CityDetailRecord], metadata: ScrapeRunMetadata) -> Path:
        return self.write(DETAILS_FILE, {
            "cities": [_dump(d) for d in details],
            "metadata": _dump(metadata),
        })

    async def handle(self, item: RunResult) -> None:
        """Write all three documents for a finished run."""
        self.write_cities(item.city_list, item.metadata.version)
        self.write_wars(item.wars, item.metadata.version, item.metadata.scraped_at)
        self.write_details(item.city_details, item.metadata)


class FragileCityDatabase(Sink):
    """SQLite history of scrape runs; every row is keyed by its scrape run id."""

    name = "FragileCityDatabase"

    _SCHEMA = [
        """
        CREATE TABLE IF NOT EXISTS scrape_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            scraped_at TEXT NOT NULL,
            version TEXT NOT NULL,
            duration_seconds REAL,
            total_cities INTEGER,
            successful_scrapes INTEGER,
            failed_scrapes INTEGER,
            concurrency INTEGER,
            errors_count INTEGER,
            warnings_count INTEGER
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS global_stats (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            scrape_run_id INTEGER NOT NULL,
            year INTEGER,
            day INTEGER,
            total_cities INTEGER,
            active_cities INTEGER,
            total_citizens INTEGER,
            total_pollution INTEGER,
            daily_pollution INTEGER,
            FOREIGN KEY (scrape_run_id) REFERENCES scrape_runs(id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS cities (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            scrape_run_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            url TEXT,
            pollution INTEGER,
            citizens INTEGER,
            email_verified INTEGER,
            is_patron INTEGER,
            has_contributed INTEGER,
            FOREIGN KEY (scrape_run_id) REFERENCES scrape_runs(id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS city_details (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            scrape_run_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            region TEXT,
            year INTEGER,
            day INTEGER,
            season TEXT,
            citizens INTEGER,
            stats TEXT,
            job_levels TEXT,
            resources TEXT,
            buildings TEXT,
            sanctioned_by TEXT,
            FOREIGN KEY (scrape_run_id) REFERENCES scrape_runs(id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS wars (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            scrape_run_id INTEGER NOT NULL,
            attacker TEXT NOT NULL,
            defender TEXT NOT NULL,
            attacker_url TEXT,
            defender_url TEXT,
            missiles INTEGER,
            attacker_active INTEGER,
            defender_active INTEGER,
            both_active INTEGER,
            FOREIGN KEY (scrape_run_id) REFERENCES scrape_runs(id)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_cities_scrape_run ON cities(scrape_run_id)",
        "CREATE INDEX IF NOT EXISTS idx_cities_name ON cities(name)",
        "CREATE INDEX IF NOT EXISTS idx_city_details_scrape_run ON city_details(scrape_run_id)",
        "CREATE INDEX IF NOT EXISTS idx_city_details_name ON city_details(name)",
        "CREATE INDEX IF NOT EXISTS idx_wars_scrape_run ON wars(scrape_run_id)",
        "CREATE INDEX IF NOT EXISTS idx_scrape_runs_scraped_at ON scrape_runs(scraped_at)",
    ]

    def __init__(self, db_url: str = "fragile-city.db", **kwargs):
        self.db = Database(db_url)
        self._initialized = False

    async def initialize(self) -> None:
        """Create tables and indexes (idempotent)."""
        await self.db.connect()
        for statement in self._SCHEMA:
            await self.db.execute(statement)
        await self.db.commit()
        self._initialized = True
        logger.info("✓ Database schema initialized")

    async def open_read_only(self) -> None:
        """Connect to an existing history file for queries only."""
        await self.db.connect(read_only=True)

    # ------------------------------------------------------------------- #
    # Writes
    async def save_scrape_run(self, metadata: ScrapeRunMetadata) -> int:
        return await self.db.insert(
            """
            INSERT INTO scrape_runs
            (scraped_at, version, duration_seconds, total_cities, successful_scrapes,
             failed_scrapes, concurrency, errors_count, warnings_count)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                metadata.scraped_at.isoformat(),
                metadata.version,
                metadata.scrape_duration,
                metadata.total_cities,
                metadata.successful_scrapes,
                metadata.failed_scrapes,
                metadata.concurrency,
                len(metadata.errors),
                len(metadata.warnings),
            ),
        )

    async def save_global_stats(self, run_id: int, stats: GlobalStats) -> None:
        await self.db.insert(
            """
            INSERT INTO global_stats
            (scrape_run_id, year, day, total_cities, active_cities,
             total_citizens, total_pollution, daily_pollution)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run_id,
                stats.year,
                stats.day,
                stats.total_cities,
                stats.active_cities,
                stats.total_citizens,
                stats.total_pollution,
                stats.daily_pollution,
            ),
        )

    async def save_cities(self, run_id: int, cities: Iterable[CityListing]) -> int:
        return await self.db.insert_many(
            """
            INSERT INTO cities
            (scrape_run_id, name, url, pollution, citizens,
             email_verified, is_patron, has_contributed)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                (
                    run_id,
                    c.name,
                    c.url,
                    c.pollution,
                    c.citizens,
                    int(c.email_verified),
                    int(c.is_patron),
                    int(c.has_contributed),
                )
                for c in cities
            ),
        )

    async def save_wars(self, run_id: int, wars: Iterable[War]) -> int:
        return await self.db.insert_many(
            """
            INSERT INTO wars
            (scrape_run_id, attacker, defender, attacker_url, defender_url,
             missiles, attacker_active, defender_active, both_active)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                (
                    run_id,
                    w.attacker,
                    w.defender,
                    w.attacker_url,
                    w.defender_url,
                    w.missiles,
                    int(w.attacker_active),
                    int(w.defender_active),
                    int(w.both_active),
                )
                for w in wars
            ),
        )

    async def save_city_details(self, run_id: int, details: Iterable[CityDetailRecord]) -> int:
        """Store successful detail records; failed ones live only in the run's errors."""
        rows = []
        for d in details:
            if not isinstance(d, CityDetail) or not d.name:
                continue
            dumped = _dump(d)
            rows.append((
                run_id,
                d.name,
                d.region,
                d.year,
                d.day,
                d.season,
                d.citizens,
                json.dumps(dumped["stats"]),
                json.dumps(dumped["job_levels"]),
                json.dumps(dumped["resources"]),
                json.dumps(dumped["buildings"]),
                json.dumps(dumped["sanctioned_by"]),
            ))
        return await self.db.insert_many(
            """
            INSERT INTO city_details
            (scrape_run_id, name, region, year, day, season, citizens,
             stats, job_levels, resources, buildings, sanctioned_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )

    async def handle(self, item: RunResult) -> None:
        """Persist a whole run; sets ``item.run_id``."""
        if not self._initialized:
            await self.initialize()

        run_id = await self.save_scrape_run(item.metadata)
        item.run_id = run_id
        logger.info(f"  ✓ Scrape run saved (ID: {run_id})")

        await self.save_global_stats(run_id, item.city_list.global_stats)
        logger.info("  ✓ Global stats saved")

        n = await self.save_cities(run_id, item.city_list.cities)
        logger.info(f"  ✓ {n} cities saved")

        n = await self.save_wars(run_id, item.wars)
        logger.info(f"  ✓ {n} wars saved")

        n = await self.save_city_details(run_id, item.city_details)
        logger.info(f"  ✓ {n} city details saved")

    # ------------------------------------------------------------------- #
    # Read side (used by query.py)
    async def _rows(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        return [dict(r) for r in await self.db.fetch_all(sql, params)]

    async def get_scrape_run_stats(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self._rows(
            "SELECT * FROM scrape_runs ORDER BY scraped_at DESC, id DESC LIMIT ?", (limit,)
        )

    async def get_latest_global_stats(self) -> Optional[Dict[str, Any]]:
        rows = await self._rows("SELECT * FROM global_stats ORDER BY id DESC LIMIT 1")
        return rows[0] if rows else None

    async def get_city_growth(self, city_name: str, limit: int = 100) -> List[Dict[str, Any]]:
        return await self._rows(
            """
            SELECT sr.scraped_at, cd.citizens, cd.year, cd.day
            FROM city_details cd
            JOIN scrape_runs sr ON cd.scrape_run_id = sr.id
            WHERE cd.name = ?
            ORDER BY sr.scraped_at DESC, sr.id DESC
            LIMIT ?
            """,
            (city_name, limit),
        )

    async def compare_latest_runs(self) -> List[Dict[str, Any]]:
        """City count and citizen total for the two most recent runs, newest first."""
        return await self._rows(
            """
            SELECT sr.id, sr.scraped_at,
                   COUNT(DISTINCT c.id) AS city_count,
                   COALESCE(SUM(c.citizens), 0) AS total_citizens
            FROM scrape_runs sr
            LEFT JOIN cities c ON sr.id = c.scrape_run_id
            GROUP BY sr.id
            ORDER BY sr.scraped_at DESC, sr.id DESC
            LIMIT 2
            """
        )

    async def get_top_polluters(self, limit: int = 5) -> List[Dict[str, Any]]:
        return await self._rows(
            """
            SELECT name, pollution, citizens FROM cities
            WHERE scrape_run_id = (SELECT id FROM scrape_runs ORDER BY scraped_at DESC, id DESC LIMIT 1)
            ORDER BY pollution DESC
            LIMIT ?
            """,
            (limit,),
        )

    async def get_latest_wars(self) -> List[Dict[str, Any]]:
        return await self._rows(
            """
            SELECT attacker, defender, missiles, both_active FROM wars
            WHERE scrape_run_id = (SELECT id FROM scrape_runs ORDER BY scraped_at DESC, id DESC LIMIT 1)
            ORDER BY missiles DESC
            """
        )

    async def get_building_inventory(self, city_name: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Non-zero building counts for *city_name* in its most recent detail snapshot."""
        row = await self.db.fetch_one(
            "SELECT buildings FROM city_details WHERE name = ? ORDER BY scrape_run_id DESC, id DESC LIMIT 1",
            (city_name,),
        )
        if row is None or not row["buildings"]:
            return []
        counts = json.loads(row["buildings"])
        ranked = sorted(((k, v) for k, v in counts.items() if v), key=lambda kv: kv[1], reverse=True)
        return [{"building_name": k, "count": v} for k, v in ranked[:limit]]

    async def get_performance_stats(self) -> Optional[Dict[str, Any]]:
        rows = await self._rows(
            """
            SELECT AVG(duration_seconds) AS avg_duration,
                   MIN(duration_seconds) AS min_duration,
                   MAX(duration_seconds) AS max_duration,
                   AVG(successful_scrapes) AS avg_success
            FROM scrape_runs
            """
        )
        return rows[0] if rows else None

    async def close(self) -> None:
        await self.db.close()
