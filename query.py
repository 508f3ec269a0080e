#!/usr/bin/env python3
"""
Reporting tool for the Fragile City scrape database.

Usage:
    python query.py [--db PATH] [command]

Commands:
    runs [--limit N]           - Recent scrape runs (default)
    global                     - Latest global game statistics
    growth CITY [--limit N]    - Citizen history of one city
    compare                    - City count and citizens, latest two runs
    polluters [--limit N]      - Top polluters in the latest run
    wars                       - Wars recorded in the latest run
    buildings CITY [--limit N] - Building inventory of one city
    perf                       - Scrape duration statistics
"""

import argparse
import asyncio
import os
import sys
from datetime import datetime
from typing import List, Optional

# Add project root to PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from plugins.fragile_city import FragileCityDatabase


class Colors:
    """ANSI color codes for terminal output."""
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    BOLD = "\033[1m"
    END = "\033[0m"


def format_timestamp(value: str) -> str:
    """Format a stored ISO timestamp for display."""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M:%S")
    except (AttributeError, ValueError):
        return str(value)


def format_number(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.2f}"
    return f"{int(value):,}"


async def show_runs(db: FragileCityDatabase, args: argparse.Namespace) -> None:
    runs = await db.get_scrape_run_stats(args.limit)

    print(f"{Colors.BOLD}📊 Recent Scrape Runs{Colors.END}")
    print("=" * 60)
    if not runs:
        print(f"{Colors.YELLOW}No scrape runs recorded{Colors.END}")
        return

    for run in runs:
        failed = run["failed_scrapes"]
        failed_color = Colors.RED if failed else Colors.GREEN
        print(f"{Colors.BOLD}#{run['id']}{Colors.END} {Colors.WHITE}{format_timestamp(run['scraped_at'])}{Colors.END}")
        print(f"   Cities: {Colors.CYAN}{run['successful_scrapes']}/{run['total_cities']}{Colors.END}"
              f"  Failed: {failed_color}{failed}{Colors.END}")
        print(f"   Duration: {run['duration_seconds']:.2f}s  Concurrency: {run['concurrency']}")
        if run["errors_count"] or run["warnings_count"]:
            print(f"   Errors: {Colors.RED}{run['errors_count']}{Colors.END}"
                  f"  Warnings: {Colors.YELLOW}{run['warnings_count']}{Colors.END}")


async def show_global(db: FragileCityDatabase, args: argparse.Namespace) -> None:
    stats = await db.get_latest_global_stats()

    print(f"{Colors.BOLD}🌍 Global Statistics{Colors.END}")
    print("=" * 40)
    if not stats:
        print(f"{Colors.YELLOW}No global statistics recorded{Colors.END}")
        return

    print(f"Year {format_number(stats['year'])}, Day {format_number(stats['day'])}")
    print(f"  Cities: {Colors.WHITE}{format_number(stats['total_cities'])}{Colors.END}"
          f" ({Colors.GREEN}{format_number(stats['active_cities'])} active{Colors.END})")
    print(f"  Total Citizens: {Colors.CYAN}{format_number(stats['total_citizens'])}{Colors.END}")
    print(f"  Total Pollution: {Colors.RED}{format_number(stats['total_pollution'])}{Colors.END}")
    print(f"  Daily Pollution: {Colors.YELLOW}{format_number(stats['daily_pollution'])}{Colors.END}")


async def show_growth(db: FragileCityDatabase, args: argparse.Namespace) -> None:
    history = await db.get_city_growth(args.city, args.limit)

    print(f"{Colors.BOLD}📈 Growth of {args.city}{Colors.END}")
    print("=" * 50)
    if not history:
        print(f"{Colors.YELLOW}No records for {args.city}{Colors.END}")
        return

    previous = None
    # Oldest first so the change column reads forward in time
    for row in reversed(history):
        change = ""
        if previous is not None and row["citizens"] is not None:
            delta = row["citizens"] - previous
            color = Colors.GREEN if delta >= 0 else Colors.RED
            change = f" {color}({delta:+,}){Colors.END}"
        print(f"  {format_timestamp(row['scraped_at'])}  Y{row['year']} D{row['day']}"
              f"  {format_number(row['citizens'])}{change}")
        previous = row["citizens"]


async def show_compare(db: FragileCityDatabase, args: argparse.Namespace) -> None:
    runs = await db.compare_latest_runs()

    print(f"{Colors.BOLD}🔍 Latest Runs Compared{Colors.END}")
    print("=" * 50)
    if len(runs) < 2:
        print(f"{Colors.YELLOW}At least two scrape runs are needed{Colors.END}")
        return

    latest, previous = runs
    for label, run in (("Latest", latest), ("Previous", previous)):
        print(f"  {label}: #{run['id']} {format_timestamp(run['scraped_at'])}"
              f"  cities={format_number(run['city_count'])}"
              f"  citizens={format_number(run['total_citizens'])}")

    city_delta = latest["city_count"] - previous["city_count"]
    citizen_delta = latest["total_citizens"] - previous["total_citizens"]
    print()
    print(f"  City change: {Colors.CYAN}{city_delta:+,}{Colors.END}")
    print(f"  Citizen change: {Colors.CYAN}{citizen_delta:+,}{Colors.END}")


async def show_polluters(db: FragileCityDatabase, args: argparse.Namespace) -> None:
    rows = await db.get_top_polluters(args.limit)

    print(f"{Colors.BOLD}🏭 Top Polluters{Colors.END}")
    print("=" * 50)
    if not rows:
        print(f"{Colors.YELLOW}No cities recorded{Colors.END}")
        return
    for rank, row in enumerate(rows, 1):
        print(f"  {rank:>2}. {row['name']:<30} {Colors.RED}{format_number(row['pollution'])}{Colors.END}"
              f"  ({format_number(row['citizens'])} citizens)")


async def show_wars(db: FragileCityDatabase, args: argparse.Namespace) -> None:
    rows = await db.get_latest_wars()

    print(f"{Colors.BOLD}⚔️  Ongoing Wars{Colors.END}")
    print("=" * 60)
    if not rows:
        print(f"{Colors.GREEN}No wars recorded{Colors.END}")
        return
    for row in rows:
        marker = f"{Colors.RED}●{Colors.END}" if row["both_active"] else f"{Colors.YELLOW}○{Colors.END}"
        print(f"  {marker} {row['attacker']} → {row['defender']}  missiles: {format_number(row['missiles'])}")


async def show_buildings(db: FragileCityDatabase, args: argparse.Namespace) -> None:
    rows = await db.get_building_inventory(args.city, args.limit)

    print(f"{Colors.BOLD}🏗️  Buildings in {args.city}{Colors.END}")
    print("=" * 50)
    if not rows:
        print(f"{Colors.YELLOW}No buildings recorded for {args.city}{Colors.END}")
        return
    for row in rows:
        print(f"  {row['building_name']:<30} {Colors.WHITE}{row['count']}{Colors.END}")


async def show_perf(db: FragileCityDatabase, args: argparse.Namespace) -> None:
    stats = await db.get_performance_stats()

    print(f"{Colors.BOLD}⏱️  Scrape Performance{Colors.END}")
    print("=" * 40)
    if not stats or stats["avg_duration"] is None:
        print(f"{Colors.YELLOW}No scrape runs recorded{Colors.END}")
        return
    print(f"  Average duration: {stats['avg_duration']:.2f}s")
    print(f"  Fastest run: {Colors.GREEN}{stats['min_duration']:.2f}s{Colors.END}")
    print(f"  Slowest run: {Colors.RED}{stats['max_duration']:.2f}s{Colors.END}")
    print(f"  Average successful cities: {stats['avg_success']:.1f}")


COMMANDS = {
    "runs": show_runs,
    "global": show_global,
    "growth": show_growth,
    "compare": show_compare,
    "polluters": show_polluters,
    "wars": show_wars,
    "buildings": show_buildings,
    "perf": show_perf,
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Query stored Fragile City scrapes.")
    parser.add_argument(
        "--db",
        default=os.getenv("DATABASE_URL", "fragile-city.db"),
        help="database path (default: $DATABASE_URL or fragile-city.db)",
    )
    sub = parser.add_subparsers(dest="command")

    runs = sub.add_parser("runs", help="recent scrape runs")
    runs.add_argument("--limit", type=int, default=10)

    sub.add_parser("global", help="latest global statistics")

    growth = sub.add_parser("growth", help="citizen history of one city")
    growth.add_argument("city")
    growth.add_argument("--limit", type=int, default=100)

    sub.add_parser("compare", help="compare the latest two runs")

    polluters = sub.add_parser("polluters", help="top polluters in the latest run")
    polluters.add_argument("--limit", type=int, default=5)

    sub.add_parser("wars", help="wars in the latest run")

    buildings = sub.add_parser("buildings", help="building inventory of one city")
    buildings.add_argument("city")
    buildings.add_argument("--limit", type=int, default=10)

    sub.add_parser("perf", help="scrape duration statistics")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "runs"
        args.limit = 10
    return args


async def run_query(args: argparse.Namespace) -> None:
    db = FragileCityDatabase(args.db)
    try:
        await db.open_read_only()
        await COMMANDS[args.command](db, args)
    finally:
        await db.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        asyncio.run(run_query(args))
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Interrupted{Colors.END}")
    except FileNotFoundError as e:
        print(f"{Colors.RED}{e}{Colors.END}")
        print("Run main.py first to create it, or pass --db.")
        return 1
    except Exception as e:
        print(f"{Colors.RED}Error: {e}{Colors.END}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
