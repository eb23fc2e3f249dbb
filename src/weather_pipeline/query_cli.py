"""Query CLI: read stored weather records and known locations."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.table import Table

from .config import Settings, load_settings
from .exceptions import ConfigError, PersistenceError
from .log_setup import setup_logger
from .models import LocationKey, StoredWeatherRecord
from .storage import WeatherStore

QUERY_CONNECT_ATTEMPTS = 1


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse query CLI arguments."""
    parser = argparse.ArgumentParser(description="Show weather records stored in PostgreSQL.")
    parser.add_argument("--city", type=str, default=None, help="Filter by city.")
    parser.add_argument("--country", type=str, default=None, help="Filter by country.")
    parser.add_argument(
        "--locations",
        action="store_true",
        help="List distinct (city, country) pairs instead of records.",
    )
    parser.add_argument(
        "--max-print",
        type=int,
        default=50,
        help="Maximum number of records to print.",
    )
    return parser.parse_args(argv)


def _print_records(console: Console, records: list[StoredWeatherRecord], max_print: int) -> None:
    console.print(f"Stored weather records: {len(records)}")
    if not records:
        return
    table = Table(title="Weather Data")
    table.add_column("City")
    table.add_column("Country")
    table.add_column("Date")
    table.add_column("Temp (C)")
    table.add_column("Condition")
    table.add_column("Description", overflow="fold")
    table.add_column("Written (UTC)")
    for record in records[:max_print]:
        table.add_row(
            record.city,
            record.country,
            record.date.isoformat(),
            f"{record.temperature:g}",
            record.weather_condition,
            record.description,
            record.created_at.isoformat() if record.created_at else "-",
        )
    console.print(table)


def _print_locations(console: Console, locations: list[LocationKey]) -> None:
    if not locations:
        console.print("No locations stored yet.")
        return
    table = Table(title="Stored Locations")
    table.add_column("City")
    table.add_column("Country")
    for location in locations:
        table.add_row(location.city, location.country)
    console.print(table)


async def _run(
    args: argparse.Namespace,
    settings: Settings,
    logger: logging.Logger,
    console: Console,
    store: WeatherStore | None = None,
) -> int:
    store = store or WeatherStore(settings=settings, logger=logger)
    try:
        await store.connect(max_attempts=QUERY_CONNECT_ATTEMPTS)
        if args.locations:
            _print_locations(console, await store.fetch_locations())
        else:
            records = await store.fetch_records(city=args.city, country=args.country)
            _print_records(console, records, args.max_print)
    except PersistenceError as exc:
        logger.error("Failed to fetch weather data: %s", exc)
        return 4
    finally:
        await store.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Print stored records (optionally for one location) or the location list."""
    args = parse_args(argv)
    logger = setup_logger(process="query")
    console = Console()

    if args.max_print <= 0:
        logger.error("--max-print must be > 0.")
        return 3
    if bool(args.city) != bool(args.country):
        logger.error("--city and --country must be given together.")
        return 3

    try:
        settings = load_settings(require_kafka=False)
    except ConfigError as exc:
        logger.error("Configuration failure: %s", exc)
        return 2
    logger.setLevel(settings.log_level)

    return asyncio.run(_run(args, settings, logger, console))


if __name__ == "__main__":
    sys.exit(main())
