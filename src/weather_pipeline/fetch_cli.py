"""Producer CLI: fetch weekly forecasts and stream them to Kafka."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.table import Table

from .config import Settings, load_settings
from .exceptions import ConfigError, DeliveryError, InvalidRequestError
from .log_setup import setup_logger
from .models import IngestResult
from .service import WeatherIngestService
from .stream.publisher import WeatherPublisher
from .weather.forecast import ForecastNormalizer
from .weather.geocoding import LocationResolver


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse fetch CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Fetch 7-day forecasts and stream them to the weather topic."
    )
    parser.add_argument(
        "locations",
        nargs="+",
        metavar="CITY,COUNTRY",
        help="Location to fetch, e.g. 'London,UK'. Several locations run concurrently.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only print the per-location summary line, not the record table.",
    )
    return parser.parse_args(argv)


def parse_location(raw: str) -> tuple[str, str]:
    """Split 'City,Country' on the last comma; raise InvalidRequestError if a part is blank."""
    city, _, country = raw.rpartition(",")
    city, country = city.strip(), country.strip()
    if not city or not country:
        raise InvalidRequestError(f"City and country are required (got {raw!r})")
    return city, country


def _build_components(
    settings: Settings, logger: logging.Logger
) -> tuple[WeatherIngestService, WeatherPublisher, LocationResolver, ForecastNormalizer]:
    resolver = LocationResolver(settings=settings, logger=logger)
    normalizer = ForecastNormalizer(settings=settings, logger=logger)
    publisher = WeatherPublisher(settings=settings, logger=logger)
    service = WeatherIngestService(resolver, normalizer, publisher, logger)
    return service, publisher, resolver, normalizer


def _print_result(console: Console, result: IngestResult, quiet: bool) -> None:
    console.print(
        f"{result.city}, {result.country}: {result.message} (source={result.source})"
    )
    if quiet or not result.records:
        return

    table = Table(title=f"Forecast for {result.city}, {result.country}")
    table.add_column("Date")
    table.add_column("Temp (C)")
    table.add_column("Humidity %")
    table.add_column("Pressure hPa")
    table.add_column("Wind")
    table.add_column("Condition")
    table.add_column("Description", overflow="fold")
    for record in result.records:
        table.add_row(
            record.date.isoformat(),
            f"{record.temperature:g}",
            str(record.humidity),
            f"{record.pressure:g}",
            f"{record.wind_speed:g} @ {record.wind_direction}",
            record.weather_condition,
            record.description,
        )
    console.print(table)


async def _run(
    locations: list[tuple[str, str]],
    settings: Settings,
    logger: logging.Logger,
    console: Console,
    quiet: bool,
) -> int:
    service, publisher, resolver, normalizer = _build_components(settings, logger)
    try:
        try:
            await publisher.start()
        except DeliveryError as exc:
            logger.error("Max retries reached. Exiting: %s", exc)
            return 1

        outcomes = await asyncio.gather(
            *(service.fetch_and_publish(city, country) for city, country in locations),
            return_exceptions=True,
        )
        exit_code = 0
        for (city, country), outcome in zip(locations, outcomes):
            if isinstance(outcome, DeliveryError):
                exit_code = 4
                logger.error(
                    "Error processing weather request for %s, %s after %d sent: %s",
                    city, country, outcome.published, outcome,
                )
            elif isinstance(outcome, InvalidRequestError):
                exit_code = max(exit_code, 3)
                logger.error("Invalid weather request: %s", outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                _print_result(console, outcome, quiet)
        return exit_code
    finally:
        await publisher.close()
        await resolver.close()
        await normalizer.close()


def main(argv: list[str] | None = None) -> int:
    """Run the fetch-and-publish workflow for each requested location."""
    args = parse_args(argv)
    logger = setup_logger(process="producer")
    console = Console()

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.error("Configuration failure: %s", exc)
        return 2
    logger.setLevel(settings.log_level)
    logger.info("Producer starting with config %s", settings.safe_summary())

    try:
        locations = [parse_location(raw) for raw in args.locations]
    except InvalidRequestError as exc:
        logger.error("Invalid weather request: %s", exc)
        return 3

    return asyncio.run(_run(locations, settings, logger, console, args.quiet))


if __name__ == "__main__":
    sys.exit(main())
