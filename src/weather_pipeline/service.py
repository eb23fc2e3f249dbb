"""Ingest orchestration: resolve, normalize, publish."""

from __future__ import annotations

import logging

from .exceptions import InvalidRequestError, LocationNotFound, UpstreamUnavailable
from .models import ForecastResult, IngestResult
from .stream.publisher import WeatherPublisher
from .weather.forecast import ForecastNormalizer
from .weather.geocoding import LocationResolver


class WeatherIngestService:
    """Handles one fetch request end to end for the producer process."""

    def __init__(
        self,
        resolver: LocationResolver,
        normalizer: ForecastNormalizer,
        publisher: WeatherPublisher,
        logger: logging.Logger,
    ) -> None:
        self.resolver = resolver
        self.normalizer = normalizer
        self.publisher = publisher
        self.logger = logger

    async def collect(self, city: str, country: str) -> ForecastResult:
        """Seven records for the location, live or synthetic."""
        try:
            location = await self.resolver.resolve(city, country)
        except (LocationNotFound, UpstreamUnavailable) as exc:
            self.logger.error("Error resolving %s, %s: %s", city, country, exc)
            return self.normalizer.fallback(city, country, reason=str(exc))
        return await self.normalizer.fetch_forecast(location, city, country)

    async def fetch_and_publish(self, city: str | None, country: str | None) -> IngestResult:
        """Fetch a week of forecasts and stream every day to the topic.

        Raises InvalidRequestError when city or country is blank and
        DeliveryError when a send fails; upstream weather failures are
        absorbed into fallback records.
        """
        city = (city or "").strip()
        country = (country or "").strip()
        if not city or not country:
            raise InvalidRequestError("City and country are required")

        self.logger.info("Fetching weather data for %s, %s", city, country)
        result = await self.collect(city, country)
        if result.kind == "fallback":
            self.logger.warning(
                "Using fallback weather data for %s, %s: %s", city, country, result.reason
            )

        count = await self.publisher.publish(result.records, city, country)
        return IngestResult(
            city=city,
            country=country,
            count=count,
            source=result.kind,
            reason=getattr(result, "reason", None),
            records=result.records,
        )
