"""Forecast normalizer for the Open-Meteo daily forecast API."""

from __future__ import annotations

import datetime as dt
import logging
import random
from collections.abc import Callable
from typing import Any

import httpx

from ..config import Settings
from ..exceptions import UpstreamUnavailable
from ..models import FallbackForecast, ForecastResult, LiveForecast, ResolvedLocation, WeatherRecord
from .base import OpenMeteoAPI

FORECAST_DAYS = 7
DEFAULT_HUMIDITY = 60
DEFAULT_PRESSURE = 1013.0
FALLBACK_DESCRIPTION = "Synthetic fallback data"
FALLBACK_CONDITIONS = ("Clear", "Clouds", "Rain", "Snow")
UNKNOWN_WEATHER = ("Unknown", "Unknown weather")

# WMO weather interpretation codes.
WEATHER_CODES: dict[int, tuple[str, str]] = {
    0: ("Clear", "Clear sky"),
    1: ("Clear", "Mainly clear"),
    2: ("Clouds", "Partly cloudy"),
    3: ("Clouds", "Overcast"),
    45: ("Fog", "Fog"),
    48: ("Fog", "Depositing rime fog"),
    51: ("Drizzle", "Light drizzle"),
    53: ("Drizzle", "Moderate drizzle"),
    55: ("Drizzle", "Dense drizzle"),
    61: ("Rain", "Slight rain"),
    63: ("Rain", "Moderate rain"),
    65: ("Rain", "Heavy rain"),
    71: ("Snow", "Slight snow fall"),
    73: ("Snow", "Moderate snow fall"),
    75: ("Snow", "Heavy snow fall"),
    80: ("Rain", "Slight rain showers"),
    81: ("Rain", "Moderate rain showers"),
    82: ("Rain", "Violent rain showers"),
    95: ("Thunderstorm", "Thunderstorm"),
    96: ("Thunderstorm", "Thunderstorm with slight hail"),
    99: ("Thunderstorm", "Thunderstorm with heavy hail"),
}

DAILY_FIELDS = (
    "temperature_2m_max",
    "temperature_2m_min",
    "weather_code",
    "wind_speed_10m_max",
    "wind_direction_10m_dominant",
)
CURRENT_FIELDS = ("relative_humidity_2m", "surface_pressure")


def decode_weather_code(code: Any) -> tuple[str, str]:
    """Map a WMO code to (condition, description); unmapped codes are Unknown."""
    if isinstance(code, bool):
        return UNKNOWN_WEATHER
    if isinstance(code, float) and code.is_integer():
        code = int(code)
    if not isinstance(code, int):
        return UNKNOWN_WEATHER
    return WEATHER_CODES.get(code, UNKNOWN_WEATHER)


def forecast_window(today: dt.date) -> list[dt.date]:
    """Calendar days covered by one forecast request, starting at `today`."""
    return [today + dt.timedelta(days=offset) for offset in range(FORECAST_DAYS)]


class ForecastNormalizer(OpenMeteoAPI):
    """Fetches a 7-day forecast and assembles one `WeatherRecord` per day.

    Upstream failures never propagate: they are logged and replaced with
    synthetic records so every request yields a full week.
    """

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        max_retries: int | None = None,
        retry_delay_seconds: float = 1.0,
        client: httpx.AsyncClient | None = None,
        today: Callable[[], dt.date] = dt.date.today,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(
            settings,
            logger,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds,
            client=client,
        )
        self._today = today
        self._rng = rng or random.Random()

    async def fetch_forecast(
        self, location: ResolvedLocation, city: str, country: str
    ) -> ForecastResult:
        """Return live records for `location`, or fallback records on failure."""
        days = forecast_window(self._today())
        start, end = days[0].isoformat(), days[-1].isoformat()
        self.logger.info("Fetching weather from %s to %s", start, end)
        try:
            payload = await self._request_json(
                str(self.settings.forecast_api_url),
                params={
                    "latitude": location.latitude,
                    "longitude": location.longitude,
                    "daily": ",".join(DAILY_FIELDS),
                    "current": ",".join(CURRENT_FIELDS),
                    "start_date": start,
                    "end_date": end,
                    "timezone": "auto",
                },
                context="forecast fetch",
            )
            records = self._normalize(payload, location)
        except UpstreamUnavailable as exc:
            self.logger.error("Error fetching weather data for %s, %s: %s", city, country, exc)
            return self.fallback(city, country, reason=str(exc))

        self.logger.info("Successfully fetched %d weather records", len(records))
        return LiveForecast(records=records)

    def fallback(self, city: str, country: str, reason: str) -> FallbackForecast:
        """Build a week of placeholder records for the requested location."""
        records = [
            WeatherRecord(
                city=city,
                country=country,
                date=day,
                temperature=float(self._rng.randint(5, 35)),
                humidity=self._rng.randint(40, 80),
                pressure=float(self._rng.randint(1000, 1050)),
                wind_speed=float(self._rng.randint(5, 25)),
                wind_direction=self._rng.randint(0, 360),
                weather_condition=self._rng.choice(FALLBACK_CONDITIONS),
                description=FALLBACK_DESCRIPTION,
            )
            for day in forecast_window(self._today())
        ]
        return FallbackForecast(records=records, reason=reason)

    def _normalize(
        self, payload: dict[str, Any], location: ResolvedLocation
    ) -> list[WeatherRecord]:
        daily = payload.get("daily")
        if not isinstance(daily, dict):
            raise UpstreamUnavailable("Forecast payload missing 'daily' object.")
        times = daily.get("time")
        if not isinstance(times, list) or len(times) != FORECAST_DAYS:
            raise UpstreamUnavailable(
                f"Forecast payload must contain {FORECAST_DAYS} daily entries."
            )

        # One current reading is shared by every day of the week.
        current = payload.get("current")
        if not isinstance(current, dict):
            current = {}
        humidity = self._as_float(current.get("relative_humidity_2m"))
        pressure = self._as_float(current.get("surface_pressure"))

        records: list[WeatherRecord] = []
        for index, raw_day in enumerate(times):
            day = self._parse_date(raw_day)
            max_temp = self._as_float(self._daily_value(daily, "temperature_2m_max", index))
            min_temp = self._as_float(self._daily_value(daily, "temperature_2m_min", index))
            if day is None or max_temp is None or min_temp is None:
                raise UpstreamUnavailable(
                    f"Forecast payload day {index} is missing its date or temperatures."
                )
            condition, description = decode_weather_code(
                self._daily_value(daily, "weather_code", index)
            )
            wind_speed = self._as_float(self._daily_value(daily, "wind_speed_10m_max", index))
            wind_direction = self._as_float(
                self._daily_value(daily, "wind_direction_10m_dominant", index)
            )
            records.append(
                WeatherRecord(
                    city=location.canonical_city,
                    country=location.canonical_country,
                    date=day,
                    temperature=round((max_temp + min_temp) / 2, 2),
                    humidity=DEFAULT_HUMIDITY if humidity is None else round(humidity),
                    pressure=DEFAULT_PRESSURE if pressure is None else pressure,
                    wind_speed=wind_speed or 0.0,
                    wind_direction=round(wind_direction) if wind_direction else 0,
                    weather_condition=condition,
                    description=description,
                    latitude=location.latitude,
                    longitude=location.longitude,
                )
            )
        return records

    @staticmethod
    def _daily_value(daily: dict[str, Any], field: str, index: int) -> Any:
        values = daily.get(field)
        if isinstance(values, list) and index < len(values):
            return values[index]
        return None

    @staticmethod
    def _parse_date(value: Any) -> dt.date | None:
        if not isinstance(value, str):
            return None
        try:
            return dt.date.fromisoformat(value.strip())
        except ValueError:
            return None
