"""Typed models shared by the ingest, stream and storage layers."""

from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class ResolvedLocation(BaseModel):
    """Canonical coordinates and names chosen by the location resolver."""

    model_config = ConfigDict(frozen=True)

    canonical_city: str
    canonical_country: str
    country_code: str | None = None
    latitude: float
    longitude: float


class WeatherRecord(BaseModel):
    """One normalized forecast day; the unit of transport and storage."""

    model_config = ConfigDict(frozen=True)

    city: str = Field(min_length=1)
    country: str = Field(min_length=1)
    date: dt.date
    temperature: float = Field(description="Mean of daily max/min in Celsius")
    humidity: int = Field(description="Relative humidity percent")
    pressure: float = Field(description="Surface pressure in hPa")
    wind_speed: float = 0.0
    wind_direction: int = 0
    weather_condition: str
    description: str
    latitude: float | None = None
    longitude: float | None = None

    @property
    def natural_key(self) -> tuple[str, str, dt.date]:
        return (self.city, self.country, self.date)


class StoredWeatherRecord(WeatherRecord):
    """Weather record as read back from storage, with its write timestamp."""

    created_at: dt.datetime | None = None


class LocationKey(BaseModel):
    """Distinct (city, country) pair present in storage."""

    city: str
    country: str


class LiveForecast(BaseModel):
    """Forecast records decoded from the upstream API."""

    kind: Literal["live"] = "live"
    records: list[WeatherRecord]


class FallbackForecast(BaseModel):
    """Synthetic forecast records substituted after an upstream failure."""

    kind: Literal["fallback"] = "fallback"
    records: list[WeatherRecord]
    reason: str


ForecastResult = Annotated[LiveForecast | FallbackForecast, Field(discriminator="kind")]


class IngestResult(BaseModel):
    """Outcome of one fetch-and-publish request."""

    city: str
    country: str
    count: int
    source: Literal["live", "fallback"]
    reason: str | None = None
    records: list[WeatherRecord] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Successfully fetched and streamed {self.count} weather records"
