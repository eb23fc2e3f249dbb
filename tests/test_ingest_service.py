"""Tests for the ingest service and the request-to-row pipeline."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import random
from types import SimpleNamespace
from typing import Any

import pytest

from weather_pipeline.exceptions import DeliveryError, InvalidRequestError, UpstreamUnavailable
from weather_pipeline.models import WeatherRecord
from weather_pipeline.service import WeatherIngestService
from weather_pipeline.stream.consumer import WeatherConsumer
from weather_pipeline.stream.publisher import WeatherPublisher
from weather_pipeline.weather.forecast import FALLBACK_DESCRIPTION, ForecastNormalizer
from weather_pipeline.weather.geocoding import LocationResolver

TODAY = dt.date(2026, 10, 18)
DAYS = [TODAY + dt.timedelta(days=i) for i in range(7)]

GEOCODING_PAYLOAD = {
    "results": [
        {
            "name": "London",
            "country": "United Kingdom",
            "country_code": "GB",
            "latitude": 51.50853,
            "longitude": -0.12574,
        },
        {
            "name": "London",
            "country": "Canada",
            "country_code": "CA",
            "latitude": 42.98339,
            "longitude": -81.23304,
        },
    ]
}
FORECAST_PAYLOAD = {
    "daily": {
        "time": [day.isoformat() for day in DAYS],
        "temperature_2m_max": [15.0, 14.0, 13.0, 12.0, 11.0, 10.0, 9.0],
        "temperature_2m_min": [7.0, 6.0, 5.0, 4.0, 3.0, 2.0, 1.0],
        "weather_code": [0, 1, 2, 3, 61, 63, 80],
        "wind_speed_10m_max": [10.0] * 7,
        "wind_direction_10m_dominant": [200] * 7,
    },
    "current": {"relative_humidity_2m": 70, "surface_pressure": 1011.0},
}


def _make_settings() -> Any:
    return SimpleNamespace(
        geocoding_api_url="https://geocoding-api.open-meteo.com/v1/search",
        forecast_api_url="https://api.open-meteo.com/v1/forecast",
        geocoding_candidate_count=3,
        weather_max_retries=0,
        weather_timeout_seconds=5.0,
        weather_user_agent="weather-pipeline-tests/0.1",
        kafka_broker_list=["kafka1:9092"],
        kafka_topic="weather-data",
        kafka_topic_partitions=3,
        kafka_topic_replication_factor=3,
        kafka_producer_client_id="weather-producer",
        kafka_consumer_client_id="weather-consumer",
        kafka_consumer_group="weather-consumer-group",
        kafka_connect_max_attempts=10,
        kafka_connect_retry_delay_seconds=5.0,
        kafka_send_timeout_seconds=10.0,
        kafka_poll_timeout_ms=10,
    )


class _InMemoryTopic:
    """Producer stand-in that routes messages to partitions by key hash."""

    def __init__(self, partitions: int = 3) -> None:
        self.partitions: dict[int, list[SimpleNamespace]] = {p: [] for p in range(partitions)}
        self.keys: list[str] = []

    def producer_factory(self, **kwargs: Any) -> _InMemoryTopic:
        self.key_serializer = kwargs["key_serializer"]
        return self

    def admin_factory(self, **kwargs: Any) -> Any:
        return SimpleNamespace(create_topics=lambda topics: None, close=lambda: None)

    def send(self, topic: str, key: str, value: bytes) -> Any:
        self.keys.append(key)
        raw_key = self.key_serializer(key)
        partition = sum(raw_key) % len(self.partitions)
        self.partitions[partition].append(SimpleNamespace(key=raw_key, value=value))
        return SimpleNamespace(get=lambda timeout=None: None)

    def close(self) -> None:
        return None

    def as_batch(self) -> dict[int, list[SimpleNamespace]]:
        return {p: list(msgs) for p, msgs in self.partitions.items() if msgs}


class _InMemoryStore:
    def __init__(self) -> None:
        self.rows: dict[tuple[str, str, dt.date], tuple[WeatherRecord, int]] = {}
        self._clock = 0

    async def upsert(self, record: WeatherRecord) -> bool:
        self._clock += 1
        self.rows[record.natural_key] = (record, self._clock)
        return True

    def fetch_records(self, city: str, country: str) -> list[WeatherRecord]:
        matching = [
            (record, written)
            for record, written in self.rows.values()
            if record.city == city and record.country == country
        ]
        matching.sort(key=lambda item: (item[0].date, item[1]), reverse=True)
        return [record for record, _ in matching]


def _build(
    geocoding: dict[str, Any] | Exception = GEOCODING_PAYLOAD,
    forecast: dict[str, Any] | Exception = FORECAST_PAYLOAD,
) -> tuple[WeatherIngestService, _InMemoryTopic]:
    settings = _make_settings()
    logger = logging.getLogger("test_ingest")
    resolver = LocationResolver(settings=settings, logger=logger)
    normalizer = ForecastNormalizer(
        settings=settings, logger=logger, today=lambda: TODAY, rng=random.Random(1)
    )

    def _fake(payload: dict[str, Any] | Exception) -> Any:
        async def _request(url: str, params: dict[str, Any], context: str) -> dict[str, Any]:
            if isinstance(payload, Exception):
                raise payload
            return payload

        return _request

    resolver._request_json = _fake(geocoding)  # type: ignore[method-assign]
    normalizer._request_json = _fake(forecast)  # type: ignore[method-assign]

    topic = _InMemoryTopic()
    publisher = WeatherPublisher(
        settings=settings,
        logger=logger,
        producer_factory=topic.producer_factory,
        admin_factory=topic.admin_factory,
    )
    service = WeatherIngestService(resolver, normalizer, publisher, logger)
    return service, topic


def test_london_end_to_end_request_to_rows() -> None:
    service, topic = _build()
    store = _InMemoryStore()

    async def _scenario() -> Any:
        await service.publisher.start()
        result = await service.fetch_and_publish("London", "UK")
        consumer = WeatherConsumer(
            settings=_make_settings(), store=store, logger=logging.getLogger("test_ingest")
        )
        await consumer.handle_batch(topic.as_batch().values())
        return result

    result = asyncio.run(_scenario())

    assert result.count == 7
    assert result.source == "live"
    assert result.message == "Successfully fetched and streamed 7 weather records"
    assert [r.date for r in result.records] == DAYS
    assert {r.city for r in result.records} == {"London"}
    assert result.records[0].latitude == pytest.approx(51.5, abs=0.1)
    assert result.records[0].longitude == pytest.approx(-0.12, abs=0.1)

    assert topic.keys == [f"London-UK-{day.isoformat()}" for day in DAYS]
    assert sum(len(msgs) for msgs in topic.partitions.values()) == 7

    rows = store.fetch_records("London", "United Kingdom")
    assert len(rows) == 7
    assert [r.date for r in rows] == list(reversed(DAYS))


def test_resending_same_request_does_not_duplicate_rows() -> None:
    service, topic = _build()
    store = _InMemoryStore()

    async def _scenario() -> None:
        await service.publisher.start()
        await service.fetch_and_publish("London", "UK")
        await service.fetch_and_publish("London", "UK")
        consumer = WeatherConsumer(
            settings=_make_settings(), store=store, logger=logging.getLogger("test_ingest")
        )
        await consumer.handle_batch(topic.as_batch().values())

    asyncio.run(_scenario())

    assert len(topic.keys) == 14
    assert len(store.rows) == 7


@pytest.mark.parametrize(
    ("geocoding", "forecast"),
    [
        ({"results": []}, FORECAST_PAYLOAD),
        (UpstreamUnavailable("geocoding lookup request failed"), FORECAST_PAYLOAD),
        (GEOCODING_PAYLOAD, UpstreamUnavailable("forecast fetch failed")),
    ],
)
def test_upstream_failure_still_publishes_seven_synthetic_records(
    geocoding: Any, forecast: Any
) -> None:
    service, topic = _build(geocoding=geocoding, forecast=forecast)

    async def _scenario() -> Any:
        await service.publisher.start()
        return await service.fetch_and_publish("London", "UK")

    result = asyncio.run(_scenario())

    assert result.source == "fallback"
    assert result.reason
    assert result.count == 7
    assert [r.date for r in result.records] == DAYS
    assert {r.description for r in result.records} == {FALLBACK_DESCRIPTION}
    assert {r.country for r in result.records} == {"UK"}
    assert topic.keys == [f"London-UK-{day.isoformat()}" for day in DAYS]


@pytest.mark.parametrize(("city", "country"), [("", "UK"), ("London", ""), (None, "UK"), ("  ", " ")])
def test_missing_city_or_country_is_invalid_request(city: Any, country: Any) -> None:
    service, topic = _build()

    with pytest.raises(InvalidRequestError, match="required"):
        asyncio.run(service.fetch_and_publish(city, country))
    assert topic.keys == []


def test_unstarted_publisher_surfaces_delivery_error() -> None:
    service, _ = _build()

    with pytest.raises(DeliveryError):
        asyncio.run(service.fetch_and_publish("London", "UK"))


def test_distinct_requests_interleave_without_mixing_keys() -> None:
    service, topic = _build()

    async def _scenario() -> list[Any]:
        await service.publisher.start()
        return await asyncio.gather(
            service.fetch_and_publish("London", "UK"),
            service.fetch_and_publish("London", "GB"),
        )

    results = asyncio.run(_scenario())

    assert [r.count for r in results] == [7, 7]
    uk_keys = [k for k in topic.keys if k.startswith("London-UK-")]
    gb_keys = [k for k in topic.keys if k.startswith("London-GB-")]
    assert uk_keys == [f"London-UK-{day.isoformat()}" for day in DAYS]
    assert gb_keys == [f"London-GB-{day.isoformat()}" for day in DAYS]
