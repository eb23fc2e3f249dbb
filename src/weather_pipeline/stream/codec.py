"""Wire encoding for weather records on the Kafka topic."""

from __future__ import annotations

from pydantic import ValidationError

from ..exceptions import DecodeError
from ..models import WeatherRecord


def message_key(city: str, country: str, record: WeatherRecord) -> str:
    """Message key for one requested location and forecast day."""
    return f"{city}-{country}-{record.date.isoformat()}"


def encode_record(record: WeatherRecord) -> bytes:
    return record.model_dump_json(exclude_none=True).encode("utf-8")


def decode_record(value: bytes | str | None) -> WeatherRecord:
    """Decode a message value, raising DecodeError for malformed payloads."""
    if value is None:
        raise DecodeError("Message has no value.")
    try:
        return WeatherRecord.model_validate_json(value)
    except ValidationError as exc:
        raise DecodeError(f"Malformed weather record: {exc.error_count()} validation error(s)") from exc
