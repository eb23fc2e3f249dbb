"""Kafka transport for weather records."""

from .codec import decode_record, encode_record, message_key
from .consumer import WeatherConsumer
from .publisher import WeatherPublisher

__all__ = [
    "WeatherConsumer",
    "WeatherPublisher",
    "decode_record",
    "encode_record",
    "message_key",
]
