"""Kafka consumer that persists weather records through the store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from kafka import KafkaConsumer
from kafka.errors import KafkaError

from ..config import Settings
from ..exceptions import DecodeError, DeliveryError
from ..models import WeatherRecord
from .codec import decode_record


class RecordSink(Protocol):
    async def upsert(self, record: WeatherRecord) -> bool: ...


class WeatherConsumer:
    """Reads the weather topic and forwards each decoded record to a sink.

    Offsets are committed manually after every polled batch has been handled,
    so a crash mid-batch leads to redelivery rather than loss. The upsert is
    idempotent, which makes that redelivery harmless.
    """

    def __init__(
        self,
        settings: Settings,
        store: RecordSink,
        logger: logging.Logger,
        consumer_factory: Callable[..., Any] = KafkaConsumer,
    ) -> None:
        self.settings = settings
        self.store = store
        self.logger = logger
        self._consumer_factory = consumer_factory
        self._consumer: Any | None = None
        self.processed = 0
        self.dropped = 0

    async def connect(self) -> None:
        """Create the group consumer and subscribe from the earliest offset."""
        try:
            self._consumer = await asyncio.to_thread(self._build_consumer)
        except KafkaError as exc:
            raise DeliveryError(f"Kafka consumer could not connect: {exc}") from exc
        self.logger.info(
            "Kafka consumer connected; subscribed to %s as group %s",
            self.settings.kafka_topic,
            self.settings.kafka_consumer_group,
        )

    def _build_consumer(self) -> Any:
        consumer = self._consumer_factory(
            bootstrap_servers=self.settings.kafka_broker_list,
            client_id=self.settings.kafka_consumer_client_id,
            group_id=self.settings.kafka_consumer_group,
            auto_offset_reset="earliest",
            enable_auto_commit=False,
        )
        consumer.subscribe([self.settings.kafka_topic])
        return consumer

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll and handle batches until `stop_event` is set."""
        if self._consumer is None:
            raise DeliveryError("Consumer is not connected; call connect() first.")
        while not stop_event.is_set():
            batch = await asyncio.to_thread(
                self._consumer.poll, timeout_ms=self.settings.kafka_poll_timeout_ms
            )
            if not batch:
                continue
            await self.handle_batch(batch.values())
            try:
                await asyncio.to_thread(self._consumer.commit)
            except KafkaError as exc:
                # Uncommitted offsets are redelivered after a rebalance.
                self.logger.warning("Offset commit failed: %s", exc)
        self.logger.info("Consumer loop stopped")

    async def handle_batch(self, partitions: Iterable[list[Any]]) -> None:
        """Handle partitions concurrently, keeping message order inside each."""
        await asyncio.gather(*(self._handle_partition(messages) for messages in partitions))

    async def _handle_partition(self, messages: list[Any]) -> None:
        for message in messages:
            context = {
                field: getattr(message, field, None)
                for field in ("topic", "partition", "offset")
            }
            await self.handle_message(message.value, context)

    async def handle_message(
        self, value: bytes | None, context: dict[str, Any] | None = None
    ) -> bool:
        """Decode and persist one message; returns False when it was dropped."""
        try:
            record = decode_record(value)
        except DecodeError as exc:
            self.dropped += 1
            self.logger.error(
                "Error processing message, dropping it: %s", exc, extra=context or {}
            )
            return False

        self.logger.info(
            "Received weather data: %s, %s, %s",
            record.city,
            record.country,
            record.date.isoformat(),
        )
        await self.store.upsert(record)
        self.processed += 1
        return True

    async def close(self) -> None:
        if self._consumer is None:
            return
        consumer, self._consumer = self._consumer, None
        await asyncio.to_thread(consumer.close)
        self.logger.info("Kafka consumer disconnected")
