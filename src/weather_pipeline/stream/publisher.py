"""Kafka publisher for normalized weather records."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

from kafka import KafkaAdminClient, KafkaProducer
from kafka.admin import NewTopic
from kafka.errors import KafkaError, TopicAlreadyExistsError

from ..config import Settings
from ..exceptions import DeliveryError
from ..models import WeatherRecord
from .codec import encode_record, message_key


class WeatherPublisher:
    """Owns the process-wide producer handle and the target topic.

    `start()` must succeed before `publish()`; it retries a bounded number of
    times and raises DeliveryError once the attempts are exhausted.
    """

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        producer_factory: Callable[..., Any] = KafkaProducer,
        admin_factory: Callable[..., Any] = KafkaAdminClient,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.logger = logger
        self._producer_factory = producer_factory
        self._admin_factory = admin_factory
        self._sleep = sleep
        self._producer: Any | None = None

    async def __aenter__(self) -> WeatherPublisher:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self._producer is not None

    async def start(self) -> None:
        """Connect the producer and make sure the topic exists."""
        max_attempts = self.settings.kafka_connect_max_attempts
        delay = self.settings.kafka_connect_retry_delay_seconds
        for attempt in range(1, max_attempts + 1):
            try:
                await asyncio.to_thread(self._connect)
                return
            except KafkaError as exc:
                self.logger.error(
                    "Kafka connection attempt %d/%d failed: %s", attempt, max_attempts, exc
                )
                if attempt >= max_attempts:
                    break
                self.logger.info("Retrying in %g seconds...", delay)
                await self._sleep(delay)
        raise DeliveryError(f"Kafka unreachable after {max_attempts} connection attempts.")

    def _connect(self) -> None:
        brokers = self.settings.kafka_broker_list
        if self._producer is None:
            self._producer = self._producer_factory(
                bootstrap_servers=brokers,
                client_id=self.settings.kafka_producer_client_id,
                key_serializer=lambda key: key.encode("utf-8"),
            )
            self.logger.info("Kafka producer connected")

        admin = self._admin_factory(
            bootstrap_servers=brokers,
            client_id=f"{self.settings.kafka_producer_client_id}-admin",
        )
        try:
            admin.create_topics(
                [
                    NewTopic(
                        name=self.settings.kafka_topic,
                        num_partitions=self.settings.kafka_topic_partitions,
                        replication_factor=self.settings.kafka_topic_replication_factor,
                    )
                ]
            )
            self.logger.info("Topic %s created", self.settings.kafka_topic)
        except TopicAlreadyExistsError:
            self.logger.info("Topic %s already exists", self.settings.kafka_topic)
        finally:
            admin.close()

    async def publish(
        self, records: Sequence[WeatherRecord], city: str, country: str
    ) -> int:
        """Send records one at a time, in order, and return how many were acked."""
        if self._producer is None:
            raise DeliveryError("Publisher is not connected; call start() first.")

        published = 0
        for record in records:
            key = message_key(city, country, record)
            try:
                await asyncio.to_thread(self._send, key, encode_record(record))
            except KafkaError as exc:
                raise DeliveryError(
                    f"Failed sending {key} to {self.settings.kafka_topic}: {exc}",
                    published=published,
                ) from exc
            published += 1

        self.logger.info(
            "Sent %d weather records to %s", published, self.settings.kafka_topic
        )
        return published

    def _send(self, key: str, value: bytes) -> None:
        future = self._producer.send(self.settings.kafka_topic, key=key, value=value)
        future.get(timeout=self.settings.kafka_send_timeout_seconds)

    async def close(self) -> None:
        if self._producer is None:
            return
        producer, self._producer = self._producer, None
        await asyncio.to_thread(producer.close)
