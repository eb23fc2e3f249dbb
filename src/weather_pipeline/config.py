"""Typed settings loader for the weather stream pipeline."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AnyUrl, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: Literal["dev", "staging", "prod"] = Field(default="dev", alias="APP_ENV")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )

    kafka_brokers: str = Field(default="", alias="KAFKA_BROKERS")
    kafka_topic: str = Field(default="weather-data", alias="KAFKA_TOPIC")
    kafka_topic_partitions: int = Field(default=3, alias="KAFKA_TOPIC_PARTITIONS")
    kafka_topic_replication_factor: int = Field(
        default=3, alias="KAFKA_TOPIC_REPLICATION_FACTOR"
    )
    kafka_producer_client_id: str = Field(
        default="weather-producer", alias="KAFKA_PRODUCER_CLIENT_ID"
    )
    kafka_consumer_client_id: str = Field(
        default="weather-consumer", alias="KAFKA_CONSUMER_CLIENT_ID"
    )
    kafka_consumer_group: str = Field(
        default="weather-consumer-group", alias="KAFKA_CONSUMER_GROUP"
    )
    kafka_connect_max_attempts: int = Field(default=10, alias="KAFKA_CONNECT_MAX_ATTEMPTS")
    kafka_connect_retry_delay_seconds: float = Field(
        default=5.0, alias="KAFKA_CONNECT_RETRY_DELAY_SECONDS"
    )
    kafka_send_timeout_seconds: float = Field(default=10.0, alias="KAFKA_SEND_TIMEOUT_SECONDS")
    kafka_poll_timeout_ms: int = Field(default=1000, alias="KAFKA_POLL_TIMEOUT_MS")

    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(default="weather", alias="POSTGRES_DB")
    postgres_user: str = Field(default="postgres", alias="POSTGRES_USER")
    postgres_password: str | None = Field(
        default=None, alias="POSTGRES_PASSWORD", repr=False
    )
    postgres_pool_max_size: int = Field(default=10, alias="POSTGRES_POOL_MAX_SIZE")
    postgres_idle_timeout_seconds: float = Field(
        default=30.0, alias="POSTGRES_IDLE_TIMEOUT_SECONDS"
    )
    postgres_connect_timeout_seconds: float = Field(
        default=2.0, alias="POSTGRES_CONNECT_TIMEOUT_SECONDS"
    )
    postgres_retry_delay_seconds: float = Field(
        default=5.0, alias="POSTGRES_RETRY_DELAY_SECONDS"
    )

    geocoding_api_url: AnyUrl = Field(
        default=AnyUrl("https://geocoding-api.open-meteo.com/v1/search"),
        alias="GEOCODING_API_URL",
    )
    forecast_api_url: AnyUrl = Field(
        default=AnyUrl("https://api.open-meteo.com/v1/forecast"),
        alias="FORECAST_API_URL",
    )
    weather_timeout_seconds: float = Field(default=15.0, alias="WEATHER_TIMEOUT_SECONDS")
    weather_user_agent: str = Field(
        default="weather-stream-pipeline/0.1",
        alias="WEATHER_USER_AGENT",
    )
    weather_max_retries: int = Field(default=1, alias="WEATHER_MAX_RETRIES")
    geocoding_candidate_count: int = Field(default=3, alias="GEOCODING_CANDIDATE_COUNT")

    @field_validator("postgres_password", mode="before")
    @classmethod
    def empty_string_to_none(cls, value: Any) -> Any:
        """Treat an empty env-string password as unset."""
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @model_validator(mode="after")
    def validate_ranges(self) -> Settings:
        """Validate broker list and numeric bounds."""
        if not self.kafka_topic.strip():
            raise ValueError("KAFKA_TOPIC must not be empty.")
        if self.kafka_topic_partitions <= 0:
            raise ValueError("KAFKA_TOPIC_PARTITIONS must be > 0.")
        if self.kafka_topic_replication_factor <= 0:
            raise ValueError("KAFKA_TOPIC_REPLICATION_FACTOR must be > 0.")
        if self.kafka_connect_max_attempts <= 0:
            raise ValueError("KAFKA_CONNECT_MAX_ATTEMPTS must be > 0.")
        if self.kafka_connect_retry_delay_seconds < 0:
            raise ValueError("KAFKA_CONNECT_RETRY_DELAY_SECONDS must be >= 0.")
        if self.kafka_send_timeout_seconds <= 0:
            raise ValueError("KAFKA_SEND_TIMEOUT_SECONDS must be > 0.")
        if self.kafka_poll_timeout_ms <= 0:
            raise ValueError("KAFKA_POLL_TIMEOUT_MS must be > 0.")
        if not (0 < self.postgres_port < 65536):
            raise ValueError("POSTGRES_PORT must be between 1 and 65535.")
        if self.postgres_pool_max_size <= 0:
            raise ValueError("POSTGRES_POOL_MAX_SIZE must be > 0.")
        if self.postgres_idle_timeout_seconds <= 0:
            raise ValueError("POSTGRES_IDLE_TIMEOUT_SECONDS must be > 0.")
        if self.postgres_connect_timeout_seconds <= 0:
            raise ValueError("POSTGRES_CONNECT_TIMEOUT_SECONDS must be > 0.")
        if self.postgres_retry_delay_seconds < 0:
            raise ValueError("POSTGRES_RETRY_DELAY_SECONDS must be >= 0.")
        if self.weather_timeout_seconds <= 0:
            raise ValueError("WEATHER_TIMEOUT_SECONDS must be > 0.")
        if not self.weather_user_agent.strip():
            raise ValueError("WEATHER_USER_AGENT must not be empty.")
        if self.weather_max_retries < 0:
            raise ValueError("WEATHER_MAX_RETRIES must be >= 0.")
        if self.geocoding_candidate_count <= 0:
            raise ValueError("GEOCODING_CANDIDATE_COUNT must be > 0.")
        return self

    @property
    def kafka_broker_list(self) -> list[str]:
        """Broker addresses split from the comma-separated env value."""
        return [part.strip() for part in self.kafka_brokers.split(",") if part.strip()]

    def safe_summary(self) -> dict[str, Any]:
        """Return config summary safe for logging (no credentials)."""
        return {
            "app_env": self.app_env,
            "kafka_brokers": self.kafka_broker_list,
            "kafka_topic": self.kafka_topic,
            "kafka_topic_partitions": self.kafka_topic_partitions,
            "kafka_topic_replication_factor": self.kafka_topic_replication_factor,
            "kafka_consumer_group": self.kafka_consumer_group,
            "kafka_connect_max_attempts": self.kafka_connect_max_attempts,
            "postgres_host": self.postgres_host,
            "postgres_port": self.postgres_port,
            "postgres_db": self.postgres_db,
            "postgres_user": self.postgres_user,
            "postgres_pool_max_size": self.postgres_pool_max_size,
            "geocoding_api_url": str(self.geocoding_api_url),
            "forecast_api_url": str(self.forecast_api_url),
            "weather_timeout_seconds": self.weather_timeout_seconds,
        }


def load_settings(*, require_kafka: bool = True) -> Settings:
    """Load and validate settings, raising ConfigError on failure.

    The query CLI only talks to PostgreSQL and passes `require_kafka=False`.
    """
    try:
        settings = Settings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed reading environment/.env: {exc}") from exc
    if require_kafka and not settings.kafka_broker_list:
        raise ConfigError("KAFKA_BROKERS must list at least one host:port.")
    return settings
