"""Tests for settings validation, redaction and JSON logging."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pytest

from weather_pipeline.config import load_settings
from weather_pipeline.exceptions import ConfigError
from weather_pipeline.log_setup import JsonConsoleFormatter
from weather_pipeline.redaction import REDACTED, sanitize_for_logging, sanitize_text


def _set_required_env(monkeypatch: Any, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("KAFKA_BROKERS", "kafka1:9092, kafka2:9092,,kafka3:9092")
    monkeypatch.setenv("POSTGRES_HOST", "postgres")
    monkeypatch.setenv("POSTGRES_PASSWORD", "hunter2")


def test_defaults_match_topic_and_pool_layout(monkeypatch: Any, tmp_path: Path) -> None:
    _set_required_env(monkeypatch, tmp_path)

    settings = load_settings()

    assert settings.kafka_broker_list == ["kafka1:9092", "kafka2:9092", "kafka3:9092"]
    assert settings.kafka_topic == "weather-data"
    assert settings.kafka_topic_partitions == 3
    assert settings.kafka_topic_replication_factor == 3
    assert settings.kafka_consumer_group == "weather-consumer-group"
    assert settings.kafka_connect_max_attempts == 10
    assert settings.kafka_connect_retry_delay_seconds == 5.0
    assert settings.postgres_pool_max_size == 10
    assert settings.postgres_idle_timeout_seconds == 30.0
    assert settings.postgres_connect_timeout_seconds == 2.0
    assert settings.postgres_retry_delay_seconds == 5.0
    assert settings.geocoding_candidate_count == 3
    assert str(settings.geocoding_api_url).startswith("https://geocoding-api.open-meteo.com")


def test_missing_brokers_is_config_error(monkeypatch: Any, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("KAFKA_BROKERS", raising=False)

    with pytest.raises(ConfigError, match="KAFKA_BROKERS"):
        load_settings()


def test_query_side_loads_without_brokers(monkeypatch: Any, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("KAFKA_BROKERS", raising=False)
    monkeypatch.setenv("POSTGRES_HOST", "postgres")

    settings = load_settings(require_kafka=False)

    assert settings.kafka_broker_list == []
    assert settings.postgres_host == "postgres"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("KAFKA_BROKERS", " , "),
        ("KAFKA_TOPIC_PARTITIONS", "0"),
        ("KAFKA_CONNECT_MAX_ATTEMPTS", "0"),
        ("POSTGRES_POOL_MAX_SIZE", "0"),
        ("POSTGRES_PORT", "70000"),
        ("WEATHER_TIMEOUT_SECONDS", "-1"),
        ("LOG_LEVEL", "CHATTY"),
    ],
)
def test_invalid_values_are_config_errors(
    monkeypatch: Any, tmp_path: Path, name: str, value: str
) -> None:
    _set_required_env(monkeypatch, tmp_path)
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigError):
        load_settings()


def test_safe_summary_and_repr_hide_password(monkeypatch: Any, tmp_path: Path) -> None:
    _set_required_env(monkeypatch, tmp_path)

    settings = load_settings()

    assert "hunter2" not in json.dumps(settings.safe_summary())
    assert "hunter2" not in repr(settings)
    assert settings.postgres_password == "hunter2"


def test_empty_password_is_treated_as_unset(monkeypatch: Any, tmp_path: Path) -> None:
    _set_required_env(monkeypatch, tmp_path)
    monkeypatch.setenv("POSTGRES_PASSWORD", "")

    assert load_settings().postgres_password is None


def test_sanitize_text_scrubs_dsn_and_key_value_passwords() -> None:
    text = "connect postgresql://weather:hunter2@db:5432/weather failed; password=hunter2"
    sanitized = sanitize_text(text)
    assert "hunter2" not in sanitized
    assert f"postgresql://weather:{REDACTED}@db:5432/weather" in sanitized


def test_sanitize_for_logging_redacts_sensitive_keys() -> None:
    payload = {"postgres_password": "hunter2", "nested": [{"token": "abc"}], "city": "London"}
    sanitized = sanitize_for_logging(payload)
    assert sanitized == {
        "postgres_password": REDACTED,
        "nested": [{"token": REDACTED}],
        "city": "London",
    }


def test_json_formatter_emits_redacted_structured_line() -> None:
    record = logging.LogRecord(
        name="weather_pipeline",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg="Error connecting to PostgreSQL: %s",
        args=("password=hunter2 refused",),
        exc_info=None,
    )
    event = json.loads(JsonConsoleFormatter().format(record))
    assert event["level"] == "ERROR"
    assert event["logger"] == "weather_pipeline"
    assert "hunter2" not in event["message"]
    assert "process" not in event
    assert "context" not in event


def test_json_formatter_tags_process_and_message_context() -> None:
    record = logging.LogRecord(
        name="weather_pipeline",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg="Error processing message, dropping it",
        args=(),
        exc_info=None,
    )
    record.topic = "weather-data"
    record.partition = 2
    record.offset = 41

    event = json.loads(JsonConsoleFormatter(process="consumer").format(record))

    assert event["process"] == "consumer"
    assert event["context"] == {"topic": "weather-data", "partition": 2, "offset": 41}
