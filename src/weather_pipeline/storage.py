"""PostgreSQL persistence for weather records (asyncpg)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import asyncpg

from .config import Settings
from .exceptions import PersistenceError
from .models import LocationKey, StoredWeatherRecord, WeatherRecord

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

_COLUMNS = (
    "city",
    "country",
    "date",
    "temperature",
    "humidity",
    "pressure",
    "wind_speed",
    "wind_direction",
    "weather_condition",
    "description",
    "latitude",
    "longitude",
)
_KEY_COLUMNS = ("city", "country", "date")

UPSERT_SQL = f"""
    INSERT INTO weather_data ({", ".join(_COLUMNS)})
    VALUES ({", ".join(f"${i}" for i in range(1, len(_COLUMNS) + 1))})
    ON CONFLICT ({", ".join(_KEY_COLUMNS)})
    DO UPDATE SET
        {", ".join(f"{col} = EXCLUDED.{col}" for col in _COLUMNS if col not in _KEY_COLUMNS)},
        created_at = CURRENT_TIMESTAMP
"""

SELECT_RECORDS_SQL = f"SELECT {', '.join(_COLUMNS)}, created_at FROM weather_data"
SELECT_LOCATIONS_SQL = "SELECT DISTINCT city, country FROM weather_data ORDER BY city, country"


class WeatherStore:
    """Owns the process-wide asyncpg pool for the `weather_data` table."""

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        pool_factory: Callable[..., Any] = asyncpg.create_pool,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.logger = logger
        self._pool_factory = pool_factory
        self._sleep = sleep
        self._pool: Any | None = None

    async def connect(self, max_attempts: int | None = None) -> None:
        """Open the pool, retrying at a fixed delay until PostgreSQL answers.

        With `max_attempts=None` (the consumer) this waits indefinitely.
        One-shot callers pass a bound and get PersistenceError once the
        attempts are used up.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                await self._open_pool()
            except _DB_ERRORS as exc:
                self.logger.error("Error connecting to PostgreSQL: %s", exc)
                if max_attempts is not None and attempt >= max_attempts:
                    await self.close()
                    raise PersistenceError(
                        f"PostgreSQL unreachable after {attempt} connection attempt(s): {exc}"
                    ) from exc
                await self._sleep(self.settings.postgres_retry_delay_seconds)
                continue
            self.logger.info("Connected to PostgreSQL")
            return

    async def _open_pool(self) -> None:
        if self._pool is None:
            self._pool = await self._pool_factory(
                host=self.settings.postgres_host,
                port=self.settings.postgres_port,
                database=self.settings.postgres_db,
                user=self.settings.postgres_user,
                password=self.settings.postgres_password,
                min_size=1,
                max_size=self.settings.postgres_pool_max_size,
                max_inactive_connection_lifetime=self.settings.postgres_idle_timeout_seconds,
                timeout=self.settings.postgres_connect_timeout_seconds,
            )
        async with self._pool.acquire(
            timeout=self.settings.postgres_connect_timeout_seconds
        ) as conn:
            await conn.execute("SELECT 1")

    def _require_pool(self) -> Any:
        if self._pool is None:
            raise PersistenceError("Store is not connected; call connect() first.")
        return self._pool

    async def upsert(self, record: WeatherRecord) -> bool:
        """Insert or overwrite the row for the record's natural key."""
        try:
            await self._execute_upsert(record)
        except PersistenceError as exc:
            self.logger.error(
                "Error inserting weather data: %s",
                exc,
                extra={"city": record.city, "country": record.country, "date": record.date},
            )
            return False
        self.logger.info(
            "Inserted weather data for %s, %s on %s",
            record.city,
            record.country,
            record.date.isoformat(),
        )
        return True

    async def _execute_upsert(self, record: WeatherRecord) -> None:
        pool = self._require_pool()
        values = [getattr(record, column) for column in _COLUMNS]
        try:
            async with pool.acquire(
                timeout=self.settings.postgres_connect_timeout_seconds
            ) as conn:
                await conn.execute(UPSERT_SQL, *values)
        except _DB_ERRORS as exc:
            raise PersistenceError(
                f"Upsert failed for {record.city}, {record.country} on {record.date}: {exc}"
            ) from exc

    async def fetch_records(
        self, city: str | None = None, country: str | None = None
    ) -> list[StoredWeatherRecord]:
        """Stored records, newest date first; filtered when city and country are both given."""
        query = SELECT_RECORDS_SQL
        params: list[Any] = []
        if city and country:
            query += " WHERE city = $1 AND country = $2"
            params = [city, country]
        query += " ORDER BY date DESC, created_at DESC"
        rows = await self._fetch(query, *params)
        return [StoredWeatherRecord.model_validate(dict(row)) for row in rows]

    async def fetch_locations(self) -> list[LocationKey]:
        rows = await self._fetch(SELECT_LOCATIONS_SQL)
        return [LocationKey(city=row["city"], country=row["country"]) for row in rows]

    async def _fetch(self, query: str, *params: Any) -> list[Any]:
        pool = self._require_pool()
        try:
            async with pool.acquire(
                timeout=self.settings.postgres_connect_timeout_seconds
            ) as conn:
                return await conn.fetch(query, *params)
        except _DB_ERRORS as exc:
            raise PersistenceError(f"Weather data query failed: {exc}") from exc

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        self.logger.info("PostgreSQL pool closed")
