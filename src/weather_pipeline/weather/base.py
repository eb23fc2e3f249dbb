"""Shared async HTTP plumbing for the Open-Meteo APIs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import Settings
from ..exceptions import UpstreamUnavailable
from ..redaction import sanitize_text


class OpenMeteoAPI:
    """Base class owning one shared `httpx.AsyncClient` and JSON retry logic."""

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        max_retries: int | None = None,
        retry_delay_seconds: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.logger = logger
        self._max_retries = (
            settings.weather_max_retries if max_retries is None else max_retries
        )
        self._retry_delay = retry_delay_seconds
        self._client = client or httpx.AsyncClient(
            timeout=settings.weather_timeout_seconds,
            headers={
                "Accept": "application/json",
                "User-Agent": settings.weather_user_agent,
            },
        )

    async def __aenter__(self) -> OpenMeteoAPI:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request_json(
        self, url: str, params: dict[str, Any], context: str
    ) -> dict[str, Any]:
        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.get(url, params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                # Don't retry 4xx client errors except 429 rate-limit.
                if 400 <= status < 500 and status != 429:
                    raise UpstreamUnavailable(
                        f"Open-Meteo {context} failed with status {status} "
                        f"at {url}: {sanitize_text(exc.response.text[:300])}"
                    ) from exc
                last_error = exc
                if attempt < self._max_retries:
                    self.logger.warning(
                        "Open-Meteo %s failed (HTTP %d); retrying", context, status
                    )
                    await asyncio.sleep(self._retry_delay)
                    continue
                raise UpstreamUnavailable(
                    f"Open-Meteo {context} failed with status {status} "
                    f"at {url}: {sanitize_text(exc.response.text[:300])}"
                ) from exc
            except httpx.HTTPError as exc:
                last_error = exc
                if attempt < self._max_retries:
                    self.logger.warning(
                        "Open-Meteo %s request failed (%s); retrying",
                        context, type(exc).__name__,
                    )
                    await asyncio.sleep(self._retry_delay)
                    continue
                raise UpstreamUnavailable(
                    f"Open-Meteo {context} request failed at {url}: {sanitize_text(str(exc))}"
                ) from exc

            try:
                payload = response.json()
            except ValueError as exc:
                raise UpstreamUnavailable(
                    f"Open-Meteo {context} returned non-JSON response at {url}."
                ) from exc

            if not isinstance(payload, dict):
                raise UpstreamUnavailable(
                    f"Open-Meteo {context} returned unexpected payload type "
                    f"{type(payload).__name__} at {url}."
                )
            return payload

        raise UpstreamUnavailable(f"Open-Meteo {context} failed after retries: {last_error}")

    @staticmethod
    def _as_str(value: Any) -> str | None:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @staticmethod
    def _as_float(value: Any) -> float | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        return None
