"""Location resolver backed by the Open-Meteo geocoding API."""

from __future__ import annotations

from typing import Any

from ..exceptions import InvalidRequestError, LocationNotFound, UpstreamUnavailable
from ..models import ResolvedLocation
from .base import OpenMeteoAPI


class LocationResolver(OpenMeteoAPI):
    """Turns a free-text city/country pair into canonical coordinates."""

    async def resolve(self, city: str, country: str) -> ResolvedLocation:
        """Resolve `city` and pick the candidate that best matches `country`.

        City names are not globally unique and callers pass either a country
        name or an ISO code, so candidates are matched in two passes: first a
        case-insensitive substring match on the country name, then an exact
        match on the country code. Without a match the geocoder's top result
        is used.
        """
        city = city.strip() if city else ""
        country = country.strip() if country else ""
        if not city or not country:
            raise InvalidRequestError("City and country are required.")

        payload = await self._request_json(
            str(self.settings.geocoding_api_url),
            params={
                "name": city,
                "count": self.settings.geocoding_candidate_count,
                "language": "en",
                "format": "json",
            },
            context="geocoding lookup",
        )
        raw_results = payload.get("results")
        if raw_results is None:
            raise LocationNotFound(f"Location not found: {city}")
        if not isinstance(raw_results, list):
            raise UpstreamUnavailable("Geocoding payload 'results' is not a list.")
        candidates = [item for item in raw_results if isinstance(item, dict)]
        if not candidates:
            raise LocationNotFound(f"Location not found: {city}")

        chosen = select_candidate(candidates, country)
        location = self._to_location(chosen, city=city, country=country)
        self.logger.info(
            "Found: %s, %s (%s) at %s, %s",
            location.canonical_city,
            location.canonical_country,
            location.country_code,
            location.latitude,
            location.longitude,
        )
        return location

    def _to_location(
        self, candidate: dict[str, Any], *, city: str, country: str
    ) -> ResolvedLocation:
        latitude = self._as_float(candidate.get("latitude"))
        longitude = self._as_float(candidate.get("longitude"))
        if latitude is None or longitude is None:
            raise UpstreamUnavailable(
                f"Geocoding candidate for {city!r} is missing coordinates."
            )
        return ResolvedLocation(
            canonical_city=self._as_str(candidate.get("name")) or city,
            canonical_country=self._as_str(candidate.get("country")) or country,
            country_code=self._as_str(candidate.get("country_code")),
            latitude=latitude,
            longitude=longitude,
        )


def select_candidate(candidates: list[dict[str, Any]], country: str) -> dict[str, Any]:
    """Pick the candidate matching `country`, defaulting to the first one."""
    wanted = country.strip().lower()
    for candidate in candidates:
        name = candidate.get("country")
        if isinstance(name, str) and wanted in name.lower():
            return candidate
    for candidate in candidates:
        code = candidate.get("country_code")
        if isinstance(code, str) and code.lower() == wanted:
            return candidate
    return candidates[0]
