"""Application exception classes."""


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""


class InvalidRequestError(ValueError):
    """Raised when an ingest request is missing its city or country."""


class WeatherProviderError(Exception):
    """Raised when geocoding or forecast requests fail."""


class LocationNotFound(WeatherProviderError):
    """Raised when the geocoder returns no candidates for a city."""


class UpstreamUnavailable(WeatherProviderError):
    """Raised when an upstream weather API cannot be reached or returns bad data."""


class DeliveryError(Exception):
    """Raised when records cannot be delivered to the stream transport."""

    def __init__(self, message: str, *, published: int = 0) -> None:
        super().__init__(message)
        self.published = published


class DecodeError(Exception):
    """Raised when a stream message cannot be decoded into a weather record."""


class PersistenceError(Exception):
    """Raised when a weather record cannot be written to storage."""
