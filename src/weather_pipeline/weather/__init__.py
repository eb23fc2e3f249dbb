"""Open-Meteo integrations: location resolution and forecast normalization."""

from .base import OpenMeteoAPI
from .forecast import ForecastNormalizer, decode_weather_code, forecast_window
from .geocoding import LocationResolver, select_candidate

__all__ = [
    "ForecastNormalizer",
    "LocationResolver",
    "OpenMeteoAPI",
    "decode_weather_code",
    "forecast_window",
    "select_candidate",
]
