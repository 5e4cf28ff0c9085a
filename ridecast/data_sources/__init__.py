"""Data source factories for plugging different forecast backends."""

from .base import CallableForecastDataSource, ForecastDataSource, ForecastProviderError
from .factory import build_data_source
from .open_meteo_client import fetch_forecast

__all__ = [
    "build_data_source",
    "ForecastDataSource",
    "ForecastProviderError",
    "CallableForecastDataSource",
    "fetch_forecast",
]
