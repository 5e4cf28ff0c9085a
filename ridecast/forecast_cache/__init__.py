"""Forecast cache backends."""

from .base import ForecastCache, cache_key
from .memory import InMemoryForecastCache
from .redis import RedisForecastCache

__all__ = [
    "ForecastCache",
    "cache_key",
    "InMemoryForecastCache",
    "RedisForecastCache",
]
