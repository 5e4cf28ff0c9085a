"""In-memory forecast cache with TTL, intended for development and tests."""

import threading
import time
from typing import Optional

from ridecast.domain import WeatherForecast
from ridecast.forecast_cache.base import ForecastCache, cache_key
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="forecast_cache/in_memory")


class InMemoryForecastCache(ForecastCache):
    """Thread-safe, TTL-aware in-memory cache (dev/test)."""

    def __init__(self, ttl_seconds: int = 900) -> None:
        logger.debug("Initializing InMemoryForecastCache")
        self.ttl = ttl_seconds
        self._entries: dict[str, tuple[float, WeatherForecast]] = {}
        self._lock = threading.Lock()

    def get(self, latitude: float, longitude: float) -> Optional[WeatherForecast]:
        """Return the cached forecast, evicting it if expired."""
        key = cache_key(latitude, longitude)
        with self._lock:
            entry = self._entries.get(key)
            if not entry:
                return None
            expires_at, forecast = entry
            if expires_at < time.monotonic():
                self._entries.pop(key, None)
                return None
            return forecast

    def set(self, latitude: float, longitude: float, forecast: WeatherForecast) -> None:
        with self._lock:
            self._entries[cache_key(latitude, longitude)] = (time.monotonic() + self.ttl, forecast)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
