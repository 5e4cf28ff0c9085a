"""Redis-backed forecast cache with TTL."""

from typing import Optional

from ridecast.domain import WeatherForecast
from ridecast.forecast_cache.base import KEY_PREFIX, ForecastCache, cache_key
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="forecast_cache/redis")


class RedisForecastCache(ForecastCache):
    """Forecasts stored as JSON with SETEX. Redis errors read as cache misses."""

    def __init__(self, client, ttl_seconds: int = 900, prefix: str = KEY_PREFIX) -> None:
        """Initialize with a Redis client, TTL, and key prefix."""
        logger.debug("Initializing RedisForecastCache")
        self.client = client
        self.ttl = ttl_seconds
        self.prefix = prefix

    def _key(self, latitude: float, longitude: float) -> str:
        return cache_key(latitude, longitude, self.prefix)

    def get(self, latitude: float, longitude: float) -> Optional[WeatherForecast]:
        """Fetch a cached forecast, or None if missing/unreadable."""
        try:
            raw = self.client.get(self._key(latitude, longitude))
        except Exception as exc:
            logger.warning("Failed to read forecast from Redis: %s", exc)
            return None
        if not raw:
            return None
        try:
            return WeatherForecast.model_validate_json(raw)
        except ValueError as exc:
            logger.error("Failed to deserialize cached forecast: %s", exc)
            return None

    def set(self, latitude: float, longitude: float, forecast: WeatherForecast) -> None:
        """Store a forecast; write failures are logged, not raised."""
        try:
            self.client.setex(self._key(latitude, longitude), self.ttl, forecast.model_dump_json())
        except Exception as exc:
            logger.warning("Failed to write forecast to Redis: %s", exc)

    def clear(self) -> None:
        """Best-effort clear for all forecasts under the configured prefix."""
        try:
            for key in self.client.scan_iter(f"{self.prefix}*"):
                self.client.delete(key)
        except Exception as exc:
            logger.error("Failed to clear forecasts from Redis: %s", exc)
