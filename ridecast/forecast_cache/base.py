"""Shared protocol for forecast cache backends."""

from typing import Optional, Protocol

from ridecast.domain import WeatherForecast

KEY_PREFIX = "forecast:"


def cache_key(latitude: float, longitude: float, prefix: str = KEY_PREFIX) -> str:
    """Cache key for a location, e.g. forecast:40.1,-88.2."""
    return f"{prefix}{latitude},{longitude}"


class ForecastCache(Protocol):
    """Protocol for short-lived forecast caches keyed by location."""

    def get(self, latitude: float, longitude: float) -> Optional[WeatherForecast]:
        """Return a cached forecast, or None if missing or expired."""

    def set(self, latitude: float, longitude: float, forecast: WeatherForecast) -> None:
        """Store a forecast for the configured TTL."""

    def clear(self) -> None:
        """Drop every cached forecast."""
