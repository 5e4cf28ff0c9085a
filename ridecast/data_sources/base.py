"""Interfaces and helpers for forecast data sources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

from ridecast.domain import WeatherForecast


class ForecastProviderError(RuntimeError):
    """The upstream weather provider failed or returned an unusable payload."""


class ForecastDataSource(Protocol):
    """Interface for anything that can provide a full forecast bundle."""

    def fetch_forecast(
        self,
        latitude: float,
        longitude: float,
        *,
        forecast_days: int = 8,
        past_hours: int = 48,
    ) -> WeatherForecast:
        """Return current conditions, daily and hourly forecast, and recent rain."""
        ...


@dataclass
class CallableForecastDataSource(ForecastDataSource):
    """Wrap a callable so it can be swapped for different backends."""

    forecast: Callable[..., WeatherForecast]

    def fetch_forecast(self, *args, **kwargs) -> WeatherForecast:
        """Delegate to the configured forecast callable."""
        return self.forecast(*args, **kwargs)
