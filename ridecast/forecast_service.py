"""Fetch forecasts through the short-lived cache and turn them into scored ride days."""
from __future__ import annotations

from typing import List, Optional, Sequence

import redis

from ridecast.config import settings
from ridecast.data_sources import ForecastDataSource
from ridecast.domain import RideSlot, ScoredDay, WeatherForecast, WeatherSettings
from ridecast.forecast_cache import ForecastCache, InMemoryForecastCache, RedisForecastCache
from ridecast.scoring_engine import score_days
from ridecast.stores import SnapshotStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="forecast_service")


def _init_cache() -> ForecastCache:
    """Initialize the forecast cache based on configuration."""
    logger.debug(f"Initializing forecast cache: redis_url='{settings.forecast_cache_redis_url or 'None'}'")
    if settings.forecast_cache_redis_url:
        try:
            client = redis.Redis.from_url(settings.forecast_cache_redis_url)
            client.ping()
            logger.info("Using RedisForecastCache", extra={"redis_url": settings.forecast_cache_redis_url})
            return RedisForecastCache(client, ttl_seconds=settings.forecast_cache_ttl_seconds)
        except Exception as exc:  # pragma: no cover - depends on a live Redis
            logger.warning("Falling back to InMemoryForecastCache (Redis unavailable)", extra={"error": str(exc)})
    return InMemoryForecastCache(ttl_seconds=settings.forecast_cache_ttl_seconds)


_cache: ForecastCache = _init_cache()


def use_in_memory_cache_for_tests(ttl_seconds: int = 900) -> None:
    """Override the cache for tests to ensure isolation and determinism."""
    global _cache
    _cache = InMemoryForecastCache(ttl_seconds=ttl_seconds)


def get_forecast(
    latitude: float,
    longitude: float,
    *,
    data_source: ForecastDataSource,
    rain_window_hours: int = 48,
    forecast_days: Optional[int] = None,
    cache: Optional[ForecastCache] = None,
) -> WeatherForecast:
    """Return the cached forecast for a location, fetching it on a miss.

    Provider errors propagate; nothing is cached when the fetch fails.
    """
    cache = cache or _cache
    cached = cache.get(latitude, longitude)
    if cached is not None:
        logger.debug("Forecast cache hit", extra={"lat": latitude, "lng": longitude})
        return cached

    logger.info("Fetching forecast", extra={"lat": latitude, "lng": longitude})
    forecast = data_source.fetch_forecast(
        latitude,
        longitude,
        forecast_days=forecast_days or settings.forecast_days,
        past_hours=rain_window_hours,
    )
    cache.set(latitude, longitude, forecast)
    return forecast


def build_ride_days(
    forecast: WeatherForecast,
    weather_settings: WeatherSettings,
    ride_slots: Sequence[RideSlot] = (),
    snapshot_store: Optional[SnapshotStore] = None,
    retention_days: Optional[int] = None,
) -> List[ScoredDay]:
    """Score every forecast day and record what was predicted.

    One snapshot per scored day is upserted so later feedback can be graded.
    Snapshot failures are logged and do not fail scoring.
    """
    days = score_days(
        forecast.daily,
        weather_settings,
        forecast.recent_rain,
        forecast.current,
        forecast.hourly,
        list(ride_slots),
        tz_offset_minutes=forecast.utc_offset_seconds // 60,
    )
    if snapshot_store is None:
        return days

    rate = weather_settings.footing_dry_hours_per_inch
    try:
        for day in days:
            snapshot_store.upsert_snapshot(day.date, day, day.moisture, rate)
        if retention_days:
            snapshot_store.prune_snapshots(retention_days)
    except Exception as exc:
        logger.warning("Failed to save prediction snapshots", extra={"error": str(exc)})
    return days
