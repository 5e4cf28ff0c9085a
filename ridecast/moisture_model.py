"""Footing moisture accumulation/evaporation model.

Moisture is an inches-of-water accumulator: rain adds to it, evaporation takes
away from it at a rate driven by cloud cover, temperature and wind, scaled by
the tunable `footing_dry_hours_per_inch` parameter. Everything here is a pure
function of its arguments.
"""

from __future__ import annotations

from math import ceil
from typing import Iterable, Sequence

from ridecast.domain import (
    NEVER_DRIES_HOURS,
    CurrentWeather,
    DailyForecast,
    FutureMoisture,
    HourlyRain,
    MoistureEstimate,
    WeatherSettings,
)


TARGET_DAY_HOURS = 12  # ride assumed mid-day
FULL_DAY_HOURS = 24


def base_rate(drying_hours_per_inch: float) -> float:
    """Inches evaporated per hour under reference conditions."""
    if not drying_hours_per_inch or drying_hours_per_inch <= 0:
        return 0.0
    return 1.0 / drying_hours_per_inch


def evaporation_rate(cloud_pct: float, temp_f: float, wind_mph: float, base: float) -> float:
    """Inches per hour evaporated for the given sky, temperature and wind."""
    sun_factor = 0.5 + (100.0 - cloud_pct) / 200.0
    temp_factor = 0.5 + temp_f / 140.0
    wind_factor = 1.0 + wind_mph / 30.0
    return max(0.0, base * sun_factor * temp_factor * wind_factor)


def day_evaporation_rate(day: DailyForecast, base: float) -> float:
    """Evaporation rate for a forecast day."""
    return evaporation_rate(day.clouds_pct, day.daytime_temp_f, day.wind_speed_mph, base)


def hours_to_dry(moisture: float, evap: float) -> int:
    """Hours needed to evaporate `moisture` at a constant rate."""
    if moisture <= 0:
        return 0
    if evap <= 0:
        return NEVER_DRIES_HOURS
    return min(NEVER_DRIES_HOURS, ceil(moisture / evap))


def estimate_moisture(
    recent_rain: Iterable[HourlyRain],
    today: DailyForecast,
    current: CurrentWeather | None,
    drying_hours_per_inch: float,
) -> MoistureEstimate:
    """
    Estimate moisture retained in the footing right now.

    Walks the rain history oldest first. Rain from the first hour lands, then
    every following hour evaporates one hour's worth before adding its own
    rain. Evaporation uses today's forecast for every step. Live precipitation
    is added on top once the history is consumed.
    """
    evap = day_evaporation_rate(today, base_rate(drying_hours_per_inch))
    moisture = 0.0

    for i, hour in enumerate(sorted(recent_rain, key=lambda h: h.hour)):
        if i > 0:
            moisture = max(0.0, moisture - evap)
        moisture += max(0.0, hour.rain_inches)

    if current is not None and current.precipitation_inches > 0:
        moisture += current.precipitation_inches

    return MoistureEstimate(
        current_moisture=round(moisture, 2),
        hours_to_dry=hours_to_dry(moisture, evap),
    )


def effective_rain(day: DailyForecast, rain_cutoff_inches: float) -> float:
    """Forecast rain with a probability-weighted floor so likely rain always counts."""
    weighted = (day.precipitation_chance / 100.0) * rain_cutoff_inches
    return max(day.precipitation_inches, weighted, 0.0)


def _project_hours_to_dry(
    moisture: float,
    forecasts: Sequence[DailyForecast],
    day_index: int,
    base: float,
) -> int:
    """Simulate drying from the target day onward: 12h left on that day, then whole days."""
    if moisture <= 0:
        return 0

    remaining = moisture
    elapsed = 0
    last_evap = 0.0
    for i in range(day_index, len(forecasts)):
        evap = day_evaporation_rate(forecasts[i], base)
        available = TARGET_DAY_HOURS if i == day_index else FULL_DAY_HOURS
        last_evap = evap
        if evap > 0 and remaining <= evap * available:
            return min(NEVER_DRIES_HOURS, elapsed + ceil(remaining / evap))
        remaining -= evap * available
        elapsed += available
        if elapsed >= NEVER_DRIES_HOURS:
            return NEVER_DRIES_HOURS

    # past the forecast horizon, keep drying at the last known rate
    if last_evap <= 0:
        return NEVER_DRIES_HOURS
    return min(NEVER_DRIES_HOURS, elapsed + ceil(remaining / last_evap))


def estimate_future_moisture(
    current_moisture: float,
    forecasts: Sequence[DailyForecast],
    day_index: int,
    settings: WeatherSettings,
) -> FutureMoisture:
    """
    Project the current moisture estimate forward to forecast day `day_index`.

    Day 0's rain is already part of the current estimate; every later day up to
    the target adds its effective rain. Fully elapsed days evaporate for 24
    hours and the target day for 12.
    """
    if not forecasts:
        return FutureMoisture(moisture=round(max(0.0, current_moisture), 2), hours_to_dry=0)

    day_index = max(0, min(day_index, len(forecasts) - 1))
    base = base_rate(settings.footing_dry_hours_per_inch)

    moisture = max(0.0, current_moisture)
    target_rain = 0.0
    for i in range(day_index + 1):
        day = forecasts[i]
        if i > 0:
            rain = effective_rain(day, settings.rain_cutoff_inches)
            moisture += rain
            if i == day_index:
                target_rain = rain
        hours = TARGET_DAY_HOURS if i == day_index else FULL_DAY_HOURS
        moisture = max(0.0, moisture - day_evaporation_rate(day, base) * hours)

    return FutureMoisture(
        moisture=round(moisture, 2),
        hours_to_dry=_project_hours_to_dry(moisture, forecasts, day_index, base),
        rain_inches=round(target_rain, 2),
    )
