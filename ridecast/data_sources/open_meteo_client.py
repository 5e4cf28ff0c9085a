"""Fetch a full ride-day forecast bundle from the Open-Meteo forecast API.

One request returns current conditions, hourly data (past rain plus the
near-term forecast) and the daily outlook. Units are requested in imperial
and timestamps as unix seconds, so no timezone database lookup is needed:
local dates are derived from the `utc_offset_seconds` the API reports.
"""
from __future__ import annotations

import datetime as dt
from typing import Any, List, Optional, Sequence

import requests
from retry_requests import retry

from ridecast.data_sources.base import ForecastProviderError
from ridecast.domain import (
    CurrentWeather,
    DailyForecast,
    HourlyForecast,
    HourlyRain,
    WeatherForecast,
)
from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag='open_meteo_client')

# Response caching is handled one level up by the forecast cache.
session = retry(requests.Session(), retries=5, backoff_factor=0.2)

OPEN_METEO_WEATHER_URL = "https://api.open-meteo.com/v1/forecast"
DEFAULT_TIMEOUT_SECONDS = 10.0

CURRENT_VARS = [
    "temperature_2m",
    "apparent_temperature",
    "relative_humidity_2m",
    "precipitation",
    "weather_code",
    "wind_speed_10m",
    "wind_gusts_10m",
    "uv_index",
]

HOURLY_VARS = [
    "temperature_2m",
    "precipitation",
    "precipitation_probability",
]

DAILY_VARS = [
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "precipitation_probability_max",
    "wind_speed_10m_max",
    "cloud_cover_mean",
    "relative_humidity_2m_mean",
    "sunrise",
    "sunset",
]

EXPECTED_UNITS = {
    "temperature_2m": "°F",
    "apparent_temperature": "°F",
    "temperature_2m_max": "°F",
    "temperature_2m_min": "°F",
    "precipitation": "inch",
    "precipitation_sum": "inch",
    "precipitation_probability": "%",
    "precipitation_probability_max": "%",
    "wind_speed_10m": "mph",
    "wind_gusts_10m": "mph",
    "wind_speed_10m_max": "mph",
    "cloud_cover_mean": "%",
}

# Acceptable alternative spellings that should not trigger warnings.
ALLOWED_UNIT_SYNONYMS = {
    "precipitation": {"inch", "in"},
    "precipitation_sum": {"inch", "in"},
    "precipitation_probability": {"%", "percent"},
    "precipitation_probability_max": {"%", "percent"},
    "wind_speed_10m": {"mph", "mp/h"},
    "wind_gusts_10m": {"mph", "mp/h"},
    "wind_speed_10m_max": {"mph", "mp/h"},
    "cloud_cover_mean": {"%", "percent"},
}

# WMO weather interpretation codes, grouped.
WEATHER_CODE_LABELS = {
    0: "Clear",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Fog",
    51: "Drizzle",
    53: "Drizzle",
    55: "Drizzle",
    56: "Freezing drizzle",
    57: "Freezing drizzle",
    61: "Rain",
    63: "Rain",
    65: "Heavy rain",
    66: "Freezing rain",
    67: "Freezing rain",
    71: "Snow",
    73: "Snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Rain showers",
    81: "Rain showers",
    82: "Heavy rain showers",
    85: "Snow showers",
    86: "Snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with hail",
    99: "Thunderstorm with hail",
}


def _warn_on_unexpected_units(units: dict, *, context: str):
    """Log a warning if Open-Meteo returns units we did not request/expect."""
    if not units:
        return
    for field, expected in EXPECTED_UNITS.items():
        if field not in units:
            continue
        actual = units.get(field)
        if actual and actual != expected:
            allowed = ALLOWED_UNIT_SYNONYMS.get(field, set())
            if actual not in allowed:
                logger.warning(
                    "Unexpected Open-Meteo unit",
                    extra={"context": context, "field": field, "unit": actual, "expected": expected, "allowed": sorted(allowed)},
                )


def _utc(ts: Any) -> dt.datetime:
    """Unix seconds to an aware UTC datetime."""
    return dt.datetime.fromtimestamp(int(ts), tz=dt.timezone.utc)


def _local_date(ts: Any, utc_offset_seconds: int) -> dt.date:
    """Daily `time` values are local midnights; shift before taking the date."""
    return dt.datetime.fromtimestamp(int(ts) + utc_offset_seconds, tz=dt.timezone.utc).date()


def _column(block: dict, name: str, length: int) -> List[Any]:
    """Return a variable's value list, padded with None if the API omitted it."""
    values = block.get(name)
    if values is None:
        return [None] * length
    return list(values)


def _num(value: Any, default: float = 0.0) -> float:
    return default if value is None else float(value)


def _condition(code: Any) -> Optional[str]:
    if code is None:
        return None
    return WEATHER_CODE_LABELS.get(int(code), "Unknown")


def _parse_current(current: dict, hourly_pop_now: float) -> CurrentWeather:
    return CurrentWeather(
        temperature_f=float(current["temperature_2m"]),
        feels_like_f=current.get("apparent_temperature"),
        humidity_percent=current.get("relative_humidity_2m"),
        wind_speed_mph=_num(current.get("wind_speed_10m")),
        wind_gust_mph=current.get("wind_gusts_10m"),
        precipitation_chance=hourly_pop_now,
        precipitation_inches=max(0.0, _num(current.get("precipitation"))),
        condition=_condition(current.get("weather_code")),
        uv_index=current.get("uv_index"),
        as_of=_utc(current["time"]),
    )


def _parse_daily(daily: dict, utc_offset_seconds: int) -> List[DailyForecast]:
    times = daily["time"]
    n = len(times)
    code = _column(daily, "weather_code", n)
    t_max = _column(daily, "temperature_2m_max", n)
    t_min = _column(daily, "temperature_2m_min", n)
    rain = _column(daily, "precipitation_sum", n)
    pop = _column(daily, "precipitation_probability_max", n)
    wind = _column(daily, "wind_speed_10m_max", n)
    clouds = _column(daily, "cloud_cover_mean", n)
    humidity = _column(daily, "relative_humidity_2m_mean", n)
    sunrise = _column(daily, "sunrise", n)
    sunset = _column(daily, "sunset", n)

    out: List[DailyForecast] = []
    for i, t in enumerate(times):
        if t_max[i] is None or t_min[i] is None:
            logger.debug("Skipping daily row without temperatures", extra={"index": i})
            continue
        out.append(
            DailyForecast(
                date=_local_date(t, utc_offset_seconds),
                high_f=float(t_max[i]),
                low_f=float(t_min[i]),
                clouds_pct=_num(clouds[i]),
                humidity_pct=humidity[i],
                wind_speed_mph=_num(wind[i]),
                precipitation_chance=_num(pop[i]),
                precipitation_inches=max(0.0, _num(rain[i])),
                condition=_condition(code[i]),
                sunrise=_utc(sunrise[i]) if sunrise[i] is not None else None,
                sunset=_utc(sunset[i]) if sunset[i] is not None else None,
            )
        )
    return out


def _split_hourly(
    hourly: dict,
    now: dt.datetime,
    *,
    past_hours: int,
    hourly_hours: int,
) -> tuple[List[HourlyRain], List[HourlyForecast], float]:
    """Split hourly rows into observed rain (before this hour) and the forecast ahead.

    Also returns the precipitation probability (0-100) of the current hour.
    """
    times: Sequence[Any] = hourly["time"]
    n = len(times)
    temps = _column(hourly, "temperature_2m", n)
    rain = _column(hourly, "precipitation", n)
    pop = _column(hourly, "precipitation_probability", n)

    this_hour = now.replace(minute=0, second=0, microsecond=0)
    history_start = this_hour - dt.timedelta(hours=past_hours)
    horizon = this_hour + dt.timedelta(hours=hourly_hours)

    recent: List[HourlyRain] = []
    ahead: List[HourlyForecast] = []
    pop_now = 0.0
    for i, t in enumerate(times):
        ts = _utc(t)
        amount = max(0.0, _num(rain[i]))
        if history_start <= ts < this_hour:
            recent.append(HourlyRain(hour=ts, rain_inches=amount))
        elif this_hour <= ts < horizon:
            chance = min(100.0, max(0.0, _num(pop[i])))
            if ts == this_hour:
                pop_now = chance
            ahead.append(HourlyForecast(hour=ts, temp_f=temps[i], rain_inches=amount, pop=chance / 100.0))
    return recent, ahead, pop_now


def fetch_forecast(
    latitude: float,
    longitude: float,
    *,
    forecast_days: int = 8,
    past_hours: int = 48,
    hourly_hours: int = 48,
    base_url: str = OPEN_METEO_WEATHER_URL,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> WeatherForecast:
    """Fetch current, hourly and daily weather for a location in one call.

    Raises ForecastProviderError on transport errors, HTTP errors and
    payloads missing required fields.
    """
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "current": ",".join(CURRENT_VARS),
        "hourly": ",".join(HOURLY_VARS),
        "daily": ",".join(DAILY_VARS),
        "forecast_days": forecast_days,
        "past_hours": past_hours,
        "timezone": "auto",
        "timeformat": "unixtime",
        "temperature_unit": "fahrenheit",
        "wind_speed_unit": "mph",
        "precipitation_unit": "inch",
    }

    try:
        resp = session.get(base_url, params=params, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error("Open-Meteo request failed", extra={"error": str(exc)})
        raise ForecastProviderError(f"Open-Meteo request failed: {exc}") from exc

    try:
        offset = int(data.get("utc_offset_seconds") or 0)
        for units_key in ("current_units", "hourly_units", "daily_units"):
            _warn_on_unexpected_units(data.get(units_key) or {}, context=units_key)

        now = _utc(data["current"]["time"])
        recent, ahead, pop_now = _split_hourly(
            data["hourly"], now, past_hours=past_hours, hourly_hours=hourly_hours
        )
        forecast = WeatherForecast(
            current=_parse_current(data["current"], pop_now),
            daily=_parse_daily(data["daily"], offset),
            hourly=ahead,
            recent_rain=recent,
            utc_offset_seconds=offset,
            fetched_at=dt.datetime.now(dt.timezone.utc),
        )
    except (KeyError, TypeError, ValueError) as exc:
        logger.error("Unexpected Open-Meteo payload", extra={"error": str(exc)})
        raise ForecastProviderError(f"Unexpected Open-Meteo payload: {exc}") from exc

    logger.debug(
        "Fetched Open-Meteo forecast",
        extra={"days": len(forecast.daily), "hours": len(forecast.hourly), "recent_hours": len(forecast.recent_rain)},
    )
    return forecast
