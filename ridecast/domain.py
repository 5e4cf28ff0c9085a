"""Domain vocabulary and strict schemas for ride-day scoring and footing feedback.

This module defines the contract between the forecast source, the moisture
model, the day scorer, the stores and the HTTP layer: enums, constants and
Pydantic models for the payloads that flow through the system. No scoring
logic lives here.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


MIN_DRYING_RATE = 20.0
MAX_DRYING_RATE = 120.0
NEVER_DRIES_HOURS = 999


def clamp_drying_rate(value: float) -> float:
    """Keep hours-per-inch inside the safe range; out-of-range input is clamped, not rejected."""
    return max(MIN_DRYING_RATE, min(MAX_DRYING_RATE, float(value)))


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class _FrozenModel(_StrictBaseModel):
    """Immutable record (forecast inputs are fixed for a scoring run)."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class RideScore(str, Enum):
    """Traffic-light verdict for a day, ordered green < yellow < red."""
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"

    @property
    def rank(self) -> int:
        return _SCORE_RANK[self]


_SCORE_RANK = {RideScore.GREEN: 0, RideScore.YELLOW: 1, RideScore.RED: 2}


class FootingRating(str, Enum):
    """Rider-reported ground truth, ordered good < soft < unsafe."""
    GOOD = "good"
    SOFT = "soft"
    UNSAFE = "unsafe"

    @property
    def rank(self) -> int:
        return _FOOTING_RANK[self]


_FOOTING_RANK = {FootingRating.GOOD: 0, FootingRating.SOFT: 1, FootingRating.UNSAFE: 2}


class FeedbackClassification(str, Enum):
    """How a prediction compared with what the rider found."""
    CORRECT = "correct"
    TOO_CONSERVATIVE = "too_conservative"
    TOO_AGGRESSIVE = "too_aggressive"


class AlertType(str, Enum):
    """Tags for right-now hazard alerts."""
    COLD = "cold"
    HEAT = "heat"
    WIND = "wind"
    RAIN = "rain"
    BLANKET = "blanket"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class WeatherSettings(_StrictBaseModel):
    """Farm-wide thresholds used by the moisture model and day scorer."""
    location_lat: float | None = None
    location_lng: float | None = None
    rain_cutoff_inches: float = 0.25
    rain_window_hours: int = 48
    cold_alert_temp_f: float = 32.0
    heat_alert_temp_f: float = 95.0
    wind_cutoff_mph: float = 25.0
    has_indoor_arena: bool = False
    footing_caution_inches: float = 0.1
    footing_danger_inches: float = 0.25
    footing_dry_hours_per_inch: float = 60.0
    auto_tune_drying_rate: bool = True
    last_tuned_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @field_validator("footing_dry_hours_per_inch", mode="after")
    @classmethod
    def _clamp_rate(cls, v: float) -> float:
        return clamp_drying_rate(v)

    @property
    def has_location(self) -> bool:
        return self.location_lat is not None and self.location_lng is not None


class WeatherSettingsUpdate(_StrictBaseModel):
    """Partial settings update; unset fields are left alone."""
    location_lat: float | None = None
    location_lng: float | None = None
    rain_cutoff_inches: float | None = Field(default=None, ge=0.0)
    rain_window_hours: int | None = Field(default=None, ge=1, le=96)
    cold_alert_temp_f: float | None = None
    heat_alert_temp_f: float | None = None
    wind_cutoff_mph: float | None = Field(default=None, ge=0.0)
    has_indoor_arena: bool | None = None
    footing_caution_inches: float | None = Field(default=None, ge=0.0)
    footing_danger_inches: float | None = Field(default=None, ge=0.0)
    footing_dry_hours_per_inch: float | None = None
    auto_tune_drying_rate: bool | None = None
    last_tuned_at: dt.datetime | None = None

    @field_validator("footing_dry_hours_per_inch", mode="after")
    @classmethod
    def _clamp_rate(cls, v: float | None) -> float | None:
        return None if v is None else clamp_drying_rate(v)

    def changes(self) -> dict:
        """Return only the fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)


# ---------------------------------------------------------------------------
# Forecast inputs
# ---------------------------------------------------------------------------


class DailyForecast(_FrozenModel):
    """One day of forecast; `day_f` is the daytime temperature when the provider has one."""
    date: dt.date
    high_f: float
    low_f: float
    day_f: float | None = None
    clouds_pct: float = 0.0
    humidity_pct: float | None = None
    wind_speed_mph: float = 0.0
    precipitation_chance: float = 0.0
    precipitation_inches: float = 0.0
    condition: str | None = None
    sunrise: dt.datetime | None = None
    sunset: dt.datetime | None = None

    @property
    def daytime_temp_f(self) -> float:
        return self.day_f if self.day_f is not None else self.high_f


class HourlyForecast(_FrozenModel):
    """Near-term hourly forecast; `pop` is a 0-1 probability of precipitation."""
    hour: dt.datetime
    temp_f: float | None = None
    rain_inches: float = 0.0
    pop: float = Field(default=0.0, ge=0.0, le=1.0)


class HourlyRain(_FrozenModel):
    """Observed rain for one past hour."""
    hour: dt.datetime
    rain_inches: float = Field(default=0.0, ge=0.0)


class CurrentWeather(_FrozenModel):
    """Conditions right now."""
    temperature_f: float
    feels_like_f: float | None = None
    humidity_percent: float | None = None
    wind_speed_mph: float = 0.0
    wind_gust_mph: float | None = None
    precipitation_chance: float = 0.0
    precipitation_inches: float = 0.0
    condition: str | None = None
    uv_index: float | None = None
    as_of: dt.datetime | None = None


class WeatherForecast(_StrictBaseModel):
    """Everything one provider call returns for a location."""
    current: CurrentWeather
    daily: List[DailyForecast] = Field(default_factory=list)
    hourly: List[HourlyForecast] = Field(default_factory=list)
    recent_rain: List[HourlyRain] = Field(default_factory=list)
    utc_offset_seconds: int = 0
    fetched_at: dt.datetime | None = None


class RideSlot(_StrictBaseModel):
    """Recurring weekly ride window; day_of_week 0 = Sunday ... 6 = Saturday."""
    id: str | None = None
    day_of_week: int = Field(ge=0, le=6)
    start_time: dt.time
    end_time: dt.time


# ---------------------------------------------------------------------------
# Model outputs
# ---------------------------------------------------------------------------


class MoistureEstimate(_StrictBaseModel):
    """Retained moisture (inches) and hours until the footing is dry."""
    current_moisture: float = Field(ge=0.0)
    hours_to_dry: int = Field(ge=0)


class FutureMoisture(_StrictBaseModel):
    """Moisture projected to a forecast day plus the rain attributed to that day."""
    moisture: float = Field(ge=0.0)
    hours_to_dry: int = Field(ge=0)
    rain_inches: float = Field(default=0.0, ge=0.0)


class ScoredDay(_StrictBaseModel):
    """Verdict for one forecast day; notes never influence the score."""
    date: dt.date
    score: RideScore
    reasons: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    forecast: DailyForecast
    moisture: MoistureEstimate | None = None


class WeatherAlert(_StrictBaseModel):
    """Immediate hazard derived from current conditions."""
    type: AlertType
    message: str
    severity: RideScore


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class WeatherPredictionSnapshot(_StrictBaseModel):
    """What was predicted for a date, kept so feedback can be graded later."""
    date: dt.date
    score: RideScore
    reasons: List[str] = Field(default_factory=list)
    predicted_moisture: float | None = None
    predicted_hours_to_dry: int | None = None
    forecast_day_f: float | None = None
    forecast_high_f: float | None = None
    forecast_rain_inches: float | None = None
    forecast_clouds_pct: float | None = None
    forecast_wind_mph: float | None = None
    drying_rate_at_time: float
    created_at: dt.datetime | None = None


class FootingFeedback(_StrictBaseModel):
    """Rider ground truth for a date with the prediction captured at submit time."""
    id: str
    date: dt.date
    ride_session_id: str | None = None
    actual_footing: FootingRating
    predicted_score: RideScore | None = None
    predicted_moisture: float | None = None
    drying_rate_at_time: float | None = None
    created_at: dt.datetime | None = None


class AccuracyStats(_StrictBaseModel):
    """Derived accuracy counts over feedback that has a prediction."""
    total: int = 0
    correct: int = 0
    too_conservative: int = 0
    too_aggressive: int = 0
    accuracy_pct: int | None = None


class TuneResult(_StrictBaseModel):
    """Outcome of one drying-rate tuning attempt."""
    adjusted: bool
    old_rate: float | None = None
    new_rate: float | None = None
    reason: str | None = None
