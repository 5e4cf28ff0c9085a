"""Shared protocols for the persistence backends."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import List, Optional, Protocol

from ridecast.domain import (
    AccuracyStats,
    FootingFeedback,
    FootingRating,
    MoistureEstimate,
    RideSlot,
    ScoredDay,
    WeatherPredictionSnapshot,
    WeatherSettings,
    WeatherSettingsUpdate,
)


class SettingsStore(Protocol):
    """Single farm-wide settings record."""

    def get_settings(self) -> WeatherSettings:
        """Return stored settings, or defaults if nothing was saved yet."""

    def update_settings(self, update: WeatherSettingsUpdate) -> WeatherSettings:
        """Apply a partial update (drying rate clamped) and return the result."""


class SnapshotStore(Protocol):
    """Prediction snapshots keyed by date."""

    def get_snapshot(self, date: dt.date) -> Optional[WeatherPredictionSnapshot]:
        """Return the snapshot for a date, or None."""

    def upsert_snapshot(
        self,
        date: dt.date,
        scored_day: ScoredDay,
        moisture: Optional[MoistureEstimate],
        drying_rate: float,
    ) -> WeatherPredictionSnapshot:
        """Insert or replace the snapshot for a date."""

    def prune_snapshots(self, retention_days: int = 90, today: Optional[dt.date] = None) -> int:
        """Delete snapshots older than the retention window; return rows removed."""

    def clear(self) -> None:
        """Remove every snapshot."""


class FeedbackStore(Protocol):
    """Rider footing feedback, one row per date."""

    def create_feedback(
        self,
        date: dt.date,
        actual_footing: FootingRating,
        ride_session_id: Optional[str] = None,
    ) -> FootingFeedback:
        """Record feedback for a date, copying the prediction from its snapshot."""

    def get_feedback_for_date(self, date: dt.date) -> Optional[FootingFeedback]:
        """Return feedback for a date, or None."""

    def get_recent_feedback(self, limit: int = 10) -> List[FootingFeedback]:
        """Return the newest feedback rows, most recent date first."""

    def get_accuracy_stats(self) -> AccuracyStats:
        """Return accuracy counts over feedback with a prediction."""

    def clear(self) -> None:
        """Remove every feedback row."""


class RideSlotStore(Protocol):
    """The rider's weekly ride schedule."""

    def list_slots(self) -> List[RideSlot]:
        """Return all slots ordered by weekday then start time."""

    def add_slot(self, day_of_week: int, start_time: dt.time, end_time: dt.time) -> RideSlot:
        """Persist a new slot and return it with its id."""

    def clear(self) -> None:
        """Remove every slot."""


@dataclass
class StoreBundle:
    """One backend instance per store, built together at startup."""
    settings: SettingsStore
    snapshots: SnapshotStore
    feedback: FeedbackStore
    ride_slots: RideSlotStore


def snapshot_from_scored_day(
    date: dt.date,
    scored_day: ScoredDay,
    moisture: Optional[MoistureEstimate],
    drying_rate: float,
    created_at: dt.datetime,
) -> WeatherPredictionSnapshot:
    """Capture the prediction and its forecast inputs for later grading."""
    forecast = scored_day.forecast
    return WeatherPredictionSnapshot(
        date=date,
        score=scored_day.score,
        reasons=list(scored_day.reasons),
        predicted_moisture=moisture.current_moisture if moisture else None,
        predicted_hours_to_dry=moisture.hours_to_dry if moisture else None,
        forecast_day_f=forecast.daytime_temp_f,
        forecast_high_f=forecast.high_f,
        forecast_rain_inches=forecast.precipitation_inches,
        forecast_clouds_pct=forecast.clouds_pct,
        forecast_wind_mph=forecast.wind_speed_mph,
        drying_rate_at_time=drying_rate,
        created_at=created_at,
    )


def retention_cutoff(retention_days: int, today: Optional[dt.date] = None) -> dt.date:
    """First date that is kept when pruning."""
    today = today or dt.datetime.now(dt.timezone.utc).date()
    return today - dt.timedelta(days=retention_days)
