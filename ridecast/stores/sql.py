"""SQLAlchemy-backed stores (SQLite or Postgres).

Queries are plain `text()` SQL like the rest of the project. Column types are
kept portable: dates and timestamps are ISO-8601 TEXT, booleans are 0/1
INTEGER and reason lists are JSON TEXT. Upserts rely on
`INSERT ... ON CONFLICT ... DO UPDATE`, which both engines support.
"""

from __future__ import annotations

import datetime as dt
import json
import uuid
from typing import Any, List, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

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
from ridecast.footing_tuner import summarize_accuracy
from ridecast.stores.base import (
    FeedbackStore,
    RideSlotStore,
    SettingsStore,
    SnapshotStore,
    StoreBundle,
    retention_cutoff,
    snapshot_from_scored_day,
)
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="stores/sql")

SETTINGS_ROW_ID = 1

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS weather_settings (
        id INTEGER PRIMARY KEY,
        location_lat REAL,
        location_lng REAL,
        rain_cutoff_inches REAL NOT NULL,
        rain_window_hours INTEGER NOT NULL,
        cold_alert_temp_f REAL NOT NULL,
        heat_alert_temp_f REAL NOT NULL,
        wind_cutoff_mph REAL NOT NULL,
        has_indoor_arena INTEGER NOT NULL,
        footing_caution_inches REAL NOT NULL,
        footing_danger_inches REAL NOT NULL,
        footing_dry_hours_per_inch REAL NOT NULL,
        auto_tune_drying_rate INTEGER NOT NULL,
        last_tuned_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS weather_prediction_snapshots (
        date TEXT PRIMARY KEY,
        score TEXT NOT NULL,
        reasons TEXT NOT NULL,
        predicted_moisture REAL,
        predicted_hours_to_dry INTEGER,
        forecast_day_f REAL,
        forecast_high_f REAL,
        forecast_rain_inches REAL,
        forecast_clouds_pct REAL,
        forecast_wind_mph REAL,
        drying_rate_at_time REAL NOT NULL,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS footing_feedback (
        id TEXT PRIMARY KEY,
        date TEXT NOT NULL UNIQUE,
        ride_session_id TEXT,
        actual_footing TEXT NOT NULL,
        predicted_score TEXT,
        predicted_moisture REAL,
        drying_rate_at_time REAL,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ride_slots (
        id TEXT PRIMARY KEY,
        day_of_week INTEGER NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL
    )
    """,
)

_SETTINGS_COLUMNS = (
    "location_lat",
    "location_lng",
    "rain_cutoff_inches",
    "rain_window_hours",
    "cold_alert_temp_f",
    "heat_alert_temp_f",
    "wind_cutoff_mph",
    "has_indoor_arena",
    "footing_caution_inches",
    "footing_danger_inches",
    "footing_dry_hours_per_inch",
    "auto_tune_drying_rate",
    "last_tuned_at",
    "updated_at",
)


def _iso(value: Optional[dt.date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _sql_value(value: Any) -> Any:
    """Convert a Python value into its stored column form."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    return value


def create_schema(engine: Engine) -> None:
    """Create tables if they do not exist yet."""
    with engine.begin() as conn:
        for ddl in SCHEMA:
            conn.execute(text(ddl))


class _SqlStore:
    """Common engine plumbing."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _fetch_one(self, query: str, params: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(text(query), dict(params)).mappings().first()
        return dict(row) if row else None

    def _fetch_all(self, query: str, params: Mapping[str, Any]) -> List[Mapping[str, Any]]:
        with self.engine.connect() as conn:
            rows = conn.execute(text(query), dict(params)).mappings().all()
        return [dict(r) for r in rows]

    def _execute(self, query: str, params: Mapping[str, Any]) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(text(query), dict(params))
            return result.rowcount


class SqlSettingsStore(_SqlStore, SettingsStore):
    """Settings in a single row with a fixed id."""

    def get_settings(self) -> WeatherSettings:
        row = self._fetch_one("SELECT * FROM weather_settings WHERE id = :id", {"id": SETTINGS_ROW_ID})
        if row is None:
            return WeatherSettings()
        row.pop("id", None)
        return WeatherSettings.model_validate(row)

    def update_settings(self, update: WeatherSettingsUpdate) -> WeatherSettings:
        current = self.get_settings()
        merged = {
            **current.model_dump(),
            **update.changes(),
            "updated_at": dt.datetime.now(dt.timezone.utc),
        }
        settings = WeatherSettings.model_validate(merged)

        params = {col: _sql_value(getattr(settings, col)) for col in _SETTINGS_COLUMNS}
        params["id"] = SETTINGS_ROW_ID
        columns = ", ".join(_SETTINGS_COLUMNS)
        values = ", ".join(f":{col}" for col in _SETTINGS_COLUMNS)
        assignments = ", ".join(f"{col} = excluded.{col}" for col in _SETTINGS_COLUMNS)
        self._execute(
            f"""
            INSERT INTO weather_settings (id, {columns})
            VALUES (:id, {values})
            ON CONFLICT (id) DO UPDATE SET {assignments}
            """,
            params,
        )
        logger.debug("Settings updated", extra={"fields": sorted(update.changes())})
        return settings


def _row_to_snapshot(row: Mapping[str, Any]) -> WeatherPredictionSnapshot:
    data = dict(row)
    data["reasons"] = json.loads(data.get("reasons") or "[]")
    return WeatherPredictionSnapshot.model_validate(data)


class SqlSnapshotStore(_SqlStore, SnapshotStore):
    """Prediction snapshots keyed by date."""

    def get_snapshot(self, date: dt.date) -> Optional[WeatherPredictionSnapshot]:
        row = self._fetch_one(
            "SELECT * FROM weather_prediction_snapshots WHERE date = :date",
            {"date": _iso(date)},
        )
        return _row_to_snapshot(row) if row else None

    def upsert_snapshot(self, date: dt.date, scored_day: ScoredDay, moisture: Optional[MoistureEstimate],
                        drying_rate: float) -> WeatherPredictionSnapshot:
        snapshot = snapshot_from_scored_day(
            date, scored_day, moisture, drying_rate, dt.datetime.now(dt.timezone.utc)
        )
        params = {key: _sql_value(value) for key, value in snapshot.model_dump().items()}
        params["score"] = snapshot.score.value
        params["reasons"] = json.dumps(snapshot.reasons)
        params["created_at"] = _iso(snapshot.created_at)
        self._execute(
            """
            INSERT INTO weather_prediction_snapshots
                (date, score, reasons, predicted_moisture, predicted_hours_to_dry,
                 forecast_day_f, forecast_high_f, forecast_rain_inches,
                 forecast_clouds_pct, forecast_wind_mph, drying_rate_at_time, created_at)
            VALUES
                (:date, :score, :reasons, :predicted_moisture, :predicted_hours_to_dry,
                 :forecast_day_f, :forecast_high_f, :forecast_rain_inches,
                 :forecast_clouds_pct, :forecast_wind_mph, :drying_rate_at_time, :created_at)
            ON CONFLICT (date) DO UPDATE SET
                score = excluded.score,
                reasons = excluded.reasons,
                predicted_moisture = excluded.predicted_moisture,
                predicted_hours_to_dry = excluded.predicted_hours_to_dry,
                forecast_day_f = excluded.forecast_day_f,
                forecast_high_f = excluded.forecast_high_f,
                forecast_rain_inches = excluded.forecast_rain_inches,
                forecast_clouds_pct = excluded.forecast_clouds_pct,
                forecast_wind_mph = excluded.forecast_wind_mph,
                drying_rate_at_time = excluded.drying_rate_at_time,
                created_at = excluded.created_at
            """,
            params,
        )
        return snapshot

    def prune_snapshots(self, retention_days: int = 90, today: Optional[dt.date] = None) -> int:
        cutoff = retention_cutoff(retention_days, today)
        deleted = self._execute(
            "DELETE FROM weather_prediction_snapshots WHERE date < :cutoff",
            {"cutoff": cutoff.isoformat()},
        )
        if deleted:
            logger.info("Pruned snapshots", extra={"deleted": deleted, "cutoff": cutoff.isoformat()})
        return deleted

    def clear(self) -> None:
        self._execute("DELETE FROM weather_prediction_snapshots", {})


class SqlFeedbackStore(_SqlStore, FeedbackStore):
    """Feedback rows, unique per date."""

    def __init__(self, engine: Engine, snapshots: SnapshotStore) -> None:
        super().__init__(engine)
        self._snapshots = snapshots

    def create_feedback(self, date: dt.date, actual_footing: FootingRating,
                        ride_session_id: Optional[str] = None) -> FootingFeedback:
        """Upsert by date, copying the prediction captured for that date."""
        snapshot = self._snapshots.get_snapshot(date)
        self._execute(
            """
            INSERT INTO footing_feedback
                (id, date, ride_session_id, actual_footing, predicted_score,
                 predicted_moisture, drying_rate_at_time, created_at)
            VALUES
                (:id, :date, :ride_session_id, :actual_footing, :predicted_score,
                 :predicted_moisture, :drying_rate_at_time, :created_at)
            ON CONFLICT (date) DO UPDATE SET
                ride_session_id = COALESCE(excluded.ride_session_id, footing_feedback.ride_session_id),
                actual_footing = excluded.actual_footing,
                predicted_score = excluded.predicted_score,
                predicted_moisture = excluded.predicted_moisture,
                drying_rate_at_time = excluded.drying_rate_at_time
            """,
            {
                "id": str(uuid.uuid4()),
                "date": _iso(date),
                "ride_session_id": ride_session_id,
                "actual_footing": FootingRating(actual_footing).value,
                "predicted_score": snapshot.score.value if snapshot else None,
                "predicted_moisture": snapshot.predicted_moisture if snapshot else None,
                "drying_rate_at_time": snapshot.drying_rate_at_time if snapshot else None,
                "created_at": dt.datetime.now(dt.timezone.utc).isoformat(),
            },
        )
        record = self.get_feedback_for_date(date)
        if record is None:  # pragma: no cover
            raise LookupError(f"Feedback for {date} missing after upsert")
        return record

    def get_feedback_for_date(self, date: dt.date) -> Optional[FootingFeedback]:
        row = self._fetch_one("SELECT * FROM footing_feedback WHERE date = :date", {"date": _iso(date)})
        return FootingFeedback.model_validate(row) if row else None

    def get_recent_feedback(self, limit: int = 10) -> List[FootingFeedback]:
        rows = self._fetch_all(
            "SELECT * FROM footing_feedback ORDER BY date DESC LIMIT :limit",
            {"limit": limit},
        )
        return [FootingFeedback.model_validate(r) for r in rows]

    def get_accuracy_stats(self) -> AccuracyStats:
        rows = self._fetch_all(
            "SELECT * FROM footing_feedback WHERE predicted_score IS NOT NULL ORDER BY date DESC",
            {},
        )
        return summarize_accuracy(FootingFeedback.model_validate(r) for r in rows)

    def clear(self) -> None:
        self._execute("DELETE FROM footing_feedback", {})


class SqlRideSlotStore(_SqlStore, RideSlotStore):
    """Weekly ride schedule."""

    def list_slots(self) -> List[RideSlot]:
        rows = self._fetch_all("SELECT * FROM ride_slots ORDER BY day_of_week, start_time", {})
        return [RideSlot.model_validate(r) for r in rows]

    def add_slot(self, day_of_week: int, start_time: dt.time, end_time: dt.time) -> RideSlot:
        slot = RideSlot(id=str(uuid.uuid4()), day_of_week=day_of_week, start_time=start_time, end_time=end_time)
        self._execute(
            """
            INSERT INTO ride_slots (id, day_of_week, start_time, end_time)
            VALUES (:id, :day_of_week, :start_time, :end_time)
            """,
            {key: _sql_value(value) for key, value in slot.model_dump().items()},
        )
        return slot

    def clear(self) -> None:
        self._execute("DELETE FROM ride_slots", {})


def build_sql_stores(engine: Engine) -> StoreBundle:
    """Create the schema and wire every SQL store to one engine."""
    create_schema(engine)
    snapshots = SqlSnapshotStore(engine)
    return StoreBundle(
        settings=SqlSettingsStore(engine),
        snapshots=snapshots,
        feedback=SqlFeedbackStore(engine, snapshots),
        ride_slots=SqlRideSlotStore(engine),
    )


def build_sql_stores_from_url(database_url: str) -> StoreBundle:
    """Create an engine from a URL and build the stores."""
    logger.info("Using SQL stores", extra={"db_url": mask_db_url(database_url)})
    engine = create_engine(database_url, future=True)
    return build_sql_stores(engine)
