"""In-memory stores, intended for development and tests."""

import datetime as dt
import threading
import uuid
from typing import Dict, List, Optional

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
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="stores/memory")


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class InMemorySettingsStore(SettingsStore):
    """Thread-safe settings holder starting from defaults."""

    def __init__(self, initial: Optional[WeatherSettings] = None) -> None:
        self._settings = initial or WeatherSettings()
        self._lock = threading.Lock()

    def get_settings(self) -> WeatherSettings:
        with self._lock:
            return self._settings

    def update_settings(self, update: WeatherSettingsUpdate) -> WeatherSettings:
        """Merge sent fields over the current record; validation re-clamps the rate."""
        with self._lock:
            merged = {**self._settings.model_dump(), **update.changes(), "updated_at": _utcnow()}
            self._settings = WeatherSettings.model_validate(merged)
            return self._settings


class InMemorySnapshotStore(SnapshotStore):
    """Thread-safe snapshot map keyed by date."""

    def __init__(self) -> None:
        self._snapshots: Dict[dt.date, WeatherPredictionSnapshot] = {}
        self._lock = threading.Lock()

    def get_snapshot(self, date: dt.date) -> Optional[WeatherPredictionSnapshot]:
        with self._lock:
            return self._snapshots.get(date)

    def upsert_snapshot(self, date: dt.date, scored_day: ScoredDay, moisture: Optional[MoistureEstimate],
                        drying_rate: float) -> WeatherPredictionSnapshot:
        snapshot = snapshot_from_scored_day(date, scored_day, moisture, drying_rate, _utcnow())
        with self._lock:
            self._snapshots[date] = snapshot
        return snapshot

    def prune_snapshots(self, retention_days: int = 90, today: Optional[dt.date] = None) -> int:
        cutoff = retention_cutoff(retention_days, today)
        with self._lock:
            stale = [d for d in self._snapshots if d < cutoff]
            for d in stale:
                del self._snapshots[d]
        if stale:
            logger.info("Pruned snapshots", extra={"deleted": len(stale), "cutoff": cutoff.isoformat()})
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._snapshots.clear()


class InMemoryFeedbackStore(FeedbackStore):
    """Feedback keyed by date; reads predictions from a snapshot store."""

    def __init__(self, snapshots: SnapshotStore) -> None:
        self._snapshots = snapshots
        self._feedback: Dict[dt.date, FootingFeedback] = {}
        self._lock = threading.Lock()

    def create_feedback(self, date: dt.date, actual_footing: FootingRating,
                        ride_session_id: Optional[str] = None) -> FootingFeedback:
        """Upsert by date; an omitted ride_session_id keeps the stored one."""
        snapshot = self._snapshots.get_snapshot(date)
        with self._lock:
            existing = self._feedback.get(date)
            record = FootingFeedback(
                id=existing.id if existing else str(uuid.uuid4()),
                date=date,
                ride_session_id=ride_session_id or (existing.ride_session_id if existing else None),
                actual_footing=actual_footing,
                predicted_score=snapshot.score if snapshot else None,
                predicted_moisture=snapshot.predicted_moisture if snapshot else None,
                drying_rate_at_time=snapshot.drying_rate_at_time if snapshot else None,
                created_at=existing.created_at if existing else _utcnow(),
            )
            self._feedback[date] = record
            return record

    def get_feedback_for_date(self, date: dt.date) -> Optional[FootingFeedback]:
        with self._lock:
            return self._feedback.get(date)

    def get_recent_feedback(self, limit: int = 10) -> List[FootingFeedback]:
        with self._lock:
            rows = sorted(self._feedback.values(), key=lambda f: f.date, reverse=True)
        return rows[:limit]

    def get_accuracy_stats(self) -> AccuracyStats:
        with self._lock:
            rows = list(self._feedback.values())
        return summarize_accuracy(rows)

    def clear(self) -> None:
        with self._lock:
            self._feedback.clear()


class InMemoryRideSlotStore(RideSlotStore):
    """Thread-safe weekly schedule."""

    def __init__(self) -> None:
        self._slots: List[RideSlot] = []
        self._lock = threading.Lock()

    def list_slots(self) -> List[RideSlot]:
        with self._lock:
            return sorted(self._slots, key=lambda s: (s.day_of_week, s.start_time))

    def add_slot(self, day_of_week: int, start_time: dt.time, end_time: dt.time) -> RideSlot:
        slot = RideSlot(id=str(uuid.uuid4()), day_of_week=day_of_week, start_time=start_time, end_time=end_time)
        with self._lock:
            self._slots.append(slot)
        return slot

    def clear(self) -> None:
        with self._lock:
            self._slots.clear()


def build_memory_stores() -> StoreBundle:
    """Fresh, empty in-memory stores wired together."""
    logger.debug("Initializing in-memory stores")
    snapshots = InMemorySnapshotStore()
    return StoreBundle(
        settings=InMemorySettingsStore(),
        snapshots=snapshots,
        feedback=InMemoryFeedbackStore(snapshots),
        ride_slots=InMemoryRideSlotStore(),
    )
