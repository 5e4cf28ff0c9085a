"""Store manager facade over the pluggable persistence backends."""

from ridecast.config import settings
from ridecast.stores import (
    FeedbackStore,
    RideSlotStore,
    SettingsStore,
    SnapshotStore,
    StoreBundle,
    build_memory_stores,
    build_sql_stores_from_url,
)
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="store_manager")


def _init_stores() -> StoreBundle:
    """Initialize the backing stores based on configuration."""
    db_url = settings.database_url
    logger.debug(f"Initializing stores: database_url='{mask_db_url(db_url) if db_url else 'None'}'")
    if db_url:
        try:
            return build_sql_stores_from_url(db_url)
        except Exception as exc:  # pragma: no cover - depends on a live database
            logger.warning("Falling back to in-memory stores (database unavailable)", extra={"error": str(exc)})
    return build_memory_stores()


_stores: StoreBundle = _init_stores()


def use_in_memory_stores_for_tests() -> None:
    """Override stores for tests to ensure isolation and determinism."""
    global _stores
    _stores = build_memory_stores()


def use_stores(stores: StoreBundle) -> None:
    """Swap in an explicitly built bundle (e.g. SQL stores on a test engine)."""
    global _stores
    _stores = stores


def settings_store() -> SettingsStore:
    return _stores.settings


def snapshot_store() -> SnapshotStore:
    return _stores.snapshots


def feedback_store() -> FeedbackStore:
    return _stores.feedback


def ride_slot_store() -> RideSlotStore:
    return _stores.ride_slots
