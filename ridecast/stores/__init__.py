"""Persistence backends for settings, snapshots, feedback and ride slots."""

from .base import FeedbackStore, RideSlotStore, SettingsStore, SnapshotStore, StoreBundle
from .memory import (
    InMemoryFeedbackStore,
    InMemoryRideSlotStore,
    InMemorySettingsStore,
    InMemorySnapshotStore,
    build_memory_stores,
)
from .sql import (
    SqlFeedbackStore,
    SqlRideSlotStore,
    SqlSettingsStore,
    SqlSnapshotStore,
    build_sql_stores,
    build_sql_stores_from_url,
    create_schema,
)

__all__ = [
    "FeedbackStore",
    "RideSlotStore",
    "SettingsStore",
    "SnapshotStore",
    "StoreBundle",
    "InMemoryFeedbackStore",
    "InMemoryRideSlotStore",
    "InMemorySettingsStore",
    "InMemorySnapshotStore",
    "build_memory_stores",
    "SqlFeedbackStore",
    "SqlRideSlotStore",
    "SqlSettingsStore",
    "SqlSnapshotStore",
    "build_sql_stores",
    "build_sql_stores_from_url",
    "create_schema",
]
