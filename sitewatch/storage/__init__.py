"""Storage subsystem — ordered KV store, endpoint definitions, check history."""

from sitewatch.storage.endpoints import EndpointStore
from sitewatch.storage.history import (
    RETENTION,
    HealthCheckRecord,
    HistoryStore,
    RetentionPruner,
)
from sitewatch.storage.kv import ENDPOINTS, HISTORY, NAMESPACES, SETTINGS, KVStore

__all__ = [
    "ENDPOINTS",
    "HISTORY",
    "NAMESPACES",
    "RETENTION",
    "SETTINGS",
    "EndpointStore",
    "HealthCheckRecord",
    "HistoryStore",
    "KVStore",
    "RetentionPruner",
]
