"""Synchronization core: cache-aside operations and per-kind sync services."""

from fpl_sync.sync.operation import ScopeState, SyncOperation, SyncOutcome
from fpl_sync.sync.services import SyncResult, SyncServices, SyncStatus

__all__ = [
    "ScopeState",
    "SyncOperation",
    "SyncOutcome",
    "SyncResult",
    "SyncServices",
    "SyncStatus",
]
