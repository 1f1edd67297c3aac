# =============================================================================
# muni_core/offline/__init__.py
# Offline-First Sync Core for the Municipal Services app
# =============================================================================
"""
Offline-First Sync Module

Residents and staff keep booking, posting and browsing while the device has
no connection. Every write lands locally first and is delivered to the remote
document store once connectivity returns.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE-FIRST ARCHITECTURE                    │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │   Bookings / Announcements / Services repositories        │  │
│   │          (UI code talks to these only)                    │  │
│   └──────────────────────────────────────────────────────────┘  │
│                │ writes                      │ reads             │
│                ▼                             ▼                   │
│   ┌──────────────────┐           ┌──────────────────┐           │
│   │  OperationQueue  │           │   RecordCache    │           │
│   │   (sync_queue)   │           │ (cache:<coll>)   │           │
│   └──────────────────┘           └──────────────────┘           │
│                │                             ▲                   │
│                ▼                             │ merge             │
│   ┌──────────────────┐  online?  ┌──────────────────┐           │
│   │   SyncEngine     │◄──────────│ConnectivityMonitor│          │
│   │ (drain / refresh)│           └──────────────────┘           │
│   └──────────────────┘                                          │
│                │                                                 │
│                ▼                                                 │
│   ┌──────────────────┐        ┌──────────────────┐             │
│   │ Remote documents │        │  LocalStore      │             │
│   │   (Supabase)     │        │  (SQLite)        │             │
│   └──────────────────┘        └──────────────────┘             │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from muni_core.offline import build_services

services = build_services()
services.start()

services.bookings.list_for_user("resident-42")
print(services.is_online)            # True/False
print(services.pending_sync_count)   # Number of queued operations
"""

from muni_core.offline.local_store import (
    LocalStore,
    to_json_safe,
)

from muni_core.offline.connectivity import (
    ConnectivityMonitor,
    ConnectionState,
    ConnectionStatus,
)

from muni_core.offline.records import (
    LOCAL_ID_PREFIX,
    SyncStatus,
    is_placeholder_id,
    make_placeholder_id,
    merge_remote,
)

from muni_core.offline.operation_queue import (
    MAX_ATTEMPTS,
    OperationKind,
    OperationQueue,
    QueuedOperation,
)

from muni_core.offline.record_cache import RecordCache

from muni_core.offline.sync_engine import (
    DrainReport,
    SyncEngine,
    SyncEngineState,
    SyncFailure,
    SyncState,
)

from muni_core.offline.service import (
    OfflineServices,
    build_services,
)

__all__ = [
    # Local store
    "LocalStore",
    "to_json_safe",
    # Connectivity
    "ConnectivityMonitor",
    "ConnectionState",
    "ConnectionStatus",
    # Records
    "LOCAL_ID_PREFIX",
    "SyncStatus",
    "is_placeholder_id",
    "make_placeholder_id",
    "merge_remote",
    # Queue and cache
    "MAX_ATTEMPTS",
    "OperationKind",
    "OperationQueue",
    "QueuedOperation",
    "RecordCache",
    # Sync engine
    "DrainReport",
    "SyncEngine",
    "SyncEngineState",
    "SyncFailure",
    "SyncState",
    # Container (main API)
    "OfflineServices",
    "build_services",
]
