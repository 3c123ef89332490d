# =============================================================================
# halolaba_core/offline/__init__.py
# Offline-First Architecture for HaloLaba
# =============================================================================
"""
Offline-First Architecture Module

Cashiers keep selling when the connection drops. Writes made offline are
queued on disk and replayed in order when Supabase is reachable again; reads
are served from the last cached snapshot.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE-FIRST ARCHITECTURE                    │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                 UnifiedDataService                        │  │
│   │         (Single API - Apps use this only)                 │  │
│   └──────────────────────────────────────────────────────────┘  │
│          │                  │                    │               │
│          ▼                  ▼                    ▼               │
│   ┌──────────────┐  ┌────────────────┐  ┌──────────────┐        │
│   │ConnectionMgr │─►│   SyncEngine   │  │ CacheManager │        │
│   │(Online flag) │  │ (Queue replay) │  │ (Snapshots)  │        │
│   └──────────────┘  └────────────────┘  └──────────────┘        │
│                        │          │             │                │
│                        ▼          ▼             ▼                │
│                 ┌──────────┐  ┌──────────────────────┐          │
│                 │ Supabase │  │ SQLite: queue, cache │          │
│                 │ (Cloud)  │  │ dead letters         │          │
│                 └──────────┘  └──────────────────────┘          │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from halolaba_core.offline import create_data_service, LineItem

service = await create_data_service()

result = await service.create_transaction(
    {"total_amount": 30000, "profit": 8000, "type": "sale"},
    [LineItem(product_id=pid, quantity=2, unit_price=15000, new_stock=8)],
)
print(result.queued)                  # True if stored for later sync
print(await service.pending_count())  # Number of queued operations

await service.close()
"""

from halolaba_core.offline.context import OfflineContext

from halolaba_core.offline.local_database import LocalDatabase

from halolaba_core.offline.operation_queue import (
    OperationQueue,
    OperationKind,
    QueuedOperation,
    DeadLetter,
)

from halolaba_core.offline.cache_manager import CacheManager

from halolaba_core.offline.scheduling import PeriodicTask

from halolaba_core.offline.sync_engine import (
    SyncEngine,
    SyncState,
    SyncStatus,
    DrainReport,
)

from halolaba_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)

from halolaba_core.offline.unified_data_service import (
    UnifiedDataService,
    LineItem,
    StockChange,
    WriteResult,
    create_data_service,
)

__all__ = [
    "OfflineContext",
    # Local storage
    "LocalDatabase",
    "OperationQueue",
    "OperationKind",
    "QueuedOperation",
    "DeadLetter",
    "CacheManager",
    # Scheduling
    "PeriodicTask",
    # Sync Engine
    "SyncEngine",
    "SyncState",
    "SyncStatus",
    "DrainReport",
    # Connection Management
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    # Unified Service (Main API)
    "UnifiedDataService",
    "LineItem",
    "StockChange",
    "WriteResult",
    "create_data_service",
]
