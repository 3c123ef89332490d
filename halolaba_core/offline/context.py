# =============================================================================
# halolaba_core/offline/context.py
# Shared Offline State
# =============================================================================
"""
OfflineContext - the state every offline component shares.

Built once by the composition root and handed to the connectivity monitor,
the sync engine and the data service. Nothing in this package keeps
module-level state, so tests can build as many independent contexts as they
need.
"""

from __future__ import annotations
from dataclasses import dataclass

from halolaba_core.config import OfflineSettings
from halolaba_core.offline.local_database import LocalDatabase


@dataclass
class OfflineContext:
    """
    Attributes:
        database: Open LocalDatabase holding queue, cache and settings
        settings: Runtime settings
        online: Current connectivity; written only by the connectivity monitor
        draining: True while the sync engine is replaying the queue
    """
    database: LocalDatabase
    settings: OfflineSettings
    online: bool = False
    draining: bool = False

    @property
    def offline(self) -> bool:
        return not self.online
