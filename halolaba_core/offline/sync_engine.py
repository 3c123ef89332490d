# =============================================================================
# halolaba_core/offline/sync_engine.py
# Offline Queue Replay Engine
# =============================================================================
"""
SyncEngine - replays the offline queue against the remote service.

Features:
- Strict enqueue-order replay
- At most one drain at a time
- A failing operation stays queued without blocking the ones after it
- Operations rejected too many times move to a dead-letter set
- Essential partitions re-cached after every drain
- Event callbacks for UI status
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

from halolaba_core.data.remote import RemoteDataService
from halolaba_core.errors import RemoteError, RemoteRejected, handle_error
from halolaba_core.logging import LogContext
from halolaba_core.offline.cache_manager import CacheManager, partition_query
from halolaba_core.offline.context import OfflineContext
from halolaba_core.offline.operation_queue import OperationKind, OperationQueue, QueuedOperation

logger = logging.getLogger(__name__)

LAST_SUCCESS_SETTING = "sync.last_success"


class SyncStatus(Enum):
    """Sync engine run state."""
    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class SyncState:
    """Current sync state."""
    status: SyncStatus = SyncStatus.IDLE
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    failed_count: int = 0
    dead_lettered: int = 0
    total_synced: int = 0
    last_duration: Optional[float] = None

    @property
    def is_syncing(self) -> bool:
        return self.status is SyncStatus.DRAINING


@dataclass
class DrainReport:
    """Outcome of one drain() call."""
    skipped: bool = False
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    dead_lettered: int = 0
    refreshed: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.skipped and self.failed == 0


class SyncEngine:
    """
    Drains the OperationQueue into the remote service.

    Usage:
        engine = SyncEngine(context, queue, cache, remote)
        report = await engine.drain()
    """

    def __init__(
        self,
        context: OfflineContext,
        queue: OperationQueue,
        cache: CacheManager,
        remote: RemoteDataService,
    ):
        self._context = context
        self._queue = queue
        self._cache = cache
        self._remote = remote
        self._state = SyncState()
        self._callbacks: List[Callable[[SyncState], None]] = []

    @property
    def state(self) -> SyncState:
        """Get current sync state."""
        return self._state

    @property
    def is_syncing(self) -> bool:
        """Check if a drain is in progress."""
        return self._context.draining

    async def load_state(self) -> None:
        """Restore the last successful sync time saved by a previous run."""
        saved = await self._context.database.get_setting(LAST_SUCCESS_SETTING)
        if saved:
            self._state.last_sync_success = datetime.fromisoformat(saved)

    # =========================================================================
    # DRAIN
    # =========================================================================

    async def drain(self) -> DrainReport:
        """
        Replay every queued operation once, oldest first.

        Returns:
            DrainReport; skipped=True if another drain was already running
        """
        if self._context.draining:
            logger.debug("Drain requested while another is running; ignoring")
            return DrainReport(skipped=True)

        self._context.draining = True
        self._state.status = SyncStatus.DRAINING
        self._state.last_sync = datetime.now()
        self._notify_callbacks()

        report = DrainReport()
        try:
            pending = await self._queue.list_all_ordered()
            if pending:
                with LogContext(logger, f"Replaying {len(pending)} queued operations") as timing:
                    for op in pending:
                        await self._replay(op, report)
                self._state.last_duration = timing.elapsed

            report.refreshed = await self.refresh_essential_data()

            self._state.total_synced += report.succeeded
            self._state.failed_count = report.failed
            self._state.dead_lettered += report.dead_lettered

            if report.failed == 0:
                self._state.last_sync_success = datetime.now()
                await self._context.database.set_setting(
                    LAST_SUCCESS_SETTING, self._state.last_sync_success.isoformat()
                )

            logger.info(
                f"Sync complete: {report.succeeded} success, {report.failed} failed, "
                f"{report.dead_lettered} parked"
            )
            return report

        finally:
            self._context.draining = False
            self._state.status = SyncStatus.IDLE
            self._notify_callbacks()

    async def _replay(self, op: QueuedOperation, report: DrainReport) -> None:
        report.attempted += 1
        try:
            await self._dispatch(op)
        except Exception as e:
            report.failed += 1
            await self._handle_failure(op, e, report)
            return

        await self._queue.remove(op.enqueued_at)
        report.succeeded += 1

    async def _dispatch(self, op: QueuedOperation) -> None:
        """Send one operation to the remote service."""
        if op.kind is OperationKind.INSERT:
            await self._remote.insert(op.table, op.payload)
        elif op.kind is OperationKind.UPDATE:
            await self._remote.update(op.table, op.target_id, op.payload)
        elif op.kind is OperationKind.DELETE:
            await self._remote.delete(op.table, op.target_id)

    async def _handle_failure(self, op: QueuedOperation, error: Exception, report: DrainReport) -> None:
        """Keep a failed operation queued, or park it once it has been rejected too often."""
        handle_error(
            error,
            show_user_message=False,
            user_message=f"Replay of {op.kind.value} on {op.table} ({op.enqueued_at}) failed",
        )

        rejected = isinstance(error, RemoteRejected)
        attempts = await self._queue.record_failure(op.enqueued_at, str(error), rejected=rejected)

        if rejected and attempts >= self._context.settings.max_attempts:
            op.attempts = attempts
            await self._queue.move_to_dead_letter(op, str(error))
            report.dead_lettered += 1

    # =========================================================================
    # CACHE REFRESH
    # =========================================================================

    async def refresh_essential_data(self) -> List[str]:
        """
        Re-fetch the essential partitions and replace their snapshots.

        Remote failures are logged and skipped; local storage failures
        propagate.

        Returns:
            Names of the partitions that were refreshed
        """
        settings = self._context.settings
        refreshed = []

        for table in settings.essential_tables:
            query = partition_query(table, settings.recent_transactions_limit)
            try:
                rows = await self._remote.select(**query)
            except RemoteError as e:
                handle_error(
                    e,
                    show_user_message=False,
                    user_message=f"Could not refresh cached {table}",
                )
                continue

            await self._cache.replace_partition(table, rows)
            refreshed.append(table)

        if refreshed:
            logger.info(f"Essential data cached for offline use: {', '.join(refreshed)}")
        return refreshed

    # =========================================================================
    # CALLBACKS & STATUS
    # =========================================================================

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    async def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "status": self._state.status.value,
            "is_syncing": self.is_syncing,
            "last_sync": self._state.last_sync.isoformat() if self._state.last_sync else None,
            "last_success": self._state.last_sync_success.isoformat() if self._state.last_sync_success else None,
            "pending_count": await self._queue.count(),
            "dead_letter_count": len(await self._queue.list_dead_letters()),
            "failed_count": self._state.failed_count,
            "total_synced": self._state.total_synced,
            "last_duration": self._state.last_duration,
        }
