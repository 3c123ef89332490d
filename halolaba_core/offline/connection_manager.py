# =============================================================================
# halolaba_core/offline/connection_manager.py
# Connection Status Detection and Management
# =============================================================================
"""
ConnectionManager - detects Supabase reachability and reacts to changes.

Features:
- Startup probe sets the initial online/offline state
- Periodic health checks on a cancellable task
- Exactly one queue drain per offline -> online transition
- Event callbacks for status changes
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlparse
import logging

import httpx

from halolaba_core.errors import handle_error
from halolaba_core.offline.context import OfflineContext
from halolaba_core.offline.scheduling import PeriodicTask
from halolaba_core.offline.sync_engine import DrainReport, SyncEngine

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]

# Used when no Supabase URL is configured
FALLBACK_HOSTS = [
    ("8.8.8.8", 53),        # Google DNS
    ("1.1.1.1", 53),        # Cloudflare DNS
]


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


class ConnectionManager:
    """
    Owns the online flag on the OfflineContext.

    Usage:
        manager = ConnectionManager(context, sync_engine)
        await manager.start()
        ...
        await manager.stop()
    """

    def __init__(
        self,
        context: OfflineContext,
        sync_engine: SyncEngine,
        probe: Optional[Probe] = None,
    ):
        self._context = context
        self._sync_engine = sync_engine
        self._probe = probe or self._probe_supabase
        self._state = ConnectionState()
        self._callbacks: List[Callable[[ConnectionState], None]] = []
        self._drain_task: Optional[asyncio.Task] = None
        self._drain_again = False
        settings = context.settings
        self._monitor = PeriodicTask(
            "ConnectionMonitor",
            self.check_connection,
            interval=lambda: (
                settings.check_interval_online
                if self.is_online
                else settings.check_interval_offline
            ),
        )

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._context.online

    @property
    def is_offline(self) -> bool:
        return not self._context.online

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self, start_monitoring: bool = True) -> None:
        """
        Probe once, then keep probing in the background.

        Args:
            start_monitoring: Whether to start periodic checks
        """
        await self.check_connection()
        if start_monitoring:
            self._monitor.start()
        logger.info(f"ConnectionManager started. Status: {self._state.status.value}")

    async def stop(self) -> None:
        """Stop monitoring and wait for a running drain to finish."""
        await self._monitor.stop()
        await self.wait_for_sync()
        logger.debug("Connection monitoring stopped")

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def check_connection(self) -> ConnectionState:
        """Run the probe and apply the result."""
        self._state.last_check = datetime.now()
        try:
            reachable = await self._probe()
        except Exception as e:
            self._state.error_message = str(e)
            logger.debug(f"Connectivity probe failed: {e}")
            reachable = False

        if reachable:
            self.handle_online()
        else:
            self.handle_offline()
        return self._state

    def handle_online(self) -> None:
        """Mark the app online; a real transition starts one drain."""
        was_online = self._context.online
        self._context.online = True
        self._state.status = ConnectionStatus.ONLINE
        self._state.last_online = datetime.now()
        self._state.consecutive_failures = 0
        self._state.error_message = None

        if not was_online:
            logger.info("Back online - starting sync")
            self._notify_callbacks()
            self._start_drain()

    def handle_offline(self) -> None:
        """Mark the app offline."""
        was_online = self._context.online
        self._context.online = False
        self._state.consecutive_failures += 1

        if was_online or self._state.status is ConnectionStatus.UNKNOWN:
            self._state.status = ConnectionStatus.OFFLINE
            logger.info("Gone offline - switching to offline mode")
            self._notify_callbacks()

    def _start_drain(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.create_task(self._run_drain(), name="SyncEngine.drain")

    def request_drain(self) -> None:
        """
        Make sure writes queued while online get replayed.

        Starts a drain, or has the running one go round again once it
        finishes, so a write queued after its listing is not left behind.
        """
        if not self._context.online:
            return
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_again = True
            return
        self._start_drain()

    async def _run_drain(self) -> Optional[DrainReport]:
        while True:
            self._drain_again = False
            try:
                report = await self._sync_engine.drain()
            except Exception as e:
                # Nobody awaits a background drain; report it here
                handle_error(e, show_user_message=False, user_message="Background sync failed")
                return None
            if not (self._drain_again and self._context.online):
                return report

    async def wait_for_sync(self) -> Optional[DrainReport]:
        """Wait for the background drain, if one was started."""
        if self._drain_task is None:
            return None
        return await self._drain_task

    # =========================================================================
    # PROBES
    # =========================================================================

    async def _probe_supabase(self) -> bool:
        """
        Check whether Supabase answers at all.

        Any HTTP response counts as reachable; only transport failures count
        as offline.
        """
        settings = self._context.settings
        if not settings.supabase_url:
            return await self._probe_hosts(FALLBACK_HOSTS, settings.probe_timeout)

        url = settings.supabase_url.rstrip("/") + "/rest/v1/"
        headers = {"apikey": settings.supabase_key or ""}
        try:
            async with httpx.AsyncClient(timeout=settings.probe_timeout) as client:
                await client.get(url, headers=headers)
            return True
        except httpx.TransportError as e:
            self._state.error_message = str(e)
            host = urlparse(settings.supabase_url).hostname
            logger.debug(f"Supabase probe to {host} failed: {e}")
            return False

    @staticmethod
    async def _probe_hosts(hosts, timeout: float) -> bool:
        for host, port in hosts:
            try:
                _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
            except (OSError, asyncio.TimeoutError):
                continue
            writer.close()
            await writer.wait_closed()
            return True
        return False

    # =========================================================================
    # CALLBACKS & STATUS
    # =========================================================================

    def register_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Register a callback for connection status changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
