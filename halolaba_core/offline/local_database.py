# =============================================================================
# halolaba_core/offline/local_database.py
# Local SQLite Database for Offline Operations
# =============================================================================
"""
LocalDatabase - SQLite file that holds everything the app needs while offline.

Features:
- Automatic schema creation
- One connection, used only from a dedicated worker thread
- Awaitable API so the event loop never blocks on disk I/O
- Storage failures surface as StorageUnavailable
"""

from __future__ import annotations
import asyncio
import json
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar
import logging

from halolaba_core.errors import StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalDatabase:
    """
    Local SQLite store for the offline queue, read cache and settings.

    All statements run on a single worker thread, so they execute one at a
    time in submission order.
    """

    SCHEMA = {
        "queued_operations": """
            CREATE TABLE IF NOT EXISTS queued_operations (
                enqueued_at INTEGER PRIMARY KEY,
                table_name TEXT NOT NULL,
                kind TEXT NOT NULL,
                target_id TEXT,
                payload_json TEXT NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                last_attempt TEXT
            )
        """,
        "dead_letters": """
            CREATE TABLE IF NOT EXISTS dead_letters (
                enqueued_at INTEGER PRIMARY KEY,
                table_name TEXT NOT NULL,
                kind TEXT NOT NULL,
                target_id TEXT,
                payload_json TEXT NOT NULL,
                attempts INTEGER NOT NULL,
                error_message TEXT,
                parked_at TEXT NOT NULL
            )
        """,
        "cached_rows": """
            CREATE TABLE IF NOT EXISTS cached_rows (
                table_name TEXT NOT NULL,
                row_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data_json TEXT NOT NULL,
                PRIMARY KEY (table_name, row_id)
            )
        """,
        "cache_partitions": """
            CREATE TABLE IF NOT EXISTS cache_partitions (
                table_name TEXT PRIMARY KEY,
                row_count INTEGER NOT NULL,
                refreshed_at TEXT NOT NULL
            )
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    def __init__(self, db_path: Path):
        """
        Initialize local database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._connection: Optional[sqlite3.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._executor is not None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def open(self) -> None:
        """Open the database file and create the schema if needed."""
        if self.is_open:
            return

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="LocalDatabase")
        try:
            await self.run(self._open_sync, operation="open")
        except StorageUnavailable:
            self._executor.shutdown(wait=False)
            self._executor = None
            raise
        logger.info(f"Local database initialized at: {self.db_path}")

    def _open_sync(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = FULL")
        for table_name, schema in self.SCHEMA.items():
            conn.execute(schema)
            logger.debug(f"Created/verified table: {table_name}")
        conn.commit()
        self._connection = conn

    async def close(self) -> None:
        """Close the connection and stop the worker thread."""
        if not self.is_open:
            return
        try:
            await self.run(self._close_sync, operation="close")
        finally:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _close_sync(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def run(self, func: Callable[..., T], *args: Any, operation: str = "query") -> T:
        """
        Run a synchronous function on the database thread.

        Args:
            func: Callable executed on the worker thread
            *args: Positional arguments for func
            operation: Label used in error details

        Returns:
            Whatever func returns

        Raises:
            StorageUnavailable: database closed, or any sqlite3/OS error
        """
        if self._executor is None:
            raise StorageUnavailable(
                "Local database is not open",
                db_path=str(self.db_path),
                operation=operation,
            )

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, func, *args)
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable(
                f"Local storage failed: {e}",
                db_path=str(self.db_path),
                operation=operation,
            ) from e

    @property
    def connection(self) -> sqlite3.Connection:
        """The open connection. Only touch it from inside run()."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Local database connection is closed")
        return self._connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions (worker thread only)."""
        conn = self.connection
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an app setting."""
        def _get():
            row = self.connection.execute(
                "SELECT value FROM app_settings WHERE key = ?", [key]
            ).fetchone()
            return row["value"] if row else None

        value = await self.run(_get, operation="get_setting")
        if value is None:
            return default
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set_setting(self, key: str, value: Any) -> None:
        """Set an app setting."""
        value_str = json.dumps(value) if not isinstance(value, str) else value

        def _set():
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO app_settings (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    [key, value_str, datetime.now().isoformat()]
                )

        await self.run(_set, operation="set_setting")
