# =============================================================================
# halolaba_core/offline/cache_manager.py
# Read Cache of Remote Table Snapshots
# =============================================================================
"""
CacheManager - keeps the last known copy of each remote table for offline reads.

Each table gets its own partition, keyed by row id. Populating a partition
replaces it wholesale inside one SQLite transaction, so a reader sees either
the old snapshot or the new one, never a mix.
"""

from __future__ import annotations
import json
from datetime import datetime
from typing import Any, Dict, Iterable, List
import logging

from halolaba_core.offline.local_database import LocalDatabase

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Partitioned snapshot cache backed by the local database.

    Usage:
        cache = CacheManager(database)
        await cache.replace_partition("products", rows)
        rows = await cache.read_partition("products")
    """

    def __init__(self, database: LocalDatabase):
        self._db = database

    async def replace_partition(self, table: str, rows: Iterable[Dict[str, Any]]) -> int:
        """
        Replace a table's snapshot.

        Rows sharing an id collapse to the last one. Rows without an id are
        keyed by their position.

        Returns:
            Number of rows stored
        """
        records = []
        for position, row in enumerate(rows):
            row_id = row.get("id")
            key = str(row_id) if row_id is not None else f"#{position}"
            records.append((table, key, position, json.dumps(row, default=str)))

        def _replace() -> int:
            with self._db.transaction() as conn:
                conn.execute("DELETE FROM cached_rows WHERE table_name = ?", [table])
                conn.executemany(
                    """
                    INSERT OR REPLACE INTO cached_rows (table_name, row_id, position, data_json)
                    VALUES (?, ?, ?, ?)
                    """,
                    records
                )
                count = conn.execute(
                    "SELECT COUNT(*) AS count FROM cached_rows WHERE table_name = ?",
                    [table]
                ).fetchone()["count"]
                conn.execute(
                    """
                    INSERT OR REPLACE INTO cache_partitions (table_name, row_count, refreshed_at)
                    VALUES (?, ?, ?)
                    """,
                    [table, count, datetime.now().isoformat()]
                )
            return count

        count = await self._db.run(_replace, operation="replace_partition")
        logger.debug(f"Cached {count} rows for {table}")
        return count

    async def read_partition(self, table: str) -> List[Dict[str, Any]]:
        """Current snapshot for a table; empty if it was never cached."""
        def _read():
            return self._db.connection.execute(
                "SELECT data_json FROM cached_rows WHERE table_name = ? ORDER BY position ASC",
                [table]
            ).fetchall()

        rows = await self._db.run(_read, operation="read_partition")
        return [json.loads(row["data_json"]) for row in rows]

    async def get_cache_stats(self) -> Dict[str, Dict[str, Any]]:
        """Row count and refresh time per cached partition."""
        def _stats():
            return self._db.connection.execute(
                "SELECT * FROM cache_partitions ORDER BY table_name"
            ).fetchall()

        rows = await self._db.run(_stats, operation="get_cache_stats")
        return {
            row["table_name"]: {
                "rows": row["row_count"],
                "refreshed_at": row["refreshed_at"],
            }
            for row in rows
        }

    async def clear(self) -> None:
        """Drop every partition."""
        def _clear():
            with self._db.transaction() as conn:
                conn.execute("DELETE FROM cached_rows")
                conn.execute("DELETE FROM cache_partitions")

        await self._db.run(_clear, operation="clear_cache")
        logger.info("Read cache cleared")


# Ordering used whenever a partition is fetched from the remote service, so a
# snapshot written by the data service and one written after a sync look alike.
PARTITION_ORDER = {
    "products": ("name", False),
    "transactions": ("created_at", True),
    "debts": ("created_at", True),
    "restock_transactions": ("created_at", True),
    "expenses": ("created_at", True),
    "operational_expenses": ("created_at", True),
    "notifications": ("created_at", True),
}

# Partitions that only keep a recent window
WINDOWED_PARTITIONS = frozenset({"transactions"})


def partition_query(table: str, recent_limit: int) -> Dict[str, Any]:
    """Keyword arguments for RemoteDataService.select() that fill a partition."""
    order_by, descending = PARTITION_ORDER.get(table, (None, False))
    return {
        "table": table,
        "order_by": order_by,
        "descending": descending,
        "limit": recent_limit if table in WINDOWED_PARTITIONS else None,
    }
