# =============================================================================
# halolaba_core/offline/operation_queue.py
# Durable Queue of Pending Writes
# =============================================================================
"""
OperationQueue - ordered, persistent log of writes made while offline.

Every entry is keyed by its enqueue timestamp (integer nanoseconds). Stamps
are strictly increasing, even across restarts and clock adjustments, so
replaying in key order is replaying in enqueue order.
"""

from __future__ import annotations
import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from halolaba_core.offline.local_database import LocalDatabase

logger = logging.getLogger(__name__)


class OperationKind(Enum):
    """Kind of write recorded in the queue."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class QueuedOperation:
    """A single pending write awaiting replay."""
    table: str
    kind: OperationKind
    payload: Dict[str, Any]
    enqueued_at: int
    target_id: Optional[Any] = None
    attempts: int = 0
    last_error: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> QueuedOperation:
        keys = row.keys()
        return cls(
            table=row["table_name"],
            kind=OperationKind(row["kind"]),
            payload=json.loads(row["payload_json"]),
            enqueued_at=row["enqueued_at"],
            target_id=json.loads(row["target_id"]) if row["target_id"] is not None else None,
            attempts=row["attempts"],
            last_error=row["last_error"] if "last_error" in keys else row["error_message"],
        )


@dataclass
class DeadLetter:
    """An operation parked after repeated definitive rejections."""
    operation: QueuedOperation
    error_message: Optional[str]
    parked_at: datetime = field(default_factory=datetime.now)


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str)


class OperationQueue:
    """
    Persistent FIFO of QueuedOperation records.

    Usage:
        queue = OperationQueue(database)
        op = await queue.enqueue("products", OperationKind.UPDATE, {"stock": 4}, target_id=pid)
        for op in await queue.list_all_ordered():
            ...
            await queue.remove(op.enqueued_at)
    """

    def __init__(self, database: LocalDatabase):
        self._db = database
        self._last_stamp: Optional[int] = None

    def _next_stamp(self) -> int:
        """Issue the next strictly increasing stamp (database thread only)."""
        if self._last_stamp is None:
            row = self._db.connection.execute(
                """
                SELECT MAX(m) AS last FROM (
                    SELECT MAX(enqueued_at) AS m FROM queued_operations
                    UNION ALL
                    SELECT MAX(enqueued_at) AS m FROM dead_letters
                )
                """
            ).fetchone()
            self._last_stamp = row["last"] or 0

        stamp = max(time.time_ns(), self._last_stamp + 1)
        self._last_stamp = stamp
        return stamp

    async def enqueue(
        self,
        table: str,
        kind: OperationKind,
        payload: Dict[str, Any],
        target_id: Optional[Any] = None,
    ) -> QueuedOperation:
        """
        Persist a pending write.

        Args:
            table: Remote table name
            kind: INSERT, UPDATE or DELETE
            payload: Row fields to write
            target_id: Row id for UPDATE/DELETE

        Returns:
            The stored QueuedOperation

        Raises:
            StorageUnavailable: the write was not durably queued
        """
        operations = await self.enqueue_many([(table, kind, payload, target_id)])
        return operations[0]

    async def enqueue_many(
        self,
        entries: Sequence[Tuple[str, OperationKind, Dict[str, Any], Optional[Any]]],
    ) -> List[QueuedOperation]:
        """
        Persist several pending writes as one unit.

        Entries are (table, kind, payload, target_id) tuples and get
        consecutive stamps in the order given. They are inserted in a single
        transaction: if storage fails, none of them are queued.

        Raises:
            StorageUnavailable: nothing was queued
        """
        encoded = []
        for table, kind, payload, target_id in entries:
            if kind is not OperationKind.INSERT and target_id is None:
                raise ValueError(f"{kind.value} operations need a target_id")
            encoded.append((
                table,
                kind,
                _dumps(payload),
                _dumps(target_id) if target_id is not None else None,
                target_id,
            ))

        if not encoded:
            return []

        def _enqueue_all() -> List[int]:
            stamps = []
            with self._db.transaction() as conn:
                for table, kind, payload_json, target_json, _ in encoded:
                    stamp = self._next_stamp()
                    conn.execute(
                        """
                        INSERT INTO queued_operations
                            (enqueued_at, table_name, kind, target_id, payload_json)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        [stamp, table, kind.value, target_json, payload_json]
                    )
                    stamps.append(stamp)
            return stamps

        stamps = await self._db.run(_enqueue_all, operation="enqueue")
        logger.debug(f"Queued {len(stamps)} operation(s) up to {stamps[-1]}")

        return [
            QueuedOperation(
                table=table,
                kind=kind,
                payload=json.loads(payload_json),
                enqueued_at=stamp,
                target_id=target_id,
            )
            for (table, kind, payload_json, _, target_id), stamp in zip(encoded, stamps)
        ]

    async def list_all_ordered(self) -> List[QueuedOperation]:
        """Every pending operation, oldest first, read from disk."""
        def _list():
            return self._db.connection.execute(
                "SELECT * FROM queued_operations ORDER BY enqueued_at ASC"
            ).fetchall()

        rows = await self._db.run(_list, operation="list_all_ordered")
        return [QueuedOperation.from_row(row) for row in rows]

    async def remove(self, enqueued_at: int) -> None:
        """Delete one entry. Unknown keys are ignored."""
        def _remove():
            with self._db.transaction() as conn:
                conn.execute(
                    "DELETE FROM queued_operations WHERE enqueued_at = ?",
                    [enqueued_at]
                )

        await self._db.run(_remove, operation="remove")

    async def count(self) -> int:
        """Number of pending operations."""
        def _count():
            return self._db.connection.execute(
                "SELECT COUNT(*) AS count FROM queued_operations"
            ).fetchone()["count"]

        return await self._db.run(_count, operation="count")

    async def record_failure(self, enqueued_at: int, error: str, rejected: bool) -> int:
        """
        Note a failed replay attempt.

        Only definitive rejections count towards the dead-letter threshold.

        Returns:
            The operation's attempt count after the update
        """
        def _record():
            with self._db.transaction() as conn:
                conn.execute(
                    """
                    UPDATE queued_operations
                    SET attempts = attempts + ?, last_error = ?, last_attempt = ?
                    WHERE enqueued_at = ?
                    """,
                    [1 if rejected else 0, error, datetime.now().isoformat(), enqueued_at]
                )
                row = conn.execute(
                    "SELECT attempts FROM queued_operations WHERE enqueued_at = ?",
                    [enqueued_at]
                ).fetchone()
            return row["attempts"] if row else 0

        return await self._db.run(_record, operation="record_failure")

    # =========================================================================
    # DEAD LETTERS
    # =========================================================================

    async def move_to_dead_letter(self, op: QueuedOperation, error: str) -> None:
        """Move an operation out of the live queue, atomically."""
        def _move():
            with self._db.transaction() as conn:
                row = conn.execute(
                    "SELECT * FROM queued_operations WHERE enqueued_at = ?",
                    [op.enqueued_at]
                ).fetchone()
                if row is None:
                    return
                conn.execute(
                    """
                    INSERT OR REPLACE INTO dead_letters
                        (enqueued_at, table_name, kind, target_id, payload_json,
                         attempts, error_message, parked_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [row["enqueued_at"], row["table_name"], row["kind"], row["target_id"],
                     row["payload_json"], row["attempts"], error, datetime.now().isoformat()]
                )
                conn.execute(
                    "DELETE FROM queued_operations WHERE enqueued_at = ?",
                    [op.enqueued_at]
                )

        await self._db.run(_move, operation="move_to_dead_letter")
        logger.warning(
            f"Parked {op.kind.value} on {op.table} ({op.enqueued_at}) after "
            f"{op.attempts} rejections: {error}"
        )

    async def list_dead_letters(self) -> List[DeadLetter]:
        """All parked operations, oldest first."""
        def _list():
            return self._db.connection.execute(
                "SELECT * FROM dead_letters ORDER BY enqueued_at ASC"
            ).fetchall()

        rows = await self._db.run(_list, operation="list_dead_letters")
        return [
            DeadLetter(
                operation=QueuedOperation.from_row(row),
                error_message=row["error_message"],
                parked_at=datetime.fromisoformat(row["parked_at"]),
            )
            for row in rows
        ]

    async def requeue_dead_letter(self, enqueued_at: int) -> Optional[QueuedOperation]:
        """
        Put a parked operation back at the end of the live queue.

        It gets a fresh stamp and a zero attempt count.

        Returns:
            The requeued operation, or None if no such dead letter exists
        """
        def _requeue():
            with self._db.transaction() as conn:
                row = conn.execute(
                    "SELECT * FROM dead_letters WHERE enqueued_at = ?",
                    [enqueued_at]
                ).fetchone()
                if row is None:
                    return None
                stamp = self._next_stamp()
                conn.execute(
                    """
                    INSERT INTO queued_operations
                        (enqueued_at, table_name, kind, target_id, payload_json)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [stamp, row["table_name"], row["kind"], row["target_id"], row["payload_json"]]
                )
                conn.execute(
                    "DELETE FROM dead_letters WHERE enqueued_at = ?",
                    [enqueued_at]
                )
                return conn.execute(
                    "SELECT * FROM queued_operations WHERE enqueued_at = ?",
                    [stamp]
                ).fetchone()

        row = await self._db.run(_requeue, operation="requeue_dead_letter")
        return QueuedOperation.from_row(row) if row is not None else None

    async def discard_dead_letter(self, enqueued_at: int) -> None:
        """Drop a parked operation for good."""
        def _discard():
            with self._db.transaction() as conn:
                conn.execute(
                    "DELETE FROM dead_letters WHERE enqueued_at = ?",
                    [enqueued_at]
                )

        await self._db.run(_discard, operation="discard_dead_letter")
