# =============================================================================
# halolaba_core/offline/unified_data_service.py
# Unified Data Service - Single API for Online/Offline Operations
# =============================================================================
"""
UnifiedDataService - the only data API business code calls.

Every call checks connectivity first:
- Online writes go straight to Supabase, parent row first, then dependent
  rows, then stock updates. Errors propagate; nothing is queued.
- Offline writes get a locally generated id and are queued, one queued
  operation per remote write, in the order they would have run online.
  One call is queued in one storage transaction.
- Online writes made while older writes are still queued are queued behind
  them and a drain is requested.
- Online reads refresh the cache and fall back to it if the fetch fails.
- Offline reads come from the cache.

Usage:
------
from halolaba_core.offline import create_data_service

service = await create_data_service()
result = await service.create_transaction({"total_amount": 30000, "profit": 8000}, items)
print(result.queued)           # True when stored for later sync
products = await service.get_products(in_stock_only=True)
await service.close()
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging

from halolaba_core.config import OfflineSettings, load_settings
from halolaba_core.data.remote import RemoteDataService, Row
from halolaba_core.errors import RemoteError
from halolaba_core.offline.cache_manager import CacheManager, partition_query
from halolaba_core.offline.connection_manager import ConnectionManager, Probe
from halolaba_core.offline.context import OfflineContext
from halolaba_core.offline.local_database import LocalDatabase
from halolaba_core.offline.operation_queue import (
    DeadLetter,
    OperationKind,
    OperationQueue,
    QueuedOperation,
)
from halolaba_core.offline.schemas import validate_payload
from halolaba_core.offline.sync_engine import DrainReport, SyncEngine

logger = logging.getLogger(__name__)


@dataclass
class LineItem:
    """One product line of a sale, debt or restock."""
    product_id: Any
    quantity: int
    unit_price: float
    new_stock: int

    @property
    def total_price(self) -> float:
        return self.unit_price * self.quantity


@dataclass
class StockChange:
    """A product stock level to write back."""
    product_id: Any
    new_stock: int


@dataclass
class WriteResult:
    """
    Result of a write call.

    Attributes:
        record: The parent row as stored remotely, or as queued (local id)
        queued: True when the write was queued for later sync
        operations: Queued operations created by an offline write
    """
    record: Row
    queued: bool
    operations: List[QueuedOperation] = field(default_factory=list)

    @property
    def id(self) -> Any:
        return self.record.get("id")


@dataclass
class _Step:
    """A single remote write planned by the data service."""
    table: str
    kind: OperationKind
    payload: Row
    target_id: Any = None
    parent_key: Optional[str] = None


def _now() -> str:
    return datetime.now().isoformat()


class UnifiedDataService:
    """
    Unified data service providing a single API for online/offline operations.

    Build it with create_data_service(); the constructor only wires
    already-built components together.
    """

    def __init__(
        self,
        context: OfflineContext,
        queue: OperationQueue,
        cache: CacheManager,
        sync_engine: SyncEngine,
        connection_manager: ConnectionManager,
        remote: RemoteDataService,
    ):
        self._context = context
        self._queue = queue
        self._cache = cache
        self._sync_engine = sync_engine
        self._connection_manager = connection_manager
        self._remote = remote

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self._context.online

    @property
    def is_offline(self) -> bool:
        return self._context.offline

    @property
    def settings(self) -> OfflineSettings:
        return self._context.settings

    @property
    def connection_manager(self) -> ConnectionManager:
        return self._connection_manager

    @property
    def sync_engine(self) -> SyncEngine:
        return self._sync_engine

    # =========================================================================
    # WRITE PLUMBING
    # =========================================================================

    async def _write(self, steps: Sequence[_Step]) -> WriteResult:
        """
        Execute a planned write.

        The first step is the parent. Steps with a parent_key get the
        parent's id under that key: the remote-assigned id when sent straight
        to the remote, a locally generated one when queued. Writes are queued
        while offline, and also while older queued writes are still waiting
        to be replayed.
        """
        for step in steps:
            payload = dict(step.payload)
            if step.parent_key:
                payload[step.parent_key] = "pending"
            validate_payload(step.table, payload, step.kind)

        if self.is_online and not await self._has_backlog():
            return await self._write_online(steps)

        result = await self._write_offline(steps)
        if self.is_online:
            # Behind older queued writes; replay keeps them in order
            self._connection_manager.request_drain()
        return result

    async def _has_backlog(self) -> bool:
        """Queued writes not yet replayed, or a drain replaying them now."""
        return self._context.draining or await self._queue.count() > 0

    async def _write_online(self, steps: Sequence[_Step]) -> WriteResult:
        parent: Optional[Row] = None
        for step in steps:
            payload = dict(step.payload)
            if step.parent_key:
                payload[step.parent_key] = parent["id"]

            if step.kind is OperationKind.INSERT:
                row = await self._remote.insert(step.table, payload)
            elif step.kind is OperationKind.UPDATE:
                row = await self._remote.update(step.table, step.target_id, payload)
            else:
                await self._remote.delete(step.table, step.target_id)
                row = {"id": step.target_id}

            if parent is None:
                parent = row

        return WriteResult(record=parent, queued=False)

    async def _write_offline(self, steps: Sequence[_Step]) -> WriteResult:
        parent: Optional[Row] = None
        entries = []
        for step in steps:
            payload = dict(step.payload)
            if step.kind is OperationKind.INSERT and "id" not in payload:
                payload["id"] = str(uuid.uuid4())
            if step.parent_key:
                payload[step.parent_key] = parent["id"]

            entries.append((step.table, step.kind, payload, step.target_id))

            if parent is None:
                parent = dict(payload) if step.kind is OperationKind.INSERT else {"id": step.target_id, **payload}

        operations = await self._queue.enqueue_many(entries)

        logger.info(f"Queued {len(operations)} operations for offline sync")
        return WriteResult(record=parent, queued=True, operations=operations)

    def _document_steps(
        self,
        parent_table: str,
        parent_payload: Row,
        child_table: str,
        parent_key: str,
        items: Sequence[LineItem],
        child_payload: Callable[[LineItem], Row],
    ) -> List[_Step]:
        """Parent insert, then per line its child insert and its stock update."""
        steps = [_Step(parent_table, OperationKind.INSERT, parent_payload)]
        for item in items:
            steps.append(_Step(child_table, OperationKind.INSERT, child_payload(item), parent_key=parent_key))
            steps.append(_Step(
                "products",
                OperationKind.UPDATE,
                {"stock": item.new_stock, "updated_at": _now()},
                target_id=item.product_id,
            ))
        return steps

    # =========================================================================
    # READ PLUMBING
    # =========================================================================

    async def _read(self, table: str) -> List[Row]:
        """Fetch a table snapshot, refreshing or falling back to the cache."""
        if self.is_offline:
            logger.debug(f"Using cached {table} (offline mode)")
            return await self._cache.read_partition(table)

        query = partition_query(table, self.settings.recent_transactions_limit)
        try:
            rows = await self._remote.select(**query)
        except RemoteError as e:
            logger.warning(f"Failed to fetch {table} online, using cache: {e}")
            return await self._cache.read_partition(table)

        await self._cache.replace_partition(table, rows)
        return rows

    # =========================================================================
    # SALES
    # =========================================================================

    async def create_transaction(self, transaction: Row, items: Sequence[LineItem]) -> WriteResult:
        """
        Record a sale with its line items and stock decrements.

        Args:
            transaction: transactions row fields (total_amount, profit, type)
            items: Sold lines; new_stock is the stock after the sale

        Returns:
            WriteResult whose record is the transaction row
        """
        steps = self._document_steps(
            "transactions",
            transaction,
            "transaction_items",
            "transaction_id",
            items,
            lambda item: {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
            },
        )
        return await self._write(steps)

    async def get_transactions(self, limit: Optional[int] = None) -> List[Row]:
        """Most recent transactions, newest first."""
        rows = await self._read("transactions")
        return rows[:limit] if limit is not None else rows

    # =========================================================================
    # PRODUCTS
    # =========================================================================

    async def get_products(self, in_stock_only: bool = False) -> List[Row]:
        """Product catalog ordered by name."""
        rows = await self._read("products")
        if in_stock_only:
            rows = [row for row in rows if (row.get("stock") or 0) > 0]
        return rows

    async def create_product(self, product: Row) -> WriteResult:
        return await self._write([_Step("products", OperationKind.INSERT, product)])

    async def update_product(self, product_id: Any, values: Row) -> WriteResult:
        values = {**values, "updated_at": _now()}
        return await self._write([_Step("products", OperationKind.UPDATE, values, target_id=product_id)])

    async def delete_product(self, product_id: Any) -> WriteResult:
        return await self._write([_Step("products", OperationKind.DELETE, {}, target_id=product_id)])

    # =========================================================================
    # DEBTS
    # =========================================================================

    async def create_debt(self, customer_name: str, items: Sequence[LineItem]) -> WriteResult:
        """Record goods taken on credit, with stock decrements."""
        total = sum(item.total_price for item in items)
        steps = self._document_steps(
            "debts",
            {"customer_name": customer_name, "amount": total, "status": "unpaid"},
            "debt_items",
            "debt_id",
            items,
            lambda item: {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
            },
        )
        return await self._write(steps)

    async def mark_debt_paid(self, debt_id: Any) -> WriteResult:
        return await self._write([_Step(
            "debts", OperationKind.UPDATE, {"status": "paid", "paid_at": _now()}, target_id=debt_id
        )])

    async def mark_debt_unpaid(self, debt_id: Any) -> WriteResult:
        return await self._write([_Step(
            "debts", OperationKind.UPDATE, {"status": "unpaid", "paid_at": None}, target_id=debt_id
        )])

    async def delete_debt(self, debt_id: Any) -> WriteResult:
        return await self._write([_Step("debts", OperationKind.DELETE, {}, target_id=debt_id)])

    async def get_debts(self, status: Optional[str] = None) -> List[Row]:
        rows = await self._read("debts")
        if status is not None:
            rows = [row for row in rows if row.get("status") == status]
        return rows

    # =========================================================================
    # RESTOCK
    # =========================================================================

    async def create_restock(self, items: Sequence[LineItem], supplier_name: Optional[str] = None) -> WriteResult:
        """Record a restock batch; unit_price is the unit cost, new_stock the stock after it."""
        total = sum(item.total_price for item in items)
        steps = self._document_steps(
            "restock_transactions",
            {"total_amount": total, "supplier_name": supplier_name or None},
            "restock_items",
            "restock_id",
            items,
            lambda item: {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit_cost": item.unit_price,
                "total_cost": item.total_price,
            },
        )
        return await self._write(steps)

    async def delete_restock(self, restock_id: Any, reverted: Sequence[StockChange]) -> WriteResult:
        """Put stock back to its pre-restock level, then delete the batch."""
        steps = [
            _Step("products", OperationKind.UPDATE,
                  {"stock": change.new_stock, "updated_at": _now()},
                  target_id=change.product_id)
            for change in reverted
        ]
        steps.append(_Step("restock_transactions", OperationKind.DELETE, {}, target_id=restock_id))
        result = await self._write(steps)
        result.record = {"id": restock_id}
        return result

    async def get_restock_transactions(self) -> List[Row]:
        return await self._read("restock_transactions")

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def create_expense(
        self,
        description: str,
        amount: float,
        category: Optional[str] = None,
        expense_type: str = "operational",
    ) -> WriteResult:
        return await self._write([_Step("expenses", OperationKind.INSERT, {
            "description": description,
            "amount": amount,
            "category": category or "Lainnya",
            "expense_type": expense_type,
            "expense_category": expense_type,
        })])

    async def delete_expense(self, expense_id: Any) -> WriteResult:
        return await self._write([_Step("expenses", OperationKind.DELETE, {}, target_id=expense_id)])

    async def get_expenses(self) -> List[Row]:
        return await self._read("expenses")

    async def create_operational_expense(
        self,
        description: str,
        amount: float,
        category: Optional[str] = None,
    ) -> WriteResult:
        return await self._write([_Step("operational_expenses", OperationKind.INSERT, {
            "description": description,
            "amount": amount,
            "category": category or "Lainnya",
        })])

    async def delete_operational_expense(self, expense_id: Any) -> WriteResult:
        return await self._write([_Step("operational_expenses", OperationKind.DELETE, {}, target_id=expense_id)])

    async def get_operational_expenses(self) -> List[Row]:
        return await self._read("operational_expenses")

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    async def create_notification(
        self,
        title: str,
        message: str,
        notification_type: str,
        related_id: Optional[Any] = None,
    ) -> WriteResult:
        return await self._write([_Step("notifications", OperationKind.INSERT, {
            "title": title,
            "message": message,
            "type": notification_type,
            "related_id": related_id,
            "is_read": False,
        })])

    async def mark_notification_read(self, notification_id: Any) -> WriteResult:
        return await self._write([_Step(
            "notifications", OperationKind.UPDATE, {"is_read": True}, target_id=notification_id
        )])

    async def get_notifications(self, unread_only: bool = False) -> List[Row]:
        rows = await self._read("notifications")
        if unread_only:
            rows = [row for row in rows if not row.get("is_read")]
        return rows

    # =========================================================================
    # SYNC OPERATIONS
    # =========================================================================

    async def force_sync(self) -> DrainReport:
        """
        Drain the queue now.

        Returns:
            DrainReport; skipped=True when offline or already draining
        """
        if not self.is_online:
            logger.warning("Cannot sync: offline")
            return DrainReport(skipped=True)
        return await self._sync_engine.drain()

    async def pending_count(self) -> int:
        return await self._queue.count()

    async def list_pending(self) -> List[QueuedOperation]:
        return await self._queue.list_all_ordered()

    async def list_dead_letters(self) -> List[DeadLetter]:
        return await self._queue.list_dead_letters()

    async def retry_dead_letter(self, enqueued_at: int) -> Optional[QueuedOperation]:
        """Move a parked operation back to the end of the queue."""
        return await self._queue.requeue_dead_letter(enqueued_at)

    async def discard_dead_letter(self, enqueued_at: int) -> None:
        await self._queue.discard_dead_letter(enqueued_at)

    # =========================================================================
    # STATUS & LIFECYCLE
    # =========================================================================

    async def get_status(self) -> Dict[str, Any]:
        """
        Get comprehensive status information.

        Returns:
            Dict with status information for UI display
        """
        return {
            "connection": self._connection_manager.get_status_display(),
            "sync": await self._sync_engine.get_status_display(),
            "cache": await self._cache.get_cache_stats(),
            "is_online": self.is_online,
            "pending_sync": await self._queue.count(),
        }

    async def close(self) -> None:
        """Stop monitoring, release the remote client and close the database."""
        try:
            await self._connection_manager.stop()
        finally:
            try:
                await self._remote.close()
            finally:
                await self._context.database.close()


async def create_data_service(
    settings: Optional[OfflineSettings] = None,
    remote: Optional[RemoteDataService] = None,
    probe: Optional[Probe] = None,
    start_monitoring: bool = True,
) -> UnifiedDataService:
    """
    Build and start the offline stack.

    Args:
        settings: Runtime settings (defaults to load_settings())
        remote: Remote row store (defaults to Supabase from settings)
        probe: Connectivity probe override
        start_monitoring: Whether to start periodic connectivity checks

    Returns:
        A started UnifiedDataService; call close() on shutdown
    """
    settings = settings or load_settings()

    database = LocalDatabase(settings.db_path)
    await database.open()

    try:
        if remote is None:
            from halolaba_core.data.supabase_client import SupabaseRemote
            remote = await SupabaseRemote.from_settings(settings)

        context = OfflineContext(database=database, settings=settings)
        queue = OperationQueue(database)
        cache = CacheManager(database)
        sync_engine = SyncEngine(context, queue, cache, remote)
        await sync_engine.load_state()
        connection_manager = ConnectionManager(context, sync_engine, probe=probe)

        service = UnifiedDataService(context, queue, cache, sync_engine, connection_manager, remote)
        await connection_manager.start(start_monitoring=start_monitoring)
    except Exception:
        await database.close()
        raise

    logger.info(f"UnifiedDataService initialized. Online: {service.is_online}")
    return service
