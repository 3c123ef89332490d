# =============================================================================
# halolaba_core/notifications/notification_service.py
# Low-Stock and Overdue-Debt Notifications
# =============================================================================
"""
NotificationService - turns catalog and debt state into notification rows.

Rules:
- Low stock: stock at or below the product's minimal stock (and at most
  LOW_STOCK_CEILING units). Critical when below half the minimal stock.
- Overdue debt: unpaid for longer than settings.overdue_debt_days.

A product or debt never gets a second notification of the same type while an
earlier one is still unread, including one still waiting in the offline queue.

The checks read and write through UnifiedDataService, so they work offline
against the cache and queue their notifications like any other write.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional, Set
import logging

import pandas as pd

from halolaba_core.offline.operation_queue import OperationKind
from halolaba_core.offline.scheduling import PeriodicTask
from halolaba_core.offline.unified_data_service import UnifiedDataService

logger = logging.getLogger(__name__)

LOW_STOCK = "low_stock"
DEBT_DUE = "debt_due"

# Products above this many units are never flagged
LOW_STOCK_CEILING = 10


def format_idr(amount: float) -> str:
    """Format an amount the way id-ID currency formatting does (Rp 1.500.000)."""
    return "Rp " + f"{amount:,.0f}".replace(",", ".")


class NotificationService:
    """
    Periodic notification checks.

    Usage:
        notifications = NotificationService(data_service)
        notifications.start()       # checks now, then every interval
        ...
        await notifications.stop()
    """

    def __init__(self, data_service: UnifiedDataService, interval: Optional[float] = None):
        self._data = data_service
        self._task = PeriodicTask(
            "NotificationChecks",
            self.run_checks,
            interval=interval if interval is not None else data_service.settings.notification_interval,
            run_immediately=True,
        )

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    async def run_checks(self) -> int:
        """Run every rule once. Returns the number of notifications created."""
        created = await self.check_low_stock()
        created += await self.check_overdue_debts()
        return created

    async def _open_notifications(self, notification_type: str) -> Set[str]:
        """Related ids that already have an unread (or queued) notification."""
        related = {
            str(row["related_id"])
            for row in await self._data.get_notifications(unread_only=True)
            if row.get("type") == notification_type and row.get("related_id") is not None
        }
        for op in await self._data.list_pending():
            if (
                op.table == "notifications"
                and op.kind is OperationKind.INSERT
                and op.payload.get("type") == notification_type
                and op.payload.get("related_id") is not None
            ):
                related.add(str(op.payload["related_id"]))
        return related

    async def check_low_stock(self) -> int:
        """Create low-stock notifications for products that need restocking."""
        products = pd.DataFrame(await self._data.get_products())
        if products.empty:
            return 0

        products["stock"] = pd.to_numeric(products["stock"], errors="coerce")
        products["minimal_stock"] = pd.to_numeric(products["minimal_stock"], errors="coerce")
        low = products[
            (products["stock"] <= LOW_STOCK_CEILING)
            & (products["stock"] <= products["minimal_stock"])
        ]
        if low.empty:
            return 0

        existing = await self._open_notifications(LOW_STOCK)
        created = 0
        for product in low.astype(object).to_dict(orient="records"):
            if str(product["id"]) in existing:
                continue

            stock = int(product["stock"])
            if product["stock"] < product["minimal_stock"] / 2:
                title = "🚨 Stok Kritis!"
                message = f"{product['name']} hampir habis ({stock} tersisa)"
            else:
                title = "⚠️ Stok Menipis"
                message = f"{product['name']} perlu direstock ({stock} tersisa)"

            await self._data.create_notification(title, message, LOW_STOCK, related_id=product["id"])
            created += 1

        if created:
            logger.info(f"Created {created} low stock notifications")
        return created

    async def check_overdue_debts(self, now: Optional[datetime] = None) -> int:
        """Create notifications for unpaid debts older than the overdue threshold."""
        debts = pd.DataFrame(await self._data.get_debts(status="unpaid"))
        if debts.empty:
            return 0

        now = pd.Timestamp(now or datetime.now(timezone.utc))
        if now.tzinfo is None:
            now = now.tz_localize("UTC")

        debts["created_at"] = pd.to_datetime(debts["created_at"], utc=True, errors="coerce")
        debts["amount"] = pd.to_numeric(debts["amount"], errors="coerce").fillna(0)
        cutoff = now - pd.Timedelta(days=self._data.settings.overdue_debt_days)
        overdue = debts[debts["created_at"] < cutoff]
        if overdue.empty:
            return 0

        existing = await self._open_notifications(DEBT_DUE)
        created = 0
        for debt in overdue.astype(object).to_dict(orient="records"):
            if str(debt["id"]) in existing:
                continue

            days_past = (now - debt["created_at"]).days
            await self._data.create_notification(
                "💰 Piutang Jatuh Tempo",
                f"Piutang {debt['customer_name']} sudah {days_past} hari ({format_idr(debt['amount'])})",
                DEBT_DUE,
                related_id=debt["id"],
            )
            created += 1

        if created:
            logger.info(f"Created {created} overdue debt notifications")
        return created

