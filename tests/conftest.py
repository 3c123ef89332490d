# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from halolaba_core.config import OfflineSettings
from halolaba_core.data.remote import RemoteDataService, Row
from halolaba_core.errors import RemoteRejected, RemoteUnreachable
from halolaba_core.offline import (
    CacheManager,
    LineItem,
    LocalDatabase,
    OfflineContext,
    OperationQueue,
    SyncEngine,
    create_data_service,
)


# =============================================================================
# FAKE REMOTE SERVICE
# =============================================================================

class FakeRemote(RemoteDataService):
    """
    In-memory RemoteDataService.

    - unreachable: every call raises RemoteUnreachable
    - fail_on(): queue errors for a given operation/table
    - gate: when set, every call waits on it before answering
    - calls: (operation, table, row id) for every call that reached the store
    """

    def __init__(self):
        self.tables: Dict[str, Dict[Any, Row]] = defaultdict(dict)
        self.calls: List[Tuple[str, str, Any]] = []
        self.unreachable = False
        self.gate: Optional[asyncio.Event] = None
        self._failures: Dict[Tuple[str, str], List[Optional[Exception]]] = defaultdict(list)
        self._next_id = 1
        self._clock = datetime(2024, 1, 1)

    def fail_on(self, operation: str, table: str, error: Exception, times: int = 1) -> None:
        self._failures[(operation, table)].extend([error] * times)

    def seed(self, table: str, *rows: Row) -> None:
        for row in rows:
            self.tables[table][row["id"]] = dict(row)

    def rows(self, table: str) -> List[Row]:
        return list(self.tables[table].values())

    async def _enter(self, operation: str, table: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.unreachable:
            raise RemoteUnreachable("connection refused", table=table, operation=operation)
        pending = self._failures.get((operation, table))
        if pending:
            raise pending.pop(0)

    def _tick(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    async def insert(self, table: str, row: Row) -> Row:
        await self._enter("insert", table)
        stored = dict(row)
        if "id" not in stored:
            stored["id"] = self._next_id
            self._next_id += 1
        if stored["id"] in self.tables[table]:
            raise RemoteRejected("duplicate key value", table=table, operation="insert")
        stored.setdefault("created_at", self._tick())
        self.tables[table][stored["id"]] = stored
        self.calls.append(("insert", table, stored["id"]))
        return dict(stored)

    async def update(self, table: str, row_id: Any, values: Row) -> Row:
        await self._enter("update", table)
        if row_id not in self.tables[table]:
            raise RemoteRejected(f"Row {row_id} not found", table=table, operation="update")
        self.tables[table][row_id].update(values)
        self.calls.append(("update", table, row_id))
        return dict(self.tables[table][row_id])

    async def delete(self, table: str, row_id: Any) -> None:
        await self._enter("delete", table)
        self.tables[table].pop(row_id, None)
        self.calls.append(("delete", table, row_id))

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        await self._enter("select", table)
        rows = [
            dict(row) for row in self.tables[table].values()
            if all(row.get(col) == val for col, val in (filters or {}).items())
        ]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        self.calls.append(("select", table, None))
        return rows

    def write_calls(self) -> List[Tuple[str, str, Any]]:
        return [call for call in self.calls if call[0] != "select"]


class ProbeSwitch:
    """Connectivity probe the test flips by hand."""

    def __init__(self, reachable: bool = False):
        self.reachable = reachable
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.reachable


# =============================================================================
# SETTINGS & STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway database"""
    return OfflineSettings(
        db_path=tmp_path / "offline.db",
        check_interval_online=0.05,
        check_interval_offline=0.05,
        max_attempts=3,
        recent_transactions_limit=50,
    )


@pytest_asyncio.fixture
async def database(settings):
    """Open LocalDatabase, closed after the test"""
    db = LocalDatabase(settings.db_path)
    await db.open()
    yield db
    await db.close()


@pytest.fixture
def context(database, settings):
    return OfflineContext(database=database, settings=settings)


@pytest.fixture
def queue(database):
    return OperationQueue(database)


@pytest.fixture
def cache(database):
    return CacheManager(database)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def sync_engine(context, queue, cache, remote):
    return SyncEngine(context, queue, cache, remote)


# =============================================================================
# DATA SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def probe():
    return ProbeSwitch(reachable=False)


@pytest_asyncio.fixture
async def offline_service(settings, remote, probe):
    """Data service that starts with the remote unreachable"""
    service = await create_data_service(settings, remote=remote, probe=probe, start_monitoring=False)
    yield service
    await service.close()


@pytest_asyncio.fixture
async def online_service(settings, remote):
    """Data service that starts connected"""
    online_probe = ProbeSwitch(reachable=True)
    service = await create_data_service(settings, remote=remote, probe=online_probe, start_monitoring=False)
    await service.connection_manager.wait_for_sync()
    yield service
    await service.close()


@pytest.fixture
def mock_supabase():
    """Mock async Supabase client"""
    return MagicMock()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_product(product_id, name, stock, minimal_stock=5, **extra) -> Row:
    row = {
        "id": product_id,
        "name": name,
        "stock": stock,
        "minimal_stock": minimal_stock,
        "cost_price": 1000,
        "selling_price": 1500,
    }
    row.update(extra)
    return row


def sale_items(*lines) -> List[LineItem]:
    """Build LineItems from (product_id, quantity, unit_price, new_stock) tuples"""
    return [LineItem(*line) for line in lines]


async def go_online(service, probe) -> None:
    """Flip the probe and wait for the drain the transition starts"""
    probe.reachable = True
    await service.connection_manager.check_connection()
    await service.connection_manager.wait_for_sync()


async def go_offline(service, probe) -> None:
    probe.reachable = False
    await service.connection_manager.check_connection()
