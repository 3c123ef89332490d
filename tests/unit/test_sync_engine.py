# =============================================================================
# tests/unit/test_sync_engine.py
# Unit Tests for SyncEngine
# =============================================================================

import asyncio

import pytest

from halolaba_core.errors import RemoteRejected, RemoteUnreachable
from halolaba_core.offline import OperationKind, SyncEngine

from conftest import make_product


async def _queue_sale(queue):
    await queue.enqueue("transactions", OperationKind.INSERT, {"id": "t1", "total_amount": 3000})
    await queue.enqueue("transaction_items", OperationKind.INSERT, {"id": "i1", "transaction_id": "t1"})
    await queue.enqueue("products", OperationKind.UPDATE, {"stock": 4}, target_id=1)


class TestDrain:
    """Replay order and queue bookkeeping"""

    @pytest.mark.asyncio
    async def test_replays_in_enqueue_order_and_empties_queue(self, sync_engine, queue, remote):
        remote.seed("products", make_product(1, "Beras", 6))
        await _queue_sale(queue)

        report = await sync_engine.drain()

        assert remote.write_calls() == [
            ("insert", "transactions", "t1"),
            ("insert", "transaction_items", "i1"),
            ("update", "products", 1),
        ]
        assert report.attempted == 3
        assert report.succeeded == 3
        assert report.clean
        assert await queue.count() == 0
        assert remote.tables["products"][1]["stock"] == 4

    @pytest.mark.asyncio
    async def test_empty_queue_still_refreshes_cache(self, sync_engine, remote, cache):
        remote.seed("products", make_product(1, "Beras", 6))

        report = await sync_engine.drain()

        assert report.attempted == 0
        assert report.refreshed == ["products", "transactions"]
        assert await cache.read_partition("products") == [make_product(1, "Beras", 6)]

    @pytest.mark.asyncio
    async def test_failure_does_not_block_later_operations(self, sync_engine, queue, remote):
        remote.seed("products", make_product(1, "Beras", 6))
        remote.fail_on("insert", "transaction_items", RemoteRejected("violates foreign key"))
        await _queue_sale(queue)

        report = await sync_engine.drain()

        assert report.succeeded == 2
        assert report.failed == 1
        assert not report.clean
        remaining = await queue.list_all_ordered()
        assert [op.table for op in remaining] == ["transaction_items"]
        assert remaining[0].attempts == 1
        assert "foreign key" in remaining[0].last_error

    @pytest.mark.asyncio
    async def test_failed_operation_succeeds_on_next_drain(self, sync_engine, queue, remote):
        remote.fail_on("insert", "expenses", RemoteUnreachable("reset"))
        await queue.enqueue("expenses", OperationKind.INSERT, {"id": "e1", "description": "Listrik", "amount": 1})

        first = await sync_engine.drain()
        second = await sync_engine.drain()

        assert first.failed == 1
        assert second.succeeded == 1
        assert await queue.count() == 0


class TestDeadLetters:

    @pytest.mark.asyncio
    async def test_rejected_operation_is_parked_after_max_attempts(self, sync_engine, queue, settings):
        # Updating a row that no longer exists is rejected every time
        await queue.enqueue("products", OperationKind.UPDATE, {"stock": 1}, target_id=404)

        reports = [await sync_engine.drain() for _ in range(settings.max_attempts)]

        assert [r.dead_lettered for r in reports] == [0] * (settings.max_attempts - 1) + [1]
        assert await queue.count() == 0
        letters = await queue.list_dead_letters()
        assert len(letters) == 1
        assert letters[0].operation.target_id == 404
        assert sync_engine.state.dead_lettered == 1

    @pytest.mark.asyncio
    async def test_unreachable_never_dead_letters(self, sync_engine, queue, remote, settings):
        remote.unreachable = True
        await queue.enqueue("expenses", OperationKind.DELETE, {}, target_id=1)

        for _ in range(settings.max_attempts + 2):
            report = await sync_engine.drain()
            assert report.failed == 1

        ops = await queue.list_all_ordered()
        assert len(ops) == 1
        assert ops[0].attempts == 0
        assert await queue.list_dead_letters() == []


class TestSingleDrain:

    @pytest.mark.asyncio
    async def test_overlapping_drain_is_skipped(self, sync_engine, queue, remote, context):
        await queue.enqueue("expenses", OperationKind.INSERT, {"id": "e1", "description": "Air", "amount": 5})
        remote.gate = asyncio.Event()

        first = asyncio.create_task(sync_engine.drain())
        await asyncio.sleep(0)
        assert context.draining

        second = await sync_engine.drain()
        remote.gate.set()
        report = await first

        assert second.skipped
        assert report.succeeded == 1
        assert remote.write_calls() == [("insert", "expenses", "e1")]
        assert not context.draining


class TestRefresh:

    @pytest.mark.asyncio
    async def test_remote_failure_skips_only_that_partition(self, sync_engine, remote, cache):
        await cache.replace_partition("transactions", [{"id": "old"}])
        remote.seed("products", make_product(1, "Beras", 6))
        remote.fail_on("select", "transactions", RemoteUnreachable("timeout"))

        refreshed = await sync_engine.refresh_essential_data()

        assert refreshed == ["products"]
        assert await cache.read_partition("transactions") == [{"id": "old"}]

    @pytest.mark.asyncio
    async def test_transactions_partition_is_windowed(self, sync_engine, remote, cache, settings):
        for n in range(settings.recent_transactions_limit + 5):
            await remote.insert("transactions", {"id": n, "total_amount": n})

        await sync_engine.refresh_essential_data()

        cached = await cache.read_partition("transactions")
        assert len(cached) == settings.recent_transactions_limit
        assert cached[0]["id"] == settings.recent_transactions_limit + 4


class TestSyncState:

    @pytest.mark.asyncio
    async def test_last_success_survives_restart(self, sync_engine, context, queue, cache, remote):
        await sync_engine.drain()
        saved = sync_engine.state.last_sync_success

        restarted = SyncEngine(context, queue, cache, remote)
        await restarted.load_state()

        assert saved is not None
        assert restarted.state.last_sync_success == saved

    @pytest.mark.asyncio
    async def test_failed_drain_keeps_previous_success(self, sync_engine, queue, remote):
        remote.unreachable = True
        await queue.enqueue("expenses", OperationKind.DELETE, {}, target_id=1)

        await sync_engine.drain()

        assert sync_engine.state.last_sync_success is None
        assert sync_engine.state.failed_count == 1

    @pytest.mark.asyncio
    async def test_callbacks_see_draining_then_idle(self, sync_engine):
        seen = []
        sync_engine.register_callback(lambda state: seen.append(state.is_syncing))

        await sync_engine.drain()

        assert seen == [True, False]

    @pytest.mark.asyncio
    async def test_status_display(self, sync_engine, queue):
        await queue.enqueue("expenses", OperationKind.DELETE, {}, target_id=1)

        status = await sync_engine.get_status_display()

        assert status["pending_count"] == 1
        assert status["is_syncing"] is False
        assert status["dead_letter_count"] == 0
