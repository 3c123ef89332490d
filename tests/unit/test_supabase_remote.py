# =============================================================================
# tests/unit/test_supabase_remote.py
# Unit Tests for the Supabase Adapter
# =============================================================================

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError

from halolaba_core.data import supabase_client
from halolaba_core.data.supabase_client import SupabaseRemote
from halolaba_core.errors import RemoteRejected, RemoteUnreachable


def _response(data):
    return MagicMock(data=data)


class TestWrites:

    @pytest.mark.asyncio
    async def test_insert_returns_stored_row(self, mock_supabase):
        query = mock_supabase.table.return_value.insert.return_value
        query.execute = AsyncMock(return_value=_response([{"id": 7, "name": "Beras"}]))

        row = await SupabaseRemote(mock_supabase).insert("products", {"name": "Beras"})

        assert row == {"id": 7, "name": "Beras"}
        mock_supabase.table.assert_called_with("products")

    @pytest.mark.asyncio
    async def test_api_error_becomes_rejected(self, mock_supabase):
        query = mock_supabase.table.return_value.insert.return_value
        query.execute = AsyncMock(side_effect=APIError({
            "message": "duplicate key value violates unique constraint",
            "code": "23505",
            "hint": None,
            "details": None,
        }))

        with pytest.raises(RemoteRejected) as exc_info:
            await SupabaseRemote(mock_supabase).insert("products", {"id": 1, "name": "Beras"})

        assert exc_info.value.details["postgrest_code"] == "23505"
        assert exc_info.value.details["table"] == "products"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_unreachable(self, mock_supabase):
        query = mock_supabase.table.return_value.delete.return_value.eq.return_value
        query.execute = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(RemoteUnreachable):
            await SupabaseRemote(mock_supabase).delete("expenses", 3)

    @pytest.mark.asyncio
    async def test_update_of_missing_row_is_rejected(self, mock_supabase):
        query = mock_supabase.table.return_value.update.return_value.eq.return_value
        query.execute = AsyncMock(return_value=_response([]))

        with pytest.raises(RemoteRejected):
            await SupabaseRemote(mock_supabase).update("products", 404, {"stock": 1})

        mock_supabase.table.return_value.update.return_value.eq.assert_called_with("id", 404)

    @pytest.mark.asyncio
    async def test_delete_of_missing_row_succeeds(self, mock_supabase):
        query = mock_supabase.table.return_value.delete.return_value.eq.return_value
        query.execute = AsyncMock(return_value=_response([]))

        assert await SupabaseRemote(mock_supabase).delete("products", 404) is None


class TestSelect:

    @pytest.mark.asyncio
    async def test_limit_is_applied(self, mock_supabase):
        ordered = mock_supabase.table.return_value.select.return_value.order.return_value
        ordered.limit.return_value.execute = AsyncMock(return_value=_response([{"id": 1}]))

        rows = await SupabaseRemote(mock_supabase).select(
            "transactions", order_by="created_at", descending=True, limit=5
        )

        assert rows == [{"id": 1}]
        mock_supabase.table.return_value.select.return_value.order.assert_called_with("created_at", desc=True)
        ordered.limit.assert_called_with(5)

    @pytest.mark.asyncio
    async def test_unlimited_select_pages_through_table(self, mock_supabase, monkeypatch):
        monkeypatch.setattr(supabase_client, "PAGE_SIZE", 2)
        ranged = mock_supabase.table.return_value.select.return_value.range
        ranged.return_value.execute = AsyncMock(side_effect=[
            _response([{"id": 1}, {"id": 2}]),
            _response([{"id": 3}]),
        ])

        rows = await SupabaseRemote(mock_supabase).select("products")

        assert rows == [{"id": 1}, {"id": 2}, {"id": 3}]
        assert [c.args for c in ranged.call_args_list] == [(0, 1), (2, 3)]

    @pytest.mark.asyncio
    async def test_null_filter_uses_is(self, mock_supabase):
        base = mock_supabase.table.return_value.select.return_value
        base.is_.return_value.limit.return_value.execute = AsyncMock(return_value=_response([]))

        await SupabaseRemote(mock_supabase).select("debts", filters={"paid_at": None}, limit=1)

        base.is_.assert_called_with("paid_at", "null")


class TestClose:

    @pytest.mark.asyncio
    async def test_close_releases_postgrest_session(self, mock_supabase):
        mock_supabase.postgrest.aclose = AsyncMock()

        await SupabaseRemote(mock_supabase).close()

        mock_supabase.postgrest.aclose.assert_awaited_once()
