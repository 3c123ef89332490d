# =============================================================================
# halolaba_core/data/supabase_client.py
# Supabase Implementation of the Remote Row Store
# Handles client creation and CRUD operations
# =============================================================================

from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from halolaba_core.config import OfflineSettings
from halolaba_core.data.remote import RemoteDataService, Row
from halolaba_core.errors import RemoteRejected, RemoteUnreachable

logger = logging.getLogger(__name__)

# Supabase caps un-ranged selects at 1000 rows
PAGE_SIZE = 1000


async def get_supabase_client(settings: OfflineSettings) -> AsyncClient:
    """
    Create an async Supabase client from settings.

    Raises:
        ConfigurationError: if URL or key is missing
    """
    url, key = settings.require_supabase()
    options = AsyncClientOptions(postgrest_client_timeout=settings.request_timeout)
    return await acreate_client(url, key, options=options)


class SupabaseRemote(RemoteDataService):
    """
    Supabase-backed RemoteDataService.

    Translates postgrest/httpx failures into RemoteRejected and
    RemoteUnreachable so callers never see library-specific errors.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    @classmethod
    async def from_settings(cls, settings: OfflineSettings) -> SupabaseRemote:
        return cls(await get_supabase_client(settings))

    async def _execute(self, query, table: str, operation: str):
        try:
            return await query.execute()
        except APIError as e:
            raise RemoteRejected(
                e.message or str(e),
                table=table,
                operation=operation,
                details={"postgrest_code": e.code, "hint": e.hint},
            ) from e
        except (httpx.TransportError, OSError) as e:
            raise RemoteUnreachable(
                f"Supabase unreachable: {e}",
                table=table,
                operation=operation,
            ) from e

    async def insert(self, table: str, row: Row) -> Row:
        response = await self._execute(
            self.client.table(table).insert(row), table, "insert"
        )
        return response.data[0] if response.data else dict(row)

    async def update(self, table: str, row_id: Any, values: Row) -> Row:
        response = await self._execute(
            self.client.table(table).update(values).eq("id", row_id), table, "update"
        )
        if not response.data:
            # Last write wins, but only against a row that still exists
            raise RemoteRejected(
                f"Row {row_id} not found in {table}",
                table=table,
                operation="update",
                details={"target_id": row_id},
            )
        return response.data[0]

    async def delete(self, table: str, row_id: Any) -> None:
        await self._execute(
            self.client.table(table).delete().eq("id", row_id), table, "delete"
        )

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        def build():
            query = self.client.table(table).select("*")
            for col, val in (filters or {}).items():
                query = query.is_(col, "null") if val is None else query.eq(col, val)
            if order_by:
                query = query.order(order_by, desc=descending)
            return query

        if limit is not None:
            response = await self._execute(build().limit(limit), table, "select")
            return list(response.data or [])

        # Page through the whole table
        all_rows: List[Row] = []
        offset = 0
        while True:
            response = await self._execute(
                build().range(offset, offset + PAGE_SIZE - 1), table, "select"
            )
            batch = response.data or []
            all_rows.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
            offset += PAGE_SIZE

        return all_rows

    async def close(self) -> None:
        postgrest = getattr(self.client, "postgrest", None)
        if postgrest is not None and hasattr(postgrest, "aclose"):
            await postgrest.aclose()
