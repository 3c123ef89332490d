# =============================================================================
# halolaba_core/data/remote.py
# Remote Row Store Interface
# =============================================================================
"""
RemoteDataService - the contract the offline core expects from the backend.

Every method is a coroutine. Implementations raise:
- RemoteUnreachable when the request never got an answer (transport error,
  timeout, DNS failure)
- RemoteRejected when the backend answered with a definitive refusal
  (validation error, constraint violation, update target missing)
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

Row = Dict[str, Any]


class RemoteDataService(ABC):
    """Abstract async row store addressable by table name."""

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """Insert one row and return it as stored (with server defaults)."""

    @abstractmethod
    async def update(self, table: str, row_id: Any, values: Row) -> Row:
        """Apply values to the row with the given id and return the result."""

    @abstractmethod
    async def delete(self, table: str, row_id: Any) -> None:
        """Delete the row with the given id. Missing rows are not an error."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """
        Fetch rows.

        Args:
            table: Table name
            filters: Column -> value equality filters
            order_by: Column to order by
            descending: Sort direction
            limit: Maximum number of rows

        Returns:
            List of row dicts
        """

    async def close(self) -> None:
        """Release any network resources."""
