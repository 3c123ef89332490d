# =============================================================================
# halolaba_core/offline/schemas.py
# Per-Table Field Sets
# =============================================================================
"""
Row shapes for every remote table the app writes to.

Payloads are checked here before they reach the remote service or the offline
queue, so a malformed row fails at the call site instead of sitting in the
queue and being rejected on every replay.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet

from halolaba_core.errors import PayloadValidationError
from halolaba_core.offline.operation_queue import OperationKind


@dataclass(frozen=True)
class TableSchema:
    """Allowed, required-on-insert and numeric columns of one table."""
    name: str
    fields: FrozenSet[str]
    required: FrozenSet[str] = frozenset()
    numeric: FrozenSet[str] = frozenset()


def _schema(name: str, fields: str, required: str = "", numeric: str = "") -> TableSchema:
    return TableSchema(
        name=name,
        fields=frozenset(fields.split()),
        required=frozenset(required.split()),
        numeric=frozenset(numeric.split()),
    )


TABLE_SCHEMAS: Dict[str, TableSchema] = {
    schema.name: schema
    for schema in (
        _schema(
            "products",
            "id name stock minimal_stock cost_price selling_price created_at updated_at",
            required="name stock minimal_stock cost_price selling_price",
            numeric="stock minimal_stock cost_price selling_price",
        ),
        _schema(
            "transactions",
            "id total_amount profit type created_at",
            required="total_amount",
            numeric="total_amount profit",
        ),
        _schema(
            "transaction_items",
            "id transaction_id product_id quantity unit_price total_price",
            required="transaction_id product_id quantity unit_price total_price",
            numeric="quantity unit_price total_price",
        ),
        _schema(
            "debts",
            "id customer_name amount status created_at paid_at",
            required="customer_name amount status",
            numeric="amount",
        ),
        _schema(
            "debt_items",
            "id debt_id product_id quantity unit_price total_price",
            required="debt_id product_id quantity unit_price total_price",
            numeric="quantity unit_price total_price",
        ),
        _schema(
            "restock_transactions",
            "id total_amount supplier_name created_at",
            required="total_amount",
            numeric="total_amount",
        ),
        _schema(
            "restock_items",
            "id restock_id product_id quantity unit_cost total_cost",
            required="restock_id product_id quantity unit_cost total_cost",
            numeric="quantity unit_cost total_cost",
        ),
        _schema(
            "expenses",
            "id description amount category expense_type expense_category created_at",
            required="description amount",
            numeric="amount",
        ),
        _schema(
            "operational_expenses",
            "id description amount category created_at",
            required="description amount",
            numeric="amount",
        ),
        _schema(
            "notifications",
            "id title message type related_id is_read created_at",
            required="title message type",
        ),
    )
}


def validate_payload(table: str, payload: Dict[str, Any], kind: OperationKind) -> Dict[str, Any]:
    """
    Check a row payload against its table schema.

    Args:
        table: Remote table name
        payload: Row fields
        kind: Write kind (inserts must carry every required field)

    Returns:
        A shallow copy of the payload

    Raises:
        PayloadValidationError: unknown table, unknown/missing fields,
            non-numeric values in numeric columns, or an empty update
    """
    schema = TABLE_SCHEMAS.get(table)
    if schema is None:
        raise PayloadValidationError(f"Unknown table: {table}", table=table)

    if not isinstance(payload, dict):
        raise PayloadValidationError(
            f"Payload for {table} must be a mapping, got {type(payload).__name__}",
            table=table,
        )

    unknown = sorted(set(payload) - schema.fields)
    if unknown:
        raise PayloadValidationError(f"Unknown fields for {table}", table=table, fields=unknown)

    if kind is OperationKind.INSERT:
        missing = sorted(schema.required - set(payload))
        if missing:
            raise PayloadValidationError(f"Missing fields for {table}", table=table, fields=missing)
    elif kind is OperationKind.UPDATE and not payload:
        raise PayloadValidationError(f"Empty update for {table}", table=table)

    bad_numbers = sorted(
        col for col in schema.numeric & set(payload)
        if payload[col] is not None
        and (isinstance(payload[col], bool) or not isinstance(payload[col], (int, float)))
    )
    if bad_numbers:
        raise PayloadValidationError(
            f"Non-numeric values for {table}",
            table=table,
            fields=bad_numbers,
        )

    return dict(payload)
