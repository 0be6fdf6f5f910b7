"""
Producer financials repository (atomic balance writes).

The producer balance row is the only contended resource in settlement: two
webhooks for two different sales of the same producer can arrive at once.
Balance changes therefore never happen as read-modify-write in Python. They go
through PostgreSQL functions (see sql/settlement_functions.sql) that, in one
transaction:

- settle_sale_payment: mark the sale paid with its settlement amounts, flip
  `balance_credited`, and insert-or-increment the producer balance.
- refund_sale_payment: mark the sale refunded and, only if it was credited,
  decrement the balance by the stored producer share.

Both are no-ops at the storage level when the guard does not hold, so a
concurrent duplicate delivery cannot credit or reverse twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from domain.producer_balance import ProducerBalance
from domain.time import parse_utc_datetime

_FINANCIALS_TABLE: str = "producer_financials"


@dataclass(frozen=True, slots=True)
class SettlementWriteResult:
    """Result from the settle_sale_payment PostgreSQL function."""

    settled: bool
    credited_cents: int
    refunded: bool = False


@dataclass(frozen=True, slots=True)
class RefundWriteResult:
    """Result from the refund_sale_payment PostgreSQL function."""

    refunded: bool
    reversed_cents: int


def _call_rpc(supabase: Client, function: str, params: Mapping[str, Any], result_key: str) -> Dict[str, Any]:
    """
    Call a settlement function and return its JSON result.

    Some supabase-py versions raise APIError for a function that returns a JSON
    object even on success; the payload is recovered from the error in that case.
    """

    try:
        response = supabase.rpc(function, dict(params)).execute()
    except APIError as e:
        try:
            error_data = e.json() if callable(getattr(e, "json", None)) else {}
        except (TypeError, ValueError):
            error_data = {}
        if isinstance(error_data, dict) and result_key in error_data:
            return error_data
        raise RuntimeError(f"Failed to call {function}: {e}") from e

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to call {function}: {error}")

    data = getattr(response, "data", None)
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, dict) or result_key not in data:
        raise RuntimeError(f"Unexpected result from {function}: {data!r}")
    return data


def settle_sale_payment(
    supabase: Client,
    sale_id: UUID,
    producer_id: UUID,
    gateway_status: str,
    paid_at: datetime,
    platform_fee_cents: int,
    producer_share_cents: int,
    security_reserve_cents: int,
    release_date: date,
    gateway_invoice_id: Optional[str] = None,
    webhook_id: Optional[str] = None,
) -> SettlementWriteResult:
    """
    Mark a sale paid and credit its producer share in one transaction.

    Returns settled=False when the sale was already credited or has been
    refunded (refunded=True); in both cases neither the sale nor the balance
    is changed.
    """

    result = _call_rpc(
        supabase,
        "settle_sale_payment",
        {
            "p_sale_id": str(sale_id),
            "p_producer_id": str(producer_id),
            "p_gateway_status": gateway_status,
            "p_paid_at": paid_at.isoformat(),
            "p_platform_fee_cents": platform_fee_cents,
            "p_producer_share_cents": producer_share_cents,
            "p_security_reserve_cents": security_reserve_cents,
            "p_release_date": release_date.isoformat(),
            "p_gateway_invoice_id": gateway_invoice_id,
            "p_webhook_id": webhook_id,
        },
        result_key="settled",
    )
    return SettlementWriteResult(
        settled=bool(result["settled"]),
        credited_cents=int(result.get("credited_cents") or 0),
        refunded=bool(result.get("refunded", False)),
    )


def refund_sale_payment(
    supabase: Client,
    sale_id: UUID,
    producer_id: Optional[UUID],
    webhook_id: Optional[str] = None,
) -> RefundWriteResult:
    """
    Mark a sale refunded and, if it was credited, reverse its stored producer share.

    Returns refunded=False when the sale was already refunded.
    """

    result = _call_rpc(
        supabase,
        "refund_sale_payment",
        {
            "p_sale_id": str(sale_id),
            "p_producer_id": str(producer_id) if producer_id else None,
            "p_webhook_id": webhook_id,
        },
        result_key="refunded",
    )
    return RefundWriteResult(
        refunded=bool(result["refunded"]),
        reversed_cents=int(result.get("reversed_cents") or 0),
    )


def _row_to_balance(row: Mapping[str, Any]) -> ProducerBalance:
    return ProducerBalance(
        producer_id=UUID(str(row["producer_id"])),
        available_balance_cents=int(row.get("available_balance_cents") or 0),
        pending_balance_cents=int(row.get("pending_balance_cents") or 0),
        updated_at=parse_utc_datetime(row["updated_at"]) if row.get("updated_at") else None,
    )


def list_producer_balances(supabase: Client) -> List[ProducerBalance]:
    """Fetch every producer balance row (used by reconciliation)."""

    response = (
        supabase.table(_FINANCIALS_TABLE)
        .select("producer_id, available_balance_cents, pending_balance_cents, updated_at")
        .execute()
    )

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to list producer balances: {error}")

    rows = getattr(response, "data", None) or []
    return [_row_to_balance(row) for row in rows]


__all__ = [
    "SettlementWriteResult",
    "RefundWriteResult",
    "settle_sale_payment",
    "refund_sale_payment",
    "list_producer_balances",
]
