"""
Sale repository (persistence).

This module provides *only* persistence operations for the Sale domain entity.
It does not decide status transitions or amounts; settlement and refund writes
that touch the producer balance go through the atomic database functions in
`repositories.producer_financials_repository`.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterator, List, Mapping, Optional
from uuid import UUID

from supabase import Client

from domain.sale import Sale, SaleStatus
from domain.time import parse_date, parse_utc_datetime, utc_now

logger = logging.getLogger(__name__)

# Supabase table name for sale records.
# Keep this aligned with sql/settlement_functions.sql.
_SALES_TABLE: str = "sales"

# Sales are always read together with the owning producer.
_SALE_COLUMNS: str = "*, product:products(id, producer_id, name)"

# Gateway ids are interpolated into a PostgREST `or=(...)` filter, so only
# plain identifier characters are accepted.
_GATEWAY_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")

_PAGE_SIZE = 1000


def is_valid_gateway_id(value: Optional[str]) -> bool:
    return bool(value) and _GATEWAY_ID_PATTERN.match(value) is not None


def _optional_uuid(value: Any) -> Optional[UUID]:
    return UUID(str(value)) if value else None


def _row_to_sale(row: Mapping[str, Any]) -> Sale:
    """Convert a Supabase row (with embedded product) into a Sale."""

    product = row.get("product") or {}

    return Sale(
        sale_id=UUID(str(row["id"])),
        product_id=UUID(str(row["product_id"])),
        producer_id=_optional_uuid(product.get("producer_id")),
        amount_total_cents=int(row["amount_total_cents"]),
        status=SaleStatus(str(row["status"])),
        payment_method=str(row.get("payment_method_used") or ""),
        installments=int(row.get("installments_chosen") or 1),
        gateway_status=row.get("gateway_status"),
        gateway_invoice_id=row.get("gateway_invoice_id"),
        gateway_charge_id=row.get("gateway_charge_id"),
        gateway_subscription_id=row.get("gateway_subscription_id"),
        platform_fee_cents=int(row.get("platform_fee_cents") or 0),
        producer_share_cents=int(row.get("producer_share_cents") or 0),
        security_reserve_cents=int(row.get("security_reserve_cents") or 0),
        balance_credited=bool(row.get("balance_credited", False)),
        paid_at=parse_utc_datetime(row["paid_at"]) if row.get("paid_at") else None,
        release_date=parse_date(row["release_date"]) if row.get("release_date") else None,
        created_at=parse_utc_datetime(row["created_at"]) if row.get("created_at") else None,
        last_webhook_id=row.get("last_webhook_id"),
    )


def _first_sale(response: Any, *, action: str, lookup: Mapping[str, Any]) -> Optional[Sale]:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")

    rows = getattr(response, "data", None) or []
    if not rows:
        return None

    if len(rows) > 1:
        logger.warning(
            "More than one sale matched a gateway lookup; using the first",
            extra={"lookup": dict(lookup), "matched_sale_ids": [str(r.get("id")) for r in rows]},
        )

    return _row_to_sale(rows[0])


def get_sale_by_id(supabase: Client, sale_id: UUID) -> Optional[Sale]:
    """
    Retrieve a single sale record by its primary key.

    Returns:
        Sale or None if not found
    """

    response = (
        supabase.table(_SALES_TABLE)
        .select(_SALE_COLUMNS)
        .eq("id", str(sale_id))
        .limit(1)
        .execute()
    )
    return _first_sale(response, action="get sale", lookup={"id": str(sale_id)})


def find_sale_by_gateway_id(supabase: Client, gateway_id: str) -> Optional[Sale]:
    """
    Find the sale whose gateway invoice id or gateway charge id equals `gateway_id`.

    An id that is not a plain identifier cannot belong to any sale and
    resolves to None without querying.
    """

    if not is_valid_gateway_id(gateway_id):
        logger.warning("Rejected malformed gateway id", extra={"gateway_id": str(gateway_id)[:200]})
        return None

    response = (
        supabase.table(_SALES_TABLE)
        .select(_SALE_COLUMNS)
        .or_(f"gateway_invoice_id.eq.{gateway_id},gateway_charge_id.eq.{gateway_id}")
        .limit(2)
        .execute()
    )
    return _first_sale(response, action="find sale by gateway id", lookup={"gateway_id": gateway_id})


def find_sale_by_subscription_id(supabase: Client, subscription_id: str) -> Optional[Sale]:
    """Find the sale created for a gateway subscription."""

    if not is_valid_gateway_id(subscription_id):
        logger.warning(
            "Rejected malformed subscription id",
            extra={"subscription_id": str(subscription_id)[:200]},
        )
        return None

    response = (
        supabase.table(_SALES_TABLE)
        .select(_SALE_COLUMNS)
        .eq("gateway_subscription_id", subscription_id)
        .limit(2)
        .execute()
    )
    return _first_sale(
        response,
        action="find sale by subscription id",
        lookup={"subscription_id": subscription_id},
    )


def update_sale_status(
    supabase: Client,
    sale_id: UUID,
    gateway_status: str,
    status: Optional[SaleStatus] = None,
    gateway_invoice_id: Optional[str] = None,
    last_webhook_id: Optional[str] = None,
) -> None:
    """
    Mirror the gateway status onto a sale and, when given, change its internal status.

    Used for every transition that has no balance effect. Paid/refunded
    transitions are written by the settlement functions instead.
    """

    payload: Dict[str, Any] = {
        "gateway_status": gateway_status,
        "updated_at": utc_now().isoformat(),
    }

    if status is not None:
        payload["status"] = status.value
    if gateway_invoice_id is not None:
        payload["gateway_invoice_id"] = gateway_invoice_id
    if last_webhook_id is not None:
        payload["last_webhook_id"] = last_webhook_id

    response = (
        supabase.table(_SALES_TABLE)
        .update(payload)
        .eq("id", str(sale_id))
        .execute()
    )

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to update sale status: {error}")


def iter_credited_sales(supabase: Client) -> Iterator[Mapping[str, Any]]:
    """
    Yield `{id, producer_share_cents, product: {producer_id}}` for every sale
    whose share is currently counted in a producer balance.
    """

    start = 0
    while True:
        response = (
            supabase.table(_SALES_TABLE)
            .select("id, producer_share_cents, product:products(producer_id)")
            .eq("balance_credited", True)
            .order("id")
            .range(start, start + _PAGE_SIZE - 1)
            .execute()
        )

        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to list credited sales: {error}")

        rows: List[Mapping[str, Any]] = getattr(response, "data", None) or []
        yield from rows

        if len(rows) < _PAGE_SIZE:
            return
        start += _PAGE_SIZE


__all__ = [
    "get_sale_by_id",
    "find_sale_by_gateway_id",
    "find_sale_by_subscription_id",
    "update_sale_status",
    "iter_credited_sales",
    "is_valid_gateway_id",
]
