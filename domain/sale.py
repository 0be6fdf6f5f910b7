"""
Domain: Sale records and their status tables.

Contract excerpts relevant here:
- A Sale is one purchase attempt; it is created by checkout in `pending_payment`
  and mutated only by the settlement core in response to gateway webhooks.
- Monetary values are integer cents.
- `gateway_status` mirrors the last gateway status string verbatim and is used
  only for idempotency comparison, never for business decisions.
- Once a sale is paid, paid_at, platform_fee_cents, producer_share_cents and
  release_date are set together.

This module contains only pure domain entities/value objects: no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Mapping, Optional, Tuple
from uuid import UUID

from .time import require_utc_timestamp


class SaleStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    PIX = "pix"
    BANK_SLIP = "bank_slip"
    CREDIT_CARD = "credit_card"


# Gateway invoice status -> internal status. Statuses not listed leave the
# internal status unchanged.
GATEWAY_STATUS_MAP: Mapping[str, SaleStatus] = {
    "paid": SaleStatus.PAID,
    "pending": SaleStatus.PENDING_PAYMENT,
    "cancelled": SaleStatus.CANCELLED,
    "canceled": SaleStatus.CANCELLED,
    "expired": SaleStatus.EXPIRED,
    "failed": SaleStatus.FAILED,
}

# Subscription event name -> (internal status, mirrored gateway status).
SUBSCRIPTION_TRANSITIONS: Mapping[str, Tuple[SaleStatus, str]] = {
    "subscription.created": (SaleStatus.PENDING_PAYMENT, "pending"),
    "subscription.activated": (SaleStatus.PAID, "active"),
    "subscription.suspended": (SaleStatus.EXPIRED, "expired"),
    "subscription.expired": (SaleStatus.EXPIRED, "expired"),
    "subscription.canceled": (SaleStatus.CANCELLED, "cancelled"),
}


def map_gateway_status(gateway_status: Optional[str]) -> Optional[SaleStatus]:
    """
    Map a gateway invoice status string to an internal SaleStatus.

    Returns None for statuses with no internal counterpart.
    """

    if gateway_status is None:
        return None
    return GATEWAY_STATUS_MAP.get(gateway_status.strip().lower())


@dataclass(frozen=True, slots=True)
class Sale:
    """
    Immutable snapshot of a sale row as read at the start of a webhook delivery.

    `producer_id` comes from the joined product; it is None only when the
    product row is missing.
    """

    sale_id: UUID
    product_id: UUID
    producer_id: Optional[UUID]
    amount_total_cents: int
    status: SaleStatus
    payment_method: str
    installments: int = 1

    gateway_status: Optional[str] = None
    gateway_invoice_id: Optional[str] = None
    gateway_charge_id: Optional[str] = None
    gateway_subscription_id: Optional[str] = None

    platform_fee_cents: int = 0
    producer_share_cents: int = 0
    security_reserve_cents: int = 0
    balance_credited: bool = False

    paid_at: Optional[datetime] = None
    release_date: Optional[date] = None
    created_at: Optional[datetime] = None
    last_webhook_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount_total_cents < 0:
            raise ValueError("amount_total_cents must be non-negative")
        if self.installments < 1:
            raise ValueError("installments must be at least 1")
        if self.paid_at is not None:
            require_utc_timestamp("paid_at", self.paid_at)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
