"""
Ledger service: applies and reverses producer balance credits.

Handles:
- Crediting a sale's producer share when it is settled as paid
- Reversing exactly that stored share when a credited sale is refunded
- Refusing to touch the balance for a sale that was never credited

Every balance change is a single atomic database call (see
repositories.producer_financials_repository); this module decides the
amounts and logs the outcome.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from supabase import Client

from domain.fees import SettlementBreakdown
from domain.sale import Sale, SaleStatus
from repositories.producer_financials_repository import (
    RefundWriteResult,
    SettlementWriteResult,
    refund_sale_payment,
    settle_sale_payment,
)

logger = logging.getLogger(__name__)


class SettlementError(Exception):
    """Raised when a sale cannot be settled (e.g. its product has no producer)."""
    pass


def credit_sale_payment(
    supabase: Client,
    sale: Sale,
    breakdown: SettlementBreakdown,
    gateway_status: str,
    paid_at: datetime,
    gateway_invoice_id: Optional[str] = None,
    webhook_id: Optional[str] = None,
) -> SettlementWriteResult:
    """
    Mark `sale` paid with `breakdown` and credit the producer share, atomically.

    The first credit for a producer creates the balance row holding the share;
    later credits increment it. A sale that is already credited or refunded is
    left alone.

    Raises:
        SettlementError: the sale's product has no producer
    """

    if sale.producer_id is None:
        raise SettlementError(f"Sale {sale.sale_id} has no producer; cannot credit balance")

    if breakdown.amount_total_cents != sale.amount_total_cents:
        raise SettlementError(
            f"Breakdown total {breakdown.amount_total_cents} does not match sale total "
            f"{sale.amount_total_cents} for sale {sale.sale_id}"
        )

    result = settle_sale_payment(
        supabase,
        sale_id=sale.sale_id,
        producer_id=sale.producer_id,
        gateway_status=gateway_status,
        paid_at=paid_at,
        platform_fee_cents=breakdown.platform_fee_cents,
        producer_share_cents=breakdown.producer_share_cents,
        security_reserve_cents=breakdown.security_reserve_cents,
        release_date=breakdown.release_date,
        gateway_invoice_id=gateway_invoice_id,
        webhook_id=webhook_id,
    )

    if result.settled:
        logger.info(
            "Sale settled and producer balance credited",
            extra={
                "sale_id": str(sale.sale_id),
                "producer_id": str(sale.producer_id),
                "amount_total_cents": breakdown.amount_total_cents,
                "platform_fee_cents": breakdown.platform_fee_cents,
                "producer_share_cents": breakdown.producer_share_cents,
                "security_reserve_cents": breakdown.security_reserve_cents,
                "release_date": breakdown.release_date.isoformat(),
                "credited_cents": result.credited_cents,
            },
        )
    elif result.refunded:
        logger.warning(
            "Sale was refunded before settlement; balance left unchanged",
            extra={"sale_id": str(sale.sale_id), "producer_id": str(sale.producer_id)},
        )
    else:
        logger.info(
            "Sale already credited; balance left unchanged",
            extra={"sale_id": str(sale.sale_id), "producer_id": str(sale.producer_id)},
        )

    return result


def reverse_sale_payment(
    supabase: Client,
    sale: Sale,
    webhook_id: Optional[str] = None,
) -> RefundWriteResult:
    """
    Mark `sale` refunded and reverse its stored producer share if it was credited.

    The reversal amount is the share recorded on the sale at payment time, never
    a recalculation: fee tables may have changed since.
    """

    if sale.status is SaleStatus.REFUNDED:
        logger.info("Sale already refunded; skipping", extra={"sale_id": str(sale.sale_id)})
        return RefundWriteResult(refunded=False, reversed_cents=0)

    if sale.balance_credited and sale.producer_id is None:
        raise SettlementError(f"Sale {sale.sale_id} has no producer; cannot reverse balance")

    result = refund_sale_payment(
        supabase,
        sale_id=sale.sale_id,
        producer_id=sale.producer_id,
        webhook_id=webhook_id,
    )

    logger.info(
        "Sale refunded",
        extra={
            "sale_id": str(sale.sale_id),
            "producer_id": str(sale.producer_id) if sale.producer_id else None,
            "was_credited": sale.balance_credited,
            "reversed_cents": result.reversed_cents,
        },
    )
    return result


__all__ = ["SettlementError", "credit_sale_payment", "reverse_sale_payment"]
