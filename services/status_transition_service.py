"""
Status transition engine for sales.

Two state machines:

Invoice events (`invoice.status_changed`, `invoice.created`, `invoice.refund`)
- Gateway status is mapped through `domain.sale.GATEWAY_STATUS_MAP`.
- Idempotency gate: if the incoming gateway status equals the sale's stored
  gateway_status, nothing at all is written.
- Entering `paid` settles the sale (fees, release date, balance credit) in one
  atomic database call.
- `refunded` is terminal: later invoice status changes are ignored, so a
  late `paid` never re-credits a refunded sale.

Subscription events (`subscription.*`)
- Keyed by event name, applied unconditionally (no idempotency gate) and
  without balance effects; subscription invoices settle through invoice events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from supabase import Client

from domain.fees import build_settlement_breakdown
from domain.sale import SUBSCRIPTION_TRANSITIONS, Sale, SaleStatus, map_gateway_status
from domain.time import parse_utc_datetime, utc_now
from domain.webhook_event import WebhookEvent
from repositories.sale_repository import is_valid_gateway_id, update_sale_status
from services.ledger_service import SettlementError, credit_sale_payment, reverse_sale_payment
from services.settings_service import load_settlement_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransitionOutcome:
    """
    Result of applying one webhook to one sale.

    applied: False when the delivery changed nothing (idempotent skip, unknown
             subscription event, already refunded)
    credited_cents / reversed_cents: balance effect of this delivery
    """

    applied: bool
    message: str
    new_status: Optional[SaleStatus] = None
    gateway_status: Optional[str] = None
    credited_cents: int = 0
    reversed_cents: int = 0


def _resolve_paid_at(event: WebhookEvent, now: datetime) -> datetime:
    raw = event.data.get("paid_at")
    if not raw:
        return now
    try:
        return parse_utc_datetime(raw)
    except (TypeError, ValueError):
        logger.warning(
            "Unparseable paid_at in webhook; using receipt time",
            extra={"paid_at": str(raw)[:64], "event": event.event},
        )
        return now


def _already_refunded() -> TransitionOutcome:
    return TransitionOutcome(
        applied=False,
        message="Sale already refunded",
        new_status=SaleStatus.REFUNDED,
        gateway_status="refunded",
    )


def _invoice_id_to_fill(sale: Sale, event: WebhookEvent) -> Optional[str]:
    """Gateway invoice id to store when the sale does not have one yet."""

    resource_id = event.resource_id
    if sale.gateway_invoice_id or not is_valid_gateway_id(resource_id):
        return None
    return resource_id


def apply_invoice_status_change(
    supabase: Client,
    sale: Sale,
    event: WebhookEvent,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    """
    Apply an `invoice.status_changed` / `invoice.created` webhook to a sale.

    Process:
    1. Skip entirely if the sale is refunded or the gateway status equals the
       stored gateway_status
    2. Map the gateway status to an internal status (unknown -> unchanged)
    3. For `paid`: resolve settings, compute the settlement breakdown and
       settle + credit atomically
    4. Otherwise: mirror gateway_status and write the mapped status
    """

    now = now or utc_now()
    new_gateway_status = event.gateway_status

    if new_gateway_status is None:
        logger.warning(
            "Invoice webhook without a status; nothing to apply",
            extra={"sale_id": str(sale.sale_id), "event": event.event},
        )
        return TransitionOutcome(applied=False, message="Webhook has no status")

    if sale.status is SaleStatus.REFUNDED:
        logger.warning(
            "Invoice status change for a refunded sale; ignoring",
            extra={"sale_id": str(sale.sale_id), "gateway_status": new_gateway_status},
        )
        return _already_refunded()

    if sale.gateway_status == new_gateway_status:
        logger.info(
            "Gateway status unchanged; skipping",
            extra={"sale_id": str(sale.sale_id), "gateway_status": new_gateway_status},
        )
        return TransitionOutcome(
            applied=False,
            message="Gateway status unchanged",
            new_status=sale.status,
            gateway_status=new_gateway_status,
        )

    target = map_gateway_status(new_gateway_status)
    invoice_id = _invoice_id_to_fill(sale, event)

    if target is SaleStatus.PAID:
        if sale.producer_id is None:
            raise SettlementError(f"Sale {sale.sale_id} has no producer; cannot settle payment")

        paid_at = _resolve_paid_at(event, now)
        settings = load_settlement_settings(supabase, sale.producer_id)
        breakdown = build_settlement_breakdown(
            sale.amount_total_cents,
            sale.payment_method,
            sale.installments,
            paid_at,
            settings,
        )
        result = credit_sale_payment(
            supabase,
            sale,
            breakdown,
            gateway_status=new_gateway_status,
            paid_at=paid_at,
            gateway_invoice_id=invoice_id,
            webhook_id=event.webhook_id,
        )

        if result.refunded:
            # Refunded between the read above and the settlement call.
            return _already_refunded()

        if not result.settled:
            # Already credited (e.g. paid -> pending -> paid): status and mirror
            # still follow the gateway, the balance does not move.
            update_sale_status(
                supabase,
                sale.sale_id,
                gateway_status=new_gateway_status,
                status=SaleStatus.PAID,
                gateway_invoice_id=invoice_id,
                last_webhook_id=event.webhook_id,
            )

        return TransitionOutcome(
            applied=True,
            message="Payment settled" if result.settled else "Payment already settled",
            new_status=SaleStatus.PAID,
            gateway_status=new_gateway_status,
            credited_cents=result.credited_cents,
        )

    if target is None:
        logger.warning(
            "Unknown gateway status; keeping current status",
            extra={
                "sale_id": str(sale.sale_id),
                "gateway_status": new_gateway_status,
                "status": sale.status.value,
            },
        )

    update_sale_status(
        supabase,
        sale.sale_id,
        gateway_status=new_gateway_status,
        status=target,
        gateway_invoice_id=invoice_id,
        last_webhook_id=event.webhook_id,
    )

    new_status = target or sale.status
    logger.info(
        "Sale status updated",
        extra={
            "sale_id": str(sale.sale_id),
            "old_status": sale.status.value,
            "new_status": new_status.value,
            "old_gateway_status": sale.gateway_status,
            "new_gateway_status": new_gateway_status,
        },
    )
    return TransitionOutcome(
        applied=True,
        message="Status updated",
        new_status=new_status,
        gateway_status=new_gateway_status,
    )


def apply_refund(supabase: Client, sale: Sale, event: WebhookEvent) -> TransitionOutcome:
    """Apply an `invoice.refund` webhook: mark refunded, reverse a credited share."""

    result = reverse_sale_payment(supabase, sale, webhook_id=event.webhook_id)

    if not result.refunded:
        return _already_refunded()

    return TransitionOutcome(
        applied=True,
        message="Refund processed",
        new_status=SaleStatus.REFUNDED,
        gateway_status="refunded",
        reversed_cents=result.reversed_cents,
    )


def apply_subscription_event(supabase: Client, sale: Sale, event: WebhookEvent) -> TransitionOutcome:
    """
    Apply a `subscription.*` webhook.

    No idempotency gate: every recognized event rewrites status and gateway_status.
    """

    transition = SUBSCRIPTION_TRANSITIONS.get(event.event)
    if transition is None:
        logger.info(
            "Unhandled subscription event",
            extra={"sale_id": str(sale.sale_id), "event": event.event},
        )
        return TransitionOutcome(applied=False, message="Unhandled subscription event")

    new_status, new_gateway_status = transition
    update_sale_status(
        supabase,
        sale.sale_id,
        gateway_status=new_gateway_status,
        status=new_status,
        last_webhook_id=event.webhook_id,
    )

    logger.info(
        "Subscription status updated",
        extra={
            "sale_id": str(sale.sale_id),
            "subscription_id": sale.gateway_subscription_id,
            "old_status": sale.status.value,
            "new_status": new_status.value,
            "new_gateway_status": new_gateway_status,
        },
    )
    return TransitionOutcome(
        applied=True,
        message="Subscription webhook processed",
        new_status=new_status,
        gateway_status=new_gateway_status,
    )


__all__ = [
    "TransitionOutcome",
    "apply_invoice_status_change",
    "apply_refund",
    "apply_subscription_event",
]
