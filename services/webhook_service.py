"""
Webhook service: orchestrates settlement for one gateway delivery.

Process:
1. Reject subscription events without a subscription id (malformed)
2. Ignore events with no settlement semantics (no database access)
3. Ignore deliveries whose webhook_id was already applied
4. Resolve the sale (explicit sale_id first, then gateway ids)
5. Dispatch to the status transition engine
6. Record the delivery id once it has been applied

Each step depends on the previous one, so everything runs sequentially. The
caller (the HTTP router) owns the policy of acknowledging with 200.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from supabase import Client

from domain.webhook_event import MalformedWebhookError, WebhookEvent
from repositories.webhook_repository import is_webhook_processed, record_processed_webhook
from services.sale_resolver import resolve_sale
from services.status_transition_service import (
    TransitionOutcome,
    apply_invoice_status_change,
    apply_refund,
    apply_subscription_event,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WebhookResult:
    """
    Outcome of processing one delivery.

    success: False only for recoverable failures reported back in the body
    applied: True when the delivery changed a sale
    """

    success: bool
    message: str
    event: str
    applied: bool = False
    sale_id: Optional[str] = None
    gateway_status: Optional[str] = None
    new_status: Optional[str] = None
    credited_cents: int = 0
    reversed_cents: int = 0


def _is_handled(event: WebhookEvent) -> bool:
    return event.is_invoice_status_event or event.is_refund_event or event.is_subscription_event


def process_webhook(
    supabase: Client,
    event: WebhookEvent,
    sale_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WebhookResult:
    """
    Apply one classified webhook.

    Args:
        supabase: Supabase client
        event: Classified webhook
        sale_id: Optional explicit sale id from the callback URL
        now: Receipt time (defaults to current UTC time); used as paid_at when
             the payload carries none

    Returns:
        WebhookResult describing what happened

    Raises:
        MalformedWebhookError: a subscription event has no data.id
    """

    if event.is_subscription_event and event.resource_id is None:
        raise MalformedWebhookError("Missing subscription ID")

    if not _is_handled(event):
        logger.info("Unhandled webhook event", extra={"event": event.event})
        return WebhookResult(success=True, message="Unhandled webhook event", event=event.event)

    if event.webhook_id and is_webhook_processed(supabase, event.webhook_id):
        logger.info(
            "Webhook delivery already processed; ignoring",
            extra={"webhook_id": event.webhook_id, "event": event.event},
        )
        return WebhookResult(success=True, message="Webhook already processed", event=event.event)

    sale = resolve_sale(supabase, event, sale_id)
    if sale is None:
        logger.warning(
            "Sale not found for webhook",
            extra={
                "event": event.event,
                "resource_id": event.resource_id,
                "sale_id_from_url": sale_id,
                "webhook_id": event.webhook_id,
            },
        )
        return WebhookResult(
            success=True,
            message="Webhook received but sale not found in our system",
            event=event.event,
        )

    outcome: TransitionOutcome
    if event.is_subscription_event:
        outcome = apply_subscription_event(supabase, sale, event)
    elif event.is_refund_event:
        outcome = apply_refund(supabase, sale, event)
    else:
        outcome = apply_invoice_status_change(supabase, sale, event, now=now)

    if event.webhook_id and outcome.applied:
        if not record_processed_webhook(supabase, event.webhook_id, event.event, sale.sale_id):
            logger.warning(
                "Webhook id was recorded concurrently by another delivery",
                extra={"webhook_id": event.webhook_id, "sale_id": str(sale.sale_id)},
            )

    return WebhookResult(
        success=True,
        message=outcome.message,
        event=event.event,
        applied=outcome.applied,
        sale_id=str(sale.sale_id),
        gateway_status=outcome.gateway_status,
        new_status=outcome.new_status.value if outcome.new_status else None,
        credited_cents=outcome.credited_cents,
        reversed_cents=outcome.reversed_cents,
    )


__all__ = ["WebhookResult", "process_webhook"]
