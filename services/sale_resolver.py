"""
Sale resolver for inbound gateway webhooks.

Resolution order:
1. An explicit sale id (carried in the callback URL as `?sale_id=`) is looked
   up by primary key, and nothing else is tried.
2. Subscription events are matched on `gateway_subscription_id == data.id`.
3. Everything else is matched on the gateway invoice id or charge id.

A miss is not an error: the caller acknowledges the webhook so the gateway stops
retrying, and the miss is logged for operators.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from supabase import Client

from domain.sale import Sale
from domain.webhook_event import WebhookEvent
from repositories.sale_repository import (
    find_sale_by_gateway_id,
    find_sale_by_subscription_id,
    get_sale_by_id,
)

logger = logging.getLogger(__name__)


def resolve_sale(
    supabase: Client,
    event: WebhookEvent,
    sale_id: Optional[str] = None,
) -> Optional[Sale]:
    """
    Locate the sale a webhook refers to.

    Args:
        supabase: Supabase client
        event: Classified webhook
        sale_id: Optional explicit sale id from the callback URL

    Returns:
        The matching Sale, or None when no sale can be found
    """

    if sale_id:
        try:
            sale_uuid = UUID(sale_id.strip())
        except ValueError:
            logger.warning(
                "Webhook carried an invalid sale_id",
                extra={"sale_id": sale_id[:100], "event": event.event},
            )
            return None
        return get_sale_by_id(supabase, sale_uuid)

    resource_id = event.resource_id
    if resource_id is None:
        logger.warning("Webhook has no data.id to match a sale", extra={"event": event.event})
        return None

    if event.is_subscription_event:
        return find_sale_by_subscription_id(supabase, resource_id)

    return find_sale_by_gateway_id(supabase, resource_id)


__all__ = ["resolve_sale"]
