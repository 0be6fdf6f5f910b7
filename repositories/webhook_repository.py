"""
Processed-webhook repository.

Keeps the set of gateway delivery ids already applied, so a redelivered
webhook is recognized by its id rather than by its status string.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from domain.time import utc_now

_PROCESSED_WEBHOOKS_TABLE: str = "processed_webhooks"

# PostgreSQL unique_violation
_UNIQUE_VIOLATION = "23505"


def is_webhook_processed(supabase: Client, webhook_id: str) -> bool:
    response = (
        supabase.table(_PROCESSED_WEBHOOKS_TABLE)
        .select("webhook_id")
        .eq("webhook_id", webhook_id)
        .limit(1)
        .execute()
    )

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to check processed webhook: {error}")

    rows = getattr(response, "data", None) or []
    return bool(rows)


def record_processed_webhook(
    supabase: Client,
    webhook_id: str,
    event: str,
    sale_id: Optional[UUID] = None,
) -> bool:
    """
    Record a delivery id as applied.

    Returns False if the id was already recorded (a concurrent duplicate won).
    """

    payload = {
        "webhook_id": webhook_id,
        "event": event,
        "sale_id": str(sale_id) if sale_id else None,
        "processed_at": utc_now().isoformat(),
    }

    try:
        response = supabase.table(_PROCESSED_WEBHOOKS_TABLE).insert(payload).execute()
    except APIError as e:
        if getattr(e, "code", None) == _UNIQUE_VIOLATION:
            return False
        raise

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to record processed webhook: {error}")
    return True


__all__ = ["is_webhook_processed", "record_processed_webhook"]
