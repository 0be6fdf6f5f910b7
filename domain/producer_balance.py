"""
Domain: Producer balance ("producer_financials").

One row per producer, created lazily on the first credited sale.

Contract excerpts:
- available_balance_cents only increases by a sale's producer_share_cents when
  that sale is settled as paid, and only decreases by the same stored amount
  when a credited sale is refunded.
- The settlement core never reads the balance to make decisions; the payout
  flow (external) is the consumer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class ProducerBalance:
    producer_id: UUID
    available_balance_cents: int
    pending_balance_cents: int = 0
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)
