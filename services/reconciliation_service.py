"""
Reconciliation service for producer balances (read-only).

The webhook acknowledges every delivery with 200, so a failed database write is
invisible to the gateway and will not be retried. This report is the
out-of-band check: for each producer it compares the sum of producer shares of
currently credited sales with the recorded available balance.

Withdrawals are handled by the payout flow (outside this service), so amounts
already paid out can be supplied per producer and are subtracted from the
expected balance.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional
from uuid import UUID

from supabase import Client

from repositories.producer_financials_repository import list_producer_balances
from repositories.sale_repository import iter_credited_sales


@dataclass(frozen=True, slots=True)
class BalanceMismatch:
    producer_id: UUID
    expected_cents: int
    recorded_cents: int

    @property
    def difference_cents(self) -> int:
        """Positive when the recorded balance is higher than expected."""
        return self.recorded_cents - self.expected_cents


def expected_balances(supabase: Client) -> Dict[UUID, int]:
    """Sum producer_share_cents of credited sales, per producer."""

    totals: Dict[UUID, int] = defaultdict(int)
    for row in iter_credited_sales(supabase):
        product = row.get("product") or {}
        producer_id = product.get("producer_id")
        if not producer_id:
            continue
        totals[UUID(str(producer_id))] += int(row.get("producer_share_cents") or 0)
    return dict(totals)


def find_balance_mismatches(
    supabase: Client,
    withdrawn_cents: Optional[Mapping[UUID, int]] = None,
) -> List[BalanceMismatch]:
    """
    Return one BalanceMismatch per producer whose recorded balance differs from
    the credited shares minus withdrawals. Sorted by producer id.
    """

    withdrawn = withdrawn_cents or {}
    expected = expected_balances(supabase)
    recorded = {b.producer_id: b.available_balance_cents for b in list_producer_balances(supabase)}

    mismatches: List[BalanceMismatch] = []
    for producer_id in sorted(set(expected) | set(recorded) | set(withdrawn), key=str):
        expected_cents = expected.get(producer_id, 0) - withdrawn.get(producer_id, 0)
        recorded_cents = recorded.get(producer_id, 0)
        if expected_cents != recorded_cents:
            mismatches.append(
                BalanceMismatch(
                    producer_id=producer_id,
                    expected_cents=expected_cents,
                    recorded_cents=recorded_cents,
                )
            )
    return mismatches


__all__ = ["BalanceMismatch", "expected_balances", "find_balance_mismatches"]
