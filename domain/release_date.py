"""
Domain: Release-date calculation (pure).

The release date marks when a sale's funds become contractually withdrawable.
It is informational here: the producer balance is credited at payment time.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from .settings import UNKNOWN_METHOD_RELEASE_DAYS, ReleaseRules
from .time import require_utc_timestamp


def release_days_for(payment_method: str, rules: ReleaseRules) -> int:
    return rules.release_days.get(payment_method, UNKNOWN_METHOD_RELEASE_DAYS)


def calculate_release_date(paid_at: datetime, payment_method: str, rules: ReleaseRules) -> date:
    """
    Return paid_at's UTC calendar date plus the method's release days.

    Example:
        calculate_release_date(datetime(2024, 1, 10, tzinfo=timezone.utc), "pix",
                               ReleaseRules(release_days={"pix": 2}))
        # Returns date(2024, 1, 12)
    """

    require_utc_timestamp("paid_at", paid_at)
    return paid_at.date() + timedelta(days=release_days_for(payment_method, rules))
