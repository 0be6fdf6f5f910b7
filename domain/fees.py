"""
Domain: Platform fee calculation (pure).

Contract:
- pix and bank_slip pay a flat percentage of the amount.
- credit_card pays the rate for the chosen installment count, falling back to
  the 1-installment rate when that count is not in the table.
- A method the schedule does not know pays UNKNOWN_METHOD_FEE_PERCENT so that
  settlement never blocks on a new payment method.
- All amounts are integer cents, rounded half up.
- platform_fee_cents + producer_share_cents == amount_total_cents, always. The
  security reserve is reported alongside and never deducted from the share.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from .release_date import calculate_release_date
from .sale import PaymentMethod
from .settings import UNKNOWN_METHOD_FEE_PERCENT, FeeSchedule, SettlementSettings

logger = logging.getLogger(__name__)

_CENT = Decimal("1")
_HUNDRED = Decimal("100")


def percent_of(amount_cents: int, percent: Decimal) -> int:
    """Return `percent`% of `amount_cents`, rounded half up to a whole cent."""

    return int((Decimal(amount_cents) * percent / _HUNDRED).quantize(_CENT, rounding=ROUND_HALF_UP))


def fee_percent_for(payment_method: str, installments: int, fees: FeeSchedule) -> Decimal:
    """Look up the fee rate for a payment method and installment count."""

    if payment_method == PaymentMethod.CREDIT_CARD.value:
        table = fees.card_installment_percent
        if installments in table:
            return table[installments]
        if 1 in table:
            return table[1]
    elif payment_method in fees.flat_percent:
        return fees.flat_percent[payment_method]

    logger.warning(
        "No fee rate configured for payment method; using fallback rate",
        extra={
            "payment_method": payment_method,
            "installments": installments,
            "fallback_percent": str(UNKNOWN_METHOD_FEE_PERCENT),
        },
    )
    return UNKNOWN_METHOD_FEE_PERCENT


def calculate_platform_fee(
    amount_cents: int,
    payment_method: str,
    installments: int,
    fees: FeeSchedule,
) -> int:
    """
    Map (amount, payment method, installments, fee table) to the platform fee.

    The fee is clamped to [0, amount_cents] so the producer share is never
    negative.

    Example:
        fees = FeeSchedule(card_installment_percent={1: Decimal("5.0"), 2: Decimal("6.85")})
        calculate_platform_fee(10000, "credit_card", 3, fees)
        # Returns 500 (no "3" entry, so the "1" rate applies)
    """

    if amount_cents < 0:
        raise ValueError("amount_cents must be non-negative")

    fee = percent_of(amount_cents, fee_percent_for(payment_method, installments, fees))
    return max(0, min(fee, amount_cents))


def calculate_security_reserve(amount_cents: int, percent: Decimal) -> int:
    if amount_cents < 0:
        raise ValueError("amount_cents must be non-negative")
    return min(percent_of(amount_cents, percent), amount_cents)


@dataclass(frozen=True, slots=True)
class SettlementBreakdown:
    """
    Money split for one paid sale.

    Conservation (fee + share == total) is checked on construction.
    """

    amount_total_cents: int
    platform_fee_cents: int
    producer_share_cents: int
    security_reserve_cents: int
    release_date: date

    def __post_init__(self) -> None:
        if self.platform_fee_cents + self.producer_share_cents != self.amount_total_cents:
            raise ValueError(
                "platform_fee_cents + producer_share_cents must equal amount_total_cents "
                f"({self.platform_fee_cents} + {self.producer_share_cents} != {self.amount_total_cents})"
            )
        if self.producer_share_cents < 0 or self.platform_fee_cents < 0:
            raise ValueError("fee and producer share must be non-negative")


def build_settlement_breakdown(
    amount_cents: int,
    payment_method: str,
    installments: int,
    paid_at: datetime,
    settings: SettlementSettings,
) -> SettlementBreakdown:
    """Compute fee, producer share, security reserve and release date for a payment."""

    platform_fee = calculate_platform_fee(amount_cents, payment_method, installments, settings.fees)
    return SettlementBreakdown(
        amount_total_cents=amount_cents,
        platform_fee_cents=platform_fee,
        producer_share_cents=amount_cents - platform_fee,
        security_reserve_cents=calculate_security_reserve(amount_cents, settings.security_reserve_percent),
        release_date=calculate_release_date(paid_at, payment_method, settings.release_rules),
    )
