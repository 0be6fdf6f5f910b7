"""
Tests for `domain/fees.py`.

Covers contract rules:
- Card fees use the exact installment entry, else the "1" entry.
- Unknown payment methods pay the fallback rate.
- Fee amounts are rounded half up and clamped to [0, amount].
- fee + producer share == total; the security reserve is not deducted.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from domain.fees import (
    SettlementBreakdown,
    build_settlement_breakdown,
    calculate_platform_fee,
    calculate_security_reserve,
    fee_percent_for,
    percent_of,
)
from domain.settings import HARDCODED_DEFAULTS, FeeSchedule, resolve_settings

CARD_FEES = FeeSchedule.from_mapping({"credit_card": {"1": 5.0, "2": 6.85}})


def test_card_fee_uses_exact_installment_entry() -> None:
    assert fee_percent_for("credit_card", 2, CARD_FEES) == Decimal("6.85")
    assert calculate_platform_fee(10000, "credit_card", 2, CARD_FEES) == 685


def test_card_fee_falls_back_to_single_installment_rate() -> None:
    """Verify installments=3 with only "1" and "2" configured uses the "1" rate."""

    assert fee_percent_for("credit_card", 3, CARD_FEES) == Decimal("5.0")
    assert calculate_platform_fee(10000, "credit_card", 3, CARD_FEES) == 500


def test_flat_methods_use_their_percentage() -> None:
    fees = FeeSchedule.from_mapping({"pix": 3.0, "bank_slip": 3.5})

    assert calculate_platform_fee(10000, "pix", 1, fees) == 300
    assert calculate_platform_fee(10000, "bank_slip", 1, fees) == 350


def test_unknown_method_pays_fallback_rate() -> None:
    fees = FeeSchedule.from_mapping({"pix": 3.0})

    assert fee_percent_for("crypto", 1, fees) == Decimal("5.0")
    assert calculate_platform_fee(10000, "crypto", 1, fees) == 500


def test_card_without_any_table_pays_fallback_rate() -> None:
    fees = FeeSchedule.from_mapping({"pix": 3.0})

    assert calculate_platform_fee(10000, "credit_card", 4, fees) == 500


def test_percent_of_rounds_half_up() -> None:
    # 2.5% of 1010 = 25.25 -> 25; 2.5% of 1020 = 25.5 -> 26
    assert percent_of(1010, Decimal("2.5")) == 25
    assert percent_of(1020, Decimal("2.5")) == 26
    # 6.85% of 333 = 22.8105 -> 23
    assert percent_of(333, Decimal("6.85")) == 23


def test_fee_is_clamped_to_amount() -> None:
    fees = FeeSchedule.from_mapping({"pix": 150})

    assert calculate_platform_fee(1000, "pix", 1, fees) == 1000
    assert calculate_platform_fee(0, "pix", 1, fees) == 0


def test_negative_amount_is_rejected() -> None:
    with pytest.raises(ValueError):
        calculate_platform_fee(-1, "pix", 1, CARD_FEES)


def test_security_reserve_is_percentage_of_total() -> None:
    assert calculate_security_reserve(10000, Decimal("4.0")) == 400


def test_breakdown_conserves_total_and_keeps_reserve_separate() -> None:
    settings = resolve_settings(None, None)
    paid_at = datetime(2024, 1, 10, 15, 30, tzinfo=timezone.utc)

    breakdown = build_settlement_breakdown(10000, "pix", 1, paid_at, settings)

    assert breakdown.platform_fee_cents == 300
    assert breakdown.producer_share_cents == 9700
    assert breakdown.platform_fee_cents + breakdown.producer_share_cents == 10000
    assert breakdown.security_reserve_cents == 400
    assert breakdown.release_date == date(2024, 1, 11)


def test_breakdown_rejects_non_conserving_split() -> None:
    with pytest.raises(ValueError):
        SettlementBreakdown(
            amount_total_cents=10000,
            platform_fee_cents=300,
            producer_share_cents=9600,
            security_reserve_cents=0,
            release_date=date(2024, 1, 11),
        )


def test_hardcoded_defaults_cover_all_methods() -> None:
    fees = HARDCODED_DEFAULTS.fees

    assert calculate_platform_fee(10000, "pix", 1, fees) == 300
    assert calculate_platform_fee(10000, "bank_slip", 1, fees) == 350
    assert calculate_platform_fee(10000, "credit_card", 12, fees) == 500
