"""
Tests for `domain/settings.py` and the row parsers in
`repositories/settings_repository.py`.

Covers contract rules:
- Producer override > platform default > hardcoded fallback.
- Each blob is replaced whole by the first layer that defines it, never merged.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.settings import (
    HARDCODED_DEFAULTS,
    FeeSchedule,
    ReleaseRules,
    SettingsLayer,
    resolve_settings,
)
from repositories.settings_repository import platform_row_to_layer, producer_row_to_layer


def test_no_layers_resolves_to_hardcoded_defaults() -> None:
    settings = resolve_settings(None, None)

    assert settings.fees == HARDCODED_DEFAULTS.fees
    assert settings.release_rules == HARDCODED_DEFAULTS.release_rules
    assert settings.security_reserve_percent == Decimal("4.0")


def test_platform_layer_beats_hardcoded() -> None:
    platform = SettingsLayer(fees=FeeSchedule.from_mapping({"pix": 2.0}))

    settings = resolve_settings(None, platform)

    assert settings.fees.flat_percent == {"pix": Decimal("2.0")}
    # Other blobs still come from the fallback.
    assert settings.release_rules == HARDCODED_DEFAULTS.release_rules


def test_producer_layer_beats_platform() -> None:
    producer = SettingsLayer(release_rules=ReleaseRules.from_mapping({"pix": 0}))
    platform = SettingsLayer(
        release_rules=ReleaseRules.from_mapping({"pix": 2, "credit_card": 14}),
        security_reserve_percent=Decimal("2.5"),
    )

    settings = resolve_settings(producer, platform)

    assert settings.release_rules.release_days == {"pix": 0}
    assert settings.security_reserve_percent == Decimal("2.5")


def test_override_replaces_blob_without_merging() -> None:
    """A producer fee blob with only pix drops the platform's card table entirely."""

    producer = SettingsLayer(fees=FeeSchedule.from_mapping({"pix": 1.0}))
    platform = SettingsLayer(fees=FeeSchedule.from_mapping({"pix": 3.0, "credit_card": {"1": 4.0}}))

    settings = resolve_settings(producer, platform)

    assert settings.fees.flat_percent == {"pix": Decimal("1.0")}
    assert settings.fees.card_installment_percent == {}


def test_fee_schedule_parsing() -> None:
    fees = FeeSchedule.from_mapping({"pix": "3.0", "credit_card": {"1": 5.0, "12": 9.99}})

    assert fees.flat_percent == {"pix": Decimal("3.0")}
    assert fees.card_installment_percent == {1: Decimal("5.0"), 12: Decimal("9.99")}

    scalar = FeeSchedule.from_mapping({"credit_card": 4.5})
    assert scalar.card_installment_percent == {1: Decimal("4.5")}

    assert FeeSchedule.from_mapping({}) is None
    assert FeeSchedule.from_mapping(None) is None


def test_fee_schedule_rejects_bad_percentages() -> None:
    with pytest.raises(ValueError):
        FeeSchedule.from_mapping({"pix": "abc"})

    with pytest.raises(ValueError):
        FeeSchedule.from_mapping({"pix": -1})


def test_fee_schedule_skips_invalid_installment_keys(caplog) -> None:
    """A stray key in a card table drops that entry, not the whole schedule."""

    with caplog.at_level("WARNING", logger="domain.settings"):
        fees = FeeSchedule.from_mapping(
            {"pix": 2.5, "credit_card": {"1": 4.5, "max": 12, "0": 3.0, " 2 ": 6.0}}
        )

    assert fees.flat_percent == {"pix": Decimal("2.5")}
    assert fees.card_installment_percent == {1: Decimal("4.5"), 2: Decimal("6.0")}
    assert "invalid installment count" in caplog.text

    assert FeeSchedule.from_mapping({"credit_card": {"max": 12}}) is None


def test_release_rules_parsing() -> None:
    rules = ReleaseRules.from_mapping({"pix": "2", "credit_card": 30, "security_reserve_days": 45})

    assert rules.release_days == {"pix": 2, "credit_card": 30}
    assert ReleaseRules.from_mapping({"security_reserve_days": 45}) is None

    with pytest.raises(ValueError):
        ReleaseRules.from_mapping({"pix": -2})


def test_platform_row_to_layer() -> None:
    layer = platform_row_to_layer(
        {
            "id": 1,
            "default_pix_fee_percent": 3.0,
            "default_boleto_fee_percent": 3.5,
            "default_card_fee_percent": 5.0,
            "card_installment_fees_json": {"1": 5.0, "2": 6.85},
            "default_pix_release_days": 2,
            "default_boleto_release_days": 2,
            "default_card_release_days": 30,
            "default_security_reserve_days": 30,
            "default_security_reserve_percent": 4.0,
        }
    )

    assert layer.fees.flat_percent == {"pix": Decimal("3.0"), "bank_slip": Decimal("3.5")}
    assert layer.fees.card_installment_percent == {1: Decimal("5.0"), 2: Decimal("6.85")}
    assert layer.release_rules.release_days == {"pix": 2, "bank_slip": 2, "credit_card": 30}
    assert layer.security_reserve_percent == Decimal("4.0")


def test_platform_row_falls_back_to_single_card_rate() -> None:
    layer = platform_row_to_layer({"default_card_fee_percent": 4.99, "card_installment_fees_json": None})

    assert layer.fees.card_installment_percent == {1: Decimal("4.99")}
    assert layer.release_rules is None
    assert layer.security_reserve_percent is None


def test_producer_row_to_layer() -> None:
    layer = producer_row_to_layer(
        {
            "producer_id": "00000000-0000-0000-0000-0000000000a1",
            "custom_fees_json": {"pix": 1.99},
            "custom_release_rules_json": None,
            "custom_security_reserve_percent": None,
        }
    )

    assert layer.fees.flat_percent == {"pix": Decimal("1.99")}
    assert layer.release_rules is None
    assert layer.security_reserve_percent is None
