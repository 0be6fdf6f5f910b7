"""
Domain: Fee and release-rule configuration.

Configuration is resolved from three layers, highest priority first:

1. Producer override (`producer_settings`), optional.
2. Platform default (`platform_settings`), optional.
3. Hardcoded fallback (`HARDCODED_DEFAULTS`), always present.

Each settings blob (fee schedule, release rules, security reserve percent) is
resolved on its own: the first layer that defines the blob wins and fully
replaces the lower layers' version of it. Blobs are never merged key by key.

This module is pure: parsing and resolution only, no I/O.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from .sale import PaymentMethod

logger = logging.getLogger(__name__)

# Used when a payment method is missing from the resolved tables.
UNKNOWN_METHOD_FEE_PERCENT = Decimal("5.0")
UNKNOWN_METHOD_RELEASE_DAYS = 15


def _to_percent(value: Any, *, name: str) -> Decimal:
    try:
        percent = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{name} is not a valid percentage: {value!r}") from e
    if not percent.is_finite() or percent < 0:
        raise ValueError(f"{name} must be a non-negative percentage: {value!r}")
    return percent


def _to_installments(value: Any) -> Optional[int]:
    try:
        count = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return count if count >= 1 else None


def _to_days(value: Any, *, name: str) -> int:
    try:
        days = int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} is not a valid day count: {value!r}") from e
    if days < 0:
        raise ValueError(f"{name} must be non-negative: {value!r}")
    return days


@dataclass(frozen=True, slots=True)
class FeeSchedule:
    """
    Percentage fees per payment method.

    `flat_percent` holds methods charged a single rate (pix, bank_slip);
    `card_installment_percent` maps installment count -> rate for cards.
    """

    flat_percent: Mapping[str, Decimal] = field(default_factory=dict)
    card_installment_percent: Mapping[int, Decimal] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> Optional["FeeSchedule"]:
        """
        Build a schedule from a JSON blob like
        `{"pix": 3.0, "bank_slip": 3.5, "credit_card": {"1": 5.0, "2": 6.85}}`.

        A scalar `credit_card` value is treated as the 1-installment rate.
        Card keys that are not positive installment counts are skipped.
        Returns None for a missing or empty blob.
        """

        if not raw:
            return None

        flat: Dict[str, Decimal] = {}
        card: Dict[int, Decimal] = {}
        for method, value in raw.items():
            if value is None:
                continue
            if method == PaymentMethod.CREDIT_CARD.value:
                if isinstance(value, Mapping):
                    for count, percent in value.items():
                        if percent is None:
                            continue
                        installments = _to_installments(count)
                        if installments is None:
                            logger.warning(
                                "Ignoring card fee entry with an invalid installment count",
                                extra={"installments": str(count)[:32]},
                            )
                            continue
                        card[installments] = _to_percent(percent, name=f"credit_card[{count}]")
                else:
                    card[1] = _to_percent(value, name="credit_card")
            else:
                flat[str(method)] = _to_percent(value, name=str(method))

        if not flat and not card:
            return None
        return cls(flat_percent=flat, card_installment_percent=card)


@dataclass(frozen=True, slots=True)
class ReleaseRules:
    """Days until funds are released, per payment method."""

    release_days: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> Optional["ReleaseRules"]:
        """
        Build rules from a JSON blob like `{"pix": 2, "bank_slip": 2, "credit_card": 30}`.

        `security_reserve_days` may appear in stored blobs and is ignored: the
        reserve is never released on its own schedule.
        """

        if not raw:
            return None

        days: Dict[str, int] = {}
        for key, value in raw.items():
            if value is None or key == "security_reserve_days":
                continue
            days[str(key)] = _to_days(value, name=str(key))

        if not days:
            return None
        return cls(release_days=days)


@dataclass(frozen=True, slots=True)
class SettingsLayer:
    """One configuration tier; any blob may be absent."""

    fees: Optional[FeeSchedule] = None
    release_rules: Optional[ReleaseRules] = None
    security_reserve_percent: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class SettlementSettings:
    """Fully populated configuration used for one settlement."""

    fees: FeeSchedule
    release_rules: ReleaseRules
    security_reserve_percent: Decimal


HARDCODED_DEFAULTS = SettingsLayer(
    fees=FeeSchedule(
        flat_percent={
            PaymentMethod.PIX.value: Decimal("3.0"),
            PaymentMethod.BANK_SLIP.value: Decimal("3.5"),
        },
        card_installment_percent={1: Decimal("5.0")},
    ),
    release_rules=ReleaseRules(
        release_days={
            PaymentMethod.PIX.value: 1,
            PaymentMethod.BANK_SLIP.value: 1,
            PaymentMethod.CREDIT_CARD.value: 30,
        },
    ),
    security_reserve_percent=Decimal("4.0"),
)


def resolve_settings(
    producer: Optional[SettingsLayer],
    platform: Optional[SettingsLayer],
    fallback: SettingsLayer = HARDCODED_DEFAULTS,
) -> SettlementSettings:
    """
    Resolve the effective settlement settings from three layers.

    The fallback layer must define every blob.
    """

    layers = [layer for layer in (producer, platform, fallback) if layer is not None]

    def first(attr: str) -> Any:
        for layer in layers:
            value = getattr(layer, attr)
            if value is not None:
                return value
        raise ValueError(f"No settings layer defines {attr}")

    return SettlementSettings(
        fees=first("fees"),
        release_rules=first("release_rules"),
        security_reserve_percent=first("security_reserve_percent"),
    )


def parse_percent(value: Any, *, name: str) -> Optional[Decimal]:
    """Parse an optional percentage column (None stays None)."""

    if value is None:
        return None
    return _to_percent(value, name=name)
