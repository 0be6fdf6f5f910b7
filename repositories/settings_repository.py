"""
Settings repository for fee and release-rule configuration.

Reads the platform-default row (`platform_settings`, id = 1) and the optional
per-producer override (`producer_settings`) and converts each into a
`SettingsLayer`. Resolution between layers happens in `domain.settings`.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from supabase import Client

from domain.sale import PaymentMethod
from domain.settings import FeeSchedule, ReleaseRules, SettingsLayer, parse_percent

_PLATFORM_SETTINGS_ID = 1


def _single_row(response: Any, *, action: str) -> Optional[Mapping[str, Any]]:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")

    rows = getattr(response, "data", None) or []
    return rows[0] if rows else None


def platform_row_to_layer(row: Mapping[str, Any]) -> SettingsLayer:
    """
    Convert a `platform_settings` row into a SettingsLayer.

    The card table comes from `card_installment_fees_json`; when it is empty,
    `default_card_fee_percent` is used as the 1-installment rate.
    """

    fee_blob: Dict[str, Any] = {
        PaymentMethod.PIX.value: row.get("default_pix_fee_percent"),
        PaymentMethod.BANK_SLIP.value: row.get("default_boleto_fee_percent"),
        PaymentMethod.CREDIT_CARD.value: (
            row.get("card_installment_fees_json") or row.get("default_card_fee_percent")
        ),
    }

    release_blob: Dict[str, Any] = {
        PaymentMethod.PIX.value: row.get("default_pix_release_days"),
        PaymentMethod.BANK_SLIP.value: row.get("default_boleto_release_days"),
        PaymentMethod.CREDIT_CARD.value: row.get("default_card_release_days"),
    }

    return SettingsLayer(
        fees=FeeSchedule.from_mapping(fee_blob),
        release_rules=ReleaseRules.from_mapping(release_blob),
        security_reserve_percent=parse_percent(
            row.get("default_security_reserve_percent"),
            name="default_security_reserve_percent",
        ),
    )


def producer_row_to_layer(row: Mapping[str, Any]) -> SettingsLayer:
    """Convert a `producer_settings` row (JSON override blobs) into a SettingsLayer."""

    return SettingsLayer(
        fees=FeeSchedule.from_mapping(row.get("custom_fees_json")),
        release_rules=ReleaseRules.from_mapping(row.get("custom_release_rules_json")),
        security_reserve_percent=parse_percent(
            row.get("custom_security_reserve_percent"),
            name="custom_security_reserve_percent",
        ),
    )


def get_platform_settings(supabase: Client) -> Optional[SettingsLayer]:
    """Fetch the platform-default layer, or None when the row does not exist."""

    response = (
        supabase.table("platform_settings")
        .select("*")
        .eq("id", _PLATFORM_SETTINGS_ID)
        .limit(1)
        .execute()
    )
    row = _single_row(response, action="fetch platform settings")
    return platform_row_to_layer(row) if row else None


def get_producer_settings(supabase: Client, producer_id: UUID) -> Optional[SettingsLayer]:
    """Fetch a producer's override layer, or None when the producer has none."""

    response = (
        supabase.table("producer_settings")
        .select("*")
        .eq("producer_id", str(producer_id))
        .limit(1)
        .execute()
    )
    row = _single_row(response, action="fetch producer settings")
    return producer_row_to_layer(row) if row else None


__all__ = [
    "get_platform_settings",
    "get_producer_settings",
    "platform_row_to_layer",
    "producer_row_to_layer",
]
