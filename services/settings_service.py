"""
Settings service: loads and resolves settlement configuration for a producer.
"""

from __future__ import annotations

from uuid import UUID

from supabase import Client

from domain.settings import SettlementSettings, resolve_settings
from repositories.settings_repository import get_platform_settings, get_producer_settings


def load_settlement_settings(supabase: Client, producer_id: UUID) -> SettlementSettings:
    """
    Resolve producer override -> platform default -> hardcoded fallback.

    Example:
        settings = load_settlement_settings(supabase, sale.producer_id)
        settings.fees.card_installment_percent[1]
        # Decimal('5.0') when neither layer configures cards
    """

    producer_layer = get_producer_settings(supabase, producer_id)
    platform_layer = get_platform_settings(supabase)
    return resolve_settings(producer_layer, platform_layer)


__all__ = ["load_settlement_settings"]
