"""
Pytest configuration.

Adds the project root to the Python path so that tests can import the domain,
repositories, services and api packages, and provides an in-memory Supabase
double seeded with one producer and product.
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tests.fake_supabase import PRODUCER_ID, PRODUCT_ID, FakeSupabase  # noqa: E402


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    db = FakeSupabase()
    db.tables["products"] = [{"id": PRODUCT_ID, "producer_id": PRODUCER_ID, "name": "Curso de Python"}]
    db.tables["platform_settings"] = [
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
    ]
    return db


@pytest.fixture
def add_sale(fake_supabase: FakeSupabase) -> Callable[..., Dict[str, Any]]:
    """Insert a pending sale row; keyword arguments override columns."""

    counter = {"n": 0}

    def _add(**overrides: Any) -> Dict[str, Any]:
        counter["n"] += 1
        n = counter["n"]
        row: Dict[str, Any] = {
            "id": f"00000000-0000-0000-0000-{n:012d}",
            "product_id": PRODUCT_ID,
            "amount_total_cents": 10000,
            "status": "pending_payment",
            "payment_method_used": "pix",
            "installments_chosen": 1,
            "gateway_status": None,
            "gateway_invoice_id": f"INV{n:04d}",
            "gateway_charge_id": f"CHG{n:04d}",
            "gateway_subscription_id": None,
            "platform_fee_cents": 0,
            "producer_share_cents": 0,
            "security_reserve_cents": None,
            "balance_credited": False,
            "paid_at": None,
            "release_date": None,
            "created_at": "2024-01-09T12:00:00+00:00",
        }
        row.update(overrides)
        fake_supabase.tables.setdefault("sales", []).append(row)
        return row

    return _add
