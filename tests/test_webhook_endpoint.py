"""
Tests for the webhook HTTP endpoint (`api/routers/webhooks.py`).

The Supabase client is replaced through FastAPI's dependency overrides, so no
environment variables or network access are needed.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.main import app
from repositories.client import get_supabase
from tests.fake_supabase import PRODUCER_ID

URL = "/api/v1/webhooks/iugu"


@pytest.fixture
def client(fake_supabase):
    app.dependency_overrides[get_supabase] = lambda: fake_supabase
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_form_encoded_paid_webhook_settles_sale(client, fake_supabase, add_sale) -> None:
    sale = add_sale()

    response = client.post(
        URL,
        data={"event": "invoice.status_changed", "data[id]": "INV0001", "data[status]": "paid"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Payment settled"
    assert body["sale_id"] == sale["id"]
    assert body["new_status"] == "paid"
    assert fake_supabase.sale(sale["id"])["status"] == "paid"
    assert fake_supabase.balance(PRODUCER_ID) == 9700


def test_json_webhook_with_sale_id_query(client, fake_supabase, add_sale) -> None:
    add_sale()
    target = add_sale()

    response = client.post(
        f"{URL}?sale_id={target['id']}",
        json={"event": "invoice.status_changed", "data": {"id": "INV0001", "status": "expired"}},
    )

    assert response.status_code == 200
    assert response.json()["sale_id"] == target["id"]
    assert fake_supabase.sale(target["id"])["status"] == "expired"


def test_payments_alias_route(client, fake_supabase, add_sale) -> None:
    add_sale()

    response = client.post(
        "/api/v1/webhooks/payments",
        json={"event": "invoice.status_changed", "data": {"id": "INV0001", "status": "paid"}},
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Payment settled"


def test_unsupported_content_type_is_rejected_without_writes(client, fake_supabase, add_sale) -> None:
    add_sale()

    response = client.post(
        URL,
        content=b"event=invoice.status_changed&data[id]=INV0001&data[status]=paid",
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 415
    body = response.json()
    assert body["success"] is False
    assert body["content_type"] == "text/plain"
    assert fake_supabase.writes == []


def test_form_without_event_is_bad_request(client, fake_supabase) -> None:
    response = client.post(URL, data={"data[id]": "INV0001", "data[status]": "paid"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Missing event parameter"}
    assert fake_supabase.writes == []


def test_invalid_json_is_bad_request(client) -> None:
    response = client.post(URL, content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_subscription_event_without_id_is_bad_request(client, fake_supabase) -> None:
    response = client.post(URL, json={"event": "subscription.activated", "data": {}})

    assert response.status_code == 400
    assert response.json()["message"] == "Missing subscription ID"
    assert fake_supabase.writes == []


def test_unknown_event_is_acknowledged(client, fake_supabase) -> None:
    response = client.post(URL, json={"event": "invoice.dunning_attempt", "data": {"id": "INV0001"}})

    assert response.status_code == 200
    assert response.json()["message"] == "Unhandled webhook event"
    assert fake_supabase.writes == []


def test_sale_not_found_is_acknowledged(client) -> None:
    response = client.post(
        URL,
        data={"event": "invoice.status_changed", "data[id]": "MISSING", "data[status]": "paid"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Webhook received but sale not found in our system"


def test_internal_error_is_acknowledged_with_success_false(client, fake_supabase, add_sale) -> None:
    add_sale()
    fake_supabase.fail_rpc = "settle_sale_payment"

    response = client.post(
        URL,
        data={"event": "invoice.status_changed", "data[id]": "INV0001", "data[status]": "paid"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Internal error processing webhook"
    assert "settle_sale_payment" in body["error"]
    assert fake_supabase.balance(PRODUCER_ID) is None


def test_duplicate_delivery_over_http_credits_once(client, fake_supabase, add_sale) -> None:
    add_sale()
    payload = {
        "event": "invoice.status_changed",
        "data": {"id": "INV0001", "status": "paid"},
        "webhook_id": "evt_1",
    }

    first = client.post(URL, json=payload)
    second = client.post(URL, json=payload)

    assert first.json()["message"] == "Payment settled"
    assert second.json()["message"] == "Webhook already processed"
    assert fake_supabase.balance(PRODUCER_ID) == 9700


def test_asaas_payment_webhooks_settle_sale_once(client, fake_supabase, add_sale) -> None:
    sale = add_sale(gateway_invoice_id=None, gateway_charge_id="pay_080225913252")
    payment = {"id": "pay_080225913252", "paymentDate": "2024-01-10"}

    confirmed = client.post(
        "/api/v1/webhooks/payments",
        json={"id": "evt_1", "event": "PAYMENT_CONFIRMED", "payment": {**payment, "status": "CONFIRMED"}},
    )
    received = client.post(
        "/api/v1/webhooks/payments",
        json={"id": "evt_2", "event": "PAYMENT_RECEIVED", "payment": {**payment, "status": "RECEIVED"}},
    )

    assert confirmed.status_code == 200
    assert confirmed.json()["message"] == "Payment settled"
    assert confirmed.json()["sale_id"] == sale["id"]
    assert received.json()["message"] == "Gateway status unchanged"

    row = fake_supabase.sale(sale["id"])
    assert row["status"] == "paid"
    assert row["paid_at"] == "2024-01-10T12:00:00+00:00"
    assert row["release_date"] == "2024-01-12"
    assert fake_supabase.balance(PRODUCER_ID) == 9700


def test_asaas_payment_without_payment_object_is_bad_request(client, fake_supabase) -> None:
    response = client.post(URL, json={"event": "PAYMENT_RECEIVED", "payment": None})

    assert response.status_code == 400
    assert fake_supabase.writes == []
