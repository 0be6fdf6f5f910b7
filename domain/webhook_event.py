"""
Domain: Gateway webhook classification (pure).

Normalizes an inbound gateway notification into a canonical
`WebhookEvent(event, data, webhook_id)` regardless of wire format.

Wire formats:
- application/json: `{"event": "...", "data": {...}, "webhook_id": "..."}`
- application/x-www-form-urlencoded: `event=...&data[id]=...&data[status]=...`
  (Iugu's default). `data[<field>]` keys are collected into a flat `data`
  mapping.
- application/json from Asaas: `{"event": "PAYMENT_RECEIVED", "payment": {...}}`.
  Confirmed and received payments become `invoice.status_changed` with status
  `paid` and `paid_at` at noon UTC of `payment.paymentDate`; refunds become
  `invoice.refund`. Other Asaas events keep their name and are ignored.

No other content type has a defined contract and is rejected. Unknown event
names are not an error; they are classified normally and ignored downstream.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl

from domain.time import parse_date

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"

# Events with settlement semantics. Anything else is acknowledged as a no-op.
INVOICE_STATUS_EVENTS = frozenset({"invoice.status_changed", "invoice.created"})
INVOICE_REFUND_EVENT = "invoice.refund"
SUBSCRIPTION_EVENT_PREFIX = "subscription."

ASAAS_PAID_EVENTS = frozenset({"PAYMENT_RECEIVED", "PAYMENT_CONFIRMED"})
ASAAS_REFUND_EVENT = "PAYMENT_REFUNDED"

_FORM_DATA_KEY = re.compile(r"^data\[([^\[\]]+)\]$")


class WebhookPayloadError(ValueError):
    """Base class for webhook bodies that cannot be classified."""

    status_code = 400


class UnsupportedContentTypeError(WebhookPayloadError):
    """Raised for a content type with no wire contract (HTTP 415)."""

    status_code = 415


class MalformedWebhookError(WebhookPayloadError):
    """Raised when a body is missing required fields or cannot be decoded (HTTP 400)."""

    status_code = 400


@dataclass(frozen=True, slots=True)
class WebhookEvent:
    """Canonical gateway notification."""

    event: str
    data: Mapping[str, Any] = field(default_factory=dict)
    webhook_id: Optional[str] = None

    @property
    def resource_id(self) -> Optional[str]:
        """Gateway id of the invoice/charge/subscription the event is about."""

        value = self.data.get("id")
        if value is None or str(value).strip() == "":
            return None
        return str(value).strip()

    @property
    def gateway_status(self) -> Optional[str]:
        value = self.data.get("status")
        return None if value is None else str(value)

    @property
    def is_subscription_event(self) -> bool:
        return self.event.startswith(SUBSCRIPTION_EVENT_PREFIX)

    @property
    def is_invoice_status_event(self) -> bool:
        return self.event in INVOICE_STATUS_EVENTS

    @property
    def is_refund_event(self) -> bool:
        return self.event == INVOICE_REFUND_EVENT


def media_type(content_type: Optional[str]) -> str:
    """Return the bare media type of a Content-Type header, lower-cased."""

    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _classify_form(body: bytes) -> WebhookEvent:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedWebhookError("Form body is not valid UTF-8") from e

    params = parse_qsl(text, keep_blank_values=True)

    event: Optional[str] = None
    webhook_id: Optional[str] = None
    data: Dict[str, Any] = {}

    for key, value in params:
        if key == "event":
            event = value.strip()
        elif key == "webhook_id":
            webhook_id = _optional_str(value)
        else:
            match = _FORM_DATA_KEY.match(key)
            if match:
                data[match.group(1)] = value

    if not event:
        raise MalformedWebhookError("Missing event parameter")

    return WebhookEvent(event=event, data=data, webhook_id=webhook_id)


def _from_asaas(event: str, payload: Dict[str, Any]) -> WebhookEvent:
    """Map an Asaas `{"event", "payment"}` notification onto the invoice events."""

    payment = payload["payment"]
    if not isinstance(payment, dict):
        raise MalformedWebhookError("payment field must be an object")

    data: Dict[str, Any] = {}
    payment_id = _optional_str(payment.get("id"))
    if payment_id is not None:
        data["id"] = payment_id

    webhook_id = _optional_str(payload.get("webhook_id")) or _optional_str(payload.get("id"))

    if event in ASAAS_PAID_EVENTS:
        data["status"] = "paid"
        payment_date = payment.get("paymentDate") or payment.get("confirmedDate")
        if payment_date:
            try:
                day = parse_date(payment_date)
            except (TypeError, ValueError) as e:
                raise MalformedWebhookError(f"Invalid payment date: {payment_date!r}") from e
            data["paid_at"] = f"{day.isoformat()}T12:00:00+00:00"
        return WebhookEvent(event="invoice.status_changed", data=data, webhook_id=webhook_id)

    if event == ASAAS_REFUND_EVENT:
        return WebhookEvent(event=INVOICE_REFUND_EVENT, data=data, webhook_id=webhook_id)

    return WebhookEvent(event=event, data=data, webhook_id=webhook_id)


def _classify_json(body: bytes) -> WebhookEvent:
    try:
        payload = json.loads(body or b"null")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedWebhookError(f"Body is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedWebhookError("JSON body must be an object")

    event = payload.get("event")
    if not isinstance(event, str) or not event.strip():
        raise MalformedWebhookError("Missing event field")

    if "payment" in payload and "data" not in payload:
        return _from_asaas(event.strip(), payload)

    data = payload.get("data")
    if data is None:
        data = {}
    elif not isinstance(data, dict):
        raise MalformedWebhookError("data field must be an object")

    return WebhookEvent(
        event=event.strip(),
        data=data,
        webhook_id=_optional_str(payload.get("webhook_id")),
    )


def classify_webhook(content_type: Optional[str], body: bytes) -> WebhookEvent:
    """
    Parse a raw webhook request into a WebhookEvent.

    Raises:
        UnsupportedContentTypeError: content type is neither JSON nor form-encoded
        MalformedWebhookError: body cannot be decoded or lacks an event name

    Example:
        classify_webhook(
            "application/x-www-form-urlencoded",
            b"event=invoice.status_changed&data[id]=ABC&data[status]=paid",
        )
        # WebhookEvent(event="invoice.status_changed", data={"id": "ABC", "status": "paid"})
    """

    kind = media_type(content_type)
    if kind == FORM_CONTENT_TYPE:
        return _classify_form(body)
    if kind == JSON_CONTENT_TYPE:
        return _classify_json(body)
    raise UnsupportedContentTypeError(
        "Unsupported Content-Type. Expected application/json or "
        f"application/x-www-form-urlencoded, got {content_type or 'none'!r}"
    )
