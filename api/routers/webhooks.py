"""
Webhooks API Endpoints.

Inbound payment gateway notifications (Iugu/Asaas). This is the settlement
core's only network entry point.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from supabase import Client

from api.models import ErrorResponse, WebhookResponse
from domain.webhook_event import WebhookPayloadError, classify_webhook
from repositories.client import get_supabase
from services.webhook_service import process_webhook

logger = logging.getLogger(__name__)

router = APIRouter()


def _rejected(error: WebhookPayloadError, content_type: Optional[str]) -> JSONResponse:
    body = ErrorResponse(
        message=str(error),
        content_type=content_type if error.status_code == 415 else None,
    )
    return JSONResponse(status_code=error.status_code, content=body.model_dump(exclude_none=True))


@router.post(
    "/webhooks/iugu",
    response_model=WebhookResponse,
    responses={400: {"model": ErrorResponse}, 415: {"model": ErrorResponse}},
    summary="Payment Gateway Webhook",
    description="Settle sales from asynchronous payment gateway notifications."
)
@router.post(
    "/webhooks/payments",
    response_model=WebhookResponse,
    responses={400: {"model": ErrorResponse}, 415: {"model": ErrorResponse}},
    include_in_schema=False,
)
async def payment_gateway_webhook(
    request: Request,
    sale_id: Optional[str] = Query(None, description="Sale id embedded in the callback URL"),
    supabase: Client = Depends(get_supabase),
):
    """
    Receive a payment gateway webhook.

    **Accepted bodies:**
    - `application/x-www-form-urlencoded`: `event=invoice.status_changed&data[id]=...&data[status]=paid`
    - `application/json`: `{"event": "...", "data": {"id": "...", "status": "..."}, "webhook_id": "..."}`

    **Sale lookup:**
    `?sale_id=` takes precedence; otherwise the sale is matched on the
    gateway invoice/charge id (or subscription id for `subscription.*` events).

    **Responses:**
    - 200 for everything the gateway should not retry: processed, duplicate,
      unhandled event, sale not found, and internal processing errors
      (`success: false`, logged for reconciliation)
    - 400 for malformed bodies (missing `event`, undecodable JSON)
    - 415 for any other content type

    **Example response:**
    ```json
    {
      "success": true,
      "message": "Payment settled",
      "event": "invoice.status_changed",
      "sale_id": "123e4567-e89b-12d3-a456-426614174003",
      "gateway_status": "paid",
      "new_status": "paid"
    }
    ```
    """
    content_type = request.headers.get("content-type")

    try:
        body = await request.body()
        event = classify_webhook(content_type, body)
    except WebhookPayloadError as e:
        logger.warning(
            "Rejected webhook body",
            extra={"content_type": content_type, "status_code": e.status_code, "reason": str(e)},
        )
        return _rejected(e, content_type)

    logger.info(
        "Webhook received",
        extra={
            "event": event.event,
            "resource_id": event.resource_id,
            "gateway_status": event.gateway_status,
            "webhook_id": event.webhook_id,
            "sale_id_from_url": sale_id,
        },
    )

    try:
        result = await run_in_threadpool(process_webhook, supabase, event, sale_id)
    except WebhookPayloadError as e:
        logger.warning(
            "Rejected webhook payload",
            extra={"event": event.event, "status_code": e.status_code, "reason": str(e)},
        )
        return _rejected(e, content_type)
    except Exception as e:
        # Still 200: failures here are operator-visible through logs only.
        logger.exception(
            "Error processing webhook",
            extra={
                "event": event.event,
                "resource_id": event.resource_id,
                "webhook_id": event.webhook_id,
                "sale_id_from_url": sale_id,
            },
        )
        body = WebhookResponse(
            success=False,
            message="Internal error processing webhook",
            event=event.event,
            error=str(e),
        )
        return JSONResponse(status_code=200, content=body.model_dump(exclude_none=True))

    body = WebhookResponse(
        success=result.success,
        message=result.message,
        event=result.event,
        sale_id=result.sale_id,
        gateway_status=result.gateway_status,
        new_status=result.new_status,
    )
    return JSONResponse(status_code=200, content=body.model_dump(exclude_none=True))
