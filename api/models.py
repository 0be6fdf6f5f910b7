"""
API Request and Response Models.

Pydantic models for serializing webhook responses.
"""

from typing import Optional

from pydantic import BaseModel


# ============================================================================
# Webhook Models
# ============================================================================

class WebhookResponse(BaseModel):
    """
    Body returned to the payment gateway.

    `success` is False for recoverable processing failures, which are still
    acknowledged with HTTP 200 so the gateway does not retry.
    """
    success: bool
    message: str
    event: Optional[str] = None
    sale_id: Optional[str] = None
    gateway_status: Optional[str] = None
    new_status: Optional[str] = None
    error: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Payment settled",
                "event": "invoice.status_changed",
                "sale_id": "123e4567-e89b-12d3-a456-426614174003",
                "gateway_status": "paid",
                "new_status": "paid"
            }
        }


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Body for rejected (4xx) webhook requests."""
    success: bool = False
    message: str
    content_type: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "message": "Missing event parameter"
            }
        }
