"""Pydantic models for gatekeeper service."""

from typing import Any

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    """Webhook response model."""

    success: bool
    message: str
    event: str | None = None
    delivery_id: str | None = None
    results: list[dict[str, Any]] = []


class WebhookErrorDetail(BaseModel):
    """Body of a rejected webhook (the `detail` of the HTTPException)."""

    code: str
    message: str
    delivery_id: str | None = None
