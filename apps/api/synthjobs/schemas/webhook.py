"""Vendor webhook schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class VendorWebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    status: str | None = None
    url: str | None = None
    thumbnail_url: str | None = None
    duration: float | None = None
    error: str | None = None


class VendorWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str
    data: VendorWebhookData
    metadata: dict[str, Any] | None = None


class WebhookAck(BaseModel):
    received: bool = True
