"""Vendor webhook routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from synthjobs.routes.dependencies import (
    get_request_correlation_id,
    get_webhook_service,
    require_webhook_signature,
)
from synthjobs.schemas.error import ErrorResponse
from synthjobs.schemas.webhook import WebhookAck
from synthjobs.services.webhooks import VendorWebhookService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/vendor",
    response_model=WebhookAck,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def receive_vendor_webhook(
    request: Request,
    __: Annotated[None, Depends(require_webhook_signature)],
    correlation_id: Annotated[str, Depends(get_request_correlation_id)],
    webhook_service: Annotated[VendorWebhookService, Depends(get_webhook_service)],
) -> WebhookAck:
    body = await request.body()
    # Store writes may block on the database.
    await run_in_threadpool(webhook_service.process_event, body=body, correlation_id=correlation_id)
    return WebhookAck(received=True)
