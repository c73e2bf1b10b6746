"""Dependency wiring for routes."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader

from synthjobs.adapters.vendor import FakeVendorClient, TavusVendorClient, VideoVendorClient
from synthjobs.core.config import Settings, get_settings
from synthjobs.core.logging_safety import safe_log_identifier
from synthjobs.errors import ForbiddenError
from synthjobs.repositories.base import JobStore
from synthjobs.repositories.memory import InMemoryStore
from synthjobs.repositories.sql import SqlJobStore
from synthjobs.services.orchestrator import JobOrchestrator
from synthjobs.services.reconciler import StatusReconciler
from synthjobs.services.webhooks import VendorWebhookService, verify_webhook_signature

webhook_signature_scheme = APIKeyHeader(
    name="X-Webhook-Signature",
    auto_error=False,
    scheme_name="vendorWebhookSignature",
)
logger = logging.getLogger(__name__)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def get_request_correlation_id(request: Request) -> str:
    return _request_correlation_id(request)


def build_vendor_client(settings: Settings) -> VideoVendorClient:
    """Resolve the vendor adapter from configuration."""
    if settings.vendor_provider == "tavus":
        return TavusVendorClient(
            api_key=settings.vendor_api_key,
            base_url=settings.vendor_base_url,
            timeout_seconds=settings.vendor_timeout_seconds,
        )
    return FakeVendorClient()


def build_store(settings: Settings) -> JobStore:
    if settings.database_url:
        return SqlJobStore.from_url(settings.database_url)
    return InMemoryStore()


async def require_webhook_signature(
    request: Request,
    signature: Annotated[str | None, Security(webhook_signature_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Validate the vendor signature when a webhook secret is configured."""
    safe_correlation_id = safe_log_identifier(_request_correlation_id(request), prefix="cid")
    if not settings.webhook_secret:
        logger.warning(
            "webhook.unsigned_accepted correlation_id=%s path=%s reason=no_secret_configured",
            safe_correlation_id,
            request.url.path,
        )
        return

    body = await request.body()
    if signature is None or not verify_webhook_signature(body, signature, settings.webhook_secret):
        logger.warning(
            "webhook.auth_rejected correlation_id=%s path=%s reason=%s",
            safe_correlation_id,
            request.url.path,
            "missing_signature" if signature is None else "signature_mismatch",
        )
        raise ForbiddenError()


def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_vendor_client(request: Request) -> VideoVendorClient:
    return request.app.state.vendor_client


def get_clock(request: Request) -> Callable[[], datetime]:
    return request.app.state.clock


def get_orchestrator(
    request: Request,
    store: Annotated[JobStore, Depends(get_store)],
    vendor: Annotated[VideoVendorClient, Depends(get_vendor_client)],
    settings: Annotated[Settings, Depends(get_settings)],
    clock: Annotated[Callable[[], datetime], Depends(get_clock)],
) -> JobOrchestrator:
    return JobOrchestrator(store, vendor, settings, clock=clock, sleep=request.app.state.sleep)


def get_reconciler(
    store: Annotated[JobStore, Depends(get_store)],
    vendor: Annotated[VideoVendorClient, Depends(get_vendor_client)],
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
    settings: Annotated[Settings, Depends(get_settings)],
    clock: Annotated[Callable[[], datetime], Depends(get_clock)],
) -> StatusReconciler:
    return StatusReconciler(
        store,
        vendor,
        orchestrator,
        staleness_seconds=settings.status_staleness_seconds,
        clock=clock,
    )


def get_webhook_service(
    store: Annotated[JobStore, Depends(get_store)],
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
) -> VendorWebhookService:
    return VendorWebhookService(store, orchestrator)
