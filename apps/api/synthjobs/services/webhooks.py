"""Vendor webhook service layer."""

from dataclasses import dataclass
import hashlib
import hmac
import logging

from pydantic import ValidationError

from synthjobs.adapters.vendor.status import normalize_status, parse_event_name
from synthjobs.core.logging_safety import safe_log_identifier
from synthjobs.errors import ApiError
from synthjobs.repositories.base import JobStore
from synthjobs.schemas.job import JobKind, JobStatus
from synthjobs.schemas.webhook import VendorWebhookEvent
from synthjobs.services.orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)

_SIGNATURE_PREFIX = "sha256="


def compute_webhook_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check a hex HMAC-SHA256 signature of the raw body, optionally ``sha256=`` prefixed."""
    candidate = signature.strip()
    if candidate.lower().startswith(_SIGNATURE_PREFIX):
        candidate = candidate[len(_SIGNATURE_PREFIX):]
    return hmac.compare_digest(candidate.lower(), compute_webhook_signature(body, secret))


@dataclass(slots=True)
class WebhookProcessResult:
    kind: JobKind
    vendor_id: str
    matched: bool
    applied: bool = False
    stale: bool = False
    current_status: JobStatus | None = None


def _invalid_payload(message: str) -> ApiError:
    return ApiError(status_code=400, code="INVALID_WEBHOOK_PAYLOAD", message=message)


class VendorWebhookService:
    def __init__(self, store: JobStore, orchestrator: JobOrchestrator) -> None:
        self._store = store
        self._orchestrator = orchestrator

    def process_event(self, *, body: bytes, correlation_id: str) -> WebhookProcessResult:
        safe_correlation_id = safe_log_identifier(correlation_id, prefix="cid")
        try:
            payload = VendorWebhookEvent.model_validate_json(body)
        except ValidationError as exc:
            logger.warning(
                "webhook.rejected correlation_id=%s code=INVALID_WEBHOOK_PAYLOAD errors=%s",
                safe_correlation_id,
                exc.error_count(),
            )
            raise _invalid_payload("Invalid webhook payload") from exc

        parsed = parse_event_name(payload.event)
        if parsed is None:
            logger.warning(
                "webhook.rejected correlation_id=%s code=UNKNOWN_EVENT event=%s",
                safe_correlation_id,
                payload.event,
            )
            raise _invalid_payload("Unknown webhook event")

        kind, event_term = parsed
        status = normalize_status(kind, event_term) or normalize_status(kind, payload.data.status)
        if status is None:
            logger.warning(
                "webhook.rejected correlation_id=%s code=UNKNOWN_STATUS event=%s",
                safe_correlation_id,
                payload.event,
            )
            raise _invalid_payload("Webhook event does not carry a recognised status")

        vendor_id = payload.data.id.strip()
        if not vendor_id:
            raise _invalid_payload("Webhook payload is missing data.id")

        if self._store.get_by_vendor_id(kind, vendor_id) is None:
            logger.warning(
                "webhook.ignored correlation_id=%s kind=%s vendor_id=%s reason=unknown_job",
                safe_correlation_id,
                kind.value,
                vendor_id,
            )
            return WebhookProcessResult(kind=kind, vendor_id=vendor_id, matched=False)

        outcome = self._orchestrator.apply_vendor_update(
            kind=kind,
            vendor_id=vendor_id,
            new_status=status,
            fields={
                "result_url": payload.data.url,
                "thumbnail_url": payload.data.thumbnail_url,
                "duration": payload.data.duration,
                "error_detail": payload.data.error,
            },
            source="webhook",
        )
        logger.info(
            "webhook.processed correlation_id=%s kind=%s vendor_id=%s event=%s applied=%s stale=%s",
            safe_correlation_id,
            kind.value,
            vendor_id,
            payload.event,
            outcome.applied,
            outcome.stale,
        )
        return WebhookProcessResult(
            kind=kind,
            vendor_id=vendor_id,
            matched=True,
            applied=outcome.applied,
            stale=outcome.stale,
            current_status=outcome.record.status,
        )
