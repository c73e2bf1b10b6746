"""Job orchestration: creating vendor jobs and funnelling every status update."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
import logging
import time
from typing import Any

from synthjobs.adapters.vendor import (
    VendorError,
    VendorRejectedError,
    VendorUnauthorizedError,
    VideoVendorClient,
)
from synthjobs.core.config import Settings
from synthjobs.core.logging_safety import safe_log_identifier, safe_log_url
from synthjobs.domain.job_fsm import StaleTransitionError, allowed_next_statuses, coerce_status, ensure_transition
from synthjobs.errors import ApiError, InvalidInputError, JobNotFoundError, ReplicaNotReadyError
from synthjobs.repositories.base import DuplicateJobError, JobRecord, JobStore, UpdateSource
from synthjobs.schemas.job import JobKind, JobStatus, ReplicaJob, ReplicaStatus, VideoJob, VideoStatus
from synthjobs.services.vendor_retry import call_vendor_with_retry

logger = logging.getLogger(__name__)

_MAX_CAS_ATTEMPTS = 3
_DEFAULT_VIDEO_FAILURE = "Video generation failed"
_DEFAULT_REPLICA_FAILURE = "Replica training failed"


@dataclass(slots=True)
class UpdateOutcome:
    record: JobRecord
    applied: bool
    stale: bool = False


def vendor_error_to_api_error(exc: VendorError) -> ApiError:
    """Translate vendor adapter failures into surfaced API errors."""
    if isinstance(exc, VendorUnauthorizedError):
        return ApiError(
            status_code=502,
            code="VENDOR_UNAUTHORIZED",
            message="Synthesis vendor rejected the configured credential.",
        )
    if isinstance(exc, VendorRejectedError):
        return ApiError(
            status_code=422,
            code="VENDOR_REJECTED",
            message=str(exc),
            details={"vendor_status": exc.http_status, "vendor_detail": exc.detail},
        )
    return ApiError(
        status_code=503,
        code="VENDOR_UNAVAILABLE",
        message="Synthesis vendor is temporarily unavailable.",
        details={"vendor_status": exc.http_status} if exc.http_status else None,
    )


def _present(value: str | None) -> bool:
    return value is not None and bool(value.strip())


class JobOrchestrator:
    def __init__(
        self,
        store: JobStore,
        vendor: VideoVendorClient,
        settings: Settings,
        *,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._vendor = vendor
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sleep = sleep

    def request_replica(self, *, train_video_url: str, replica_name: str | None = None) -> ReplicaJob:
        if not _present(train_video_url):
            raise InvalidInputError(
                "train_video_url is required",
                details={"field": "train_video_url"},
            )
        train_video_url = train_video_url.strip()
        replica_name = replica_name.strip() if _present(replica_name) else None

        accepted = self._call_vendor(
            "create_replica",
            lambda: self._vendor.create_replica(
                train_video_url=train_video_url,
                replica_name=replica_name,
                callback_url=self._settings.webhook_callback_url,
            ),
        )

        try:
            record = self._store.create_replica_job(
                replica_id=accepted.vendor_id,
                train_video_url=train_video_url,
                replica_name=replica_name,
            )
        except DuplicateJobError:
            logger.info("replica.replayed replica_id=%s", accepted.vendor_id)
            record = self._store.get_replica_job(accepted.vendor_id)
            return ReplicaJob.model_validate(record)

        logger.info(
            "replica.created replica_id=%s train_video_url=%s vendor_status=%s",
            record.replica_id,
            safe_log_url(train_video_url),
            accepted.status.value,
        )

        # Acceptance of the create call is what moves a replica into training.
        target = accepted.status
        if target is ReplicaStatus.PENDING:
            target = ReplicaStatus.TRAINING
        outcome = self.apply_vendor_update(
            kind=JobKind.REPLICA,
            vendor_id=record.replica_id,
            new_status=target,
            fields=accepted.update_fields(),
            source="orchestrator",
        )
        return ReplicaJob.model_validate(outcome.record)

    def request_video(
        self,
        *,
        persona_id: str,
        replica_id: str,
        script: str | None = None,
        audio_url: str | None = None,
    ) -> VideoJob:
        has_script = _present(script)
        has_audio = _present(audio_url)
        if has_script == has_audio:
            raise InvalidInputError(
                "Exactly one of script or audio_url must be provided",
                details={"script_present": has_script, "audio_url_present": has_audio},
            )
        if not _present(persona_id):
            raise InvalidInputError("persona_id is required", details={"field": "persona_id"})

        replica = self._store.get_replica_job(replica_id)
        if replica is None or replica.status is not ReplicaStatus.READY:
            logger.info(
                "video.rejected replica_id=%s code=REPLICA_NOT_READY current_status=%s",
                replica_id,
                replica.status.value if replica is not None else None,
            )
            raise ReplicaNotReadyError(replica_id, replica.status.value if replica is not None else None)

        script = script if has_script else None
        audio_url = audio_url.strip() if has_audio else None
        accepted = self._call_vendor(
            "create_video",
            lambda: self._vendor.create_video(
                replica_id=replica_id,
                callback_url=self._settings.webhook_callback_url,
                script=script,
                audio_url=audio_url,
            ),
        )

        try:
            record = self._store.create_video_job(
                video_id=accepted.vendor_id,
                persona_id=persona_id,
                replica_id=replica_id,
                script=script,
                audio_url=audio_url,
            )
        except DuplicateJobError:
            logger.info("video.replayed video_id=%s", accepted.vendor_id)
            return VideoJob.model_validate(self._store.get_video_job(accepted.vendor_id))

        logger.info(
            "video.created video_id=%s persona_id=%s replica_id=%s vendor_status=%s",
            record.video_id,
            safe_log_identifier(persona_id, prefix="pid"),
            replica_id,
            accepted.status.value,
        )

        if accepted.status is not VideoStatus.PENDING:
            outcome = self.apply_vendor_update(
                kind=JobKind.VIDEO,
                vendor_id=record.video_id,
                new_status=accepted.status,
                fields=accepted.update_fields(),
                source="orchestrator",
            )
            record = outcome.record
        return VideoJob.model_validate(record)

    def apply_vendor_update(
        self,
        *,
        kind: JobKind,
        vendor_id: str,
        new_status: JobStatus | str,
        fields: dict[str, Any] | None = None,
        source: UpdateSource,
    ) -> UpdateOutcome:
        """Fold a vendor-reported status into the stored job, forward only.

        Same-status repeats are no-ops. Backwards moves and moves out of a
        terminal state are logged and dropped; they are never raised.
        """
        new_status = coerce_status(kind, new_status)
        record: JobRecord | None = None

        for _ in range(_MAX_CAS_ATTEMPTS):
            record = self._store.get_by_vendor_id(kind, vendor_id)
            if record is None:
                raise JobNotFoundError()

            current_status = record.status
            if current_status == new_status:
                logger.info(
                    "update.noop kind=%s vendor_id=%s source=%s status=%s",
                    kind.value,
                    vendor_id,
                    source,
                    current_status.value,
                )
                return UpdateOutcome(record=record, applied=False)

            try:
                ensure_transition(kind, vendor_id, current_status, new_status)
            except StaleTransitionError:
                self._log_stale(kind, vendor_id, source, current_status, new_status)
                return UpdateOutcome(record=record, applied=False, stale=True)

            try:
                result = self._store.transition(
                    kind=kind,
                    vendor_id=vendor_id,
                    from_status=current_status,
                    to_status=new_status,
                    fields=self._fields_for(kind, new_status, fields),
                    source=source,
                )
            except StaleTransitionError as exc:
                logger.info(
                    "update.race_lost kind=%s vendor_id=%s source=%s expected_status=%s current_status=%s",
                    kind.value,
                    vendor_id,
                    source,
                    current_status.value,
                    exc.current_status.value,
                )
                continue

            if result.applied:
                logger.info(
                    "update.applied kind=%s vendor_id=%s source=%s prev_status=%s new_status=%s",
                    kind.value,
                    vendor_id,
                    source,
                    current_status.value,
                    new_status.value,
                )
            return UpdateOutcome(record=result.record, applied=result.applied)

        latest = self._store.get_by_vendor_id(kind, vendor_id) or record
        self._log_stale(kind, vendor_id, source, latest.status, new_status)
        return UpdateOutcome(record=latest, applied=False, stale=True)

    def _fields_for(self, kind: JobKind, status: JobStatus, fields: dict[str, Any] | None) -> dict[str, Any]:
        fields = fields or {}
        now = self._clock()
        if status is VideoStatus.COMPLETED:
            return {
                "result_url": fields.get("result_url"),
                "thumbnail_url": fields.get("thumbnail_url"),
                "duration": fields.get("duration"),
                "completed_at": now,
            }
        if status is VideoStatus.FAILED:
            return {
                "error_detail": fields.get("error_detail") or _DEFAULT_VIDEO_FAILURE,
                "failed_at": now,
            }
        if status is ReplicaStatus.ERROR:
            return {"error_detail": fields.get("error_detail") or _DEFAULT_REPLICA_FAILURE}
        return {}

    def _call_vendor(self, name: str, operation: Callable[[], Any]) -> Any:
        try:
            return call_vendor_with_retry(
                operation,
                name=name,
                max_attempts=self._settings.vendor_max_attempts,
                base_delay=self._settings.vendor_backoff_base_seconds,
                jitter=self._settings.vendor_backoff_jitter,
                sleep=self._sleep,
            )
        except VendorError as exc:
            logger.warning(
                "vendor.failed operation=%s code=%s vendor_status=%s",
                name,
                type(exc).__name__,
                exc.http_status,
            )
            raise vendor_error_to_api_error(exc) from exc

    @staticmethod
    def _log_stale(
        kind: JobKind,
        vendor_id: str,
        source: str,
        current_status: JobStatus,
        attempted_status: JobStatus,
    ) -> None:
        allowed = allowed_next_statuses(kind, current_status)
        logger.warning(
            "update.stale kind=%s vendor_id=%s source=%s current_status=%s attempted_status=%s allowed=%s",
            kind.value,
            vendor_id,
            source,
            current_status.value,
            attempted_status.value,
            ",".join(status.value for status in allowed) or "none",
        )
