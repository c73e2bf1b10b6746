"""Poll-path reconciliation of stored job state against the vendor."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging

from synthjobs.adapters.vendor import VendorError, VendorJobState, VendorRejectedError, VideoVendorClient
from synthjobs.domain.job_fsm import is_terminal
from synthjobs.errors import JobNotFoundError
from synthjobs.repositories.base import JobRecord, JobStore
from synthjobs.schemas.job import JobKind, ReplicaJob, VideoJob
from synthjobs.services.orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconcileResult:
    job: ReplicaJob | VideoJob
    http_status: int = 200
    vendor_checked: bool = False


class StatusReconciler:
    """Serves client polling; asks the vendor only for stale, non-terminal jobs."""

    def __init__(
        self,
        store: JobStore,
        vendor: VideoVendorClient,
        orchestrator: JobOrchestrator,
        *,
        staleness_seconds: float,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._vendor = vendor
        self._orchestrator = orchestrator
        self._staleness = timedelta(seconds=staleness_seconds)
        self._clock = clock or (lambda: datetime.now(UTC))

    def get_video_status(self, video_id: str) -> ReconcileResult:
        return self._reconcile(JobKind.VIDEO, video_id)

    def get_replica_status(self, replica_id: str) -> ReconcileResult:
        return self._reconcile(JobKind.REPLICA, replica_id)

    def list_persona_videos(self, persona_id: str) -> list[VideoJob]:
        """Cached view of a persona's videos; never calls the vendor."""
        return [VideoJob.model_validate(record) for record in self._store.list_video_jobs_for_persona(persona_id)]

    def _reconcile(self, kind: JobKind, vendor_id: str) -> ReconcileResult:
        record = self._store.get_by_vendor_id(kind, vendor_id)
        if record is None:
            raise JobNotFoundError()

        now = self._clock()
        if is_terminal(kind, record.status) or not self._is_stale(record, now):
            return ReconcileResult(job=self._to_schema(kind, record))

        try:
            state = self._fetch(kind, vendor_id)
        except VendorRejectedError as exc:
            logger.warning(
                "reconcile.rejected kind=%s vendor_id=%s vendor_status=%s detail=%s",
                kind.value,
                vendor_id,
                exc.http_status,
                exc.detail,
            )
            # The vendor answered, so the staleness window restarts.
            self._store.mark_checked(kind=kind, vendor_id=vendor_id, checked_at=now)
            record = self._store.get_by_vendor_id(kind, vendor_id) or record
            return ReconcileResult(
                job=self._to_schema(kind, record),
                http_status=exc.http_status or 200,
                vendor_checked=True,
            )
        except VendorError as exc:
            # last_checked_at stays put so the next poll tries again.
            logger.warning(
                "reconcile.failed kind=%s vendor_id=%s code=%s vendor_status=%s",
                kind.value,
                vendor_id,
                type(exc).__name__,
                exc.http_status,
            )
            return ReconcileResult(job=self._to_schema(kind, record))

        outcome = self._orchestrator.apply_vendor_update(
            kind=kind,
            vendor_id=vendor_id,
            new_status=state.status,
            fields=state.update_fields(),
            source="poll",
        )
        record = outcome.record
        self._store.mark_checked(kind=kind, vendor_id=vendor_id, checked_at=now)
        record = self._store.get_by_vendor_id(kind, vendor_id) or record
        return ReconcileResult(job=self._to_schema(kind, record), http_status=state.http_status, vendor_checked=True)

    def _fetch(self, kind: JobKind, vendor_id: str) -> VendorJobState:
        if kind is JobKind.REPLICA:
            return self._vendor.get_replica(vendor_id)
        return self._vendor.get_video(vendor_id)

    def _is_stale(self, record: JobRecord, now: datetime) -> bool:
        if record.last_checked_at is None:
            return True
        return now - record.last_checked_at > self._staleness

    @staticmethod
    def _to_schema(kind: JobKind, record: JobRecord) -> ReplicaJob | VideoJob:
        if kind is JobKind.REPLICA:
            return ReplicaJob.model_validate(record)
        return VideoJob.model_validate(record)
