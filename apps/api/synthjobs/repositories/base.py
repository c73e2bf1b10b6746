"""Job record types and the persistence contract shared by all stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from synthjobs.schemas.job import JobKind, JobStatus, ReplicaStatus, VideoStatus

UpdateSource = Literal["orchestrator", "webhook", "poll"]

# Columns a status transition is allowed to write, per job kind.
MUTABLE_FIELDS: dict[JobKind, frozenset[str]] = {
    JobKind.REPLICA: frozenset({"error_detail"}),
    JobKind.VIDEO: frozenset(
        {"result_url", "thumbnail_url", "duration", "error_detail", "completed_at", "failed_at"}
    ),
}


class DuplicateJobError(Exception):
    """Raised when a vendor id is already tracked by a job of the same kind."""


@dataclass(slots=True)
class ReplicaJobRecord:
    replica_id: str
    train_video_url: str
    status: ReplicaStatus
    created_at: datetime
    updated_at: datetime | None = None
    replica_name: str | None = None
    last_checked_at: datetime | None = None
    error_detail: str | None = None


@dataclass(slots=True)
class VideoJobRecord:
    video_id: str
    persona_id: str
    replica_id: str
    status: VideoStatus
    created_at: datetime
    updated_at: datetime | None = None
    script: str | None = None
    audio_url: str | None = None
    result_url: str | None = None
    thumbnail_url: str | None = None
    duration: float | None = None
    error_detail: str | None = None
    last_checked_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None


JobRecord = ReplicaJobRecord | VideoJobRecord


@dataclass(slots=True)
class TransitionEventRecord:
    kind: JobKind
    vendor_id: str
    prev_status: JobStatus
    new_status: JobStatus
    source: UpdateSource
    recorded_at: datetime


@dataclass(slots=True)
class TransitionResult:
    record: JobRecord
    applied: bool


def filter_transition_fields(kind: JobKind, fields: dict[str, Any] | None) -> dict[str, Any]:
    """Keep only known mutable columns; unknown keys are ignored deterministically."""
    if not fields:
        return {}
    allowed = MUTABLE_FIELDS[kind]
    return {key: value for key, value in fields.items() if key in allowed}


class JobStore(ABC):
    """Durable state for replica and video jobs keyed by vendor identifiers.

    ``transition`` is the only way to change a job's status. It is a
    compare-and-set: it applies when the stored status equals ``from_status``
    and is not terminal, is a no-op success when the stored status already
    equals ``to_status``, and raises ``StaleTransitionError`` otherwise. A
    terminal job is never moved, whatever ``from_status`` the caller passes.
    Implementations must make it atomic per job. Returned records are
    detached copies.
    """

    @abstractmethod
    def create_replica_job(
        self,
        *,
        replica_id: str,
        train_video_url: str,
        replica_name: str | None = None,
    ) -> ReplicaJobRecord:
        """Persist a new PENDING replica job."""

    @abstractmethod
    def create_video_job(
        self,
        *,
        video_id: str,
        persona_id: str,
        replica_id: str,
        script: str | None = None,
        audio_url: str | None = None,
    ) -> VideoJobRecord:
        """Persist a new PENDING video job."""

    @abstractmethod
    def get_replica_job(self, replica_id: str) -> ReplicaJobRecord | None:
        ...

    @abstractmethod
    def get_video_job(self, video_id: str) -> VideoJobRecord | None:
        ...

    def get_by_vendor_id(self, kind: JobKind, vendor_id: str) -> JobRecord | None:
        if kind is JobKind.REPLICA:
            return self.get_replica_job(vendor_id)
        return self.get_video_job(vendor_id)

    @abstractmethod
    def list_video_jobs_for_persona(self, persona_id: str) -> list[VideoJobRecord]:
        """Return a persona's video jobs, newest first."""

    @abstractmethod
    def transition(
        self,
        *,
        kind: JobKind,
        vendor_id: str,
        from_status: JobStatus,
        to_status: JobStatus,
        fields: dict[str, Any] | None = None,
        source: UpdateSource = "orchestrator",
    ) -> TransitionResult:
        """Compare-and-set the job status and apply ``fields`` on success."""

    @abstractmethod
    def mark_checked(self, *, kind: JobKind, vendor_id: str, checked_at: datetime) -> None:
        """Record a successful vendor status check."""

    @abstractmethod
    def list_transition_events(self, kind: JobKind, vendor_id: str) -> list[TransitionEventRecord]:
        """Return the applied transitions of one job in the order they happened."""


__all__ = [
    "DuplicateJobError",
    "JobRecord",
    "JobStore",
    "MUTABLE_FIELDS",
    "ReplicaJobRecord",
    "TransitionEventRecord",
    "TransitionResult",
    "UpdateSource",
    "VideoJobRecord",
    "filter_transition_fields",
]
