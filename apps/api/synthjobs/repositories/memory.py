"""In-memory job store used for local development and tests."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from threading import Lock
from typing import Any

from synthjobs.domain.job_fsm import StaleTransitionError, coerce_status, is_terminal
from synthjobs.errors import JobNotFoundError
from synthjobs.repositories.base import (
    DuplicateJobError,
    JobRecord,
    JobStore,
    ReplicaJobRecord,
    TransitionEventRecord,
    TransitionResult,
    UpdateSource,
    VideoJobRecord,
    filter_transition_fields,
)
from synthjobs.schemas.job import JobKind, JobStatus, ReplicaStatus, VideoStatus


@dataclass(slots=True)
class InMemoryStore(JobStore):
    """Deterministic persistence layer; a single lock arbitrates every write."""

    replica_jobs: dict[str, ReplicaJobRecord] = field(default_factory=dict)
    video_jobs: dict[str, VideoJobRecord] = field(default_factory=dict)
    transition_events: list[TransitionEventRecord] = field(default_factory=list)
    job_write_count: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def create_replica_job(
        self,
        *,
        replica_id: str,
        train_video_url: str,
        replica_name: str | None = None,
    ) -> ReplicaJobRecord:
        now = datetime.now(UTC)
        with self._lock:
            if replica_id in self.replica_jobs:
                raise DuplicateJobError(f"replica job {replica_id} already exists")
            job = ReplicaJobRecord(
                replica_id=replica_id,
                train_video_url=train_video_url,
                replica_name=replica_name,
                status=ReplicaStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self.replica_jobs[replica_id] = job
            self.job_write_count += 1
        return replace(job)

    def create_video_job(
        self,
        *,
        video_id: str,
        persona_id: str,
        replica_id: str,
        script: str | None = None,
        audio_url: str | None = None,
    ) -> VideoJobRecord:
        now = datetime.now(UTC)
        with self._lock:
            if video_id in self.video_jobs:
                raise DuplicateJobError(f"video job {video_id} already exists")
            job = VideoJobRecord(
                video_id=video_id,
                persona_id=persona_id,
                replica_id=replica_id,
                script=script,
                audio_url=audio_url,
                status=VideoStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self.video_jobs[video_id] = job
            self.job_write_count += 1
        return replace(job)

    def get_replica_job(self, replica_id: str) -> ReplicaJobRecord | None:
        job = self.replica_jobs.get(replica_id)
        return replace(job) if job is not None else None

    def get_video_job(self, video_id: str) -> VideoJobRecord | None:
        job = self.video_jobs.get(video_id)
        return replace(job) if job is not None else None

    def list_video_jobs_for_persona(self, persona_id: str) -> list[VideoJobRecord]:
        jobs = [replace(record) for record in self.video_jobs.values() if record.persona_id == persona_id]
        jobs.sort(key=lambda record: record.created_at, reverse=True)
        return jobs

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
        from_status = coerce_status(kind, from_status)
        to_status = coerce_status(kind, to_status)
        updates = filter_transition_fields(kind, fields)

        with self._lock:
            job = self._get_or_raise(kind, vendor_id)
            if job.status == to_status:
                return TransitionResult(record=replace(job), applied=False)
            if job.status != from_status or is_terminal(kind, job.status):
                raise StaleTransitionError(
                    kind=kind,
                    vendor_id=vendor_id,
                    current_status=job.status,
                    attempted_status=to_status,
                )

            now = datetime.now(UTC)
            prev_status = job.status
            job.status = to_status
            job.updated_at = now
            for key, value in updates.items():
                setattr(job, key, value)
            self.transition_events.append(
                TransitionEventRecord(
                    kind=kind,
                    vendor_id=vendor_id,
                    prev_status=prev_status,
                    new_status=to_status,
                    source=source,
                    recorded_at=now,
                )
            )
            self.job_write_count += 1
        return TransitionResult(record=replace(job), applied=True)

    def mark_checked(self, *, kind: JobKind, vendor_id: str, checked_at: datetime) -> None:
        with self._lock:
            job = self._get_or_raise(kind, vendor_id)
            job.last_checked_at = checked_at
            self.job_write_count += 1

    def list_transition_events(self, kind: JobKind, vendor_id: str) -> list[TransitionEventRecord]:
        return [event for event in self.transition_events if event.kind is kind and event.vendor_id == vendor_id]

    def _get_or_raise(self, kind: JobKind, vendor_id: str) -> JobRecord:
        job = self.replica_jobs.get(vendor_id) if kind is JobKind.REPLICA else self.video_jobs.get(vendor_id)
        if job is None:
            raise JobNotFoundError()
        return job
