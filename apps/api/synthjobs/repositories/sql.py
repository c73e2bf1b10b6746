"""Relational job store on SQLAlchemy.

Status changes are conditional ``UPDATE ... WHERE status = :from_status``
statements, so the database row is the single arbiter between a webhook and a
poll racing on the same job.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from synthjobs.domain.job_fsm import StaleTransitionError, coerce_status, terminal_statuses
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

Base = declarative_base()


class ReplicaJobRow(Base):
    __tablename__ = "replica_jobs"

    replica_id = Column(String(128), primary_key=True)
    train_video_url = Column(Text, nullable=False)
    replica_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=ReplicaStatus.PENDING.value)
    error_detail = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_checked_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<ReplicaJobRow {self.replica_id} status={self.status}>"


class VideoJobRow(Base):
    __tablename__ = "video_jobs"

    video_id = Column(String(128), primary_key=True)
    persona_id = Column(String(128), nullable=False, index=True)
    replica_id = Column(String(128), nullable=False)
    status = Column(String(20), nullable=False, default=VideoStatus.PENDING.value)
    script = Column(Text, nullable=True)
    audio_url = Column(Text, nullable=True)
    result_url = Column(Text, nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    duration = Column(Float, nullable=True)
    error_detail = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_checked_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<VideoJobRow {self.video_id} status={self.status}>"


class TransitionEventRow(Base):
    __tablename__ = "job_transition_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(16), nullable=False)
    vendor_id = Column(String(128), nullable=False, index=True)
    prev_status = Column(String(20), nullable=False)
    new_status = Column(String(20), nullable=False)
    source = Column(String(20), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)


_ROWS: dict[JobKind, type[ReplicaJobRow] | type[VideoJobRow]] = {
    JobKind.REPLICA: ReplicaJobRow,
    JobKind.VIDEO: VideoJobRow,
}


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def create_store_engine(database_url: str) -> Engine:
    """Build an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


class SqlJobStore(JobStore):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(engine, class_=Session, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlJobStore":
        store = cls(create_store_engine(database_url))
        store.create_schema()
        return store

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    def create_replica_job(
        self,
        *,
        replica_id: str,
        train_video_url: str,
        replica_name: str | None = None,
    ) -> ReplicaJobRecord:
        now = datetime.now(UTC)
        row = ReplicaJobRow(
            replica_id=replica_id,
            train_video_url=train_video_url,
            replica_name=replica_name,
            status=ReplicaStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        self._insert(row, f"replica job {replica_id} already exists")
        return self._to_replica_record(row)

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
        row = VideoJobRow(
            video_id=video_id,
            persona_id=persona_id,
            replica_id=replica_id,
            script=script,
            audio_url=audio_url,
            status=VideoStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        self._insert(row, f"video job {video_id} already exists")
        return self._to_video_record(row)

    def get_replica_job(self, replica_id: str) -> ReplicaJobRecord | None:
        with self._session_factory() as session:
            row = session.get(ReplicaJobRow, replica_id)
            return self._to_replica_record(row) if row is not None else None

    def get_video_job(self, video_id: str) -> VideoJobRecord | None:
        with self._session_factory() as session:
            row = session.get(VideoJobRow, video_id)
            return self._to_video_record(row) if row is not None else None

    def list_video_jobs_for_persona(self, persona_id: str) -> list[VideoJobRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(VideoJobRow)
                .where(VideoJobRow.persona_id == persona_id)
                .order_by(VideoJobRow.created_at.desc())
            ).all()
            return [self._to_video_record(row) for row in rows]

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
        row_type = _ROWS[kind]
        key_column = self._key_column(kind)
        now = datetime.now(UTC)
        values = {
            **filter_transition_fields(kind, fields),
            "status": to_status.value,
            "updated_at": now,
        }

        with self._session_factory() as session:
            result = session.execute(
                update(row_type)
                .where(
                    key_column == vendor_id,
                    row_type.status == from_status.value,
                    row_type.status.not_in([status.value for status in terminal_statuses(kind)]),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                session.add(
                    TransitionEventRow(
                        kind=kind.value,
                        vendor_id=vendor_id,
                        prev_status=from_status.value,
                        new_status=to_status.value,
                        source=source,
                        recorded_at=now,
                    )
                )
                session.commit()
                row = session.get(row_type, vendor_id, populate_existing=True)
                return TransitionResult(record=self._to_record(kind, row), applied=True)

            session.rollback()
            row = session.get(row_type, vendor_id)
            if row is None:
                raise JobNotFoundError()
            current_status = coerce_status(kind, row.status)
            if current_status == to_status:
                return TransitionResult(record=self._to_record(kind, row), applied=False)
            raise StaleTransitionError(
                kind=kind,
                vendor_id=vendor_id,
                current_status=current_status,
                attempted_status=to_status,
            )

    def mark_checked(self, *, kind: JobKind, vendor_id: str, checked_at: datetime) -> None:
        with self._session_factory() as session:
            result = session.execute(
                update(_ROWS[kind])
                .where(self._key_column(kind) == vendor_id)
                .values(last_checked_at=checked_at)
            )
            if result.rowcount != 1:
                session.rollback()
                raise JobNotFoundError()
            session.commit()

    def list_transition_events(self, kind: JobKind, vendor_id: str) -> list[TransitionEventRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(TransitionEventRow)
                .where(TransitionEventRow.kind == kind.value, TransitionEventRow.vendor_id == vendor_id)
                .order_by(TransitionEventRow.id)
            ).all()
            return [
                TransitionEventRecord(
                    kind=kind,
                    vendor_id=row.vendor_id,
                    prev_status=coerce_status(kind, row.prev_status),
                    new_status=coerce_status(kind, row.new_status),
                    source=row.source,
                    recorded_at=_aware(row.recorded_at),
                )
                for row in rows
            ]

    def _insert(self, row: ReplicaJobRow | VideoJobRow, duplicate_message: str) -> None:
        with self._session_factory() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateJobError(duplicate_message) from exc

    @staticmethod
    def _key_column(kind: JobKind):
        return ReplicaJobRow.replica_id if kind is JobKind.REPLICA else VideoJobRow.video_id

    def _to_record(self, kind: JobKind, row: ReplicaJobRow | VideoJobRow) -> JobRecord:
        if kind is JobKind.REPLICA:
            return self._to_replica_record(row)
        return self._to_video_record(row)

    @staticmethod
    def _to_replica_record(row: ReplicaJobRow) -> ReplicaJobRecord:
        return ReplicaJobRecord(
            replica_id=row.replica_id,
            train_video_url=row.train_video_url,
            replica_name=row.replica_name,
            status=ReplicaStatus(row.status),
            error_detail=row.error_detail,
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
            last_checked_at=_aware(row.last_checked_at),
        )

    @staticmethod
    def _to_video_record(row: VideoJobRow) -> VideoJobRecord:
        return VideoJobRecord(
            video_id=row.video_id,
            persona_id=row.persona_id,
            replica_id=row.replica_id,
            status=VideoStatus(row.status),
            script=row.script,
            audio_url=row.audio_url,
            result_url=row.result_url,
            thumbnail_url=row.thumbnail_url,
            duration=row.duration,
            error_detail=row.error_detail,
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
            last_checked_at=_aware(row.last_checked_at),
            completed_at=_aware(row.completed_at),
            failed_at=_aware(row.failed_at),
        )


__all__ = ["Base", "SqlJobStore", "create_store_engine"]
