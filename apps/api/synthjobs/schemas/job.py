"""Replica and video job API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class JobKind(str, Enum):
    REPLICA = "replica"
    VIDEO = "video"


class ReplicaStatus(str, Enum):
    PENDING = "PENDING"
    TRAINING = "TRAINING"
    READY = "READY"
    ERROR = "ERROR"


class VideoStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


JobStatus = ReplicaStatus | VideoStatus


class CreateReplicaRequest(BaseModel):
    train_video_url: str
    replica_name: str | None = None


class CreateVideoRequest(BaseModel):
    persona_id: str
    replica_id: str
    script: str | None = None
    audio_url: str | None = None


class ReplicaJob(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    replica_id: str
    train_video_url: str
    replica_name: str | None = None
    status: ReplicaStatus
    error_detail: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    last_checked_at: datetime | None = None


class VideoJob(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    video_id: str
    persona_id: str
    replica_id: str
    status: VideoStatus
    script: str | None = None
    audio_url: str | None = None
    result_url: str | None = None
    thumbnail_url: str | None = None
    duration: float | None = None
    error_detail: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    last_checked_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None


class VideoJobList(BaseModel):
    items: list[VideoJob]
