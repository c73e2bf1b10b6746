"""Replica routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from synthjobs.routes.dependencies import get_orchestrator, get_reconciler
from synthjobs.schemas.error import ErrorResponse, NoLeakNotFoundError
from synthjobs.schemas.job import CreateReplicaRequest, ReplicaJob
from synthjobs.services.orchestrator import JobOrchestrator
from synthjobs.services.reconciler import StatusReconciler

router = APIRouter(tags=["Replicas"])


@router.post(
    "/replicas",
    response_model=ReplicaJob,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def create_replica(
    payload: CreateReplicaRequest,
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
) -> ReplicaJob:
    return orchestrator.request_replica(
        train_video_url=payload.train_video_url,
        replica_name=payload.replica_name,
    )


@router.get(
    "/replicas/status",
    response_model=ReplicaJob,
    responses={404: {"model": NoLeakNotFoundError}},
)
def get_replica_status(
    replica_id: Annotated[str, Query(alias="id", min_length=1)],
    response: Response,
    reconciler: Annotated[StatusReconciler, Depends(get_reconciler)],
) -> ReplicaJob:
    result = reconciler.get_replica_status(replica_id)
    response.status_code = result.http_status
    return result.job
