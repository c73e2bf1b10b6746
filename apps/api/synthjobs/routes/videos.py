"""Video routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Response, status

from synthjobs.routes.dependencies import get_orchestrator, get_reconciler
from synthjobs.schemas.error import ErrorResponse, NoLeakNotFoundError
from synthjobs.schemas.job import CreateVideoRequest, VideoJob, VideoJobList
from synthjobs.services.orchestrator import JobOrchestrator
from synthjobs.services.reconciler import StatusReconciler

router = APIRouter(tags=["Videos"])


@router.post(
    "/videos",
    response_model=VideoJob,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def create_video(
    payload: CreateVideoRequest,
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
) -> VideoJob:
    return orchestrator.request_video(
        persona_id=payload.persona_id,
        replica_id=payload.replica_id,
        script=payload.script,
        audio_url=payload.audio_url,
    )


@router.get(
    "/videos/status",
    response_model=VideoJob,
    responses={404: {"model": NoLeakNotFoundError}},
)
def get_video_status(
    video_id: Annotated[str, Query(alias="id", min_length=1)],
    response: Response,
    reconciler: Annotated[StatusReconciler, Depends(get_reconciler)],
) -> VideoJob:
    result = reconciler.get_video_status(video_id)
    response.status_code = result.http_status
    return result.job


@router.get("/personas/{personaId}/videos", response_model=VideoJobList)
def list_persona_videos(
    persona_id: Annotated[str, Path(alias="personaId")],
    reconciler: Annotated[StatusReconciler, Depends(get_reconciler)],
) -> VideoJobList:
    return VideoJobList(items=reconciler.list_persona_videos(persona_id))
