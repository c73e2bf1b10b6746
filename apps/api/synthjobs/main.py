"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from synthjobs.core.config import get_settings
from synthjobs.core.logging_safety import configure_logging
from synthjobs.errors import ApiError
from synthjobs.routes import health_router, replicas_router, videos_router, webhooks_router
from synthjobs.routes.dependencies import build_store, build_vendor_client
from synthjobs.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.vendor_client.close()
    dispose = getattr(app.state.store, "dispose", None)
    if dispose is not None:
        dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Synthjobs API", version="1.0.0", lifespan=lifespan)
    app.state.store = build_store(settings)
    app.state.vendor_client = build_vendor_client(settings)
    app.state.clock = _utcnow
    app.state.sleep = time.sleep
    logger.info(
        "app.configured vendor_provider=%s store=%s webhook_signing=%s",
        settings.vendor_provider,
        type(app.state.store).__name__,
        "enabled" if settings.webhook_secret else "disabled",
    )

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = sorted({".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()})
        payload = ErrorResponse(
            code="INVALID_INPUT",
            message="Invalid request payload",
            details={"fields": fields},
        )
        return JSONResponse(status_code=400, content=payload.model_dump(exclude_none=True))

    api_prefix = "/api/v1"
    app.include_router(health_router)
    app.include_router(replicas_router, prefix=api_prefix)
    app.include_router(videos_router, prefix=api_prefix)
    app.include_router(webhooks_router, prefix=api_prefix)

    return app


app = create_app()
