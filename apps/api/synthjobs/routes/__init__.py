"""Route modules."""

from .health import router as health_router
from .replicas import router as replicas_router
from .videos import router as videos_router
from .webhooks import router as webhooks_router

__all__ = ["health_router", "replicas_router", "videos_router", "webhooks_router"]
