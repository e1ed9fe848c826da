"""API routes package."""

from .authorize import router as authorize_router
from .health import router as health_router
from .sync import router as sync_router

__all__ = [
    "authorize_router",
    "health_router",
    "sync_router",
]
