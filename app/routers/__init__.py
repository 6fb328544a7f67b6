"""API routers."""

from app.routers.cascade import router as cascade_router
from app.routers.internal import router as internal_router

__all__ = [
    "cascade_router",
    "internal_router",
]
