"""API routers for series-track."""

from .shows import router as shows_router
from .user import router as user_router

__all__ = ["shows_router", "user_router"]
