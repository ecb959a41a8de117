"""API endpoint modules for version 1."""

from .system import router as system_router
from .votes import router as votes_router

__all__ = [
    "system_router",
    "votes_router",
]
