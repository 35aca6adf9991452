"""API endpoint modules for version 1."""

from .chat import router as chat_router
from .questions import router as questions_router
from .realtime import router as realtime_router
from .users import router as users_router
from .votes import router as votes_router

__all__ = [
    "chat_router",
    "questions_router",
    "realtime_router",
    "users_router",
    "votes_router",
]
