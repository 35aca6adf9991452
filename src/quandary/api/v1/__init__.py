"""Version 1 API endpoints."""

from .endpoints import (
    chat_router,
    questions_router,
    realtime_router,
    users_router,
    votes_router,
)

__all__ = [
    "chat_router",
    "questions_router",
    "realtime_router",
    "users_router",
    "votes_router",
]
