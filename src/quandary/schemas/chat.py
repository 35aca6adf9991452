"""Chat-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from .common import CamelModel


class ChatAuthor(CamelModel):
    user_id: int
    username: str
    avatar: str | None
    level: int


class ChatMessageResponse(CamelModel):
    """A chat message as shown in a question room, with its replies."""

    id: int
    question_id: int
    parent_id: int | None
    message: str
    created_at: datetime
    user: ChatAuthor
    replies: list[ChatMessageResponse] = []
