"""Data access helpers for question room chat."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from quandary.models import ChatMessage, User, UserStats

__all__ = ["ChatMessageRow", "ChatRepository"]


@dataclass(frozen=True)
class ChatMessageRow:
    id: int
    question_id: int
    parent_id: int | None
    message: str
    created_at: datetime
    user_id: int
    username: str
    avatar: str | None
    level: int
    replies: list[ChatMessageRow] = field(default_factory=list)


def _with_author() -> Select:
    return (
        select(ChatMessage, User.username, User.avatar, UserStats.level)
        .join(User, User.id == ChatMessage.user_id)
        .join(UserStats, UserStats.user_id == User.id)
    )


def _row(chat: ChatMessage, username: str, avatar: str | None, level: int) -> ChatMessageRow:
    return ChatMessageRow(
        id=chat.id,
        question_id=chat.question_id,
        parent_id=chat.parent_id,
        message=chat.message,
        created_at=chat.created_at,
        user_id=chat.user_id,
        username=username,
        avatar=avatar,
        level=level,
    )


class ChatRepository:
    """Queries over chat messages posted in question rooms."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def messages_for_question(
        self,
        question_id: int,
        *,
        limit: int = 20,
        before: int | None = None,
        include_replies: bool = True,
    ) -> list[ChatMessageRow]:
        """Return top-level messages newest first, paging backwards by message id.

        With ``include_replies`` each message carries its replies, oldest first.
        """
        query = _with_author().where(
            ChatMessage.question_id == question_id,
            ChatMessage.parent_id.is_(None),
        )
        if before is not None:
            query = query.where(ChatMessage.id < before)
        threads = [
            _row(*row)
            for row in self.session.execute(query.order_by(ChatMessage.id.desc()).limit(limit))
        ]
        if not include_replies or not threads:
            return threads

        by_parent = {thread.id: thread for thread in threads}
        replies = self.session.execute(
            _with_author()
            .where(ChatMessage.parent_id.in_(by_parent))
            .order_by(ChatMessage.id)
        )
        for row in replies:
            reply = _row(*row)
            by_parent[reply.parent_id].replies.append(reply)
        return threads
