"""SQLAlchemy models for questions and their embedded vote statistics."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from quandary.db.session import Base
from quandary.db.time import utcnow


class ModerationStatus(str, enum.Enum):
    """Moderation state of a question. Only APPROVED questions accept votes."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class QuestionSource(str, enum.Enum):
    """Who wrote the question text."""

    USER = "user"
    AI = "ai"


class Question(Base):
    """A binary "would you rather" question.

    The ``total_votes`` .. ``engagement_rate`` columns are derived from the
    ``vote`` table and are only ever written by the vote ledger.
    """

    __tablename__ = "question"
    __table_args__ = (
        Index("ix_question_active_status", "is_active", "moderation_status"),
        Index("ix_question_total_votes", "total_votes"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_by: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id"),
        nullable=False,
    )
    option_a: Mapped[str] = mapped_column(Text, nullable=False)
    option_b: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(40), nullable=False, default="general")
    source: Mapped[QuestionSource] = mapped_column(
        Enum(QuestionSource, native_enum=False, length=8),
        nullable=False,
        default=QuestionSource.USER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    # Moderation
    moderation_status: Mapped[ModerationStatus] = mapped_column(
        Enum(ModerationStatus, native_enum=False, length=16),
        nullable=False,
        default=ModerationStatus.PENDING,
    )
    flags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    moderated_by: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("user_account.id"),
        nullable=True,
    )
    moderated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    moderation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Vote statistics
    total_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    option_a_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    option_b_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    option_a_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    option_b_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_decision_time: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    engagement_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shares: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def accepts_votes(self) -> bool:
        """Return True if the question is live for voting."""
        return self.is_active and self.moderation_status == ModerationStatus.APPROVED
