"""Models capturing votes on questions."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from quandary.db.session import Base
from quandary.db.time import utcnow


class VoteChoice(str, enum.Enum):
    """The two sides of a question."""

    A = "A"
    B = "B"


class Vote(Base):
    """One user's choice on one question."""

    __tablename__ = "vote"
    __table_args__ = (
        # One vote per user per question, enforced by the store.
        UniqueConstraint("user_id", "question_id", name="uq_vote_user_question"),
        CheckConstraint("confidence BETWEEN 1 AND 5", name="ck_vote_confidence"),
        CheckConstraint("decision_time >= 0", name="ck_vote_decision_time"),
        Index("ix_vote_question_choice", "question_id", "choice"),
        Index("ix_vote_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
    )
    question_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("question.id", ondelete="CASCADE"),
        nullable=False,
    )
    choice: Mapped[VoteChoice] = mapped_column(
        Enum(VoteChoice, native_enum=False, length=1),
        nullable=False,
    )
    # Milliseconds the voter spent deciding.
    decision_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confidence: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=3)
    # Points granted when the vote was recorded; reversed on moderator deletion.
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
