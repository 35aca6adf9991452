"""Models for badge definitions and the per-user earned-badge set."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from quandary.db.session import Base
from quandary.db.time import utcnow

RARITY_SCORES = {"common": 1, "rare": 2, "epic": 3, "legendary": 4}


class Badge(Base):
    """An achievement definition with its qualification rule."""

    __tablename__ = "badge"
    __table_args__ = (Index("ix_badge_active", "is_active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon: Mapped[str] = mapped_column(String(64), nullable=False, default="star")
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    rarity: Mapped[str] = mapped_column(String(12), nullable=False, default="common")

    # Requirement descriptor
    requirement_type: Mapped[str] = mapped_column(String(32), nullable=False)
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    timeframe: Mapped[str] = mapped_column(String(12), nullable=False, default="all_time")
    additional_criteria: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Secret badges are hidden from the "available" listing until earned.
    is_secret: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Unlock preconditions
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    required_badges: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    excluded_badges: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    # Award statistics
    total_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_earned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_earned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def rarity_score(self) -> int:
        """Return a sortable score for the badge rarity."""
        return RARITY_SCORES.get(self.rarity, 1)


class BadgeAward(Base):
    """One element of a user's earned-badge set."""

    __tablename__ = "badge_award"
    __table_args__ = (
        # A badge is awarded to a given user at most once.
        UniqueConstraint("user_id", "badge_id", name="uq_badge_award_user_badge"),
        Index("ix_badge_award_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
    )
    badge_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("badge.id", ondelete="CASCADE"),
        nullable=False,
    )
    trigger: Mapped[str] = mapped_column(String(32), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
