"""SQLAlchemy models for users and their gamification state."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quandary.db.session import Base
from quandary.db.time import utcnow


class UserRole(str, enum.Enum):
    """Roles recognised by the permission checks."""

    USER = "user"
    ADMIN = "admin"


class User(Base):
    """Account identity as supplied by the authentication collaborator."""

    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    avatar: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, native_enum=False, length=16),
        nullable=False,
        default=UserRole.USER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    stats: Mapped[UserStats] = relationship(
        "UserStats",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
    )

    @property
    def is_admin(self) -> bool:
        """Return True when the user may perform moderation actions."""
        return self.role == UserRole.ADMIN


class UserStats(Base):
    """Cumulative gamification counters, kept apart from identity metadata.

    ``level`` is derived from ``experience``; it is stored only so that
    leaderboards can sort on it and is rewritten on every experience change.
    """

    __tablename__ = "user_stats"

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        primary_key=True,
    )
    questions_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    votes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    experience: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Null until the first streak-bearing activity.
    last_activity: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="stats")
