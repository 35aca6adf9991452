"""Data access helpers for users and the leaderboard."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from quandary.db.time import utcnow
from quandary.models import User, UserRole, UserStats

__all__ = ["LeaderboardRow", "LeaderboardPeriod", "UserRepository"]

LeaderboardPeriod = Literal["all", "daily", "weekly", "monthly"]

_PERIOD_DAYS = {"daily": 1, "weekly": 7, "monthly": 30}


@dataclass(frozen=True)
class LeaderboardRow:
    rank: int
    user_id: int
    username: str
    avatar: str | None
    points: int
    level: int
    questions_created: int
    votes_count: int
    current_streak: int


class UserRepository:
    """Queries and helpers for user accounts."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get_active(self, user_id: int) -> User | None:
        """Return an active user by primary key."""
        return self.session.execute(
            select(User).where(User.id == user_id, User.is_active.is_(True))
        ).scalar_one_or_none()

    def create(
        self,
        username: str,
        *,
        avatar: str | None = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        """Persist a user together with an empty stats row."""
        user = User(username=username, avatar=avatar, role=role)
        user.stats = UserStats()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def leaderboard(
        self,
        *,
        limit: int = 10,
        period: LeaderboardPeriod = "all",
        now: datetime | None = None,
    ) -> list[LeaderboardRow]:
        """Return the top users by points.

        ``period`` narrows the board to accounts created within the last day,
        week or month. Ranks are the 1-based position in the sorted result.
        """
        query = (
            select(User, UserStats)
            .join(UserStats, UserStats.user_id == User.id)
            .where(User.is_active.is_(True))
        )
        if period != "all":
            since = (now or utcnow()) - timedelta(days=_PERIOD_DAYS[period])
            query = query.where(User.created_at >= since)
        query = query.order_by(UserStats.points.desc(), UserStats.level.desc(), User.id).limit(limit)

        return [
            LeaderboardRow(
                rank=position,
                user_id=user.id,
                username=user.username,
                avatar=user.avatar,
                points=stats.points,
                level=stats.level,
                questions_created=stats.questions_created,
                votes_count=stats.votes_count,
                current_streak=stats.current_streak,
            )
            for position, (user, stats) in enumerate(self.session.execute(query).all(), start=1)
        ]
