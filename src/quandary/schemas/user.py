"""User-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from .badge import EarnedBadge
from .common import CamelModel


class UserStatsResponse(CamelModel):
    """A user's gamification state."""

    questions_created: int
    votes_count: int
    points: int
    experience: int
    level: int
    current_streak: int
    longest_streak: int
    last_activity: datetime | None
    badges: list[EarnedBadge]


class LeaderboardEntry(CamelModel):
    """One row of the points leaderboard."""

    rank: int
    user_id: int
    username: str
    avatar: str | None
    points: int
    level: int
    questions_created: int
    votes_count: int
    current_streak: int
