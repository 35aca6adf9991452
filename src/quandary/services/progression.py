"""Points, levels and daily streaks.

All counters are changed with single-statement ``UPDATE ... SET x = x + n``
increments so concurrent awards for the same user never lose an update.
The streak, which is not a plain increment, is written with a
compare-and-set on ``last_activity`` and retried when another writer wins.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, tzinfo

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from quandary.core.errors import ConflictError, NotFoundError
from quandary.core.settings import settings
from quandary.db.time import as_utc, calendar_day, utcnow
from quandary.models import UserStats

logger = logging.getLogger(__name__)

_STREAK_CAS_ATTEMPTS = 5


def level_for_experience(experience: int) -> int:
    """Return ``floor(sqrt(experience / 100)) + 1`` using exact integer math."""
    return math.isqrt(max(experience, 0) // 100) + 1


def next_streak(
    current: int,
    longest: int,
    last_activity: datetime | None,
    now: datetime,
    zone: tzinfo,
) -> tuple[int, int]:
    """Return ``(current, longest)`` after activity at ``now``.

    Gaps are measured in calendar days of ``zone``, not in 24h periods:
    same day keeps the streak, the next day extends it, anything later
    restarts it at 1.
    """
    if last_activity is None:
        current = 1
    else:
        gap = (calendar_day(now, zone) - calendar_day(last_activity, zone)).days
        if gap == 1:
            current += 1
        elif gap > 1:
            current = 1
        else:
            # Same day, or a clock that moved backwards.
            current = max(current, 1)
    return current, max(longest, current)


@dataclass(frozen=True)
class LevelProgress:
    """Result of a points award."""

    points: int
    level_up: bool
    new_level: int


class UserProgressionEngine:
    """Applies points, experience, level and streak changes for a user."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def award_vote_points(self, user_id: int) -> LevelProgress:
        """Credit a vote: +1 vote count and the configured vote points."""
        return self._award(user_id, settings.vote_points, votes=1)

    def award_question_creation_points(self, user_id: int, is_ai_generated: bool) -> LevelProgress:
        """Credit a new question; AI-assisted questions earn less."""
        points = settings.ai_question_points if is_ai_generated else settings.question_points
        return self._award(user_id, points, questions=1)

    def revoke_vote_points(self, user_id: int, points: int) -> None:
        """Reverse the vote count and points granted for a deleted vote.

        Experience is kept, so the level never drops.
        """
        self.db.execute(
            update(UserStats)
            .where(UserStats.user_id == user_id)
            .values(
                votes_count=UserStats.votes_count - 1,
                points=UserStats.points - points,
            )
        )

    def _award(self, user_id: int, points: int, *, votes: int = 0, questions: int = 0) -> LevelProgress:
        row = self.db.execute(
            update(UserStats)
            .where(UserStats.user_id == user_id)
            .values(
                points=UserStats.points + points,
                experience=UserStats.experience + points,
                votes_count=UserStats.votes_count + votes,
                questions_created=UserStats.questions_created + questions,
            )
            .returning(UserStats.experience, UserStats.level)
        ).one_or_none()
        if row is None:
            raise NotFoundError("User stats not found")

        experience, stored_level = row
        new_level = level_for_experience(experience)
        if new_level != stored_level:
            # Only the writer that produced this experience value sets its level;
            # a later concurrent increment will set its own.
            self.db.execute(
                update(UserStats)
                .where(UserStats.user_id == user_id, UserStats.experience == experience)
                .values(level=new_level)
            )
        level_up = new_level > stored_level
        if level_up:
            logger.info("User %s reached level %d", user_id, new_level)
        return LevelProgress(points=points, level_up=level_up, new_level=new_level)

    def update_streak(self, user_id: int, *, now: datetime | None = None) -> int:
        """Record activity at ``now`` and return the resulting current streak."""
        now = as_utc(now or utcnow())
        zone = settings.calendar_zone

        for _ in range(_STREAK_CAS_ATTEMPTS):
            row = self.db.execute(
                select(
                    UserStats.current_streak,
                    UserStats.longest_streak,
                    UserStats.last_activity,
                ).where(UserStats.user_id == user_id)
            ).one_or_none()
            if row is None:
                raise NotFoundError("User stats not found")

            current, longest, last_activity = row
            current, longest = next_streak(current, longest, last_activity, now, zone)
            guard = (
                UserStats.last_activity.is_(None)
                if last_activity is None
                else UserStats.last_activity == last_activity
            )
            result = self.db.execute(
                update(UserStats)
                .where(UserStats.user_id == user_id, guard)
                .values(current_streak=current, longest_streak=longest, last_activity=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return current
            logger.debug("Streak update for user %s lost a race, retrying", user_id)

        raise ConflictError("Streak is being updated concurrently, please retry")
