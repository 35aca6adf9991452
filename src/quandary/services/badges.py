"""Badge qualification and awarding.

A badge lands in a user's earned set through an insert guarded by the
``(user_id, badge_id)`` unique constraint. The insert, the reward points and
the badge statistics commit together, so an award is all-or-nothing and a
concurrent duplicate simply loses the insert race.
"""

from __future__ import annotations

import enum
import logging
from datetime import UTC, datetime, timedelta, tzinfo

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from quandary.core.errors import QuandaryError
from quandary.core.settings import settings
from quandary.db.retry import store_retry
from quandary.db.time import as_utc, utcnow
from quandary.models import Badge, BadgeAward, ChatMessage, Question, UserStats, Vote

logger = logging.getLogger(__name__)


class BadgeTrigger(str, enum.Enum):
    """Events that start an evaluation pass."""

    VOTE = "vote"
    QUESTION_CREATED = "question_created"
    CHAT_MESSAGE = "chat_message"


class UnknownRequirementError(ValueError):
    """The badge declares a requirement type or timeframe we cannot measure."""


def timeframe_start(timeframe: str, now: datetime, zone: tzinfo) -> datetime | None:
    """Return the UTC start of the calendar period containing ``now``.

    Weeks start on Sunday. ``all_time`` has no lower bound and returns None.
    """
    if timeframe == "all_time":
        return None
    local = as_utc(now).astimezone(zone)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe == "daily":
        start = midnight
    elif timeframe == "weekly":
        start = midnight - timedelta(days=(local.weekday() + 1) % 7)
    elif timeframe == "monthly":
        start = midnight.replace(day=1)
    else:
        raise UnknownRequirementError(f"Unknown timeframe {timeframe!r}")
    return start.astimezone(UTC)


class BadgeEvaluator:
    """Evaluates badge rules against a user's statistics and awards badges."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @store_retry
    def evaluate_and_award(
        self,
        user_id: int,
        trigger: BadgeTrigger,
        *,
        now: datetime | None = None,
    ) -> list[Badge]:
        """Award every active badge the user now qualifies for.

        Each award commits on its own, so this must run after the caller has
        committed its own unit of work.

        Returns:
            The badges newly awarded by this pass, possibly empty.
        """
        now = as_utc(now or utcnow())
        held = set(
            self.db.scalars(select(BadgeAward.badge_id).where(BadgeAward.user_id == user_id))
        )
        candidates = self.db.scalars(
            select(Badge).where(Badge.is_active.is_(True)).order_by(Badge.id)
        ).all()

        awarded: list[Badge] = []
        for badge in candidates:
            if badge.id in held:
                continue
            stats = self._load_stats(user_id)
            if stats is None:
                return awarded
            try:
                qualifies = self.qualifies(badge, stats, held, now)
            except UnknownRequirementError as err:
                logger.warning("Skipping badge %r: %s", badge.name, err)
                continue
            except (TypeError, ValueError, LookupError, AttributeError):
                logger.warning("Skipping badge %r with malformed criteria", badge.name, exc_info=True)
                continue
            if qualifies and self._award(user_id, badge, trigger, now):
                held.add(badge.id)
                awarded.append(badge)

        if awarded:
            logger.info(
                "User %s earned %s on %s",
                user_id,
                ", ".join(badge.name for badge in awarded),
                trigger.value,
            )
        return awarded

    def evaluate_quietly(self, user_id: int, trigger: BadgeTrigger) -> list[Badge]:
        """Run :meth:`evaluate_and_award`, logging failures instead of raising.

        Badge evaluation never fails the request that triggered it.
        """
        try:
            return self.evaluate_and_award(user_id, trigger)
        except (QuandaryError, SQLAlchemyError):
            self.db.rollback()
            logger.error("Badge evaluation failed for user %s", user_id, exc_info=True)
            return []

    def qualifies(self, badge: Badge, stats: UserStats, held: set[int], now: datetime) -> bool:
        """Return True if ``badge`` can be awarded given the user's state.

        Raises:
            UnknownRequirementError: If the requirement cannot be measured.
        """
        if badge.start_date is not None and now < as_utc(badge.start_date):
            return False
        if badge.end_date is not None and now > as_utc(badge.end_date):
            return False
        if any(required not in held for required in badge.required_badges or []):
            return False
        if any(excluded in held for excluded in badge.excluded_badges or []):
            return False
        return self.measure(badge, stats, now) >= badge.threshold

    def measure(self, badge: Badge, stats: UserStats, now: datetime) -> int:
        """Return the user's current value for the badge's requirement."""
        criteria = badge.additional_criteria or {}
        category = criteria.get("category")
        requirement = badge.requirement_type
        start = timeframe_start(badge.timeframe, now, settings.calendar_zone)

        if requirement == "vote_count":
            if start is None and category is None:
                return stats.votes_count
            query = select(func.count(Vote.id)).where(Vote.user_id == stats.user_id)
            if start is not None:
                query = query.where(Vote.created_at >= start)
            if category is not None:
                query = query.join(Question, Question.id == Vote.question_id).where(
                    Question.category == category
                )
            return self.db.scalar(query) or 0

        if requirement == "question_count":
            if start is None and category is None:
                return stats.questions_created
            query = select(func.count(Question.id)).where(Question.created_by == stats.user_id)
            if start is not None:
                query = query.where(Question.created_at >= start)
            if category is not None:
                query = query.where(Question.category == category)
            return self.db.scalar(query) or 0

        if requirement == "streak_count":
            return stats.current_streak if criteria.get("consecutive") else stats.longest_streak

        if requirement == "points_total":
            return stats.points

        if requirement == "level_reached":
            return stats.level

        if requirement == "social_actions":
            # Chat messages are the only social action recorded.
            query = select(func.count(ChatMessage.id)).where(ChatMessage.user_id == stats.user_id)
            if start is not None:
                query = query.where(ChatMessage.created_at >= start)
            if category is not None:
                query = query.join(Question, Question.id == ChatMessage.question_id).where(
                    Question.category == category
                )
            return self.db.scalar(query) or 0

        raise UnknownRequirementError(f"Unknown requirement type {requirement!r}")

    def _load_stats(self, user_id: int) -> UserStats | None:
        return self.db.execute(
            select(UserStats)
            .where(UserStats.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _award(self, user_id: int, badge: Badge, trigger: BadgeTrigger, now: datetime) -> bool:
        badge_id = badge.id
        self.db.add(BadgeAward(user_id=user_id, badge_id=badge_id, trigger=trigger.value, earned_at=now))
        try:
            self.db.flush()
        except IntegrityError:
            # Another pass awarded it first; the badge is held either way.
            self.db.rollback()
            logger.debug("Badge %s already held by user %s", badge_id, user_id)
            return False

        self.db.execute(
            update(UserStats)
            .where(UserStats.user_id == user_id)
            .values(points=UserStats.points + badge.points)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(
            update(Badge)
            .where(Badge.id == badge_id)
            .values(
                total_earned=Badge.total_earned + 1,
                first_earned_at=func.coalesce(Badge.first_earned_at, now),
                last_earned_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return True
