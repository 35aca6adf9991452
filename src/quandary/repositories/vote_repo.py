"""Data access helpers for vote analytics.

Tallies and percentages always come from the question row written by the
vote ledger; the reports here only add figures the ledger does not keep.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Literal

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from quandary.core.settings import settings
from quandary.db.time import as_utc, utcnow
from quandary.models import Question, User, Vote, VoteChoice
from quandary.services.voting import split_percentages

__all__ = [
    "CategoryPreference",
    "ChoiceTimelinePoint",
    "QuestionVoteReport",
    "RecentVoteRow",
    "TrendBucket",
    "TrendTimeframe",
    "VoteHistoryRow",
    "VoteRepository",
    "VotingPatterns",
]

TrendTimeframe = Literal["hourly", "daily", "monthly"]


@dataclass(frozen=True)
class RecentVoteRow:
    user_id: int
    username: str
    avatar: str | None
    choice: VoteChoice
    created_at: datetime


@dataclass(frozen=True)
class QuestionVoteReport:
    """Aggregate view of one question's votes."""

    question_id: int
    total_votes: int
    option_a_votes: int
    option_b_votes: int
    option_a_percentage: int
    option_b_percentage: int
    average_decision_time: float
    average_confidence: float
    fastest_decision: int | None
    slowest_decision: int | None
    recent_votes: list[RecentVoteRow]


@dataclass(frozen=True)
class ChoiceTimelinePoint:
    day: date
    option_a_votes: int
    option_b_votes: int


@dataclass(frozen=True)
class VoteHistoryRow:
    vote_id: int
    question_id: int
    option_a: str
    option_b: str
    category: str
    question_total_votes: int
    choice: VoteChoice
    decision_time: int
    confidence: int
    created_at: datetime


@dataclass(frozen=True)
class VotingPatterns:
    """How a single user tends to vote."""

    user_id: int
    total_votes: int
    option_a_votes: int
    option_b_votes: int
    option_a_percentage: int
    option_b_percentage: int
    average_decision_time: float
    average_confidence: float
    fastest_decision: int | None
    slowest_decision: int | None
    # Local hour (0-23) and weekday (0 = Sunday) in the streak calendar.
    votes_by_hour: dict[int, int]
    votes_by_weekday: dict[int, int]


@dataclass(frozen=True)
class CategoryPreference:
    category: str
    total_votes: int
    average_decision_time: int
    average_confidence: float


@dataclass(frozen=True)
class TrendBucket:
    period_start: datetime
    total_votes: int
    unique_users: int
    average_decision_time: int
    average_confidence: float


def _bucket_start(moment: datetime, timeframe: TrendTimeframe) -> datetime:
    local = as_utc(moment).astimezone(settings.calendar_zone)
    if timeframe == "hourly":
        return local.replace(minute=0, second=0, microsecond=0)
    if timeframe == "monthly":
        return local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


_TREND_SPAN = {"hourly": timedelta(hours=1), "daily": timedelta(days=1), "monthly": timedelta(days=31)}


class VoteRepository:
    """Read-only queries over the vote table."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def question_report(self, question_id: int, *, recent_limit: int = 10) -> QuestionVoteReport | None:
        """Return the committed tally plus confidence, decision extremes and the latest voters.

        Returns None when the question does not exist.
        """
        question = self.session.get(Question, question_id, populate_existing=True)
        if question is None:
            return None

        avg_confidence, fastest, slowest = self.session.execute(
            select(
                func.avg(Vote.confidence),
                func.min(Vote.decision_time),
                func.max(Vote.decision_time),
            ).where(Vote.question_id == question_id)
        ).one()

        recent = self.session.execute(
            select(User.id, User.username, User.avatar, Vote.choice, Vote.created_at)
            .join(User, User.id == Vote.user_id)
            .where(Vote.question_id == question_id)
            .order_by(Vote.created_at.desc(), Vote.id.desc())
            .limit(recent_limit)
        ).all()

        return QuestionVoteReport(
            question_id=question.id,
            total_votes=question.total_votes,
            option_a_votes=question.option_a_votes,
            option_b_votes=question.option_b_votes,
            option_a_percentage=question.option_a_percentage,
            option_b_percentage=question.option_b_percentage,
            average_decision_time=question.average_decision_time,
            average_confidence=round(float(avg_confidence or 0.0), 1),
            fastest_decision=fastest,
            slowest_decision=slowest,
            recent_votes=[
                RecentVoteRow(
                    user_id=user_id,
                    username=username,
                    avatar=avatar,
                    choice=VoteChoice(choice),
                    created_at=created_at,
                )
                for user_id, username, avatar, choice, created_at in recent
            ],
        )

    def question_timeline(self, question_id: int) -> list[ChoiceTimelinePoint]:
        """Return per-day choice counts for a question, oldest day first."""
        rows = self.session.execute(
            select(Vote.choice, Vote.created_at).where(Vote.question_id == question_id)
        ).all()
        days: dict[date, Counter[VoteChoice]] = {}
        for choice, created_at in rows:
            day = as_utc(created_at).astimezone(settings.calendar_zone).date()
            days.setdefault(day, Counter())[VoteChoice(choice)] += 1
        return [
            ChoiceTimelinePoint(
                day=day,
                option_a_votes=counts[VoteChoice.A],
                option_b_votes=counts[VoteChoice.B],
            )
            for day, counts in sorted(days.items())
        ]

    def voting_days(self, user_id: int, *, limit: int = 30) -> list[date]:
        """Return the calendar days the user voted on, most recent first."""
        days = {
            as_utc(created_at).astimezone(settings.calendar_zone).date()
            for created_at in self.session.scalars(select(Vote.created_at).where(Vote.user_id == user_id))
        }
        return sorted(days, reverse=True)[:limit]

    def user_history(
        self,
        user_id: int,
        *,
        limit: int = 10,
        before: int | None = None,
    ) -> list[VoteHistoryRow]:
        """Return a user's votes newest first, paging backwards by vote id."""
        query = (
            select(Vote, Question.option_a, Question.option_b, Question.category, Question.total_votes)
            .join(Question, Question.id == Vote.question_id)
            .where(Vote.user_id == user_id)
        )
        if before is not None:
            query = query.where(Vote.id < before)
        rows = self.session.execute(query.order_by(Vote.id.desc()).limit(limit)).all()
        return [
            VoteHistoryRow(
                vote_id=vote.id,
                question_id=vote.question_id,
                option_a=option_a,
                option_b=option_b,
                category=category,
                question_total_votes=total_votes,
                choice=vote.choice,
                decision_time=vote.decision_time,
                confidence=vote.confidence,
                created_at=vote.created_at,
            )
            for vote, option_a, option_b, category, total_votes in rows
        ]

    def user_patterns(self, user_id: int) -> VotingPatterns:
        """Summarize a user's choices, timing and active hours."""
        total, option_a, option_b, avg_time, avg_confidence, fastest, slowest = self.session.execute(
            select(
                func.count(Vote.id),
                func.coalesce(func.sum(case((Vote.choice == VoteChoice.A, 1), else_=0)), 0),
                func.coalesce(func.sum(case((Vote.choice == VoteChoice.B, 1), else_=0)), 0),
                func.avg(Vote.decision_time),
                func.avg(Vote.confidence),
                func.min(Vote.decision_time),
                func.max(Vote.decision_time),
            ).where(Vote.user_id == user_id)
        ).one()

        by_hour: Counter[int] = Counter()
        by_weekday: Counter[int] = Counter()
        for created_at in self.session.scalars(select(Vote.created_at).where(Vote.user_id == user_id)):
            local = as_utc(created_at).astimezone(settings.calendar_zone)
            by_hour[local.hour] += 1
            by_weekday[(local.weekday() + 1) % 7] += 1

        pct_a, pct_b = split_percentages(option_a, option_b)
        return VotingPatterns(
            user_id=user_id,
            total_votes=total,
            option_a_votes=option_a,
            option_b_votes=option_b,
            option_a_percentage=pct_a,
            option_b_percentage=pct_b,
            average_decision_time=float(avg_time or 0.0),
            average_confidence=round(float(avg_confidence or 0.0), 1),
            fastest_decision=fastest,
            slowest_decision=slowest,
            votes_by_hour=dict(sorted(by_hour.items())),
            votes_by_weekday=dict(sorted(by_weekday.items())),
        )

    def category_preferences(self, user_id: int | None = None) -> list[CategoryPreference]:
        """Return vote counts per question category, most voted first.

        Without ``user_id`` the breakdown covers every vote on the platform.
        """
        query = (
            select(
                Question.category,
                func.count(Vote.id),
                func.avg(Vote.decision_time),
                func.avg(Vote.confidence),
            )
            .join(Question, Question.id == Vote.question_id)
            .group_by(Question.category)
            .order_by(func.count(Vote.id).desc(), Question.category)
        )
        if user_id is not None:
            query = query.where(Vote.user_id == user_id)
        return [
            CategoryPreference(
                category=category,
                total_votes=total,
                average_decision_time=round(float(avg_time or 0.0)),
                average_confidence=round(float(avg_confidence or 0.0), 1),
            )
            for category, total, avg_time, avg_confidence in self.session.execute(query)
        ]

    def voting_trends(
        self,
        timeframe: TrendTimeframe = "daily",
        *,
        limit: int = 30,
        now: datetime | None = None,
    ) -> list[TrendBucket]:
        """Return platform voting activity per hour, day or month, newest first.

        Only the ``limit`` most recent periods are covered.
        """
        current = _bucket_start(now or utcnow(), timeframe)
        since = (current - _TREND_SPAN[timeframe] * (limit - 1)).astimezone(UTC)
        rows = self.session.execute(
            select(Vote.created_at, Vote.user_id, Vote.decision_time, Vote.confidence).where(
                Vote.created_at >= since
            )
        ).all()

        buckets: dict[datetime, list[tuple[int, int, int]]] = {}
        for created_at, user_id, decision_time, confidence in rows:
            start = _bucket_start(created_at, timeframe)
            buckets.setdefault(start, []).append((user_id, decision_time, confidence))

        trends = []
        for start in sorted(buckets, reverse=True)[:limit]:
            votes = buckets[start]
            trends.append(
                TrendBucket(
                    period_start=start,
                    total_votes=len(votes),
                    unique_users=len({user_id for user_id, _, _ in votes}),
                    average_decision_time=round(sum(t for _, t, _ in votes) / len(votes)),
                    average_confidence=round(sum(c for _, _, c in votes) / len(votes), 1),
                )
            )
        return trends
