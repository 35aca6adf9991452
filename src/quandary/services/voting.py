"""Vote ledger: one vote per user per question and the derived tallies.

Every mutation follows the same unit of work:

1. lock the question row (``SELECT ... FOR UPDATE`` where the store supports it),
2. write the vote row, relying on the ``(user_id, question_id)`` unique
   constraint instead of a racy check-then-insert,
3. recompute the question's tally from the vote table,
4. apply the voter's progression changes as atomic increments,
5. commit.

Badge evaluation runs after the commit, and broadcasting is left to the caller,
which only ever publishes the post-commit :class:`TallySnapshot`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quandary.core.errors import (
    AlreadyVotedError,
    EditWindowExpiredError,
    NoExistingVoteError,
    NotFoundError,
    QuestionUnavailableError,
)
from quandary.core.settings import settings
from quandary.db.retry import store_retry
from quandary.db.time import as_utc, utcnow
from quandary.models import Badge, Question, Vote, VoteChoice

from .badges import BadgeEvaluator, BadgeTrigger
from .progression import LevelProgress, UserProgressionEngine

logger = logging.getLogger(__name__)


def split_percentages(option_a_votes: int, option_b_votes: int) -> tuple[int, int]:
    """Return integer percentages for both options.

    Option A is rounded half-up and option B takes the complement, so the pair
    always sums to 100 when there are votes and is ``(0, 0)`` when there are none.
    """
    total = option_a_votes + option_b_votes
    if total == 0:
        return 0, 0
    option_a = (200 * option_a_votes + total) // (2 * total)
    return option_a, 100 - option_a


def engagement_rate(total_votes: int, views: int) -> float:
    """Return votes per hundred views, or 0 without views."""
    if views <= 0:
        return 0.0
    return total_votes / views * 100


@dataclass(frozen=True)
class TallySnapshot:
    """Committed vote statistics of a question."""

    question_id: int
    total_votes: int
    option_a_votes: int
    option_b_votes: int
    option_a_percentage: int
    option_b_percentage: int
    average_decision_time: float
    engagement_rate: float
    views: int
    shares: int
    comments: int

    @classmethod
    def from_question(cls, question: Question) -> TallySnapshot:
        return cls(
            question_id=question.id,
            total_votes=question.total_votes,
            option_a_votes=question.option_a_votes,
            option_b_votes=question.option_b_votes,
            option_a_percentage=question.option_a_percentage,
            option_b_percentage=question.option_b_percentage,
            average_decision_time=question.average_decision_time,
            engagement_rate=question.engagement_rate,
            views=question.views,
            shares=question.shares,
            comments=question.comments,
        )


@dataclass
class VoteOutcome:
    """Everything a vote mutation produced."""

    vote: Vote
    stats: TallySnapshot
    progress: LevelProgress | None = None
    streak: int | None = None
    earned_badges: list[Badge] = field(default_factory=list)


class VoteLedger:
    """Records, changes and removes votes while keeping tallies exact."""

    def __init__(
        self,
        db: Session,
        progression: UserProgressionEngine,
        badges: BadgeEvaluator,
    ) -> None:
        self.db = db
        self.progression = progression
        self.badges = badges

    @store_retry
    def submit_vote(
        self,
        user_id: int,
        question_id: int,
        choice: VoteChoice,
        decision_time: int = 0,
        confidence: int = 3,
    ) -> VoteOutcome:
        """Record a first vote on a question.

        Raises:
            NotFoundError: If the question does not exist.
            QuestionUnavailableError: If it is inactive or not approved.
            AlreadyVotedError: If the user already voted on it.
        """
        question = self._lock_question(question_id)
        if not question.accepts_votes:
            raise QuestionUnavailableError()

        vote = Vote(
            user_id=user_id,
            question_id=question_id,
            choice=choice,
            decision_time=decision_time,
            confidence=confidence,
            points_awarded=settings.vote_points,
        )
        self.db.add(vote)
        try:
            self.db.flush()
        except IntegrityError as err:
            self.db.rollback()
            # Any other violation, such as a missing user, propagates.
            if self._has_vote(user_id, question_id):
                raise AlreadyVotedError() from err
            raise

        self._recompute_stats(question)
        progress = self.progression.award_vote_points(user_id)
        streak = self.progression.update_streak(user_id)
        snapshot = TallySnapshot.from_question(question)
        self.db.commit()
        logger.debug(
            "User %s voted %s on question %s (%d total)",
            user_id,
            choice.value,
            question_id,
            snapshot.total_votes,
        )

        earned = self.badges.evaluate_quietly(user_id, BadgeTrigger.VOTE)
        return VoteOutcome(
            vote=vote,
            stats=snapshot,
            progress=progress,
            streak=streak,
            earned_badges=earned,
        )

    @store_retry
    def change_vote(
        self,
        user_id: int,
        question_id: int,
        new_choice: VoteChoice,
        decision_time: int | None = None,
        *,
        now: datetime | None = None,
    ) -> VoteOutcome:
        """Switch an existing vote to ``new_choice`` inside the edit window.

        Raises:
            NotFoundError: If the question does not exist.
            NoExistingVoteError: If the user has not voted on the question.
            EditWindowExpiredError: If the vote is older than the edit window.
        """
        now = as_utc(now or utcnow())
        question = self._lock_question(question_id)
        vote = self.db.execute(
            select(Vote)
            .where(Vote.user_id == user_id, Vote.question_id == question_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if vote is None:
            raise NoExistingVoteError()

        window = timedelta(seconds=settings.vote_edit_window_seconds)
        if now - as_utc(vote.created_at) > window:
            minutes = settings.vote_edit_window_seconds // 60
            raise EditWindowExpiredError(f"Vote can only be changed within {minutes} minutes")

        vote.choice = new_choice
        if decision_time is not None:
            vote.decision_time = decision_time
        vote.updated_at = now
        self.db.flush()

        self._recompute_stats(question)
        snapshot = TallySnapshot.from_question(question)
        self.db.commit()
        return VoteOutcome(vote=vote, stats=snapshot)

    @store_retry
    def delete_vote(self, vote_id: int) -> VoteOutcome:
        """Remove a vote and reverse what it granted. Moderator action.

        Raises:
            NotFoundError: If the vote does not exist.
        """
        located = self.db.get(Vote, vote_id)
        if located is None:
            raise NotFoundError("Vote not found")

        question = self._lock_question(located.question_id)
        vote = self.db.execute(
            select(Vote)
            .where(Vote.id == vote_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if vote is None:
            raise NotFoundError("Vote not found")

        self.db.delete(vote)
        self.db.flush()
        self._recompute_stats(question)
        self.progression.revoke_vote_points(vote.user_id, vote.points_awarded)
        snapshot = TallySnapshot.from_question(question)
        self.db.commit()
        logger.info("Vote %s on question %s removed by moderation", vote_id, question.id)
        return VoteOutcome(vote=vote, stats=snapshot)

    def _has_vote(self, user_id: int, question_id: int) -> bool:
        return (
            self.db.scalar(
                select(Vote.id).where(Vote.user_id == user_id, Vote.question_id == question_id)
            )
            is not None
        )

    def _lock_question(self, question_id: int) -> Question:
        question = self.db.execute(
            select(Question)
            .where(Question.id == question_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if question is None:
            raise NotFoundError("Question not found")
        return question

    def _recompute_stats(self, question: Question) -> None:
        rows = self.db.execute(
            select(
                Vote.choice,
                func.count(Vote.id),
                func.coalesce(func.sum(Vote.decision_time), 0),
            )
            .where(Vote.question_id == question.id)
            .group_by(Vote.choice)
        ).all()

        counts = {VoteChoice.A: 0, VoteChoice.B: 0}
        decision_total = 0
        for choice, count, decision_sum in rows:
            counts[VoteChoice(choice)] = count
            decision_total += decision_sum

        total = counts[VoteChoice.A] + counts[VoteChoice.B]
        question.total_votes = total
        question.option_a_votes = counts[VoteChoice.A]
        question.option_b_votes = counts[VoteChoice.B]
        question.option_a_percentage, question.option_b_percentage = split_percentages(
            counts[VoteChoice.A], counts[VoteChoice.B]
        )
        question.average_decision_time = decision_total / total if total else 0.0
        question.engagement_rate = engagement_rate(total, question.views)
        self.db.flush()
