"""Question lifecycle: creation, engagement counters and moderation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from quandary.core.errors import NotFoundError
from quandary.core.settings import settings
from quandary.db.retry import store_retry
from quandary.db.time import utcnow
from quandary.models import Badge, ModerationStatus, Question, QuestionSource, User
from quandary.schemas.question import QuestionCreate

from .badges import BadgeEvaluator, BadgeTrigger
from .moderation import apply_decision, initial_status, status_after_flag
from .progression import LevelProgress, UserProgressionEngine

logger = logging.getLogger(__name__)


@dataclass
class QuestionCreation:
    question: Question
    progress: LevelProgress
    earned_badges: list[Badge] = field(default_factory=list)


class QuestionService:
    """Creates questions and applies counter and moderation updates to them."""

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
    def create_question(self, author: User, data: QuestionCreate) -> QuestionCreation:
        """Persist a question and credit its author.

        AI-assisted questions earn fewer points than user-authored ones.
        """
        question = Question(
            created_by=author.id,
            option_a=data.option_a,
            option_b=data.option_b,
            category=data.category,
            source=data.source,
            moderation_status=initial_status(
                data.source,
                auto_approve_user_questions=settings.auto_approve_user_questions,
            ),
        )
        self.db.add(question)
        self.db.flush()
        progress = self.progression.award_question_creation_points(
            author.id, is_ai_generated=data.source == QuestionSource.AI
        )
        self.db.commit()
        self.db.refresh(question)
        logger.info("User %s created question %s (%s)", author.id, question.id, question.moderation_status.value)

        earned = self.badges.evaluate_quietly(author.id, BadgeTrigger.QUESTION_CREATED)
        return QuestionCreation(question=question, progress=progress, earned_badges=earned)

    @store_retry
    def record_view(self, question_id: int) -> Question:
        """Count a view and refresh the engagement rate in the same statement."""
        result = self.db.execute(
            update(Question)
            .where(Question.id == question_id)
            .values(
                views=Question.views + 1,
                # SET expressions see the pre-update row, hence views + 1.
                engagement_rate=Question.total_votes * 100.0 / (Question.views + 1),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise NotFoundError("Question not found")
        self.db.commit()
        return self._get(question_id)

    @store_retry
    def record_share(self, question_id: int) -> Question:
        result = self.db.execute(
            update(Question)
            .where(Question.id == question_id)
            .values(shares=Question.shares + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise NotFoundError("Question not found")
        self.db.commit()
        return self._get(question_id)

    @store_retry
    def report(self, question_id: int, reason: str) -> Question:
        """Add a user flag; enough flags send an approved question back to review."""
        question = self._lock(question_id)
        flags = [*(question.flags or []), reason]
        question.flags = flags
        new_status = status_after_flag(
            question.moderation_status,
            len(flags),
            threshold=settings.flag_review_threshold,
        )
        if new_status != question.moderation_status:
            logger.info("Question %s flagged %d times, back to review", question_id, len(flags))
            question.moderation_status = new_status
        self.db.commit()
        return question

    @store_retry
    def moderate(
        self,
        question_id: int,
        moderator: User,
        decision: ModerationStatus,
        reason: str | None = None,
    ) -> Question:
        """Apply a moderator decision. Rejecting also deactivates the question."""
        question = self._lock(question_id)
        status, is_active = apply_decision(question.moderation_status, decision)
        question.moderation_status = status
        question.is_active = is_active
        question.moderated_by = moderator.id
        question.moderated_at = utcnow()
        if reason:
            question.moderation_reason = reason
        self.db.commit()
        logger.info("Question %s moderated to %s by %s", question_id, status.value, moderator.id)
        return question

    def _get(self, question_id: int) -> Question:
        question = self.db.execute(
            select(Question)
            .where(Question.id == question_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if question is None:
            raise NotFoundError("Question not found")
        return question

    def _lock(self, question_id: int) -> Question:
        question = self.db.execute(
            select(Question)
            .where(Question.id == question_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if question is None:
            raise NotFoundError("Question not found")
        return question
