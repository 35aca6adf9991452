"""Question moderation state transitions.

The functions here are pure: they take the current state and return the
next one. Persisting the result is the caller's job.
"""

from __future__ import annotations

from quandary.core.errors import InputValidationError
from quandary.models.question import ModerationStatus, QuestionSource


def initial_status(source: QuestionSource, *, auto_approve_user_questions: bool) -> ModerationStatus:
    """Return the moderation status of a freshly created question.

    AI questions are filtered upstream and go live immediately; user questions
    go live only when auto-approval is enabled.
    """
    if source == QuestionSource.AI or auto_approve_user_questions:
        return ModerationStatus.APPROVED
    return ModerationStatus.PENDING


def status_after_flag(status: ModerationStatus, flag_count: int, *, threshold: int) -> ModerationStatus:
    """Return the status after a user report brings the flag count to ``flag_count``.

    Reaching the threshold sends an approved question back for review.
    Rejected questions stay rejected.
    """
    if status == ModerationStatus.APPROVED and flag_count >= threshold:
        return ModerationStatus.PENDING
    return status


def apply_decision(
    status: ModerationStatus,
    decision: ModerationStatus,
) -> tuple[ModerationStatus, bool]:
    """Return ``(new_status, is_active)`` after a moderator decision.

    Args:
        status: Current status (any status may be re-moderated).
        decision: The moderator's verdict.

    Raises:
        InputValidationError: If a pending question is sent back to pending.
    """
    if decision == ModerationStatus.PENDING and status == ModerationStatus.PENDING:
        raise InputValidationError("Question is already pending review")
    return decision, decision != ModerationStatus.REJECTED
