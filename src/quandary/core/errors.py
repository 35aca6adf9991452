"""Domain exceptions raised by the Quandary services.

Every exception carries the HTTP status code it maps to; the API layer
renders them through a single exception handler.
"""

from __future__ import annotations

from fastapi import status


class QuandaryError(RuntimeError):
    """Base class for all domain failures reported to the caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputValidationError(QuandaryError):
    """Malformed input rejected before any mutation."""


class QuestionUnavailableError(InputValidationError):
    """The question is inactive or has not been approved by moderation."""

    def __init__(self, message: str = "Question is not available for voting") -> None:
        super().__init__(message)


class ConflictError(QuandaryError):
    """A uniqueness rule was violated."""

    status_code = status.HTTP_409_CONFLICT


class AlreadyVotedError(ConflictError):
    """The user already holds a vote on this question."""

    def __init__(self, message: str = "You have already voted on this question") -> None:
        super().__init__(message)


class NotFoundError(QuandaryError):
    """A referenced question, vote or user does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class NoExistingVoteError(NotFoundError):
    """A vote change was requested but the user never voted."""

    def __init__(self, message: str = "No vote found to change") -> None:
        super().__init__(message)


class WindowExpiredError(QuandaryError):
    """An edit was attempted outside the allowed time window."""


class EditWindowExpiredError(WindowExpiredError):
    """The vote is older than the edit window."""


class PermissionDeniedError(QuandaryError):
    """The caller lacks the role or ownership required for the action."""

    status_code = status.HTTP_403_FORBIDDEN


class TransientStoreError(QuandaryError):
    """Storage timed out or was unavailable after all retries."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
