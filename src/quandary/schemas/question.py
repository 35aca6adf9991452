"""Question-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from quandary.models.question import ModerationStatus, QuestionSource

from .badge import BadgeSummary
from .common import CamelModel
from .vote import LevelProgress, QuestionStatsResponse

FlagReason = Literal["inappropriate", "spam", "offensive", "duplicate", "low-quality"]


class QuestionCreate(CamelModel):
    """Body of a question submission."""

    option_a: str = Field(..., min_length=5, max_length=200)
    option_b: str = Field(..., min_length=5, max_length=200)
    category: str = Field("general", min_length=2, max_length=40)
    source: QuestionSource = QuestionSource.USER

    @field_validator("option_a", "option_b", "category")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class QuestionResponse(CamelModel):
    """A question with its current tally."""

    id: int
    created_by: int
    option_a: str
    option_b: str
    category: str
    source: QuestionSource
    moderation_status: ModerationStatus
    is_active: bool
    created_at: datetime
    stats: QuestionStatsResponse


class QuestionCreateResponse(CamelModel):
    """Outcome of a question submission."""

    question: QuestionResponse
    points_earned: LevelProgress
    earned_badges: list[BadgeSummary]


class QuestionReport(CamelModel):
    """Body of a moderation flag raised by a user."""

    reason: FlagReason


class QuestionModeration(CamelModel):
    """Body of a moderator decision."""

    status: ModerationStatus
    reason: str | None = Field(None, max_length=500)
