"""Badge-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from .common import CamelModel


class BadgeSummary(CamelModel):
    """Public view of a badge definition."""

    id: int
    name: str
    description: str
    icon: str
    category: str
    rarity: str
    points: int


class EarnedBadge(BadgeSummary):
    """A badge held by the user, with the time it was earned."""

    earned_at: datetime


class AvailableBadge(BadgeSummary):
    """A visible badge the user has not earned yet."""

    requirement_type: str
    threshold: int
    timeframe: str
    additional_criteria: dict[str, Any]
