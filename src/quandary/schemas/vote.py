"""Vote-related Pydantic schemas."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import Field

from quandary.models.vote import VoteChoice

from .badge import BadgeSummary
from .common import CamelModel


class VoteCreate(CamelModel):
    """Body of a vote submission."""

    choice: VoteChoice
    decision_time: int = Field(0, ge=0, description="Milliseconds spent deciding")
    confidence: int = Field(3, ge=1, le=5, description="Self-reported confidence, 1-5")


class VoteChange(CamelModel):
    """Body of a vote change within the edit window."""

    choice: VoteChoice
    decision_time: int | None = Field(None, ge=0)


class VoteResponse(CamelModel):
    """A stored vote."""

    id: int
    user_id: int
    question_id: int
    choice: VoteChoice
    decision_time: int
    confidence: int
    created_at: datetime


class QuestionStatsResponse(CamelModel):
    """Aggregated tally embedded in a question."""

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


class LevelProgress(CamelModel):
    """Points granted by an action and the resulting level."""

    points: int
    level_up: bool
    new_level: int


class VoteSubmitResponse(CamelModel):
    """Outcome of a successful vote submission."""

    vote: VoteResponse
    stats: QuestionStatsResponse
    points_earned: LevelProgress
    streak: int
    earned_badges: list[BadgeSummary]


class VoteChangeResponse(CamelModel):
    """Outcome of a successful vote change."""

    vote: VoteResponse
    stats: QuestionStatsResponse


class VoteDeleteResponse(CamelModel):
    """Outcome of a moderator vote removal."""

    vote_id: int
    question_id: int
    stats: QuestionStatsResponse


class RecentVote(CamelModel):
    """A recent vote shown in question analytics."""

    user_id: int
    username: str
    avatar: str | None
    choice: VoteChoice
    created_at: datetime


class QuestionAnalyticsResponse(CamelModel):
    """Analytics report for one question's votes."""

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
    recent_votes: list[RecentVote]


class StreakResponse(CamelModel):
    """Current and best daily voting streak."""

    current_streak: int
    longest_streak: int
    last_activity: datetime | None


class StreakDetailResponse(StreakResponse):
    """Streak of a given user, with the calendar days they voted on."""

    user_id: int
    voting_days: list[date]


class VoteHistoryItem(CamelModel):
    """One of the user's past votes with the question it was cast on."""

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


class VotingPatternsResponse(CamelModel):
    """How a user tends to vote."""

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
    votes_by_hour: dict[int, int]
    votes_by_weekday: dict[int, int]


class CategoryPreferenceResponse(CamelModel):
    category: str
    total_votes: int
    average_decision_time: int
    average_confidence: float


class TrendBucketResponse(CamelModel):
    period_start: datetime
    total_votes: int
    unique_users: int
    average_decision_time: int
    average_confidence: float


class ChoiceTimelinePointResponse(CamelModel):
    day: date
    option_a_votes: int
    option_b_votes: int


class QuestionInsightsResponse(QuestionAnalyticsResponse):
    """Author-facing analytics: the vote report plus reach and a daily timeline."""

    views: int
    shares: int
    comments: int
    engagement_rate: float
    timeline: list[ChoiceTimelinePointResponse]
