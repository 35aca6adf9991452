"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .badge import AvailableBadge, BadgeSummary, EarnedBadge
from .chat import ChatAuthor, ChatMessageResponse
from .question import (
    QuestionCreate,
    QuestionCreateResponse,
    QuestionModeration,
    QuestionReport,
    QuestionResponse,
)
from .user import LeaderboardEntry, UserStatsResponse
from .vote import (
    CategoryPreferenceResponse,
    ChoiceTimelinePointResponse,
    QuestionAnalyticsResponse,
    QuestionInsightsResponse,
    QuestionStatsResponse,
    StreakDetailResponse,
    StreakResponse,
    TrendBucketResponse,
    VoteChange,
    VoteChangeResponse,
    VoteCreate,
    VoteDeleteResponse,
    VoteHistoryItem,
    VoteResponse,
    VoteSubmitResponse,
    VotingPatternsResponse,
)

__all__ = [
    "AvailableBadge", "BadgeSummary", "EarnedBadge",
    "ChatAuthor", "ChatMessageResponse",
    "QuestionCreate", "QuestionCreateResponse", "QuestionModeration",
    "QuestionReport", "QuestionResponse",
    "LeaderboardEntry", "UserStatsResponse",
    "CategoryPreferenceResponse", "ChoiceTimelinePointResponse",
    "QuestionAnalyticsResponse", "QuestionInsightsResponse", "QuestionStatsResponse",
    "StreakDetailResponse", "StreakResponse", "TrendBucketResponse",
    "VoteChange", "VoteChangeResponse", "VoteCreate", "VoteDeleteResponse",
    "VoteHistoryItem", "VoteResponse", "VoteSubmitResponse", "VotingPatternsResponse",
]
