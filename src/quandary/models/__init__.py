"""SQLAlchemy models for the Quandary application."""

from .badge import Badge, BadgeAward
from .chat import ChatMessage
from .question import ModerationStatus, Question, QuestionSource
from .user import User, UserRole, UserStats
from .vote import Vote, VoteChoice

__all__ = [
    "Badge", "BadgeAward",
    "ChatMessage",
    "ModerationStatus", "Question", "QuestionSource",
    "User", "UserRole", "UserStats",
    "Vote", "VoteChoice",
]
