"""Business logic services for the Quandary application."""

from .badges import BadgeEvaluator, BadgeTrigger
from .broadcast import RoomBroadcaster
from .presence import PresenceRegistry
from .progression import UserProgressionEngine
from .questions import QuestionService
from .realtime import RealtimeGateway
from .voting import VoteLedger

__all__ = [
    "BadgeEvaluator",
    "BadgeTrigger",
    "PresenceRegistry",
    "QuestionService",
    "RealtimeGateway",
    "RoomBroadcaster",
    "UserProgressionEngine",
    "VoteLedger",
]
