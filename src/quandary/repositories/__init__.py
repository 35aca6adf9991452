"""Typed read-side queries, one function per report."""

from .badge_repo import BadgeRepository
from .chat_repo import ChatRepository
from .user_repo import UserRepository
from .vote_repo import VoteRepository

__all__ = ["BadgeRepository", "ChatRepository", "UserRepository", "VoteRepository"]
