"""Payload schemas for the realtime event channel.

Every frame on the socket is ``{"event": <name>, "data": <payload>}``; the
models below validate inbound ``data`` before any state is touched.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from quandary.core.settings import settings
from quandary.models.vote import VoteChoice

from .common import CamelModel

PresenceStatus = Literal["online", "away", "busy"]


class EventFrame(BaseModel):
    """Envelope shared by both directions of the channel."""

    event: str = Field(..., min_length=1, max_length=64)
    data: Any = None


class QuestionRoomEvent(CamelModel):
    """join_question, leave_question, typing_start, typing_stop, get_room_users."""

    question_id: int = Field(..., ge=1)


class SendMessageEvent(CamelModel):
    """send_message: a chat line posted to a question room."""

    question_id: int = Field(..., ge=1)
    message: str
    parent_id: int | None = None

    @field_validator("message")
    @classmethod
    def _clean_message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message cannot be empty")
        if len(value) > settings.chat_message_max_length:
            raise ValueError("Message too long")
        return value


class VoteCastEvent(CamelModel):
    """vote_cast: advisory activity ping, the real vote goes over HTTP."""

    question_id: int = Field(..., ge=1)
    choice: VoteChoice


class PresenceUpdateEvent(CamelModel):
    """update_presence: change the caller's status."""

    status: PresenceStatus


class PrivateMessageEvent(CamelModel):
    """private_message: direct line to another online user."""

    recipient_id: int = Field(..., ge=1)
    message: str = Field(..., min_length=1, max_length=1000)
