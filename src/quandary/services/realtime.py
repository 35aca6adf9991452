"""Realtime event gateway.

Parses inbound frames from the socket endpoint, applies presence changes to the
:class:`PresenceRegistry`, and emits the resulting events through the
:class:`RoomBroadcaster`. HTTP handlers use the ``publish_*`` methods to push
committed vote and badge state to listeners.

Database work runs in a worker thread with its own session, so the event loop
is never blocked on storage.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quandary.core.errors import InputValidationError, NotFoundError, PermissionDeniedError, QuandaryError
from quandary.core.settings import settings
from quandary.db.time import utcnow
from quandary.models import Badge, ChatMessage, Question, User, UserStats, VoteChoice
from quandary.schemas.badge import BadgeSummary
from quandary.schemas.events import (
    EventFrame,
    PresenceUpdateEvent,
    PrivateMessageEvent,
    QuestionRoomEvent,
    SendMessageEvent,
    VoteCastEvent,
)

from .badges import BadgeEvaluator, BadgeTrigger
from .broadcast import RoomBroadcaster
from .presence import EventChannel, PresenceEntry, PresenceRegistry
from .voting import TallySnapshot

logger = logging.getLogger(__name__)

Handler = Callable[[PresenceEntry, Any], Awaitable[None]]


@dataclass(frozen=True)
class ConnectedUser:
    """Identity attached to a socket by the auth collaborator."""

    user_id: int
    username: str
    avatar: str | None = None


def badge_payloads(badges: Iterable[Badge]) -> list[dict[str, Any]]:
    return [BadgeSummary.model_validate(badge).model_dump(by_alias=True) for badge in badges]


def vote_update_payload(
    snapshot: TallySnapshot,
    choice: VoteChoice,
    *,
    voter: User | None = None,
    change_type: str | None = None,
) -> dict[str, Any]:
    """Build the ``vote_update`` body from a committed tally."""
    payload: dict[str, Any] = {
        "questionId": snapshot.question_id,
        "choice": choice.value,
        "totalVotes": snapshot.total_votes,
        "optionAPercentage": snapshot.option_a_percentage,
        "optionBPercentage": snapshot.option_b_percentage,
    }
    if voter is not None:
        payload["voter"] = {"username": voter.username, "avatar": voter.avatar}
    if change_type is not None:
        payload["type"] = change_type
    return payload


def _member(entry: PresenceEntry) -> dict[str, Any]:
    return {**entry.profile(), "connectionId": entry.connection_id}


def _first_error(err: ValidationError) -> str:
    errors = err.errors()
    if not errors:
        return "Invalid payload"
    message = str(errors[0].get("msg", "Invalid payload"))
    return message.removeprefix("Value error, ")


class RealtimeGateway:
    """Connects socket sessions to presence state and room fan-out."""

    def __init__(
        self,
        registry: PresenceRegistry,
        broadcaster: RoomBroadcaster,
        session_factory: Callable[[], Session],
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self.session_factory = session_factory
        self._handlers: dict[str, Handler] = {
            "join_question": self._join_question,
            "leave_question": self._leave_question,
            "typing_start": self._typing_start,
            "typing_stop": self._typing_stop,
            "send_message": self._send_message,
            "vote_cast": self._vote_cast,
            "update_presence": self._update_presence,
            "get_online_users": self._get_online_users,
            "get_room_users": self._get_room_users,
            "private_message": self._private_message,
        }

    # Connection lifecycle

    async def load_user(self, user_id: int) -> ConnectedUser | None:
        """Return the active user behind a token subject, or None."""
        return await asyncio.to_thread(self._load_user, user_id)

    async def connect(self, connection_id: str, user: ConnectedUser, channel: EventChannel) -> None:
        """Register the connection and announce the user if it is their first one."""
        entry = self.registry.connect(
            connection_id,
            user.user_id,
            username=user.username,
            avatar=user.avatar,
            channel=channel,
        )
        if len(self.registry.connections_for_user(user.user_id)) == 1:
            await self.broadcaster.to_everyone("user_online", entry.profile(), exclude=connection_id)

    async def disconnect(self, connection_id: str) -> None:
        """Clean up after an explicit close or a dropped transport alike."""
        removed = self.registry.disconnect(connection_id)
        if removed is None:
            return
        entry, room = removed
        if room is not None:
            await self.broadcaster.to_room(
                room, "user_left_room", {"userId": entry.user_id, "username": entry.username}
            )
        if not self.registry.connections_for_user(entry.user_id):
            await self.broadcaster.to_everyone(
                "user_offline",
                {"userId": entry.user_id, "username": entry.username, "lastSeen": entry.last_seen},
            )

    async def dispatch(self, connection_id: str, raw: str) -> None:
        """Handle one inbound text frame.

        Failures are answered with an ``error`` event to the sender only.
        """
        entry = self.registry.get(connection_id)
        if entry is None:
            return
        self.registry.touch(connection_id)

        try:
            frame = EventFrame.model_validate_json(raw)
        except ValidationError:
            await self._reply_error(connection_id, "Malformed event")
            return

        handler = self._handlers.get(frame.event)
        if handler is None:
            await self._reply_error(connection_id, f"Unknown event: {frame.event}")
            return

        try:
            await handler(entry, frame.data)
        except ValidationError as err:
            await self._reply_error(connection_id, _first_error(err))
        except QuandaryError as err:
            await self._reply_error(connection_id, err.message)
        except SQLAlchemyError:
            logger.error("Event %s failed for %s", frame.event, connection_id, exc_info=True)
            await self._reply_error(connection_id, f"Failed to handle {frame.event}")

    # Publishing from the request path

    async def publish_vote_update(
        self,
        snapshot: TallySnapshot,
        choice: VoteChoice,
        *,
        voter: User | None = None,
        change_type: str | None = None,
    ) -> None:
        """Push a committed tally to everyone in the question room, voter included."""
        await self.broadcaster.to_room(
            snapshot.question_id,
            "vote_update",
            vote_update_payload(snapshot, choice, voter=voter, change_type=change_type),
        )

    async def publish_badges(self, user_id: int, badges: list[Badge]) -> None:
        if badges:
            await self.broadcaster.to_user(user_id, "badges_earned", badge_payloads(badges))

    async def publish_level_up(self, user_id: int, level: int) -> None:
        await self.broadcaster.to_user(
            user_id,
            "notification",
            {
                "type": "level_up",
                "title": "Level up!",
                "message": f"You reached level {level}",
            },
        )

    # Event handlers

    async def _join_question(self, entry: PresenceEntry, data: Any) -> None:
        payload = QuestionRoomEvent.model_validate(data)
        question_id = payload.question_id
        if not await asyncio.to_thread(self._question_exists, question_id):
            raise NotFoundError("Question not found")

        change = self.registry.join_room(entry.connection_id, question_id)
        if change.changed:
            if change.previous is not None:
                await self.broadcaster.to_room(
                    change.previous,
                    "user_left_room",
                    {"userId": entry.user_id, "username": entry.username},
                )
            await self.broadcaster.to_room(
                question_id, "user_joined_room", entry.profile(), exclude=entry.connection_id
            )

        members = self.registry.list_room_members(question_id)
        await self.broadcaster.to_connection(
            entry.connection_id,
            "room_joined",
            {
                "questionId": question_id,
                "activeUsers": len(members),
                "users": [_member(m) for m in members[: settings.room_member_display_limit]],
            },
        )

    async def _leave_question(self, entry: PresenceEntry, data: Any) -> None:
        payload = QuestionRoomEvent.model_validate(data)
        left = self.registry.leave_room(entry.connection_id, payload.question_id)
        if left is not None:
            await self.broadcaster.to_room(
                left, "user_left_room", {"userId": entry.user_id, "username": entry.username}
            )

    async def _typing_start(self, entry: PresenceEntry, data: Any) -> None:
        await self._typing(entry, data, is_typing=True)

    async def _typing_stop(self, entry: PresenceEntry, data: Any) -> None:
        await self._typing(entry, data, is_typing=False)

    async def _typing(self, entry: PresenceEntry, data: Any, *, is_typing: bool) -> None:
        payload = QuestionRoomEvent.model_validate(data)
        self._require_room(entry, payload.question_id)
        await self.broadcaster.to_room(
            payload.question_id,
            "user_typing",
            {"userId": entry.user_id, "username": entry.username, "isTyping": is_typing},
            exclude=entry.connection_id,
        )

    async def _send_message(self, entry: PresenceEntry, data: Any) -> None:
        payload = SendMessageEvent.model_validate(data)
        self._require_room(entry, payload.question_id)
        message, earned = await asyncio.to_thread(self._store_message, entry.user_id, payload)
        await self.broadcaster.to_room(
            payload.question_id,
            "new_message",
            {"message": message, "questionId": payload.question_id},
        )
        if earned:
            await self.broadcaster.to_user(entry.user_id, "badges_earned", earned)

    async def _vote_cast(self, entry: PresenceEntry, data: Any) -> None:
        payload = VoteCastEvent.model_validate(data)
        self._require_room(entry, payload.question_id)
        await self.broadcaster.to_room(
            payload.question_id,
            "vote_activity",
            {"userId": entry.user_id, "username": entry.username, "choice": payload.choice.value},
            exclude=entry.connection_id,
        )

    async def _update_presence(self, entry: PresenceEntry, data: Any) -> None:
        payload = PresenceUpdateEvent.model_validate(data)
        updated = self.registry.set_status(entry.connection_id, payload.status)
        await self.broadcaster.to_everyone(
            "presence_updated",
            {"userId": updated.user_id, "status": updated.status, "lastSeen": updated.last_seen},
            exclude=entry.connection_id,
        )

    async def _get_online_users(self, entry: PresenceEntry, data: Any) -> None:
        # One row per user; the most recently active connection wins.
        latest: dict[int, PresenceEntry] = {}
        for online in self.registry.list_online():
            seen = latest.get(online.user_id)
            if seen is None or online.last_seen > seen.last_seen:
                latest[online.user_id] = online
        users = [
            {**online.profile(), "status": online.status, "lastSeen": online.last_seen}
            for online in sorted(latest.values(), key=lambda e: e.connected_at)
        ]
        await self.broadcaster.to_connection(entry.connection_id, "online_users", users)

    async def _get_room_users(self, entry: PresenceEntry, data: Any) -> None:
        payload = QuestionRoomEvent.model_validate(data)
        members = self.registry.list_room_members(payload.question_id)
        await self.broadcaster.to_connection(
            entry.connection_id,
            "room_users",
            {"questionId": payload.question_id, "users": [_member(m) for m in members]},
        )

    async def _private_message(self, entry: PresenceEntry, data: Any) -> None:
        payload = PrivateMessageEvent.model_validate(data)
        if payload.recipient_id == entry.user_id:
            raise InputValidationError("Cannot send a private message to yourself")
        delivered = await self.broadcaster.to_user(
            payload.recipient_id,
            "private_message",
            {"from": entry.profile(), "message": payload.message, "timestamp": utcnow()},
        )
        if not delivered:
            logger.debug("Private message to offline user %s dropped", payload.recipient_id)

    # Helpers

    async def _reply_error(self, connection_id: str, message: str) -> None:
        await self.broadcaster.to_connection(connection_id, "error", {"message": message})

    @staticmethod
    def _require_room(entry: PresenceEntry, question_id: int) -> None:
        if entry.room != question_id:
            raise PermissionDeniedError("Join the question room first")

    def _load_user(self, user_id: int) -> ConnectedUser | None:
        with self.session_factory() as db:
            user = db.execute(
                select(User).where(User.id == user_id, User.is_active.is_(True))
            ).scalar_one_or_none()
            if user is None:
                return None
            return ConnectedUser(user_id=user.id, username=user.username, avatar=user.avatar)

    def _question_exists(self, question_id: int) -> bool:
        with self.session_factory() as db:
            return db.get(Question, question_id) is not None

    def _store_message(
        self,
        user_id: int,
        payload: SendMessageEvent,
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        with self.session_factory() as db:
            question = db.get(Question, payload.question_id)
            if question is None or not question.is_active:
                raise NotFoundError("Question not found")
            if payload.parent_id is not None:
                parent = db.get(ChatMessage, payload.parent_id)
                if parent is None or parent.question_id != payload.question_id:
                    raise NotFoundError("Parent message not found")

            chat = ChatMessage(
                question_id=payload.question_id,
                user_id=user_id,
                message=payload.message,
                parent_id=payload.parent_id,
            )
            db.add(chat)
            db.flush()
            db.execute(
                update(Question)
                .where(Question.id == payload.question_id)
                .values(comments=Question.comments + 1)
                .execution_options(synchronize_session=False)
            )
            db.commit()

            author = db.execute(
                select(User.username, User.avatar, UserStats.level)
                .join(UserStats, UserStats.user_id == User.id)
                .where(User.id == user_id)
            ).one()
            message = {
                "id": chat.id,
                "questionId": chat.question_id,
                "parentId": chat.parent_id,
                "message": chat.message,
                "createdAt": chat.created_at,
                "user": {
                    "userId": user_id,
                    "username": author.username,
                    "avatar": author.avatar,
                    "level": author.level,
                },
            }
            earned = BadgeEvaluator(db).evaluate_quietly(user_id, BadgeTrigger.CHAT_MESSAGE)
            return message, badge_payloads(earned)
