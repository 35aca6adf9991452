"""In-memory registry of connected clients and the question room each one is in.

Each connection moves through ``connected -> in room -> disconnected``. A
connection is a member of at most one question room; joining another room
leaves the current one first. The registry only tracks state and never talks
to the network, so it can be swapped for a shared store without touching the
fan-out code.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Protocol

from quandary.db.time import utcnow

logger = logging.getLogger(__name__)


class EventChannel(Protocol):
    """Transport handle for one connection."""

    async def send_event(self, event: str, data: Any) -> None:
        """Deliver one ``{"event", "data"}`` frame to the client."""


class UnknownConnectionError(LookupError):
    """The connection id is not registered."""


@dataclass
class PresenceEntry:
    """State held for one live connection."""

    connection_id: str
    user_id: int
    username: str
    avatar: str | None
    channel: EventChannel
    connected_at: datetime
    last_seen: datetime
    status: str = "online"
    room: int | None = None

    def profile(self) -> dict[str, Any]:
        return {"userId": self.user_id, "username": self.username, "avatar": self.avatar}


@dataclass(frozen=True)
class RoomChange:
    """Outcome of a join: the room left on the way, and whether anything moved."""

    previous: int | None
    changed: bool


class PresenceRegistry:
    """Tracks connections, their user, status and current question room.

    All mutations happen under one lock and never perform I/O, so a join and
    a leave on the same connection cannot interleave. Readers receive copies.
    """

    def __init__(self) -> None:
        self._entries: dict[str, PresenceEntry] = {}
        self._lock = threading.Lock()

    def connect(
        self,
        connection_id: str,
        user_id: int,
        *,
        username: str,
        avatar: str | None,
        channel: EventChannel,
        now: datetime | None = None,
    ) -> PresenceEntry:
        """Register a new connection with no room."""
        now = now or utcnow()
        entry = PresenceEntry(
            connection_id=connection_id,
            user_id=user_id,
            username=username,
            avatar=avatar,
            channel=channel,
            connected_at=now,
            last_seen=now,
        )
        with self._lock:
            if connection_id in self._entries:
                raise ValueError(f"Connection {connection_id} is already registered")
            self._entries[connection_id] = entry
        logger.info("User %s connected (%s)", username, connection_id)
        return replace(entry)

    def join_room(self, connection_id: str, question_id: int) -> RoomChange:
        """Move the connection into ``question_id``, leaving its current room.

        Joining the room the connection is already in changes nothing.

        Raises:
            UnknownConnectionError: If the connection is not registered.
        """
        with self._lock:
            entry = self._require(connection_id)
            previous = entry.room
            if previous == question_id:
                return RoomChange(previous=None, changed=False)
            entry.room = question_id
        logger.debug("Connection %s moved from room %s to %s", connection_id, previous, question_id)
        return RoomChange(previous=previous, changed=True)

    def leave_room(self, connection_id: str, question_id: int | None = None) -> int | None:
        """Take the connection out of its room and return the room it left.

        When ``question_id`` is given the connection only leaves if that is
        its current room. Returns None when nothing changed.
        """
        with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None or entry.room is None:
                return None
            if question_id is not None and entry.room != question_id:
                return None
            left, entry.room = entry.room, None
        logger.debug("Connection %s left room %s", connection_id, left)
        return left

    def disconnect(
        self,
        connection_id: str,
        *,
        now: datetime | None = None,
    ) -> tuple[PresenceEntry, int | None] | None:
        """Remove the connection and return its last state and the room it was in.

        Returns None if the connection was already gone, so a transport drop
        and an explicit disconnect can both call this safely.
        """
        with self._lock:
            entry = self._entries.pop(connection_id, None)
        if entry is None:
            return None
        room, entry.room = entry.room, None
        entry.last_seen = now or utcnow()
        logger.info("User %s disconnected (%s)", entry.username, connection_id)
        return entry, room

    def set_status(self, connection_id: str, status: str, *, now: datetime | None = None) -> PresenceEntry:
        """Update the presence status and last-seen time of a connection."""
        with self._lock:
            entry = self._require(connection_id)
            entry.status = status
            entry.last_seen = now or utcnow()
            return replace(entry)

    def touch(self, connection_id: str, *, now: datetime | None = None) -> None:
        """Record inbound activity on a connection."""
        with self._lock:
            entry = self._entries.get(connection_id)
            if entry is not None:
                entry.last_seen = now or utcnow()

    def get(self, connection_id: str) -> PresenceEntry | None:
        with self._lock:
            entry = self._entries.get(connection_id)
            return replace(entry) if entry is not None else None

    def list_room_members(self, question_id: int) -> list[PresenceEntry]:
        """Return every connection currently in ``question_id``, oldest first."""
        with self._lock:
            members = [replace(e) for e in self._entries.values() if e.room == question_id]
        return sorted(members, key=lambda e: e.connected_at)

    def list_online(self) -> list[PresenceEntry]:
        with self._lock:
            return [replace(e) for e in self._entries.values()]

    def connections_for_user(self, user_id: int) -> list[PresenceEntry]:
        with self._lock:
            return [replace(e) for e in self._entries.values() if e.user_id == user_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _require(self, connection_id: str) -> PresenceEntry:
        entry = self._entries.get(connection_id)
        if entry is None:
            raise UnknownConnectionError(connection_id)
        return entry
