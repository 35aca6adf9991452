"""Fan-out of realtime events to the connections in a question room.

Delivery is best effort. Recipients are taken from a registry snapshot, each
send is bounded by a timeout, and a failed send is logged and dropped; it
never propagates back to whoever triggered the event.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from .presence import PresenceEntry, PresenceRegistry

logger = logging.getLogger(__name__)


class RoomBroadcaster:
    """Sends events to rooms, users, single connections or everyone."""

    def __init__(self, registry: PresenceRegistry, *, send_timeout: float | None = None) -> None:
        """Initialize the broadcaster.

        Args:
            registry: Source of room membership and connection handles.
            send_timeout: Seconds allowed per delivery; None waits indefinitely.
        """
        self.registry = registry
        self.send_timeout = send_timeout

    async def to_room(
        self,
        question_id: int,
        event: str,
        data: Any,
        *,
        exclude: str | None = None,
    ) -> int:
        """Deliver to every connection in the room, optionally skipping one.

        Returns:
            Number of successful deliveries.
        """
        members = self.registry.list_room_members(question_id)
        return await self._deliver(
            (m for m in members if m.connection_id != exclude), event, data
        )

    async def to_user(self, user_id: int, event: str, data: Any) -> int:
        """Deliver to every connection of one user."""
        return await self._deliver(self.registry.connections_for_user(user_id), event, data)

    async def to_everyone(self, event: str, data: Any, *, exclude: str | None = None) -> int:
        return await self._deliver(
            (e for e in self.registry.list_online() if e.connection_id != exclude), event, data
        )

    async def to_connection(self, connection_id: str, event: str, data: Any) -> bool:
        entry = self.registry.get(connection_id)
        if entry is None:
            return False
        return await self._send(entry, event, data)

    async def _deliver(self, entries: Iterable[PresenceEntry], event: str, data: Any) -> int:
        results = await asyncio.gather(*(self._send(entry, event, data) for entry in entries))
        return sum(results)

    async def _send(self, entry: PresenceEntry, event: str, data: Any) -> bool:
        try:
            await asyncio.wait_for(entry.channel.send_event(event, data), timeout=self.send_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as err:  # transports raise their own closed/reset types
            logger.warning(
                "Dropped %s for connection %s: %s",
                event,
                entry.connection_id,
                err or type(err).__name__,
            )
            return False
        return True
