"""
Room based fan-out of server messages.

Delivery is at-most-once and best effort: a message is enqueued on each target
connection and never awaited, retried or acknowledged. Ordering is preserved per
connection only. Clients must tolerate dropped or reordered updates across
connections, which is why every update carries the full authoritative state of
what it describes rather than a delta.
"""

from __future__ import annotations

import logging
from typing import Protocol

from aioscore.models.types import Room, ServerMessage

logger = logging.getLogger(__name__)


class MessageTarget(Protocol):
    """Anything that can receive server messages, usually a ClientConnection."""

    @property
    def connection_id(self) -> str:
        """Unique identifier of the connection."""
        ...

    def send_message(self, message: ServerMessage) -> None:
        """Enqueue a message without waiting for delivery."""
        ...


class Broadcaster:
    """Tracks connections and room membership, and sends messages to them."""

    _connections: dict[str, MessageTarget]
    _rooms: dict[Room, set[str]]

    def __init__(self) -> None:
        """Initialize an empty broadcaster."""
        self._connections = {}
        self._rooms = {room: set() for room in Room}

    def add_connection(self, connection: MessageTarget) -> None:
        """Make a connection addressable."""
        self._connections[connection.connection_id] = connection

    def remove_connection(self, connection_id: str) -> None:
        """Forget a connection and remove it from every room."""
        self._connections.pop(connection_id, None)
        for members in self._rooms.values():
            members.discard(connection_id)

    def join(self, room: Room, connection_id: str) -> None:
        """Add a connection to a room."""
        self._rooms[room].add(connection_id)

    def leave(self, room: Room, connection_id: str) -> None:
        """Remove a connection from a room, if it is a member."""
        self._rooms[room].discard(connection_id)

    def members(self, room: Room) -> set[str]:
        """Get a copy of the connection ids in a room."""
        return set(self._rooms[room])

    def send_to(self, connection_id: str, message: ServerMessage) -> bool:
        """
        Send a message to a single connection.

        Returns False if the connection is unknown, in which case nothing is sent.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug(
                "Dropping %s for unknown connection %s", type(message).__name__, connection_id
            )
            return False
        connection.send_message(message)
        return True

    def send_to_room(self, room: Room, message: ServerMessage) -> int:
        """Send a message to every connection in a room and return how many were addressed."""
        sent = 0
        for connection_id in list(self._rooms[room]):
            if self.send_to(connection_id, message):
                sent += 1
        return sent
