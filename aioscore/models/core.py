"""Core messages for the aioscore protocol.

This module contains the clock synchronization messages every connection may
exchange with the server, regardless of the role it joined with.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ClientMessage, ServerMessage


# Client -> Server: client/time
@dataclass
class ClientTimePayload(DataClassORJSONMixin):
    """Timing information from the client."""

    client_transmitted: float
    """Client's local clock timestamp in milliseconds."""


@dataclass
class ClientTimeMessage(ClientMessage):
    """Message sent by the client for time synchronization."""

    payload: ClientTimePayload
    type: Literal["client/time"] = "client/time"


# Server -> Client: server/time
@dataclass
class ServerTimePayload(DataClassORJSONMixin):
    """Timing information from the server."""

    client_transmitted: float
    """Client's timestamp echoed back from the client/time message."""
    server_received: int
    """Server timestamp in milliseconds when client/time was received."""
    server_transmitted: int
    """Server timestamp in milliseconds when this message left the server."""


@dataclass
class ServerTimeMessage(ServerMessage):
    """Message sent by the server for time synchronization."""

    payload: ServerTimePayload
    type: Literal["server/time"] = "server/time"
