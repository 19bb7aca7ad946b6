"""Models for the aioscore protocol."""

from __future__ import annotations

__all__ = [
    "ClientMessage",
    "ControlDefinition",
    "Roles",
    "Room",
    "ServerMessage",
    "core",
    "mp3",
    "score",
    "types",
]

# Importing the message modules registers every subtype with the discriminators
from . import core, mp3, score, types
from .score import ControlDefinition
from .types import ClientMessage, Roles, Room, ServerMessage
