"""
Score Server coordinating a live multi-participant audio performance.

ScoreServer is the core of the performance, responsible for:
- Managing player and conductor connections
- Routing control commands from conductors, controller bridges and datagrams
- Scheduling synchronized playback of uploaded MP3 files across slots
"""

__all__ = [
    "ClientConnection",
    "CommandChannel",
    "CommandRouter",
    "ConnectionAddedEvent",
    "ConnectionRemovedEvent",
    "ControlRegistry",
    "Mp3SyncScheduler",
    "PlayerJoinedEvent",
    "PlayerLeftEvent",
    "SceneChangedEvent",
    "SceneControls",
    "ScoreEvent",
    "ScoreServer",
    "ScoreService",
    "ServerConfig",
    "SessionRegistry",
]

from .connection import ClientConnection
from .controls import ControlRegistry, SceneControls
from .mp3 import Mp3SyncScheduler
from .router import CommandChannel, CommandRouter
from .score import ScoreService
from .server import (
    ConnectionAddedEvent,
    ConnectionRemovedEvent,
    PlayerJoinedEvent,
    PlayerLeftEvent,
    SceneChangedEvent,
    ScoreEvent,
    ScoreServer,
    ServerConfig,
)
from .session import SessionRegistry
