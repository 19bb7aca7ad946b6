"""aioscore: synchronization server for live multi-participant audio performances."""

from __future__ import annotations

from aioscore.server import (
    ScoreEvent,
    ScoreServer,
    ServerConfig,
)

__all__ = [
    "ScoreEvent",
    "ScoreServer",
    "ServerConfig",
]
