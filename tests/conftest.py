"""Shared fixtures for the aioscore test suite."""

from __future__ import annotations

from typing import TypeVar

import pytest

from aioscore.models.types import ServerMessage
from aioscore.server.broadcast import Broadcaster
from aioscore.server.controls import ControlRegistry
from aioscore.server.mp3 import Mp3SyncScheduler
from aioscore.server.router import CommandRouter
from aioscore.server.score import ScoreService
from aioscore.server.session import SessionRegistry

M = TypeVar("M", bound=ServerMessage)

START_TIME = 100_000


class FakeClock:
    """Manually advanced server clock in milliseconds."""

    def __init__(self, now: int = START_TIME) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, milliseconds: int) -> None:
        self.now += milliseconds


class FakeConnection:
    """Records every message sent to it."""

    def __init__(self, connection_id: str) -> None:
        self._connection_id = connection_id
        self.messages: list[ServerMessage] = []

    @property
    def connection_id(self) -> str:
        return self._connection_id

    def send_message(self, message: ServerMessage) -> None:
        self.messages.append(message)

    def of_type(self, message_type: type[M]) -> list[M]:
        return [message for message in self.messages if isinstance(message, message_type)]

    def last(self, message_type: type[M]) -> M:
        matching = self.of_type(message_type)
        assert matching, f"no {message_type.__name__} received"
        return matching[-1]

    def clear(self) -> None:
        self.messages.clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def broadcaster() -> Broadcaster:
    return Broadcaster()


@pytest.fixture
def connect(broadcaster: Broadcaster):
    """Create and register fake connections by id."""

    def _connect(connection_id: str) -> FakeConnection:
        connection = FakeConnection(connection_id)
        broadcaster.add_connection(connection)
        return connection

    return _connect


@pytest.fixture
def registry(clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(ControlRegistry(), clock)


@pytest.fixture
def score(registry: SessionRegistry, broadcaster: Broadcaster) -> ScoreService:
    return ScoreService(registry, broadcaster)


@pytest.fixture
def router(score: ScoreService) -> CommandRouter:
    return CommandRouter(score)


@pytest.fixture
def scheduler(broadcaster: Broadcaster, clock: FakeClock) -> Mp3SyncScheduler:
    return Mp3SyncScheduler(broadcaster, clock, slot_count=2)
