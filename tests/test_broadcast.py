"""Tests for room based fan-out."""

from __future__ import annotations

from aioscore.models.score import ConductorPresenceMessage, ConductorPresencePayload
from aioscore.models.types import Room
from aioscore.server.broadcast import Broadcaster

from .conftest import FakeConnection


def _presence() -> ConductorPresenceMessage:
    return ConductorPresenceMessage(ConductorPresencePayload(present=True))


def test_send_to_room_reaches_members_only(broadcaster: Broadcaster, connect) -> None:
    a: FakeConnection = connect("a")
    b: FakeConnection = connect("b")
    broadcaster.join(Room.PLAYERS, "a")

    assert broadcaster.send_to_room(Room.PLAYERS, _presence()) == 1
    assert len(a.messages) == 1
    assert b.messages == []


def test_unknown_connection_is_skipped(broadcaster: Broadcaster, connect) -> None:
    connect("a")
    broadcaster.join(Room.PLAYERS, "a")
    broadcaster.join(Room.PLAYERS, "ghost")
    assert broadcaster.send_to_room(Room.PLAYERS, _presence()) == 1
    assert not broadcaster.send_to("ghost", _presence())


def test_remove_connection_leaves_every_room(broadcaster: Broadcaster, connect) -> None:
    a = connect("a")
    for room in Room:
        broadcaster.join(room, "a")
    broadcaster.remove_connection("a")
    assert all(broadcaster.members(room) == set() for room in Room)
    assert not broadcaster.send_to("a", _presence())
    assert a.messages == []


def test_members_is_a_copy(broadcaster: Broadcaster) -> None:
    broadcaster.join(Room.CONDUCTORS, "k1")
    members = broadcaster.members(Room.CONDUCTORS)
    members.add("k2")
    assert broadcaster.members(Room.CONDUCTORS) == {"k1"}
    broadcaster.leave(Room.CONDUCTORS, "k1")
    broadcaster.leave(Room.CONDUCTORS, "k1")
    assert broadcaster.members(Room.CONDUCTORS) == set()
