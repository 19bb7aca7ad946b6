"""Tests for the session registry and the score lifecycle."""

from __future__ import annotations

import pytest

from aioscore.models.score import (
    ConductorPresenceMessage,
    FullStateMessage,
    PlayerStateMessage,
    PlayerUpdateMessage,
    StateUpdateMessage,
)
from aioscore.server.score import ScoreService
from aioscore.server.session import MAX_NAME_LENGTH, SessionRegistry

from .conftest import START_TIME, FakeClock


def test_player_join_uses_defaults(registry: SessionRegistry) -> None:
    player = registry.join_player("c1", "Alice")
    assert player is not None
    assert player.player_id == 1
    assert player.pitch == 69
    assert player.interval == 1000
    assert player.phase_anchor == START_TIME
    assert registry.get_player("c1") is player
    assert registry.get_player_by_id(1) is player


@pytest.mark.parametrize("name", [None, "", "   ", 42, ["Alice"]])
def test_malformed_join_is_ignored(registry: SessionRegistry, name: object) -> None:
    assert registry.join_player("c1", name) is None
    assert registry.players == []


def test_name_is_trimmed_and_truncated(registry: SessionRegistry) -> None:
    player = registry.join_player("c1", "  " + "x" * 80 + " ")
    assert player is not None
    assert player.name == "x" * MAX_NAME_LENGTH


def test_rejoin_keeps_state(registry: SessionRegistry) -> None:
    first = registry.join_player("c1", "Alice")
    assert first is not None
    assert registry.set_pitch("c1", 40)
    again = registry.join_player("c1", "Bob")
    assert again is first
    assert again.pitch == 40
    assert len(registry.players) == 1


def test_player_ids_are_never_reused(registry: SessionRegistry) -> None:
    registry.join_player("c1", "A")
    registry.join_player("c2", "B")
    registry.leave("c1")
    player = registry.join_player("c3", "C")
    assert player is not None
    assert player.player_id == 3
    assert registry.get_player_by_id(1) is None
    assert [p.player_id for p in registry.players] == [2, 3]


def test_setters_enforce_ranges(registry: SessionRegistry) -> None:
    registry.join_player("c1", "A")
    assert not registry.set_pitch("c1", 100)
    assert not registry.set_interval("c1", 10)
    assert not registry.set_pitch("unknown", 60)
    player = registry.get_player("c1")
    assert player is not None
    assert (player.pitch, player.interval) == (69, 1000)


def test_interval_change_preserves_phase(registry: SessionRegistry, clock: FakeClock) -> None:
    registry.join_player("c1", "A")
    clock.advance(2_300)
    assert registry.set_interval("c1", 2000)
    player = registry.get_player("c1")
    assert player is not None
    # 0.3 of a cycle had elapsed, it still has under the new interval
    assert player.phase_anchor == pytest.approx(clock.now - 600)
    assert player.interval == 2000


def test_conductor_count_transitions(registry: SessionRegistry) -> None:
    assert not registry.conductor_present
    assert registry.join_conductor("k1")
    assert not registry.join_conductor("k2")
    assert not registry.join_conductor("k2")
    assert registry.conductor_count == 2
    result = registry.leave("k1")
    assert result.was_conductor
    assert not result.last_conductor
    result = registry.leave("k2")
    assert result.last_conductor
    assert not registry.conductor_present


def test_leave_unknown_connection(registry: SessionRegistry) -> None:
    result = registry.leave("nobody")
    assert result.player is None
    assert not result.was_conductor
    assert not result.last_conductor


def test_set_scene_resets_phase(registry: SessionRegistry, clock: FakeClock) -> None:
    registry.join_player("c1", "A")
    clock.advance(1234)
    assert not registry.set_scene("nowhere")
    assert registry.set_scene("audioScore")
    player = registry.get_player("c1")
    assert player is not None
    assert player.phase_anchor == clock.now
    assert registry.phase_anchor == clock.now


def test_snapshot(registry: SessionRegistry) -> None:
    registry.join_player("c1", "A")
    registry.join_conductor("k1")
    snapshot = registry.snapshot()
    assert list(snapshot.players) == ["c1"]
    assert snapshot.players["c1"].player_id == 1
    assert snapshot.conductor_count == 1
    assert snapshot.scene == "audioScore"
    assert [control.name for control in snapshot.controls] == ["pitch", "interval"]
    assert (snapshot.defaults.pitch, snapshot.defaults.interval) == (69, 1000)


def test_player_join_sends_state(score: ScoreService, connect) -> None:
    conductor = connect("k1")
    score.join_conductor("k1")
    conductor.clear()
    player = connect("c1")

    assert score.join_player("c1", "Alice") is not None

    state = player.last(PlayerStateMessage).payload
    assert state.conductor_present
    assert (state.pitch, state.interval, state.scene) == (69, 1000, "audioScore")
    update = conductor.last(StateUpdateMessage).payload
    assert "c1" in update.players


def test_malformed_join_sends_nothing(score: ScoreService, connect) -> None:
    conductor = connect("k1")
    score.join_conductor("k1")
    conductor.clear()
    player = connect("c1")

    assert score.join_player("c1", "") is None

    assert player.messages == []
    assert conductor.messages == []


def test_presence_is_announced_on_first_and_last_conductor(
    score: ScoreService, connect, clock: FakeClock
) -> None:
    player = connect("c1")
    score.join_player("c1", "Alice")
    assert not player.last(PlayerStateMessage).payload.conductor_present
    first = connect("k1")
    second = connect("k2")
    clock.advance(500)

    score.join_conductor("k1")
    assert [m.payload.present for m in player.of_type(ConductorPresenceMessage)] == [True]
    # First conductor aligns every player on a common phase origin
    assert player.last(PlayerUpdateMessage).payload.phase_anchor == clock.now
    assert isinstance(first.messages[0], FullStateMessage)

    score.join_conductor("k2")
    score.leave("k1")
    assert len(player.of_type(ConductorPresenceMessage)) == 1
    assert second.last(StateUpdateMessage).payload.conductor_count == 1

    score.leave("k2")
    assert [m.payload.present for m in player.of_type(ConductorPresenceMessage)] == [True, False]


def test_first_conductor_aligns_staggered_players(
    score: ScoreService, connect, clock: FakeClock
) -> None:
    players = []
    for index, name in enumerate(("Alice", "Bob", "Carol"), start=1):
        players.append(connect(f"c{index}"))
        score.join_player(f"c{index}", name)
        clock.advance(333)
    connect("k1")
    for player in players:
        player.clear()

    score.join_conductor("k1")

    for player in players:
        updates = player.of_type(PlayerUpdateMessage)
        assert len(updates) == 1
        assert updates[0].payload.phase_anchor == clock.now


def test_player_leave_updates_conductors(score: ScoreService, connect) -> None:
    conductor = connect("k1")
    score.join_conductor("k1")
    connect("c1")
    score.join_player("c1", "Alice")
    conductor.clear()

    result = score.leave("c1")

    assert result.player is not None
    assert conductor.last(StateUpdateMessage).payload.players == {}


def test_scene_change_notifies_listener(registry: SessionRegistry, broadcaster, connect) -> None:
    changes: list[str] = []
    service = ScoreService(registry, broadcaster, on_scene_changed=changes.append)
    player = connect("c1")
    service.join_player("c1", "Alice")

    assert service.change_scene("audioScore")
    assert not service.change_scene("nowhere")

    assert changes == ["audioScore"]
    assert player.last(PlayerUpdateMessage).payload.scene == "audioScore"
