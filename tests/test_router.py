"""Tests for the command router and its three input channels."""

from __future__ import annotations

import pytest

from aioscore.models.score import PlayerUpdateMessage, StateUpdateMessage
from aioscore.server.controls import AUDIO_SCORE_CONTROLS, ById, ByName, ControlRegistry, SceneControls
from aioscore.server.router import ALL_PLAYERS, CommandChannel, CommandRouter
from aioscore.server.score import ScoreService
from aioscore.server.session import SessionRegistry
from aioscore.server.wire import parse_datagram

from .conftest import FakeClock, FakeConnection


@pytest.fixture
def stage(score: ScoreService, connect) -> dict[str, FakeConnection]:
    """A conductor k1 and two players c1 (player 1) and c2 (player 2)."""
    connections = {name: connect(name) for name in ("k1", "c1", "c2")}
    score.join_conductor("k1")
    score.join_player("c1", "Alice")
    score.join_player("c2", "Bob")
    for connection in connections.values():
        connection.clear()
    return connections


def test_ui_set_pitch(router: CommandRouter, registry: SessionRegistry, stage) -> None:
    assert router.set_pitch("k1", "c1", 60) == 1

    player = registry.get_player("c1")
    assert player is not None and player.pitch == 60
    assert stage["c1"].last(PlayerUpdateMessage).payload.pitch == 60
    assert stage["c2"].messages == []
    assert stage["k1"].last(StateUpdateMessage).payload.players["c1"].pitch == 60


def test_ui_set_interval_rebases_phase(
    router: CommandRouter, registry: SessionRegistry, clock: FakeClock, stage
) -> None:
    clock.advance(2_300)
    assert router.set_interval("k1", "c2", 2000) == 1
    update = stage["c2"].last(PlayerUpdateMessage).payload
    assert update.interval == 2000
    player = registry.get_player("c2")
    assert player is not None
    assert update.phase_anchor == player.phase_anchor


def test_commands_from_non_conductors_are_ignored(
    router: CommandRouter, registry: SessionRegistry, stage
) -> None:
    assert router.set_pitch("c1", "c1", 60) == 0
    assert router.set_interval("c2", "c1", 500) == 0
    assert router.bridge_command("c1", 1, 1, 60) == 0
    assert router.set_scene("c1", "audioScore") == 0
    player = registry.get_player("c1")
    assert player is not None and player.pitch == 69
    assert all(not connection.messages for connection in stage.values())


@pytest.mark.parametrize("pitch", [35, 85, 60.5, float("nan"), True, "60", None])
def test_invalid_values_are_rejected(
    router: CommandRouter, registry: SessionRegistry, stage, pitch: object
) -> None:
    assert router.set_pitch("k1", "c1", pitch) == 0
    player = registry.get_player("c1")
    assert player is not None and player.pitch == 69
    assert stage["c1"].messages == []


def test_integral_float_is_accepted(router: CommandRouter, registry: SessionRegistry, stage) -> None:
    assert router.set_pitch("k1", "c1", 60.0) == 1
    player = registry.get_player("c1")
    assert player is not None and player.pitch == 60


def test_unknown_target_is_ignored(router: CommandRouter, stage) -> None:
    assert router.set_pitch("k1", "nobody", 60) == 0
    assert router.wire_command(7, 1, 60) == 0
    assert router.wire_command(-2, 1, 60) == 0
    assert all(not connection.messages for connection in stage.values())


def test_unknown_control_is_ignored(router: CommandRouter, stage) -> None:
    assert router.wire_command(1, 9, 60) == 0
    assert router.bridge_command("k1", 1, "volume", 60) == 0
    assert all(not connection.messages for connection in stage.values())


def test_wire_by_id_targets_player_number(
    router: CommandRouter, registry: SessionRegistry, stage
) -> None:
    assert router.wire_command(2, 1, 48) == 1
    player = registry.get_player("c2")
    assert player is not None and player.pitch == 48
    assert stage["c2"].last(PlayerUpdateMessage).payload.pitch == 48
    assert stage["c1"].messages == []


def test_text_datagram_with_stray_space_and_float_tokens(
    router: CommandRouter, registry: SessionRegistry, stage
) -> None:
    command = parse_datagram(b"/ conductor 2. 1. 60.")
    assert router.wire_command(command.target, command.control, command.value) == 1
    player = registry.get_player("c2")
    assert player is not None and player.pitch == 60
    assert stage["c2"].last(PlayerUpdateMessage).payload.pitch == 60
    assert stage["c1"].messages == []


def test_wire_all_players(router: CommandRouter, registry: SessionRegistry, stage) -> None:
    assert router.wire_command(ALL_PLAYERS, 2, 500) == 2
    assert [player.interval for player in registry.players] == [500, 500]
    assert stage["c1"].last(PlayerUpdateMessage).payload.interval == 500
    assert stage["c2"].last(PlayerUpdateMessage).payload.interval == 500
    assert len(stage["k1"].of_type(StateUpdateMessage)) == 1


def test_all_channels_have_the_same_effect(
    registry: SessionRegistry, broadcaster, connect
) -> None:
    results = []
    for channel_call in (
        lambda router: router.set_pitch("k1", "c1", 50),
        lambda router: router.bridge_command("k1", 1, "pitch", 50),
        lambda router: router.bridge_command("k1", 1, 1, 50),
        lambda router: router.wire_command(1, 1.0, 50.0),
    ):
        fresh = SessionRegistry(ControlRegistry(), lambda: 0)
        service = ScoreService(fresh, broadcaster)
        connect("k1")
        connect("c1")
        service.join_conductor("k1")
        service.join_player("c1", "Alice")
        assert channel_call(CommandRouter(service)) == 1
        results.append(fresh.snapshot())
    assert all(result == results[0] for result in results)


def test_scene_select_over_wire(registry: SessionRegistry, broadcaster, connect) -> None:
    drone = SceneControls(
        "drone",
        tuple(
            control for control in AUDIO_SCORE_CONTROLS.controls if control.name == "interval"
        ),
    )
    fresh = SessionRegistry(ControlRegistry((AUDIO_SCORE_CONTROLS, drone)), lambda: 0)
    scenes: list[str] = []
    router = CommandRouter(ScoreService(fresh, broadcaster, on_scene_changed=scenes.append))
    player = connect("c1")
    fresh.join_player("c1", "Alice")

    assert router.wire_command(1, 100, 1) == 0  # scene select needs target 0
    assert router.wire_command(0, 100, 5) == 0  # no such scene
    assert router.wire_command(0, 100, 1) == 1
    assert fresh.scene == "drone"
    assert player.last(PlayerUpdateMessage).payload.scene == "drone"
    # pitch does not exist in the new scene
    assert router.wire_command(1, 1, 60) == 0
    assert router.wire_command(1, "pitch", 60) == 0
    assert scenes == ["drone"]


def test_ui_set_scene(router: CommandRouter, registry: SessionRegistry, stage) -> None:
    assert router.set_scene("k1", "nowhere") == 0
    assert router.set_scene("k1", 3) == 0
    assert router.set_scene("k1", "audioScore") == 1
    assert registry.scene == "audioScore"
    assert stage["c1"].of_type(PlayerUpdateMessage)


def test_dispatch_by_connection_id(router: CommandRouter, registry: SessionRegistry, stage) -> None:
    assert router.dispatch("c2", ById(2), 250, CommandChannel.UI) == 1
    assert router.dispatch("c2", ByName("pitch"), 84, CommandChannel.UI) == 1
    player = registry.get_player("c2")
    assert player is not None
    assert (player.pitch, player.interval) == (84, 250)


def test_malformed_numeric_commands(router: CommandRouter, stage) -> None:
    assert router.wire_command(1.5, 1, 60) == 0
    assert router.wire_command(1, 1.5, 60) == 0
    assert router.bridge_command("k1", "1", 1, 60) == 0
    assert all(not connection.messages for connection in stage.values())
