"""
Command routing for control changes from every input channel.

Conductor UI messages, controller bridge messages and datagram commands all end
up in :meth:`CommandRouter.dispatch`, which runs the same steps for each:

1. resolve the control in the current scene (id or name, normalized to a name),
2. resolve the target (a connection id, a player number, -1 for every player or
   0 for the scene-wide controls),
3. validate the value against the control's range,
4. apply it through the session registry,
5. push the new state to the affected players and to the conductors.

Invalid commands are dropped and logged: the datagram channel has no way to
answer, and the other channels behave the same so a command never has a
different effect depending on where it came from.
"""

from __future__ import annotations

import logging
import math
from enum import Enum

from .controls import SCENE_SELECT_CONTROL_ID, ByName, ControlRef, control_ref
from .score import ScoreService
from .session import PlayerState

ALL_PLAYERS = -1
SCENE_TARGET = 0

logger = logging.getLogger(__name__)


class CommandChannel(Enum):
    """Where a command came from, used for logging only."""

    UI = "ui"
    WIRE = "wire"
    BRIDGE = "bridge"


def _as_integral(value: object) -> int | None:
    """Return value as int if it is a finite whole number, None otherwise."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if isinstance(value, float) and (not math.isfinite(value) or not value.is_integer()):
        return None
    return int(value)


class CommandRouter:
    """Validates control commands and applies them to the score."""

    _score: ScoreService

    def __init__(self, score: ScoreService) -> None:
        """Initialize the router on top of the score service."""
        self._score = score

    # Conductor UI channel

    def set_pitch(self, sender_id: str, player_connection_id: str, pitch: object) -> int:
        """Apply a pitch change requested by a conductor user interface."""
        if not self._check_conductor(sender_id):
            return 0
        return self.dispatch(player_connection_id, ByName("pitch"), pitch, CommandChannel.UI)

    def set_interval(self, sender_id: str, player_connection_id: str, interval: object) -> int:
        """Apply an interval change requested by a conductor user interface."""
        if not self._check_conductor(sender_id):
            return 0
        return self.dispatch(
            player_connection_id, ByName("interval"), interval, CommandChannel.UI
        )

    def set_scene(self, sender_id: str, scene: object) -> int:
        """Switch to a scene by name, as requested by a conductor user interface."""
        if not self._check_conductor(sender_id):
            return 0
        registry = self._score.registry
        if not isinstance(scene, str) or not registry.controls.has_scene(scene):
            logger.debug("Ignoring unknown scene %r", scene)
            return 0
        scene_index = registry.controls.scenes.index(scene)
        return self.dispatch(
            SCENE_TARGET, ByName("scene"), scene_index, CommandChannel.UI
        )

    # Controller bridge channel

    def bridge_command(self, sender_id: str, target: object, control: object, value: object) -> int:
        """Apply a numeric command from a controller bridge connected as conductor."""
        if not self._check_conductor(sender_id):
            return 0
        return self._numeric_command(target, control, value, CommandChannel.BRIDGE)

    # Datagram channel

    def wire_command(self, target: object, control: object, value: object) -> int:
        """Apply a numeric command received as datagram."""
        return self._numeric_command(target, control, value, CommandChannel.WIRE)

    def _numeric_command(
        self, target: object, control: object, value: object, channel: CommandChannel
    ) -> int:
        player_number = _as_integral(target)
        ref = control_ref(control)
        if player_number is None or ref is None:
            logger.debug(
                "Ignoring malformed %s command: target=%r control=%r",
                channel.value,
                target,
                control,
            )
            return 0
        return self.dispatch(player_number, ref, value, channel)

    def _check_conductor(self, sender_id: str) -> bool:
        if self._score.registry.is_conductor(sender_id):
            return True
        logger.info("Ignoring command from %s, which is not a conductor", sender_id)
        return False

    # Shared path

    def dispatch(
        self,
        target: int | str,
        control: ControlRef,
        value: object,
        channel: CommandChannel,
    ) -> int:
        """
        Resolve, validate and apply one command.

        Args:
            target: Connection id of a player, a player number, ``ALL_PLAYERS``
                or ``SCENE_TARGET``.
            control: The control to change.
            value: The requested value, not yet validated.
            channel: Source of the command.

        Returns:
            How many players the command was applied to (1 for a scene change).
        """
        registry = self._score.registry
        definition = registry.controls.resolve(control, registry.scene)
        if definition is None:
            logger.debug("Ignoring unknown control %s from %s", control, channel.value)
            return 0

        if definition.id == SCENE_SELECT_CONTROL_ID:
            if target != SCENE_TARGET:
                logger.debug("Scene control needs target %d, got %r", SCENE_TARGET, target)
                return 0
            players: list[PlayerState] = []
        else:
            players = self._resolve_targets(target)
            if not players:
                logger.debug("No player for target %r from %s", target, channel.value)
                return 0

        number = _as_integral(value)
        if number is None or not definition.in_range(number):
            logger.info(
                "Rejecting %s=%r from %s, accepted range is %s-%s",
                definition.name,
                value,
                channel.value,
                definition.min_value,
                definition.max_value,
            )
            return 0

        if definition.id == SCENE_SELECT_CONTROL_ID:
            scene = registry.controls.scene_at(number)
            if scene is None or not self._score.change_scene(scene):
                return 0
            return 1

        applied = [player for player in players if self._apply(player, definition.name, number)]
        if applied:
            self._score.push_updates(applied)
            self._score.broadcast_state()
        logger.debug(
            "Applied %s=%d from %s to %d of %d players",
            definition.name,
            number,
            channel.value,
            len(applied),
            len(players),
        )
        return len(applied)

    def _resolve_targets(self, target: int | str) -> list[PlayerState]:
        registry = self._score.registry
        if isinstance(target, str):
            player = registry.get_player(target)
        elif target == ALL_PLAYERS:
            return registry.players
        elif target > SCENE_TARGET:
            player = registry.get_player_by_id(target)
        else:
            return []
        return [player] if player is not None else []

    def _apply(self, player: PlayerState, control_name: str, value: int) -> bool:
        registry = self._score.registry
        match control_name:
            case "pitch":
                return registry.set_pitch(player.connection_id, value)
            case "interval":
                return registry.set_interval(player.connection_id, value)
        logger.debug("Control %s has no effect on players", control_name)
        return False
