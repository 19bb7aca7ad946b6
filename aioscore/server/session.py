"""Registry of players and conductors of the score."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from aioscore.models.score import (
    Defaults,
    PlayerInfo,
    PlayerUpdatePayload,
    ScoreStatePayload,
)

from .clock import Clock
from .controls import ByName, ControlRegistry
from .phase import rebase_anchor

MAX_NAME_LENGTH = 50

logger = logging.getLogger(__name__)


@dataclass
class PlayerState:
    """Parameters of one connected player."""

    player_id: int
    """Stable numeric id, never reused during the lifetime of the process."""
    connection_id: str
    name: str
    pitch: int
    interval: int
    """Cycle period in milliseconds."""
    phase_anchor: float
    """Server timestamp in milliseconds of phase zero."""

    def to_update(self, scene: str) -> PlayerUpdatePayload:
        """Build the authoritative update sent to this player."""
        return PlayerUpdatePayload(
            pitch=self.pitch,
            interval=self.interval,
            scene=scene,
            phase_anchor=self.phase_anchor,
        )

    def to_info(self) -> PlayerInfo:
        """Build the description of this player sent to conductors."""
        return PlayerInfo(
            player_id=self.player_id,
            connection_id=self.connection_id,
            name=self.name,
            pitch=self.pitch,
            interval=self.interval,
            phase_anchor=self.phase_anchor,
        )


@dataclass(frozen=True)
class LeaveResult:
    """What a disconnecting connection was registered as."""

    player: PlayerState | None = None
    """State of the removed player, if the connection was a player."""
    was_conductor: bool = False
    last_conductor: bool = False
    """True if the connection was the last conductor (1 -> 0 transition)."""


class SessionRegistry:
    """
    Owner of all player and conductor state.

    All mutation goes through the methods of this class, which keep pitch and
    interval within the ranges of the control table and return whether they
    applied instead of raising.
    """

    _controls: ControlRegistry
    _clock: Clock
    _players: dict[str, PlayerState]
    """Players keyed by connection id."""
    _player_connections: dict[int, str]
    """Connection ids keyed by numeric player id."""
    _conductors: set[str]
    _next_player_id: int
    _scene: str
    _phase_anchor: float
    """Timestamp of the last scene-wide phase reset."""

    def __init__(self, controls: ControlRegistry, clock: Clock) -> None:
        """Initialize an empty registry on the default scene."""
        self._controls = controls
        self._clock = clock
        self._players = {}
        self._player_connections = {}
        self._conductors = set()
        self._next_player_id = 1
        self._scene = controls.default_scene
        self._phase_anchor = clock()

    @property
    def controls(self) -> ControlRegistry:
        """The control table used for defaults and validation."""
        return self._controls

    @property
    def scene(self) -> str:
        """Name of the current scene."""
        return self._scene

    @property
    def phase_anchor(self) -> float:
        """Timestamp of the last scene-wide phase reset."""
        return self._phase_anchor

    @property
    def defaults(self) -> Defaults:
        """Parameters new players start with."""
        return Defaults(
            pitch=self._controls.default_value("pitch", self._scene),
            interval=self._controls.default_value("interval", self._scene),
        )

    @property
    def players(self) -> list[PlayerState]:
        """All connected players, ordered by player id."""
        return sorted(self._players.values(), key=lambda player: player.player_id)

    @property
    def conductor_count(self) -> int:
        """Number of connected conductors."""
        return len(self._conductors)

    @property
    def conductor_present(self) -> bool:
        """Whether at least one conductor is connected."""
        return bool(self._conductors)

    def is_conductor(self, connection_id: str) -> bool:
        """Check if a connection joined as conductor."""
        return connection_id in self._conductors

    def get_player(self, connection_id: str) -> PlayerState | None:
        """Get a player by connection id."""
        return self._players.get(connection_id)

    def get_player_by_id(self, player_id: int) -> PlayerState | None:
        """Get a player by its numeric id."""
        connection_id = self._player_connections.get(player_id)
        if connection_id is None:
            return None
        return self._players.get(connection_id)

    def join_player(self, connection_id: str, name: object) -> PlayerState | None:
        """
        Register a connection as player.

        Returns None without changing anything if the name is missing or not a
        non-empty string. A connection that already is a player keeps its state.
        """
        if not isinstance(name, str) or not name.strip():
            logger.debug("Ignoring player join with invalid name from %s", connection_id)
            return None
        if (existing := self._players.get(connection_id)) is not None:
            return existing
        defaults = self.defaults
        player = PlayerState(
            player_id=self._next_player_id,
            connection_id=connection_id,
            name=name.strip()[:MAX_NAME_LENGTH],
            pitch=defaults.pitch,
            interval=defaults.interval,
            phase_anchor=self._clock(),
        )
        self._next_player_id += 1
        self._players[connection_id] = player
        self._player_connections[player.player_id] = connection_id
        logger.info("Player %d joined: %s (%s)", player.player_id, player.name, connection_id)
        return player

    def join_conductor(self, connection_id: str) -> bool:
        """
        Register a connection as conductor.

        Returns True if this is the first conductor (0 -> 1 transition).
        A connection that already is a conductor is not counted twice.
        """
        if connection_id in self._conductors:
            return False
        self._conductors.add(connection_id)
        logger.info(
            "Conductor joined (%s), total conductors: %d", connection_id, len(self._conductors)
        )
        return len(self._conductors) == 1

    def leave(self, connection_id: str) -> LeaveResult:
        """Remove a connection from every role it holds."""
        player = self._players.pop(connection_id, None)
        if player is not None:
            del self._player_connections[player.player_id]
            logger.info("Player %d left (%s)", player.player_id, connection_id)
        was_conductor = connection_id in self._conductors
        self._conductors.discard(connection_id)
        if was_conductor:
            logger.info("Conductor left, remaining conductors: %d", len(self._conductors))
        return LeaveResult(
            player=player,
            was_conductor=was_conductor,
            last_conductor=was_conductor and not self._conductors,
        )

    def _in_range(self, control_name: str, value: int) -> bool:
        definition = self._controls.resolve(ByName(control_name), self._scene)
        return definition is not None and definition.in_range(value)

    def set_pitch(self, connection_id: str, pitch: int) -> bool:
        """Overwrite the pitch of a player, returns False if out of range or unknown."""
        player = self._players.get(connection_id)
        if player is None or not self._in_range("pitch", pitch):
            return False
        player.pitch = pitch
        return True

    def set_interval(self, connection_id: str, interval: int) -> bool:
        """
        Change the interval of a player without a phase discontinuity.

        The phase anchor is rebased so the phase fraction at the moment of the
        change is the same before and after it.
        """
        player = self._players.get(connection_id)
        if player is None or not self._in_range("interval", interval):
            return False
        now = self._clock()
        player.phase_anchor = rebase_anchor(player.phase_anchor, player.interval, interval, now)
        player.interval = interval
        return True

    def reset_phase(self) -> float:
        """Move the phase anchor of every player to one common instant and return it."""
        now = self._clock()
        self._phase_anchor = now
        for player in self._players.values():
            player.phase_anchor = now
        return now

    def set_scene(self, scene: str) -> bool:
        """Switch to a scene of the control table and reset all phases."""
        if not self._controls.has_scene(scene):
            logger.debug("Ignoring unknown scene %r", scene)
            return False
        self._scene = scene
        self.reset_phase()
        logger.info("Scene changed to %s", scene)
        return True

    def snapshot(self) -> ScoreStatePayload:
        """Build the aggregate state sent to conductors."""
        return ScoreStatePayload(
            players={player.connection_id: player.to_info() for player in self.players},
            conductor_count=self.conductor_count,
            scene=self._scene,
            defaults=self.defaults,
            phase_anchor=self._phase_anchor,
            controls=self._controls.scene_controls(self._scene),
        )
