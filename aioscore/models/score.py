"""Score messages for the aioscore protocol.

This module contains the messages exchanged with players, which render a cyclic
score locally, and with conductors, which shape that score for every player.
All timestamps are server clock milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ClientMessage, ServerMessage


@dataclass(frozen=True)
class ControlDefinition(DataClassORJSONMixin):
    """A single control of a scene, addressable by numeric id or by name."""

    id: int
    """Numeric id, unique within a scene. 0 and 100 are reserved."""
    name: str
    """Human-facing name, also the name the router applies mutations by."""
    min_value: float
    """Lowest accepted value (inclusive)."""
    max_value: float
    """Highest accepted value (inclusive)."""
    step: float
    """Slider step hint for user interfaces."""
    default_value: float
    """Initial value for new players."""
    unit: str | None = None
    """Display unit."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True

    def in_range(self, value: float) -> bool:
        """Return True if value lies within the accepted range."""
        return self.min_value <= value <= self.max_value


# Client -> Server: player/join
@dataclass
class PlayerJoinPayload(DataClassORJSONMixin):
    """Payload sent by a player to join the score."""

    name: str | None = None
    """Display name, truncated to 50 characters."""


@dataclass
class PlayerJoinMessage(ClientMessage):
    """Message sent by a client to join as a player."""

    payload: PlayerJoinPayload = field(default_factory=PlayerJoinPayload)
    type: Literal["player/join"] = "player/join"


# Server -> Client: player/state
@dataclass
class PlayerStatePayload(DataClassORJSONMixin):
    """Initial state of a freshly joined player."""

    pitch: int
    """MIDI note number."""
    interval: int
    """Cycle period in milliseconds."""
    conductor_present: bool
    """Whether at least one conductor is connected."""
    scene: str
    """Current scene name."""
    phase_anchor: float
    """Server timestamp of phase zero."""


@dataclass
class PlayerStateMessage(ServerMessage):
    """Message sent to a player right after it joined."""

    payload: PlayerStatePayload
    type: Literal["player/state"] = "player/state"


# Server -> Client: player/update
@dataclass
class PlayerUpdatePayload(DataClassORJSONMixin):
    """Authoritative parameters of a player."""

    pitch: int
    """MIDI note number."""
    interval: int
    """Cycle period in milliseconds."""
    scene: str
    """Current scene name."""
    phase_anchor: float
    """Server timestamp of phase zero."""


@dataclass
class PlayerUpdateMessage(ServerMessage):
    """Message sent to a player whenever its parameters change."""

    payload: PlayerUpdatePayload
    type: Literal["player/update"] = "player/update"


# Server -> Client: conductor/presence
@dataclass
class ConductorPresencePayload(DataClassORJSONMixin):
    """Conductor presence."""

    present: bool
    """True once the first conductor joined, False once the last one left."""


@dataclass
class ConductorPresenceMessage(ServerMessage):
    """Message broadcast to all players when conductor presence flips."""

    payload: ConductorPresencePayload
    type: Literal["conductor/presence"] = "conductor/presence"


# Client -> Server: conductor/join
@dataclass
class ConductorJoinMessage(ClientMessage):
    """Message sent by a client to join as a conductor."""

    type: Literal["conductor/join"] = "conductor/join"


# Client -> Server: conductor/set-pitch
@dataclass
class SetPitchPayload(DataClassORJSONMixin):
    """Set the pitch of one player."""

    player_id: str
    """Connection id of the target player."""
    pitch: float
    """MIDI note number."""


@dataclass
class SetPitchMessage(ClientMessage):
    """Message sent by a conductor to change the pitch of a player."""

    payload: SetPitchPayload
    type: Literal["conductor/set-pitch"] = "conductor/set-pitch"


# Client -> Server: conductor/set-interval
@dataclass
class SetIntervalPayload(DataClassORJSONMixin):
    """Set the interval of one player."""

    player_id: str
    """Connection id of the target player."""
    interval: float
    """Cycle period in milliseconds."""


@dataclass
class SetIntervalMessage(ClientMessage):
    """Message sent by a conductor to change the interval of a player."""

    payload: SetIntervalPayload
    type: Literal["conductor/set-interval"] = "conductor/set-interval"


# Client -> Server: conductor/set-scene
@dataclass
class SetScenePayload(DataClassORJSONMixin):
    """Switch the scene."""

    scene: str
    """Name of a scene from the control table."""


@dataclass
class SetSceneMessage(ClientMessage):
    """Message sent by a conductor to change the scene."""

    payload: SetScenePayload
    type: Literal["conductor/set-scene"] = "conductor/set-scene"


# Client -> Server: bridge/command
@dataclass
class BridgeCommandPayload(DataClassORJSONMixin):
    """Numeric command from an external controller bridge."""

    target: int
    """Player number, -1 for all players or 0 for scene-wide controls."""
    control: Any
    """Numeric control id or control name."""
    value: float
    """New value for the control."""


@dataclass
class BridgeCommandMessage(ClientMessage):
    """Message sent by a controller bridge connected as a conductor."""

    payload: BridgeCommandPayload
    type: Literal["bridge/command"] = "bridge/command"


# Server -> Client: state/full and state/update
@dataclass
class PlayerInfo(DataClassORJSONMixin):
    """A player as seen by conductors."""

    player_id: int
    """Stable numeric id used by the wire protocol and the bridge."""
    connection_id: str
    """Connection id used by conductor/set-* messages."""
    name: str
    pitch: int
    interval: int
    phase_anchor: float


@dataclass
class Defaults(DataClassORJSONMixin):
    """Parameters new players start with."""

    pitch: int
    interval: int


@dataclass
class ScoreStatePayload(DataClassORJSONMixin):
    """Aggregate state sent to conductors."""

    players: dict[str, PlayerInfo]
    """Players keyed by connection id."""
    conductor_count: int
    scene: str
    defaults: Defaults
    phase_anchor: float
    """Timestamp of the last scene-wide phase reset."""
    controls: list[ControlDefinition] = field(default_factory=list)
    """Controls available in the current scene."""


@dataclass
class FullStateMessage(ServerMessage):
    """Message sent to a conductor right after it joined."""

    payload: ScoreStatePayload
    type: Literal["state/full"] = "state/full"


@dataclass
class StateUpdateMessage(ServerMessage):
    """Message broadcast to conductors whenever the aggregate state changes."""

    payload: ScoreStatePayload
    type: Literal["state/update"] = "state/update"
