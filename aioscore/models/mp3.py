"""MP3 sync messages for the aioscore protocol.

This module contains the messages of the slot based playback subsystem. MP3
players bind to one of a fixed number of slots and play the file uploaded to
that slot; MP3 conductors start and stop playback for every slot at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ClientMessage, ServerMessage


# Client -> Server: mp3/join-player
@dataclass
class Mp3JoinPlayerPayload(DataClassORJSONMixin):
    """Payload sent by a client to bind to a playback slot."""

    name: str | None = None
    """Display name shown to MP3 conductors."""


@dataclass
class Mp3JoinPlayerMessage(ClientMessage):
    """Message sent by a client to join as an MP3 player."""

    payload: Mp3JoinPlayerPayload = field(default_factory=Mp3JoinPlayerPayload)
    type: Literal["mp3/join-player"] = "mp3/join-player"


# Server -> Client: mp3/join-success
@dataclass
class Mp3JoinSuccessPayload(DataClassORJSONMixin):
    """Slot the client was bound to."""

    slot_index: int
    file_id: str | None
    file_name: str | None


@dataclass
class Mp3JoinSuccessMessage(ServerMessage):
    """Message sent when a client was bound to a slot."""

    payload: Mp3JoinSuccessPayload
    type: Literal["mp3/join-success"] = "mp3/join-success"


# Server -> Client: mp3/join-error
@dataclass
class Mp3JoinErrorPayload(DataClassORJSONMixin):
    """Reason the client could not be bound."""

    reason: str


@dataclass
class Mp3JoinErrorMessage(ServerMessage):
    """Message sent when every slot is taken."""

    payload: Mp3JoinErrorPayload
    type: Literal["mp3/join-error"] = "mp3/join-error"


# Server -> Client: mp3/assignment
@dataclass
class Mp3AssignmentPayload(DataClassORJSONMixin):
    """File currently assigned to the slot, None after removal."""

    slot_index: int
    file_id: str | None
    file_name: str | None


@dataclass
class Mp3AssignmentMessage(ServerMessage):
    """Message sent to the bound client when its slot's file changes."""

    payload: Mp3AssignmentPayload
    type: Literal["mp3/assignment"] = "mp3/assignment"


# Client -> Server: mp3/join-conductor
@dataclass
class Mp3JoinConductorMessage(ClientMessage):
    """Message sent by a client to join as an MP3 conductor."""

    type: Literal["mp3/join-conductor"] = "mp3/join-conductor"


# Server -> Client: mp3/full-state and mp3/state-update
@dataclass
class Mp3SlotInfo(DataClassORJSONMixin):
    """A playback slot as seen by MP3 conductors."""

    slot_index: int
    connection_id: str | None
    player_name: str | None
    file_id: str | None
    file_name: str | None
    ready: bool
    duration: float | None


@dataclass
class Mp3PlayStateInfo(DataClassORJSONMixin):
    """The active playback, if any."""

    play_token: str
    start_instant: int
    """Server timestamp in milliseconds at which playback starts."""
    seek_seconds: float
    playing: bool = True


@dataclass
class Mp3StatePayload(DataClassORJSONMixin):
    """All slots and the play state."""

    slots: list[Mp3SlotInfo]
    play_state: Mp3PlayStateInfo | None


@dataclass
class Mp3FullStateMessage(ServerMessage):
    """Message sent to an MP3 conductor right after it joined."""

    payload: Mp3StatePayload
    type: Literal["mp3/full-state"] = "mp3/full-state"


@dataclass
class Mp3StateUpdateMessage(ServerMessage):
    """Message broadcast to MP3 conductors whenever a slot or the play state changes."""

    payload: Mp3StatePayload
    type: Literal["mp3/state-update"] = "mp3/state-update"


# Client -> Server: mp3/ready
@dataclass
class Mp3ReadyPayload(DataClassORJSONMixin):
    """Load status of the file of a slot."""

    slot_index: int
    file_id: str
    """File the report refers to; stale reports for older files are ignored."""
    duration: float | None = None
    """Decoded duration in seconds."""
    ready: bool = True


@dataclass
class Mp3ReadyMessage(ClientMessage):
    """Message sent by an MP3 player once its file is decoded."""

    payload: Mp3ReadyPayload
    type: Literal["mp3/ready"] = "mp3/ready"


# Client -> Server: mp3/play
@dataclass
class Mp3PlayCommandPayload(DataClassORJSONMixin):
    """Start playback at a position."""

    seek_seconds: float = 0.0


@dataclass
class Mp3PlayCommandMessage(ClientMessage):
    """Message sent by an MP3 conductor to start playback on every slot."""

    payload: Mp3PlayCommandPayload = field(default_factory=Mp3PlayCommandPayload)
    type: Literal["mp3/play"] = "mp3/play"


# Server -> Client: mp3/play
@dataclass
class Mp3PlayPayload(DataClassORJSONMixin):
    """Scheduled start for one slot."""

    play_token: str
    """Fencing token; a later mp3/stop only applies if it carries the same token."""
    start_instant: int
    """Server timestamp in milliseconds at which the file position seek_seconds plays."""
    seek_seconds: float
    slot_index: int
    file_id: str


@dataclass
class Mp3PlayMessage(ServerMessage):
    """Message sent to each bound MP3 player to schedule playback."""

    payload: Mp3PlayPayload
    type: Literal["mp3/play"] = "mp3/play"


# Client -> Server: mp3/stop
@dataclass
class Mp3StopCommandMessage(ClientMessage):
    """Message sent by an MP3 conductor to stop playback."""

    type: Literal["mp3/stop"] = "mp3/stop"


# Server -> Client: mp3/stop
@dataclass
class Mp3StopPayload(DataClassORJSONMixin):
    """Playback to stop."""

    play_token: str


@dataclass
class Mp3StopMessage(ServerMessage):
    """Message broadcast to MP3 players to stop the playback with the given token."""

    payload: Mp3StopPayload
    type: Literal["mp3/stop"] = "mp3/stop"
