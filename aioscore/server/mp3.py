"""
Synchronized playback of pre-recorded files across a fixed set of slots.

Each slot pairs at most one connected MP3 player with at most one uploaded file.
Binding and file assignment are independent: a player can wait in an empty slot
and a file stays assigned after its player disconnected.

Playback is scheduled, not streamed. ``play`` picks a start instant slightly in
the future and tells every bound player with a file to start its local copy at
that server time; players translate it with their clock offset. Each playback
carries a fresh play token. A player only honors a stop carrying the token of
the playback it is running, which protects it against a stop overtaking the
play that followed it.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass

from aioscore.models.mp3 import (
    Mp3AssignmentMessage,
    Mp3AssignmentPayload,
    Mp3FullStateMessage,
    Mp3JoinErrorMessage,
    Mp3JoinErrorPayload,
    Mp3JoinSuccessMessage,
    Mp3JoinSuccessPayload,
    Mp3PlayMessage,
    Mp3PlayPayload,
    Mp3PlayStateInfo,
    Mp3ReadyPayload,
    Mp3SlotInfo,
    Mp3StatePayload,
    Mp3StateUpdateMessage,
    Mp3StopMessage,
    Mp3StopPayload,
)
from aioscore.models.types import Room

from .broadcast import Broadcaster
from .clock import Clock
from .session import MAX_NAME_LENGTH

DEFAULT_SLOT_COUNT = 8
PLAY_LEAD_MS = 1_000
"""Delay between a play command and the scheduled start."""
LATE_JOIN_LEAD_MS = 250
"""Delay used when a player catches up with a running playback."""
CAPACITY_ERROR = "All slots are taken"

logger = logging.getLogger(__name__)


@dataclass
class Mp3Slot:
    """One playback slot."""

    slot_index: int
    connection_id: str | None = None
    player_name: str | None = None
    file_id: str | None = None
    file_name: str | None = None
    ready: bool = False
    """Whether the bound player reported the current file as decoded."""
    duration: float | None = None
    """Duration in seconds reported by the bound player."""

    @property
    def bound(self) -> bool:
        """Whether a player is bound to this slot."""
        return self.connection_id is not None

    def clear_binding(self) -> None:
        """Unbind the player, keeping the file."""
        self.connection_id = None
        self.player_name = None
        self.ready = False

    def to_info(self) -> Mp3SlotInfo:
        """Build the description of this slot sent to MP3 conductors."""
        return Mp3SlotInfo(
            slot_index=self.slot_index,
            connection_id=self.connection_id,
            player_name=self.player_name,
            file_id=self.file_id,
            file_name=self.file_name,
            ready=self.ready,
            duration=self.duration,
        )


@dataclass(frozen=True)
class Mp3PlayState:
    """The active playback."""

    play_token: str
    start_instant: int
    """Server timestamp in milliseconds at which seek_seconds plays."""
    seek_seconds: float

    def position_at(self, instant: int) -> float:
        """File position in seconds at a server timestamp, clamped to the seek position."""
        return self.seek_seconds + max(0, instant - self.start_instant) / 1_000

    def to_info(self) -> Mp3PlayStateInfo:
        """Build the description sent to MP3 conductors."""
        return Mp3PlayStateInfo(
            play_token=self.play_token,
            start_instant=self.start_instant,
            seek_seconds=self.seek_seconds,
        )


class Mp3SyncScheduler:
    """Owner of the slot table and the play state."""

    _broadcaster: Broadcaster
    _clock: Clock
    _slots: list[Mp3Slot]
    _conductors: set[str]
    _play_state: Mp3PlayState | None

    def __init__(
        self, broadcaster: Broadcaster, clock: Clock, slot_count: int = DEFAULT_SLOT_COUNT
    ) -> None:
        """Initialize the scheduler with empty slots."""
        if slot_count < 1:
            raise ValueError(f"slot_count must be positive, got {slot_count}")
        self._broadcaster = broadcaster
        self._clock = clock
        self._slots = [Mp3Slot(slot_index=index) for index in range(slot_count)]
        self._conductors = set()
        self._play_state = None

    @property
    def slot_count(self) -> int:
        """Number of slots."""
        return len(self._slots)

    @property
    def play_state(self) -> Mp3PlayState | None:
        """The active playback, None when stopped."""
        return self._play_state

    def get_slot(self, slot_index: int) -> Mp3Slot | None:
        """Get a slot by index."""
        if 0 <= slot_index < len(self._slots):
            return self._slots[slot_index]
        return None

    def slot_for_connection(self, connection_id: str) -> Mp3Slot | None:
        """Get the slot a connection is bound to."""
        return next((slot for slot in self._slots if slot.connection_id == connection_id), None)

    def is_conductor(self, connection_id: str) -> bool:
        """Check if a connection joined as MP3 conductor."""
        return connection_id in self._conductors

    def snapshot(self) -> Mp3StatePayload:
        """Build the state sent to MP3 conductors."""
        return Mp3StatePayload(
            slots=[slot.to_info() for slot in self._slots],
            play_state=self._play_state.to_info() if self._play_state is not None else None,
        )

    def broadcast_state(self) -> None:
        """Send the slot table and play state to all MP3 conductors."""
        self._broadcaster.send_to_room(Room.MP3_CONDUCTORS, Mp3StateUpdateMessage(self.snapshot()))

    def join_player(self, connection_id: str, name: object) -> Mp3Slot | None:
        """
        Bind a connection to the lowest free slot.

        Sends mp3/join-success, or mp3/join-error if every slot is taken; that
        is the only request answered with an explicit error, the client has no
        other way to learn it should retry later. A connection that is already
        bound keeps its slot.

        If playback is running and the slot has a file, the player is sent a
        play message that lets it join at the current position.
        """
        slot = self.slot_for_connection(connection_id)
        if slot is None:
            slot = next((slot for slot in self._slots if not slot.bound), None)
            if slot is None:
                logger.info("Rejecting MP3 player %s: %s", connection_id, CAPACITY_ERROR)
                self._broadcaster.send_to(
                    connection_id, Mp3JoinErrorMessage(Mp3JoinErrorPayload(reason=CAPACITY_ERROR))
                )
                return None
            slot.connection_id = connection_id
            slot.player_name = (
                name.strip()[:MAX_NAME_LENGTH] if isinstance(name, str) and name.strip() else None
            )
            slot.ready = False
            logger.info("MP3 player %s bound to slot %d", connection_id, slot.slot_index)
        self._broadcaster.join(Room.MP3_PLAYERS, connection_id)
        self._broadcaster.send_to(
            connection_id,
            Mp3JoinSuccessMessage(
                Mp3JoinSuccessPayload(
                    slot_index=slot.slot_index, file_id=slot.file_id, file_name=slot.file_name
                )
            ),
        )
        self._send_catch_up(slot)
        self.broadcast_state()
        return slot

    def join_conductor(self, connection_id: str) -> None:
        """Register an MP3 conductor and send it the full state."""
        self._conductors.add(connection_id)
        self._broadcaster.join(Room.MP3_CONDUCTORS, connection_id)
        self._broadcaster.send_to(connection_id, Mp3FullStateMessage(self.snapshot()))
        logger.info("MP3 conductor joined (%s)", connection_id)

    def leave(self, connection_id: str) -> None:
        """Unbind a disconnected connection; the slot keeps its file."""
        self._conductors.discard(connection_id)
        self._broadcaster.leave(Room.MP3_CONDUCTORS, connection_id)
        self._broadcaster.leave(Room.MP3_PLAYERS, connection_id)
        slot = self.slot_for_connection(connection_id)
        if slot is None:
            return
        slot.clear_binding()
        logger.info("MP3 player %s left slot %d", connection_id, slot.slot_index)
        self.broadcast_state()

    def report_ready(self, connection_id: str, report: Mp3ReadyPayload) -> bool:
        """
        Record the load status reported by a bound player.

        Only accepted from the connection bound to the slot, and only if the
        report is about the file currently assigned to it; a report for a file
        that was replaced in the meantime is ignored. A player that becomes
        ready while playback runs is sent a play message to catch up.
        """
        slot = self.get_slot(report.slot_index)
        if slot is None or slot.connection_id != connection_id:
            logger.debug("Ignoring ready report for slot %s from %s", report.slot_index, connection_id)
            return False
        if slot.file_id is None or report.file_id != slot.file_id:
            logger.debug(
                "Ignoring stale ready report for file %s on slot %d (current: %s)",
                report.file_id,
                slot.slot_index,
                slot.file_id,
            )
            return False
        slot.ready = bool(report.ready)
        slot.duration = report.duration
        if slot.ready:
            self._send_catch_up(slot)
        self.broadcast_state()
        return True

    def assign_file(self, slot_index: int, file_id: str, file_name: str) -> str | None:
        """
        Assign a freshly uploaded file to a slot.

        Clears the ready flag and duration so the bound player reloads.

        Returns:
            The id of the superseded file, which the caller should delete.

        Raises:
            IndexError: If the slot does not exist.
        """
        slot = self.get_slot(slot_index)
        if slot is None:
            raise IndexError(f"No slot {slot_index}")
        previous = slot.file_id
        slot.file_id = file_id
        slot.file_name = file_name
        slot.ready = False
        slot.duration = None
        logger.info("Assigned file %s (%s) to slot %d", file_id, file_name, slot_index)
        self._send_assignment(slot)
        self.broadcast_state()
        return previous

    def remove_file(self, slot_index: int) -> str | None:
        """
        Remove the file of a slot.

        Returns:
            The id of the removed file, None if the slot had no file.

        Raises:
            IndexError: If the slot does not exist.
        """
        slot = self.get_slot(slot_index)
        if slot is None:
            raise IndexError(f"No slot {slot_index}")
        previous = slot.file_id
        if previous is None:
            return None
        slot.file_id = None
        slot.file_name = None
        slot.ready = False
        slot.duration = None
        logger.info("Removed file %s from slot %d", previous, slot_index)
        self._send_assignment(slot)
        self.broadcast_state()
        return previous

    def play(self, sender_id: str, seek_seconds: object) -> Mp3PlayState | None:
        """
        Start playback on every bound slot with a file.

        Replaces any running playback. Returns None without changing anything
        if the sender is not an MP3 conductor or the seek position is invalid.
        """
        if not self.is_conductor(sender_id):
            logger.info("Ignoring play from %s, which is not an MP3 conductor", sender_id)
            return None
        if (
            isinstance(seek_seconds, bool)
            or not isinstance(seek_seconds, int | float)
            or not math.isfinite(seek_seconds)
            or seek_seconds < 0
        ):
            logger.info("Ignoring play with invalid seek position %r", seek_seconds)
            return None
        self._play_state = Mp3PlayState(
            play_token=uuid.uuid4().hex,
            start_instant=self._clock() + PLAY_LEAD_MS,
            seek_seconds=float(seek_seconds),
        )
        scheduled = 0
        for slot in self._slots:
            if slot.bound and slot.file_id is not None:
                self._send_play(slot, self._play_state.start_instant, self._play_state.seek_seconds)
                scheduled += 1
        logger.info(
            "Playback %s scheduled on %d slots at %d (seek %.2fs)",
            self._play_state.play_token,
            scheduled,
            self._play_state.start_instant,
            self._play_state.seek_seconds,
        )
        self.broadcast_state()
        return self._play_state

    def stop(self, sender_id: str) -> str | None:
        """
        Stop the running playback.

        Returns the token of the stopped playback, None if nothing was playing
        or the sender is not an MP3 conductor.
        """
        if not self.is_conductor(sender_id):
            logger.info("Ignoring stop from %s, which is not an MP3 conductor", sender_id)
            return None
        if self._play_state is None:
            return None
        token = self._play_state.play_token
        self._play_state = None
        self._broadcaster.send_to_room(Room.MP3_PLAYERS, Mp3StopMessage(Mp3StopPayload(token)))
        logger.info("Playback %s stopped", token)
        self.broadcast_state()
        return token

    def _send_assignment(self, slot: Mp3Slot) -> None:
        if slot.connection_id is None:
            return
        self._broadcaster.send_to(
            slot.connection_id,
            Mp3AssignmentMessage(
                Mp3AssignmentPayload(
                    slot_index=slot.slot_index, file_id=slot.file_id, file_name=slot.file_name
                )
            ),
        )

    def _send_catch_up(self, slot: Mp3Slot) -> None:
        """Let a slot join the running playback at its current position."""
        if self._play_state is None or not slot.bound or slot.file_id is None:
            return
        now = self._clock()
        start_instant = max(self._play_state.start_instant, now + LATE_JOIN_LEAD_MS)
        self._send_play(slot, start_instant, self._play_state.position_at(start_instant))

    def _send_play(self, slot: Mp3Slot, start_instant: int, seek_seconds: float) -> None:
        assert slot.connection_id is not None
        assert slot.file_id is not None
        assert self._play_state is not None
        self._broadcaster.send_to(
            slot.connection_id,
            Mp3PlayMessage(
                Mp3PlayPayload(
                    play_token=self._play_state.play_token,
                    start_instant=start_instant,
                    seek_seconds=seek_seconds,
                    slot_index=slot.slot_index,
                    file_id=slot.file_id,
                )
            ),
        )
