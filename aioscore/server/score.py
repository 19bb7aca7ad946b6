"""Player and conductor lifecycle of the score, and propagation of its state."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from aioscore.models.score import (
    ConductorPresenceMessage,
    ConductorPresencePayload,
    FullStateMessage,
    PlayerStateMessage,
    PlayerStatePayload,
    PlayerUpdateMessage,
    StateUpdateMessage,
)
from aioscore.models.types import Room

from .broadcast import Broadcaster
from .session import LeaveResult, PlayerState, SessionRegistry

logger = logging.getLogger(__name__)


class ScoreService:
    """
    Joins, leaves and state propagation for players and conductors.

    Every method runs to completion on the event loop: the registry is mutated
    first, then the resulting messages are enqueued.
    """

    _registry: SessionRegistry
    _broadcaster: Broadcaster
    _on_scene_changed: Callable[[str], None] | None

    def __init__(
        self,
        registry: SessionRegistry,
        broadcaster: Broadcaster,
        on_scene_changed: Callable[[str], None] | None = None,
    ) -> None:
        """
        Initialize the service on top of a registry and a broadcaster.

        Args:
            registry: The session registry to mutate.
            broadcaster: Used to deliver the resulting messages.
            on_scene_changed: Called with the new scene after every scene change.
        """
        self._registry = registry
        self._broadcaster = broadcaster
        self._on_scene_changed = on_scene_changed

    @property
    def registry(self) -> SessionRegistry:
        """The session registry this service mutates."""
        return self._registry

    def join_player(self, connection_id: str, name: object) -> PlayerState | None:
        """
        Join a connection as player.

        Invalid names are ignored silently. On success the player receives its
        initial state and all conductors receive the new aggregate state.
        """
        player = self._registry.join_player(connection_id, name)
        if player is None:
            return None
        self._broadcaster.join(Room.PLAYERS, connection_id)
        self._broadcaster.send_to(
            connection_id,
            PlayerStateMessage(
                PlayerStatePayload(
                    pitch=player.pitch,
                    interval=player.interval,
                    conductor_present=self._registry.conductor_present,
                    scene=self._registry.scene,
                    phase_anchor=player.phase_anchor,
                )
            ),
        )
        self.broadcast_state()
        return player

    def join_conductor(self, connection_id: str) -> None:
        """
        Join a connection as conductor.

        The first conductor announces its presence to all players and resets
        every player's phase to a common origin.
        """
        first = self._registry.join_conductor(connection_id)
        self._broadcaster.join(Room.CONDUCTORS, connection_id)
        self._broadcaster.send_to(connection_id, FullStateMessage(self._registry.snapshot()))
        if first:
            self._registry.reset_phase()
            self._broadcaster.send_to_room(
                Room.PLAYERS, ConductorPresenceMessage(ConductorPresencePayload(present=True))
            )
            self.push_updates(self._registry.players)
        self.broadcast_state()

    def leave(self, connection_id: str) -> LeaveResult:
        """Remove a disconnected connection from every role and notify the others."""
        result = self._registry.leave(connection_id)
        self._broadcaster.leave(Room.PLAYERS, connection_id)
        self._broadcaster.leave(Room.CONDUCTORS, connection_id)
        if result.last_conductor:
            self._broadcaster.send_to_room(
                Room.PLAYERS, ConductorPresenceMessage(ConductorPresencePayload(present=False))
            )
        if result.player is not None or result.was_conductor:
            self.broadcast_state()
        return result

    def change_scene(self, scene: str) -> bool:
        """Switch scene, reset all phases and push a fresh update to every player."""
        if not self._registry.set_scene(scene):
            return False
        self.push_updates(self._registry.players)
        self.broadcast_state()
        if self._on_scene_changed is not None:
            self._on_scene_changed(scene)
        return True

    def push_updates(self, players: Iterable[PlayerState]) -> None:
        """Send each player its authoritative parameters."""
        scene = self._registry.scene
        for player in players:
            self._broadcaster.send_to(
                player.connection_id, PlayerUpdateMessage(player.to_update(scene))
            )

    def broadcast_state(self) -> None:
        """Send the aggregate state to all conductors."""
        self._broadcaster.send_to_room(Room.CONDUCTORS, StateUpdateMessage(self._registry.snapshot()))
