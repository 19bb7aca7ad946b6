"""Score Server wiring the registries, the HTTP/WebSocket endpoints and the datagram listener."""

import asyncio
import logging
import tempfile
import uuid
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from pathlib import Path

import orjson
from aiohttp import web

from .broadcast import Broadcaster
from .clock import Clock, loop_clock
from .connection import ClientConnection
from .controls import DEFAULT_SCENES, ControlRegistry, SceneControls
from .discovery import ServiceAdvertiser
from .files import DEFAULT_MAX_UPLOAD_BYTES, FileRoutes, FileStore
from .mp3 import DEFAULT_SLOT_COUNT, Mp3SyncScheduler
from .router import CommandRouter
from .score import ScoreService
from .session import SessionRegistry
from .wire import DEFAULT_WIRE_PORT, WireCommand, WireListener

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    """Settings of a ScoreServer."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    ws_path: str = "/ws"
    wire_host: str = "0.0.0.0"  # noqa: S104
    wire_port: int | None = DEFAULT_WIRE_PORT
    """UDP port of the datagram listener, None disables it."""
    slot_count: int = DEFAULT_SLOT_COUNT
    upload_dir: Path | None = None
    """Directory for uploaded files, a temporary directory if None."""
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    advertise: bool = True
    """Whether to advertise the server via mDNS."""
    server_name: str = "aioscore"
    server_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class ScoreEvent:
    """Base event type used by ScoreServer.add_event_listener()."""


@dataclass
class ConnectionAddedEvent(ScoreEvent):
    """A new WebSocket connection was opened."""

    connection_id: str


@dataclass
class ConnectionRemovedEvent(ScoreEvent):
    """A WebSocket connection was closed."""

    connection_id: str


@dataclass
class PlayerJoinedEvent(ScoreEvent):
    """A connection joined as player."""

    connection_id: str
    player_id: int
    name: str


@dataclass
class PlayerLeftEvent(ScoreEvent):
    """A player disconnected."""

    connection_id: str
    player_id: int


@dataclass
class SceneChangedEvent(ScoreEvent):
    """The active scene changed."""

    scene: str


class ScoreServer:
    """Score Server coordinating conductors, players and MP3 playback slots."""

    loop: asyncio.AbstractEventLoop
    _config: ServerConfig
    _clock: Clock
    _connections: dict[str, ClientConnection]
    _event_cbs: list[Callable[[ScoreEvent], Coroutine[None, None, None]]]
    _runner: web.AppRunner | None = None
    _advertiser: ServiceAdvertiser | None = None
    _temp_dir: tempfile.TemporaryDirectory[str] | None = None

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        config: ServerConfig | None = None,
        scenes: tuple[SceneControls, ...] = DEFAULT_SCENES,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize a new Score Server.

        Args:
            loop: The event loop every connection and the datagram listener run on.
            config: Server settings, defaults are used if None.
            scenes: The control table.
            clock: Server clock in milliseconds, based on the loop time if None.
        """
        self.loop = loop
        self._config = config or ServerConfig()
        self._clock = clock or loop_clock(loop)
        self._connections = {}
        self._event_cbs = []

        self._broadcaster = Broadcaster()
        self._registry = SessionRegistry(ControlRegistry(scenes), self._clock)
        self._score = ScoreService(
            self._registry,
            self._broadcaster,
            on_scene_changed=lambda scene: self._signal_event(SceneChangedEvent(scene)),
        )
        self._router = CommandRouter(self._score)
        self._mp3 = Mp3SyncScheduler(self._broadcaster, self._clock, self._config.slot_count)

        upload_dir = self._config.upload_dir
        if upload_dir is None:
            self._temp_dir = tempfile.TemporaryDirectory(prefix="aioscore-")
            upload_dir = Path(self._temp_dir.name)
        self._files = FileStore(upload_dir, self._config.max_upload_bytes)
        self._wire = (
            WireListener(self._handle_wire_command, self._config.wire_host, self._config.wire_port)
            if self._config.wire_port is not None
            else None
        )
        logger.debug(
            "ScoreServer initialized: id=%s, name=%s",
            self._config.server_id,
            self._config.server_name,
        )

    @property
    def config(self) -> ServerConfig:
        """Settings of this server."""
        return self._config

    @property
    def clock(self) -> Clock:
        """The server clock in milliseconds."""
        return self._clock

    @property
    def score(self) -> ScoreService:
        """Player and conductor lifecycle."""
        return self._score

    @property
    def registry(self) -> SessionRegistry:
        """The session registry."""
        return self._registry

    @property
    def router(self) -> CommandRouter:
        """The command router shared by every input channel."""
        return self._router

    @property
    def mp3(self) -> Mp3SyncScheduler:
        """The MP3 slot scheduler."""
        return self._mp3

    @property
    def files(self) -> FileStore:
        """Storage of uploaded files."""
        return self._files

    @property
    def wire(self) -> WireListener | None:
        """The datagram listener, None if disabled."""
        return self._wire

    @property
    def connections(self) -> list[ClientConnection]:
        """All open WebSocket connections."""
        return list(self._connections.values())

    def get_connection(self, connection_id: str) -> ClientConnection | None:
        """Get an open connection by id."""
        return self._connections.get(connection_id)

    async def on_client_connect(self, request: web.Request) -> web.WebSocketResponse:
        """Handle an incoming WebSocket connection."""
        logger.debug("Incoming connection from %s", request.remote)
        connection = ClientConnection(
            self, request=request, handle_disconnect=self._on_connection_remove
        )
        self._on_connection_add(connection)
        return await connection.handle_client()

    def _on_connection_add(self, connection: ClientConnection) -> None:
        self._connections[connection.connection_id] = connection
        self._broadcaster.add_connection(connection)
        self._signal_event(ConnectionAddedEvent(connection.connection_id))

    def _on_connection_remove(self, connection: ClientConnection) -> None:
        connection_id = connection.connection_id
        if self._connections.pop(connection_id, None) is None:
            return
        logger.debug("Removing connection %s", connection_id)
        result = self._score.leave(connection_id)
        self._mp3.leave(connection_id)
        self._broadcaster.remove_connection(connection_id)
        if result.player is not None:
            self._signal_event(PlayerLeftEvent(connection_id, result.player.player_id))
        self._signal_event(ConnectionRemovedEvent(connection_id))

    def on_player_joined(self, connection: ClientConnection) -> None:
        """Signal that a connection joined as player."""
        player = self._registry.get_player(connection.connection_id)
        if player is not None:
            self._signal_event(
                PlayerJoinedEvent(connection.connection_id, player.player_id, player.name)
            )

    def _handle_wire_command(self, command: WireCommand) -> None:
        _ = self._router.wire_command(command.target, command.control, command.value)

    async def _get_controls(self, _request: web.Request) -> web.Response:
        controls = self._registry.controls
        scene = self._registry.scene
        body = {
            "scene": scene,
            "scenes": controls.scenes,
            "controls": [definition.to_dict() for definition in controls.scene_controls(scene)],
            "scene_select": controls.scene_select.to_dict(),
        }
        return web.Response(body=orjson.dumps(body), content_type="application/json")

    def create_app(self) -> web.Application:
        """Build the aiohttp application serving the WebSocket and the HTTP endpoints."""
        app = web.Application(client_max_size=self._config.max_upload_bytes + 1024 * 1024)
        app.router.add_get(self._config.ws_path, self.on_client_connect)
        app.router.add_get("/api/controls", self._get_controls)
        app.router.add_routes(FileRoutes(self._files, self._mp3).routes())
        return app

    async def start_server(self) -> None:
        """Bind the HTTP server and the datagram listener and advertise the server."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()
        logger.info(
            "Listening on http://%s:%d%s",
            self._config.host,
            self._config.port,
            self._config.ws_path,
        )
        if self._wire is not None:
            _ = await self._wire.start()
        if self._config.advertise:
            self._advertiser = ServiceAdvertiser(
                self._config.server_id,
                self._config.server_name,
                self._config.port,
                self._config.ws_path,
            )
            if not await self._advertiser.start():
                self._advertiser = None

    async def close(self) -> None:
        """Disconnect every client and release all resources."""
        if self._advertiser is not None:
            await self._advertiser.stop()
            self._advertiser = None
        if self._wire is not None:
            self._wire.close()
        for connection in self.connections:
            await connection.disconnect()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        self._files.clear()
        if self._temp_dir is not None:
            self._temp_dir.cleanup()
            self._temp_dir = None
        logger.info("Server closed")

    def add_event_listener(
        self, callback: Callable[[ScoreEvent], Coroutine[None, None, None]]
    ) -> Callable[[], None]:
        """Register a callback to listen for state changes of the server.

        State changes include:
        - A connection was opened or closed
        - A player joined or left
        - The scene changed

        Returns a function to remove the listener.
        """
        self._event_cbs.append(callback)
        return lambda: self._event_cbs.remove(callback)

    def _signal_event(self, event: ScoreEvent) -> None:
        for cb in self._event_cbs:
            _ = self.loop.create_task(cb(event))
