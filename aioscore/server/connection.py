"""Represents a single WebSocket connection to the server."""

import asyncio
import logging
import uuid
from collections.abc import Callable
from contextlib import suppress
from typing import TYPE_CHECKING, cast

from aiohttp import WSMessage, WSMsgType, web

from aioscore.models.core import ClientTimeMessage, ServerTimeMessage
from aioscore.models.mp3 import (
    Mp3JoinConductorMessage,
    Mp3JoinPlayerMessage,
    Mp3PlayCommandMessage,
    Mp3ReadyMessage,
    Mp3StopCommandMessage,
)
from aioscore.models.score import (
    BridgeCommandMessage,
    ConductorJoinMessage,
    PlayerJoinMessage,
    SetIntervalMessage,
    SetPitchMessage,
    SetSceneMessage,
)
from aioscore.models.types import ClientMessage, Roles, ServerMessage

from .clock import build_time_response

MAX_PENDING_MSG = 512

logger = logging.getLogger(__name__)

# The cyclic import is not an issue during runtime, so hide it
# pyright: reportImportCycles=none
if TYPE_CHECKING:
    from .server import ScoreServer


class ClientConnection:
    """
    A WebSocket connection to a ScoreServer.

    A connection has no role until it sends one of the join messages; it can
    hold several roles at once. Outgoing messages are queued and written by a
    dedicated writer task, so sending never blocks the event loop.
    """

    _server: "ScoreServer"
    _request: web.Request
    _wsock: web.WebSocketResponse
    _connection_id: str
    _writer_task: asyncio.Task[None] | None = None
    """Task responsible for sending JSON data."""
    _to_write: asyncio.Queue[ServerMessage]
    """Queue for messages to be sent to the client through the WebSocket."""
    _roles: set[Roles]
    _closing: bool = False
    _handle_disconnect: Callable[["ClientConnection"], None]
    _logger: logging.Logger

    def __init__(
        self,
        server: "ScoreServer",
        request: web.Request,
        handle_disconnect: Callable[["ClientConnection"], None],
    ) -> None:
        """
        DO NOT CALL THIS CONSTRUCTOR. INTERNAL USE ONLY.

        Use ScoreServer.on_client_connect instead.

        Args:
            server: The ScoreServer instance this connection belongs to.
            request: The web request that is upgraded to a WebSocket.
            handle_disconnect: Callback function called when the connection closes.
        """
        self._server = server
        self._request = request
        self._handle_disconnect = handle_disconnect
        self._connection_id = uuid.uuid4().hex
        self._wsock = web.WebSocketResponse(heartbeat=55)
        self._to_write = asyncio.Queue(maxsize=MAX_PENDING_MSG)
        self._roles = set()
        self._closing = False
        self._logger = logger.getChild(self._connection_id[:8])
        self._logger.debug("Connection initialized for %s", request.remote)

    @property
    def connection_id(self) -> str:
        """The unique identifier of this connection."""
        return self._connection_id

    @property
    def roles(self) -> set[Roles]:
        """Roles this connection joined as."""
        return self._roles

    async def disconnect(self) -> None:
        """Close this connection and release every role it held."""
        if self._closing:
            return
        self._closing = True
        self._logger.debug("Disconnecting")

        if self._writer_task and not self._writer_task.done():
            self._logger.debug("Cancelling writer task")
            _ = self._writer_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._writer_task

        if not self._wsock.closed:
            _ = await self._wsock.close()

        self._handle_disconnect(self)
        self._logger.info("Connection closed")

    async def _setup_connection(self) -> None:
        """Establish WebSocket connection."""
        try:
            async with asyncio.timeout(10):
                _ = await self._wsock.prepare(self._request)
        except TimeoutError:
            self._logger.warning("Timeout preparing request")
            raise

        self._logger.info("Connection established")
        self._writer_task = self._server.loop.create_task(self._writer())

    async def _run_message_loop(self) -> None:
        """Run the main message processing loop."""
        receive_task: asyncio.Task[WSMessage] | None = None
        try:
            while not self._wsock.closed:
                # Wait for either a message or the writer task to complete (meaning the client
                # disconnected or errored)
                receive_task = self._server.loop.create_task(self._wsock.receive())
                assert self._writer_task is not None  # for type checking
                done, pending = await asyncio.wait(
                    [receive_task, self._writer_task],
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if self._writer_task in done:
                    self._logger.debug("Writer task ended, closing connection")
                    if receive_task in pending:
                        _ = receive_task.cancel()
                    break

                try:
                    msg = await receive_task
                except (ConnectionError, asyncio.CancelledError, TimeoutError) as e:
                    self._logger.error("Error receiving message: %s", e)
                    break

                timestamp = self._server.clock()

                if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break

                if msg.type != WSMsgType.TEXT:
                    continue

                try:
                    self._handle_message(ClientMessage.from_json(cast("str", msg.data)), timestamp)
                except Exception:
                    self._logger.exception("error parsing message")
            self._logger.debug("wsock was closed")

        except asyncio.CancelledError:
            self._logger.debug("Connection closed by client")
        except Exception:
            self._logger.exception("Unexpected error inside websocket API")
        finally:
            if receive_task and not receive_task.done():
                _ = receive_task.cancel()

    async def _cleanup_connection(self) -> None:
        """Clean up WebSocket connection and tasks."""
        try:
            if not self._wsock.closed:
                _ = await self._wsock.close()
        except Exception:
            self._logger.exception("Failed to close websocket")
        await self.disconnect()

    async def handle_client(self) -> web.WebSocketResponse:
        """
        Handle the complete websocket connection lifecycle.

        Should only be called by ScoreServer during connection handling.
        """
        try:
            await self._setup_connection()
            await self._run_message_loop()
        finally:
            await self._cleanup_connection()
        return self._wsock

    def _handle_message(self, message: ClientMessage, timestamp: int) -> None:
        """Handle incoming messages from the client."""
        server = self._server
        match message:
            # Core messages
            case ClientTimeMessage(client_time):
                self.send_message(build_time_response(client_time, timestamp, server.clock()))
            # Score messages
            case PlayerJoinMessage(join):
                if server.score.join_player(self._connection_id, join.name) is not None:
                    self._roles.add(Roles.PLAYER)
                    server.on_player_joined(self)
            case ConductorJoinMessage():
                self._roles.add(Roles.CONDUCTOR)
                server.score.join_conductor(self._connection_id)
            case SetPitchMessage(command):
                _ = server.router.set_pitch(self._connection_id, command.player_id, command.pitch)
            case SetIntervalMessage(command):
                _ = server.router.set_interval(
                    self._connection_id, command.player_id, command.interval
                )
            case SetSceneMessage(command):
                _ = server.router.set_scene(self._connection_id, command.scene)
            case BridgeCommandMessage(command):
                _ = server.router.bridge_command(
                    self._connection_id, command.target, command.control, command.value
                )
            # MP3 messages
            case Mp3JoinPlayerMessage(join):
                if server.mp3.join_player(self._connection_id, join.name) is not None:
                    self._roles.add(Roles.MP3_PLAYER)
            case Mp3JoinConductorMessage():
                self._roles.add(Roles.MP3_CONDUCTOR)
                server.mp3.join_conductor(self._connection_id)
            case Mp3ReadyMessage(report):
                _ = server.mp3.report_ready(self._connection_id, report)
            case Mp3PlayCommandMessage(command):
                _ = server.mp3.play(self._connection_id, command.seek_seconds)
            case Mp3StopCommandMessage():
                _ = server.mp3.stop(self._connection_id)
            case _:
                self._logger.debug("Ignoring message %s", type(message).__name__)

    async def _writer(self) -> None:
        """Write outgoing messages from the queue."""
        # Exceptions if socket disconnected or cancelled by connection handler
        try:
            while not self._wsock.closed and not self._closing:
                item = await self._to_write.get()
                if isinstance(item, ServerTimeMessage):
                    item.payload.server_transmitted = self._server.clock()
                try:
                    await self._wsock.send_str(item.to_json())
                except ConnectionError:
                    self._logger.warning("Connection error sending JSON data, ending writer task")
                    break
            self._logger.debug("WebSocket Connection was closed for the client, ending writer task")
        except Exception:
            self._logger.exception("Error in writer task for client")

    def send_message(self, message: ServerMessage) -> None:
        """
        Enqueue a message to be sent to the client.

        Messages are dropped with a warning when the client does not keep up.
        """
        if self._closing:
            return
        if not isinstance(message, ServerTimeMessage):
            self._logger.debug("Enqueueing message: %s", type(message).__name__)
        try:
            self._to_write.put_nowait(message)
        except asyncio.QueueFull:
            self._logger.warning(
                "Outgoing queue full, dropping %s", type(message).__name__
            )
