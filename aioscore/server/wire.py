"""
Datagram control protocol.

External controllers (Max/MSP, TouchOSC, scripts) send ``/conductor target
control value`` over UDP, encoded either as a binary OSC message with ``i`` or
``f`` arguments or as plain text. Both encodings produce the same
:class:`WireCommand`, which is handed to the command router. The listener runs
on the server's event loop, so datagram commands never race commands from
WebSocket connections. Datagrams that cannot be parsed are logged and dropped;
there is no reply channel.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from typing import NamedTuple

from pythonosc.osc_message import OscMessage, ParseError

CONDUCTOR_ADDRESS = "/conductor"
DEFAULT_WIRE_PORT = 57121
ARGUMENT_COUNT = 3

_STRAY_SLASH_SPACE = re.compile(r"^/\s+")

logger = logging.getLogger(__name__)


class WireParseError(ValueError):
    """Raised when a datagram is neither a valid binary nor a valid text command."""


class WireCommand(NamedTuple):
    """A decoded ``address target control value`` datagram."""

    address: str
    target: int | float
    control: int | float
    value: int | float


def _parse_number(token: str) -> int | float:
    """Parse an int or float token, accepting a trailing ``.`` such as ``60.``."""
    if token.endswith("."):
        token = token[:-1]
    try:
        return int(token)
    except ValueError:
        pass
    try:
        return float(token)
    except ValueError as err:
        raise WireParseError(f"Not a number: {token!r}") from err


def _check_arguments(address: str, args: list[object]) -> WireCommand:
    if len(args) != ARGUMENT_COUNT:
        raise WireParseError(f"Expected {ARGUMENT_COUNT} arguments, got {len(args)}")
    for arg in args:
        if isinstance(arg, bool) or not isinstance(arg, int | float):
            raise WireParseError(f"Argument is not a number: {arg!r}")
    target, control, value = args
    return WireCommand(address, target, control, value)  # type: ignore[arg-type]


def parse_binary(data: bytes) -> WireCommand:
    """Parse a binary OSC message."""
    try:
        message = OscMessage(data)
    except (ParseError, UnicodeDecodeError) as err:
        raise WireParseError(f"Invalid OSC message: {err}") from err
    return _check_arguments(message.address, list(message.params))


def parse_text(data: bytes) -> WireCommand:
    """Parse a text command such as ``/conductor 2 1 60`` or ``/ conductor 2. 1. 60.``."""
    try:
        text = data.decode("utf-8").strip().rstrip(";").strip()
    except UnicodeDecodeError as err:
        raise WireParseError("Datagram is not valid UTF-8") from err
    if not text.startswith("/"):
        raise WireParseError("Address must start with '/'")
    tokens = _STRAY_SLASH_SPACE.sub("/", text).split()
    address, *raw_args = tokens
    return _check_arguments(address, [_parse_number(token) for token in raw_args])


def parse_datagram(data: bytes) -> WireCommand:
    """
    Parse a datagram in either encoding.

    Binary OSC always contains NUL padding after the address, text never does.

    Raises:
        WireParseError: If the datagram cannot be parsed.
    """
    if not data:
        raise WireParseError("Empty datagram")
    if b"\x00" in data:
        return parse_binary(data)
    return parse_text(data)


class WireProtocol(asyncio.DatagramProtocol):
    """asyncio protocol feeding parsed ``/conductor`` commands to a handler."""

    def __init__(self, handle_command: Callable[[WireCommand], object]) -> None:
        """Initialize the protocol with the callback for valid commands."""
        self._handle_command = handle_command

    def datagram_received(self, data: bytes, addr: tuple[str | object, ...]) -> None:
        """Parse and dispatch a single datagram."""
        try:
            command = parse_datagram(data)
        except WireParseError as err:
            logger.warning("Dropping datagram from %s: %s", addr, err)
            return
        if command.address != CONDUCTOR_ADDRESS:
            logger.debug("Ignoring datagram for address %s from %s", command.address, addr)
            return
        logger.debug("Datagram command from %s: %s", addr, command)
        try:
            self._handle_command(command)
        except Exception:
            # NOTE: Intentional catch-all, a bad command must not stop the listener.
            logger.exception("Error handling datagram command %s", command)

    def error_received(self, exc: Exception) -> None:
        """Log socket level errors, the endpoint stays open."""
        logger.warning("Datagram socket error: %s", exc)


class WireListener:
    """UDP endpoint for the datagram control protocol."""

    _transport: asyncio.DatagramTransport | None = None

    def __init__(
        self,
        handle_command: Callable[[WireCommand], object],
        host: str = "0.0.0.0",  # noqa: S104
        port: int = DEFAULT_WIRE_PORT,
    ) -> None:
        """Initialize the listener, call start() to bind it."""
        self._handle_command = handle_command
        self._host = host
        self._port = port

    async def start(self) -> bool:
        """
        Bind the UDP endpoint.

        Returns False if binding failed; the failure is logged and the rest of
        the server keeps working without datagram control.
        """
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: WireProtocol(self._handle_command),
                local_addr=(self._host, self._port),
            )
        except OSError:
            logger.exception(
                "Could not bind datagram listener on %s:%d, datagram control disabled",
                self._host,
                self._port,
            )
            return False
        self._transport = transport
        logger.info("Datagram listener on %s:%d", self._host, self.port)
        return True

    @property
    def port(self) -> int:
        """The bound port, or the configured one if not bound."""
        if self._transport is not None:
            sockname = self._transport.get_extra_info("sockname")
            if sockname:
                return int(sockname[1])
        return self._port

    @property
    def running(self) -> bool:
        """Whether the endpoint is bound."""
        return self._transport is not None

    def close(self) -> None:
        """Close the endpoint."""
        if self._transport is not None:
            self._transport.close()
            self._transport = None
