"""
Clock synchronization between clients and the server clock.

The server keeps no per-client state: every ``client/time`` is answered with the
client's own timestamp plus the server's receive and transmit timestamps. The
client measures the round trip and derives its offset to the server clock; it
may repeat the exchange any number of times to refine the estimate.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import NamedTuple

from aioscore.models.core import ClientTimePayload, ServerTimeMessage, ServerTimePayload

Clock = Callable[[], int]
"""Callable returning the current server time in milliseconds."""


def loop_clock(loop: asyncio.AbstractEventLoop) -> Clock:
    """Server clock in milliseconds based on the monotonic clock of the event loop."""
    return lambda: int(loop.time() * 1_000)


def build_time_response(
    request: ClientTimePayload, server_received: int, now: int
) -> ServerTimeMessage:
    """
    Build the reply to a client/time message.

    ``server_transmitted`` is set to ``now`` here and refreshed again by the
    connection writer right before the message is sent.
    """
    return ServerTimeMessage(
        ServerTimePayload(
            client_transmitted=request.client_transmitted,
            server_received=server_received,
            server_transmitted=now,
        )
    )


class OffsetEstimate(NamedTuple):
    """Result of one clock synchronization round trip."""

    offset: float
    """Milliseconds to add to the client clock to get the server clock."""
    round_trip: float
    """Network round trip in milliseconds, excluding server processing time."""


def estimate_offset(
    client_transmitted: float,
    server_received: float,
    server_transmitted: float,
    client_received: float,
) -> OffsetEstimate:
    """
    Estimate the clock offset from one client/time and server/time exchange.

    Assumes a symmetric network path. With ``server_received ==
    server_transmitted`` this is ``server_time + round_trip / 2 - client_received``.
    """
    round_trip = (client_received - client_transmitted) - (
        server_transmitted - server_received
    )
    offset = ((server_received - client_transmitted) + (server_transmitted - client_received)) / 2
    return OffsetEstimate(offset=offset, round_trip=round_trip)
