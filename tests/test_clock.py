"""Tests for the clock synchronization helpers."""

from __future__ import annotations

import asyncio

import pytest

from aioscore.models.core import ClientTimePayload, ServerTimeMessage
from aioscore.models.types import ServerMessage
from aioscore.server.clock import build_time_response, estimate_offset, loop_clock


def test_time_response_echoes_client_timestamp() -> None:
    message = build_time_response(ClientTimePayload(client_transmitted=12.5), 1000, 1002)
    assert message.payload.client_transmitted == 12.5
    assert message.payload.server_received == 1000
    assert message.payload.server_transmitted == 1002


def test_time_response_serializes_with_type() -> None:
    message = build_time_response(ClientTimePayload(client_transmitted=1.0), 5, 6)
    parsed = ServerMessage.from_json(message.to_json())
    assert isinstance(parsed, ServerTimeMessage)
    assert parsed.payload.server_transmitted == 6


def test_estimate_offset_symmetric_path() -> None:
    # Client clock is 500 ms behind, 20 ms each way, 2 ms of server processing
    estimate = estimate_offset(
        client_transmitted=1_000,
        server_received=1_520,
        server_transmitted=1_522,
        client_received=1_042,
    )
    assert estimate.round_trip == pytest.approx(40)
    assert estimate.offset == pytest.approx(500)


def test_estimate_offset_matches_half_round_trip_formula() -> None:
    estimate = estimate_offset(0, 300, 300, 100)
    assert estimate.offset == pytest.approx(300 + 100 / 2 - 100)


def test_loop_clock_is_monotonic_milliseconds() -> None:
    loop = asyncio.new_event_loop()
    try:
        clock = loop_clock(loop)
        first = clock()
        second = clock()
        assert isinstance(first, int)
        assert second >= first
        assert abs(first - loop.time() * 1000) < 1000
    finally:
        loop.close()
