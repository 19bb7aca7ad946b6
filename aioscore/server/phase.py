"""
Phase arithmetic for cyclic player scores.

A player's score is a cycle of ``interval`` milliseconds whose zero point is the
server timestamp ``anchor``. Receivers derive their position from the estimated
server time alone:

    elapsed = now - anchor
    cycle = floor(elapsed / interval)
    phase = normalized_mod(elapsed, interval) / interval

When the interval changes, the anchor is moved so that the phase fraction at the
moment of the change is the same under the old and the new interval. The cycle
therefore stretches or shrinks from the current position instead of jumping.
"""

from __future__ import annotations

import math


def normalized_mod(value: float, modulus: float) -> float:
    """Return value modulo modulus, mapped into ``[0, modulus)`` for any sign of value."""
    if modulus <= 0:
        raise ValueError(f"Modulus must be positive, got {modulus}")
    result = math.fmod(value, modulus)
    if result < 0:
        result += modulus
    # fmod of a tiny negative value plus modulus can round up to modulus itself
    if result >= modulus:
        result = 0.0
    return result


def phase_at(anchor: float, interval: float, now: float) -> float:
    """Phase fraction in ``[0, 1)`` of a cycle at the given instant."""
    return normalized_mod(now - anchor, interval) / interval


def cycle_at(anchor: float, interval: float, now: float) -> int:
    """Number of completed cycles since the anchor (negative before it)."""
    return math.floor((now - anchor) / interval)


def rebase_anchor(anchor: float, old_interval: float, new_interval: float, now: float) -> float:
    """
    Compute the anchor that keeps the current phase when the interval changes.

    Args:
        anchor: Current phase-zero timestamp.
        old_interval: Interval in effect until now.
        new_interval: Interval in effect from now on.
        now: Instant of the change.

    Returns:
        The new anchor ``now - fraction * new_interval``, which never lies after now.
    """
    if new_interval <= 0:
        raise ValueError(f"Interval must be positive, got {new_interval}")
    fraction = phase_at(anchor, old_interval, now)
    return now - fraction * new_interval
