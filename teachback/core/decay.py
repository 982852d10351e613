"""
Forgetting-curve helpers.

Effective mastery follows an Ebbinghaus-style exponential:

    effective = mastery * e^(-t / S)

where t is days since the concept was last seen and S = 10 / decay_rate.
A higher decay rate means faster forgetting; 1 / decay_rate is the concept's
stability. Concepts that were never actively seen do not decay.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from teachback.core.errors import InputValidationError

# Days of stability contributed by a decay rate of 1.0
STABILITY_SCALE_DAYS = 10.0


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def days_since(last_seen: datetime | None, now: datetime | None = None) -> float:
    """
    Days elapsed since ``last_seen``.

    Args:
        last_seen: Timestamp of the last exposure (naive or aware)
        now: Current time (defaults to UTC now)

    Returns:
        Elapsed days, never negative; 0.0 when ``last_seen`` is None
    """
    if last_seen is None:
        return 0.0
    now = ensure_utc(now or utc_now())
    delta = now - ensure_utc(last_seen)
    return max(0.0, delta.total_seconds() / 86400.0)


def forgetting_factor(
    last_seen: datetime | None,
    decay_rate: float,
    now: datetime | None = None,
) -> float:
    """
    Retention multiplier in (0, 1].

    Returns 1.0 for a concept that has never been seen.
    """
    if last_seen is None:
        return 1.0
    if decay_rate <= 0:
        raise InputValidationError("decay_rate", "must be positive", decay_rate)
    stability_days = STABILITY_SCALE_DAYS / decay_rate
    return math.exp(-days_since(last_seen, now) / stability_days)


def effective_mastery(
    mastery: float,
    last_seen: datetime | None,
    decay_rate: float,
    now: datetime | None = None,
) -> float:
    """Mastery adjusted for forgetting since the last exposure, in [0, mastery]."""
    value = mastery * forgetting_factor(last_seen, decay_rate, now)
    return min(max(value, 0.0), mastery)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values (1.5 -> 2, 2.5 -> 3)."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor
