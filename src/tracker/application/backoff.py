from __future__ import annotations

import random

BASE_RECONNECT_DELAY_MS = 1000
MAX_RECONNECT_DELAY_MS = 30000
RECONNECT_JITTER_MS = 1000

BASE_POLL_INTERVAL_MS = 1000
MAX_POLL_INTERVAL_MS = 30000
MAX_POLL_ATTEMPT = 5


def delay(attempt: int, base: int, cap: int) -> int:
    """Exponential delay ``min(base * 2**attempt, cap)`` in milliseconds."""
    attempt = max(0, attempt)
    # Past this point base * 2**attempt exceeds any sane cap.
    if attempt >= 32:
        return cap
    return min(base * 2**attempt, cap)


def reconnect_delay(
    attempt: int,
    base: int = BASE_RECONNECT_DELAY_MS,
    cap: int = MAX_RECONNECT_DELAY_MS,
    jitter: int = RECONNECT_JITTER_MS,
    rng: random.Random | None = None,
) -> int:
    """Reconnect delay with up to ``jitter`` ms of random spread."""
    spread = (rng or random).uniform(0, jitter) if jitter > 0 else 0.0
    return delay(attempt, base, cap) + int(spread)


def poll_interval(
    attempt: int,
    base: int = BASE_POLL_INTERVAL_MS,
    cap: int = MAX_POLL_INTERVAL_MS,
) -> int:
    return delay(attempt, base, cap)
