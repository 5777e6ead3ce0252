# =============================================================================
# reconnecting-ws -- Reconnection Delay Policies
# =============================================================================
#
# A delay policy is either a constant number of seconds or a callable that
# maps the attempt index (0 for the first reconnection) to seconds.
# =============================================================================

from __future__ import annotations

import random
from typing import Callable, Union

from .constants import RECONNECT_BASE_DELAY, RECONNECT_FACTOR, RECONNECT_MAX_DELAY

DelayPolicy = Union[float, int, Callable[[int], float]]


def default_reconnection_delay(attempt: int) -> float:
    """Capped exponential backoff: ``min(2 ** attempt * 0.15, 10.0)``."""
    return min(RECONNECT_FACTOR**attempt * RECONNECT_BASE_DELAY, RECONNECT_MAX_DELAY)


def resolve_delay(policy: DelayPolicy, attempt: int) -> float:
    """Evaluate *policy* for *attempt*.

    Exceptions raised by a callable policy propagate to the caller.
    """
    if isinstance(policy, (int, float)):
        return float(policy)
    return float(policy(attempt))


def exponential_backoff(
    base: float = RECONNECT_BASE_DELAY,
    cap: float = RECONNECT_MAX_DELAY,
    factor: float = RECONNECT_FACTOR,
    jitter: bool = False,
) -> Callable[[int], float]:
    """Build an exponential policy, optionally with +/-10% jitter.

    Jitter spreads reconnects of many clients that dropped at once.
    """

    def delay(attempt: int) -> float:
        value = min(base * (factor**attempt), cap)
        if jitter:
            value = max(0.0, value + value * 0.2 * (random.random() - 0.5))
        return value

    return delay


def linear_backoff(
    base: float = RECONNECT_BASE_DELAY,
    step: float = 1.0,
    cap: float = RECONNECT_MAX_DELAY,
) -> Callable[[int], float]:
    """Build a policy growing by *step* seconds per attempt."""

    def delay(attempt: int) -> float:
        return min(base + attempt * step, cap)

    return delay


def fibonacci_backoff(
    base: float = RECONNECT_BASE_DELAY,
    cap: float = RECONNECT_MAX_DELAY,
) -> Callable[[int], float]:
    """Build a policy scaling *base* by the Fibonacci sequence (1, 1, 2, 3, 5...)."""

    def delay(attempt: int) -> float:
        return min(base * _fib(min(attempt + 1, 30)), cap)

    return delay


def _fib(n: int) -> int:
    a, b = 0, 1
    for _ in range(n):
        a, b = b, a + b
    return a
