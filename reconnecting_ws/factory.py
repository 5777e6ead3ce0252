# =============================================================================
# reconnecting-ws -- Connection Factory
# =============================================================================
#
# Builds one underlying connection per attempt and bounds how long it may
# stay CONNECTING.
#
# Some transports never emit a close notification for a socket closed while
# still CONNECTING. force_close() covers that edge: after requesting the
# close it waits CLOSE_GRACE_PERIOD for a native notification and otherwise
# dispatches a synthetic CloseEvent (was_clean=False) carrying a
# distinguished code. A native notification arriving after the synthetic
# one reaches no per-attempt listener: those detach on the first close.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Callable

from ._logging import logger
from .constants import CLOSE_ABNORMAL, CLOSE_GRACE_PERIOD, CLOSE_TIMEOUT
from .types import CloseEvent, Event, ReadyState


def resolve(provider: Any) -> Any:
    """Return ``provider()`` for callables, else *provider* itself."""
    return provider() if callable(provider) else provider


def normalize_protocols(protocols: str | list[str] | tuple[str, ...] | None) -> list[str] | None:
    if protocols is None:
        return None
    if isinstance(protocols, str):
        return [protocols]
    return list(protocols)


def create_socket_with_timeout(socket_factory: Callable[[], Any], timeout: float | None) -> Any:
    """Create a socket that is force-closed if it does not open in time.

    Args:
        socket_factory: Zero-argument callable returning a transport.
        timeout: Seconds allowed in CONNECTING, or ``None`` to disable.

    Returns:
        The transport. The timer is cancelled by its first ``open``,
        ``error`` or ``close`` notification.
    """
    socket = socket_factory()
    if timeout is None:
        return socket

    timer = asyncio.get_running_loop().call_later(timeout, _on_timeout, socket, timeout)

    def cancel_timer(_event: Event) -> None:
        timer.cancel()

    for type in ("open", "close", "error"):
        socket.add_event_listener(type, cancel_timer, once=True)
    return socket


def force_close(
    socket: Any,
    code: int | None = None,
    reason: str | None = None,
    *,
    synthetic_code: int = CLOSE_ABNORMAL,
    synthetic_reason: str = "",
) -> None:
    """Close *socket*, guaranteeing a close notification if it was CONNECTING."""
    if socket.ready_state != ReadyState.CONNECTING:
        socket.close(code, reason)
        return

    observed = False

    def on_close(_event: Event) -> None:
        nonlocal observed
        observed = True

    # Observe before closing: some transports notify from inside close()
    socket.add_event_listener("close", on_close, once=True)
    try:
        socket.close(code, reason)
    except Exception:
        socket.remove_event_listener("close", on_close)
        raise
    if observed:
        return

    def synthesize() -> None:
        socket.remove_event_listener("close", on_close)
        if observed:
            return
        logger.debug(
            "No close notification from %s, dispatching code=%d", socket.url, synthetic_code
        )
        socket.dispatch_event(
            CloseEvent("close", code=synthetic_code, reason=synthetic_reason, was_clean=False)
        )

    asyncio.get_running_loop().call_later(CLOSE_GRACE_PERIOD, synthesize)


def _on_timeout(socket: Any, timeout: float) -> None:
    if socket.ready_state != ReadyState.CONNECTING:
        return
    logger.warning("Connection to %s timed out after %.1fs", socket.url, timeout)
    force_close(
        socket,
        CLOSE_TIMEOUT,
        "Timeout",
        synthetic_code=CLOSE_TIMEOUT,
        synthetic_reason="Timeout",
    )

