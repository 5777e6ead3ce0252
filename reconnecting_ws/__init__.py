"""WebSocket client that reconnects automatically.

Usage::

    from reconnecting_ws import connect

    async with connect("ws://localhost:8765", max_retries=5) as ws:
        ws.send("hello")  # buffered until the connection opens
        async for event in ws:
            print(event.data)

Callbacks::

    ws = ReconnectingWebSocket("ws://localhost:8765")
    ws.onmessage = lambda event: print(event.data)
    ws.add_event_listener("terminate", lambda event: print(event.detail.code))
"""

from typing import Any

from ._version import __version__
from .backoff import (
    default_reconnection_delay,
    exponential_backoff,
    fibonacci_backoff,
    linear_backoff,
)
from .client import ReconnectingWebSocket
from .errors import (
    AbortError,
    InvalidStateError,
    ReconnectingWebSocketError,
    WSError,
)
from .events import EventTarget
from .signals import AbortController, AbortSignal
from .transport import Transport, WebSocketTransport
from .types import (
    BinaryType,
    CloseEvent,
    Event,
    MessageEvent,
    ProtocolsProvider,
    ReadyState,
    ReconnectOptions,
    TerminateEvent,
    TerminationCode,
    UrlProvider,
)


def connect(
    url: UrlProvider,
    protocols: ProtocolsProvider = None,
    **kwargs: Any,
) -> ReconnectingWebSocket:
    """Create a :class:`ReconnectingWebSocket`.

    Keyword arguments are :class:`ReconnectOptions` fields: ``transport``,
    ``max_retries``, ``connection_timeout``, ``reconnection_delay``. Use the
    result directly or as an async context manager, which closes it
    permanently on exit.

    Args:
        url: WebSocket URL or zero-argument callable returning one.
        protocols: Subprotocol(s) or zero-argument callable.
        **kwargs: Passed to :class:`ReconnectOptions`.

    Returns:
        A started :class:`ReconnectingWebSocket`.
    """
    return ReconnectingWebSocket(url, protocols, ReconnectOptions(**kwargs))


__all__ = [
    "__version__",
    "connect",
    "ReconnectingWebSocket",
    "ReconnectOptions",
    "WebSocketTransport",
    "Transport",
    "EventTarget",
    "AbortController",
    "AbortSignal",
    "Event",
    "MessageEvent",
    "CloseEvent",
    "TerminateEvent",
    "ReadyState",
    "BinaryType",
    "TerminationCode",
    "default_reconnection_delay",
    "exponential_backoff",
    "linear_backoff",
    "fibonacci_backoff",
    "WSError",
    "ReconnectingWebSocketError",
    "InvalidStateError",
    "AbortError",
]
