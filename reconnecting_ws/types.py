# =============================================================================
# reconnecting-ws -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, Callable, Union

from .backoff import DelayPolicy, default_reconnection_delay
from .constants import DEFAULT_CONNECTION_TIMEOUT, DEFAULT_MAX_RETRIES

if TYPE_CHECKING:
    from .errors import ReconnectingWebSocketError

# Payloads accepted by ``send()``.
SendData = Union[str, bytes, bytearray, memoryview]

# A value, or a zero-argument callable re-evaluated on every attempt.
UrlProvider = Union[str, Callable[[], str]]
ProtocolsProvider = Union[str, list[str], None, Callable[[], Union[str, list[str], None]]]


class ReadyState(IntEnum):
    """Connection state of an underlying socket (WebSocket ``readyState``)."""

    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


class BinaryType(str, Enum):
    """Python type used for binary frames delivered in ``message`` events."""

    BYTES = "bytes"
    BYTEARRAY = "bytearray"


class TerminationCode(str, Enum):
    """Why a :class:`ReconnectingWebSocket` was permanently terminated."""

    RECONNECTION_LIMIT = "RECONNECTION_LIMIT"
    TERMINATED_BY_USER = "TERMINATED_BY_USER"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# -- Events --------------------------------------------------------------------


@dataclass
class Event:
    """Base event dispatched through an :class:`~reconnecting_ws.events.EventTarget`.

    ``target`` is filled in by ``dispatch_event``.
    """

    type: str
    target: Any = field(default=None, repr=False, compare=False)


@dataclass
class MessageEvent(Event):
    """A frame received from the peer."""

    data: Any = None
    origin: str = ""


@dataclass
class CloseEvent(Event):
    """The underlying connection closed.

    Attributes:
        code: WebSocket close code (1006 when no close frame was received).
        reason: Close reason sent by the peer.
        was_clean: Whether the closing handshake completed.
    """

    code: int = 0
    reason: str = ""
    was_clean: bool = False


@dataclass
class TerminateEvent(Event):
    """Permanent termination; ``detail`` carries the cause."""

    detail: ReconnectingWebSocketError | None = None


# -- Configuration ---------------------------------------------------------------


@dataclass
class ReconnectOptions:
    """Configuration for :class:`~reconnecting_ws.client.ReconnectingWebSocket`.

    Attributes:
        transport: Callable ``(url, protocols) -> Transport`` building one
            underlying connection. ``None`` selects
            :class:`~reconnecting_ws.transport.WebSocketTransport`.
        max_retries: Reconnection attempts allowed after a close before the
            instance terminates. Reset by every successful open.
        connection_timeout: Seconds to wait for a connection to open, or
            ``None`` to wait forever.
        reconnection_delay: Seconds to wait before a reconnection, either a
            number or a callable taking the attempt index.
    """

    transport: Callable[..., Any] | None = None
    max_retries: int = DEFAULT_MAX_RETRIES
    connection_timeout: float | None = DEFAULT_CONNECTION_TIMEOUT
    reconnection_delay: DelayPolicy = default_reconnection_delay
