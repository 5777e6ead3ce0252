# =============================================================================
# reconnecting-ws -- WebSocket Transport
# =============================================================================
#
# One underlying connection, built on websockets.asyncio.client, exposed
# through the browser WebSocket shape the reconnection core consumes:
# ready_state, send(), close() and open/message/error/close events.
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urlsplit

import websockets
import websockets.asyncio.client
from websockets.exceptions import ConnectionClosed

from ._logging import logger
from .buffer import payload_size
from .constants import (
    CLOSE_ABNORMAL,
    CLOSE_CODE_MAX_PRIVATE,
    CLOSE_CODE_MIN_PRIVATE,
    CLOSE_NORMAL,
    MAX_CLOSE_REASON_BYTES,
    MAX_MESSAGE_SIZE,
)
from .errors import InvalidStateError
from .events import EventTarget, Listener
from .factory import normalize_protocols
from .types import BinaryType, CloseEvent, Event, MessageEvent, ReadyState, SendData


class Transport(Protocol):
    """Interface of an underlying connection.

    Implementations are constructed as ``Transport(url, protocols)`` and
    must dispatch ``open``, ``message``, ``error`` and ``close`` events.
    """

    url: str
    protocol: str
    extensions: str
    ready_state: ReadyState
    buffered_amount: int
    binary_type: BinaryType

    def send(self, data: SendData) -> None: ...

    def close(self, code: int | None = None, reason: str | None = None) -> None: ...

    def add_event_listener(self, type: str, listener: Listener, **options: Any) -> None: ...

    def remove_event_listener(self, type: str, listener: Listener, **options: Any) -> None: ...

    def dispatch_event(self, event: Event) -> bool: ...


@dataclass(frozen=True)
class _CloseRequest:
    code: int
    reason: str


class WebSocketTransport(EventTarget):
    """A single WebSocket connection driven by a background task.

    Connecting starts immediately and requires a running event loop.
    ``send`` is synchronous: frames are queued and written in order by a
    writer task, ``buffered_amount`` counts bytes not yet written.

    Args:
        url: ``ws://`` or ``wss://`` URL.
        protocols: Subprotocol or list of subprotocols to offer.
        **connect_kwargs: Passed to :func:`websockets.asyncio.client.connect`
            (``additional_headers``, ``max_size``, ``ssl``...).
    """

    CONNECTING = ReadyState.CONNECTING
    OPEN = ReadyState.OPEN
    CLOSING = ReadyState.CLOSING
    CLOSED = ReadyState.CLOSED

    def __init__(
        self,
        url: str,
        protocols: str | list[str] | None = None,
        **connect_kwargs: Any,
    ) -> None:
        super().__init__()
        self._url = str(url)
        self._protocols = normalize_protocols(protocols)
        self._connect_kwargs = connect_kwargs
        self._origin = _origin_of(self._url)

        self._ready_state = ReadyState.CONNECTING
        self._binary_type = BinaryType.BYTES
        self._protocol = ""
        self._extensions = ""
        self._buffered_amount = 0
        self._close_dispatched = False

        self._outgoing: asyncio.Queue[SendData | _CloseRequest] = asyncio.Queue()
        self._run_task = asyncio.get_running_loop().create_task(self._run())
        self._run_task.add_done_callback(self._on_run_done)

    # -- Properties ---------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def protocol(self) -> str:
        return self._protocol

    @property
    def extensions(self) -> str:
        return self._extensions

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    @property
    def buffered_amount(self) -> int:
        return self._buffered_amount

    @property
    def binary_type(self) -> BinaryType:
        return self._binary_type

    @binary_type.setter
    def binary_type(self, value: BinaryType | str) -> None:
        self._binary_type = BinaryType(value)

    # -- Send / Close ---------------------------------------------------------------

    def send(self, data: SendData) -> None:
        """Queue *data* for sending.

        Raises:
            InvalidStateError: The connection is not OPEN.
            TypeError: *data* is neither text nor bytes-like.
        """
        if self._ready_state == ReadyState.CONNECTING:
            raise InvalidStateError("WebSocket is still in CONNECTING state")
        if self._ready_state != ReadyState.OPEN:
            raise InvalidStateError("WebSocket is already in CLOSING or CLOSED state")
        if not isinstance(data, (str, bytes, bytearray, memoryview)):
            raise TypeError(f"Unsupported payload type: {type(data).__name__}")

        self._buffered_amount += payload_size(data)
        self._outgoing.put_nowait(data)

    def close(self, code: int | None = None, reason: str | None = None) -> None:
        """Start the closing handshake, or abort a pending connect.

        Frames queued before the call are written before the close frame.

        Raises:
            ValueError: *code* is not 1000 or within 3000-4999, or *reason*
                is longer than 123 UTF-8 bytes.
        """
        if code is not None and code != CLOSE_NORMAL and not (
            CLOSE_CODE_MIN_PRIVATE <= code <= CLOSE_CODE_MAX_PRIVATE
        ):
            raise ValueError(f"Invalid close code: {code}")
        reason = reason or ""
        if len(reason.encode("utf-8")) > MAX_CLOSE_REASON_BYTES:
            raise ValueError("Close reason must not exceed 123 bytes")

        if self._ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return

        if self._ready_state == ReadyState.CONNECTING:
            self._ready_state = ReadyState.CLOSING
            self._run_task.cancel()
            return

        self._ready_state = ReadyState.CLOSING
        self._outgoing.put_nowait(_CloseRequest(code or CLOSE_NORMAL, reason))

    # -- Internal: connection task -----------------------------------------------

    async def _run(self) -> None:
        options = {"open_timeout": None, "max_size": MAX_MESSAGE_SIZE}
        options.update(self._connect_kwargs)
        try:
            ws = await websockets.asyncio.client.connect(
                self._url,
                subprotocols=self._protocols,
                **options,
            )
        except Exception as exc:
            logger.debug("Connection to %s failed: %s", self._url, exc)
            self._ready_state = ReadyState.CLOSED
            self.dispatch_event(Event("error"))
            self._finish(CLOSE_ABNORMAL, "", False)
            return

        if self._ready_state != ReadyState.CONNECTING:
            # close() raced the handshake
            await ws.close()
            self._finish(CLOSE_ABNORMAL, "", False)
            return

        self._protocol = ws.subprotocol or ""
        self._extensions = ", ".join(ext.name for ext in ws.protocol.extensions)
        self._ready_state = ReadyState.OPEN
        logger.debug("Connected to %s (protocol=%r)", self._url, self._protocol)
        self.dispatch_event(Event("open"))

        writer = asyncio.create_task(self._write_loop(ws))
        try:
            async for message in ws:
                self.dispatch_event(
                    MessageEvent("message", data=self._convert(message), origin=self._origin)
                )
        except ConnectionClosed:
            pass
        except Exception as exc:
            logger.warning("Receive loop error on %s: %s", self._url, exc)
            self.dispatch_event(Event("error"))
            await ws.close(1011)
        finally:
            writer.cancel()

        await ws.wait_closed()
        proto = ws.protocol
        was_clean = proto.close_rcvd is not None and proto.close_sent is not None
        self._finish(ws.close_code or CLOSE_ABNORMAL, ws.close_reason or "", was_clean)

    async def _write_loop(self, ws: websockets.asyncio.client.ClientConnection) -> None:
        while True:
            item = await self._outgoing.get()
            if isinstance(item, _CloseRequest):
                await ws.close(item.code, item.reason)
                return
            try:
                await ws.send(item)
            except ConnectionClosed:
                return
            except Exception as exc:
                logger.warning("Send failed on %s: %s", self._url, exc)
                self.dispatch_event(Event("error"))
                await ws.close(1011)
                return
            finally:
                self._buffered_amount -= payload_size(item)

    def _on_run_done(self, task: asyncio.Task[None]) -> None:
        # Cancelled (possibly before its first step) or crashed
        if not task.cancelled() and task.exception() is not None:
            logger.error("Connection task for %s failed", self._url, exc_info=task.exception())
        self._finish(CLOSE_ABNORMAL, "", False)

    def _finish(self, code: int, reason: str, was_clean: bool) -> None:
        """Move to CLOSED and dispatch the close event once."""
        self._ready_state = ReadyState.CLOSED
        if self._close_dispatched:
            return
        self._close_dispatched = True
        logger.debug("Closed %s: code=%d reason=%s", self._url, code, reason)
        self.dispatch_event(CloseEvent("close", code=code, reason=reason, was_clean=was_clean))

    def _convert(self, message: str | bytes) -> Any:
        if isinstance(message, str):
            return message
        if self._binary_type == BinaryType.BYTEARRAY:
            return bytearray(message)
        return bytes(message)


def _origin_of(url: str) -> str:
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"

