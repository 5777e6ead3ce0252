# =============================================================================
# reconnecting-ws -- Reconnecting WebSocket
# =============================================================================
#
# The long-lived handle. One background task per instance runs the
# reconnection loop: create a socket, wait for it to close, back off,
# repeat, until the retry budget runs out, the user closes permanently, or
# an unexpected exception escapes.
#
# Listeners live on the handle, not on the per-attempt sockets, so they
# survive reconnection without being re-registered.
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, AsyncIterator, Callable

from ._logging import logger
from .backoff import resolve_delay
from .buffer import OutboundBuffer
from .errors import InvalidStateError, ReconnectingWebSocketError
from .events import EventHandler, EventTarget
from .factory import create_socket_with_timeout, force_close, resolve
from .signals import AbortController, AbortSignal, sleep
from .transport import Transport, WebSocketTransport
from .types import (
    BinaryType,
    CloseEvent,
    Event,
    MessageEvent,
    ProtocolsProvider,
    ReadyState,
    ReconnectOptions,
    SendData,
    TerminateEvent,
    TerminationCode,
    UrlProvider,
)


def _attribute_handler(type: str) -> property:
    """Build an ``on<type>`` property backed by a single listener slot."""

    def getter(self: ReconnectingWebSocket) -> EventHandler | None:
        return self._attribute_handlers.get(type)

    def setter(self: ReconnectingWebSocket, handler: EventHandler | None) -> None:
        self._set_attribute_listener(type, handler)

    return property(getter, setter, doc=f"Attribute-style handler for ``{type}`` events.")


class ReconnectingWebSocket(EventTarget):
    """WebSocket handle that reconnects automatically.

    Mirrors the browser WebSocket API (``send``, ``close``, ``ready_state``,
    ``onmessage``...). Messages sent while disconnected are buffered and
    delivered, in order, when the next connection opens. The ``terminate``
    event fires exactly once when the instance stops reconnecting for good.

    Must be created inside a running event loop: the reconnection loop
    starts immediately as a background task.

    Args:
        url: WebSocket URL, or a zero-argument callable evaluated on every
            attempt.
        protocols: Subprotocol(s) or a zero-argument callable. A
            :class:`ReconnectOptions` may be passed here instead of
            *options*.
        options: Reconnection configuration.

    Raises:
        RuntimeError: No running event loop.
        TypeError: ``options.transport`` is not callable.

    Example::

        ws = ReconnectingWebSocket("ws://localhost:8765", options=ReconnectOptions(max_retries=5))

        @ws.on("message")
        def handle(event: MessageEvent):
            print(event.data)

        ws.send("hello")  # buffered until the first open
    """

    CONNECTING = ReadyState.CONNECTING
    OPEN = ReadyState.OPEN
    CLOSING = ReadyState.CLOSING
    CLOSED = ReadyState.CLOSED

    onopen = _attribute_handler("open")
    onmessage = _attribute_handler("message")
    onerror = _attribute_handler("error")
    onclose = _attribute_handler("close")

    def __init__(
        self,
        url: UrlProvider,
        protocols: ProtocolsProvider | ReconnectOptions = None,
        options: ReconnectOptions | None = None,
    ) -> None:
        super().__init__()
        if isinstance(protocols, ReconnectOptions):
            protocols, options = None, protocols
        options = options or ReconnectOptions()

        transport = options.transport if options.transport is not None else WebSocketTransport
        if not callable(transport):
            raise TypeError("ReconnectOptions.transport must be a callable returning a transport")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise RuntimeError("ReconnectingWebSocket must be created inside a running event loop") from None

        self._url_provider = url
        self._protocols_provider = protocols
        self.reconnect_options = replace(options, transport=transport)

        self._socket: Transport | None = None
        self._binary_type = BinaryType.BYTES
        self._attempt = 0
        self._buffer = OutboundBuffer()
        self._abort_controller = AbortController()

        # Attribute-style handlers: user function and the wrapper registered for it
        self._attribute_handlers: dict[str, EventHandler] = {}
        self._attribute_listeners: dict[str, EventHandler] = {}

        self._loop_task = loop.create_task(self._run_loop())

    # -- Termination state -----------------------------------------------------

    @property
    def is_terminated(self) -> bool:
        """Whether the instance has been permanently terminated."""
        return self._abort_controller.signal.aborted

    @property
    def termination_reason(self) -> ReconnectingWebSocketError | None:
        """Why the instance terminated, or ``None`` while it is alive."""
        return self._abort_controller.signal.reason

    @property
    def termination_signal(self) -> AbortSignal:
        """Signal aborted (with the termination reason) on permanent termination."""
        return self._abort_controller.signal

    @property
    def attempt(self) -> int:
        """Reconnection attempts since the last successful open."""
        return self._attempt

    # -- Proxied socket properties -----------------------------------------------

    @property
    def url(self) -> str:
        return self._socket.url if self._socket is not None else ""

    @property
    def ready_state(self) -> ReadyState:
        if self._socket is None:
            return ReadyState.CLOSED if self.is_terminated else ReadyState.CONNECTING
        return ReadyState(self._socket.ready_state)

    @property
    def buffered_amount(self) -> int:
        return self._socket.buffered_amount if self._socket is not None else 0

    @property
    def extensions(self) -> str:
        return self._socket.extensions if self._socket is not None else ""

    @property
    def protocol(self) -> str:
        return self._socket.protocol if self._socket is not None else ""

    @property
    def binary_type(self) -> BinaryType:
        return self._binary_type

    @binary_type.setter
    def binary_type(self, value: BinaryType | str) -> None:
        self._binary_type = BinaryType(value)
        if self._socket is not None:
            self._socket.binary_type = self._binary_type

    # -- Public API ------------------------------------------------------------

    def send(self, data: SendData) -> None:
        """Send *data*, buffering it while no connection is open.

        After permanent termination nothing is buffered: the call goes to
        the last (closed) socket and raises whatever it raises.

        Raises:
            TypeError: *data* is neither text nor bytes-like.
            InvalidStateError: The instance terminated before any socket
                was created.
        """
        if not isinstance(data, (str, bytes, bytearray, memoryview)):
            raise TypeError(f"Unsupported payload type: {type(data).__name__}")

        socket = self._socket
        if not self.is_terminated and (socket is None or socket.ready_state != ReadyState.OPEN):
            self._buffer.append(data)
            return
        if socket is None:
            raise InvalidStateError("WebSocket was terminated before connecting")
        socket.send(data)

    def close(
        self,
        code: int | None = None,
        reason: str | None = None,
        permanently: bool = True,
    ) -> None:
        """Close the current connection.

        Args:
            code: WebSocket close code.
            reason: Close reason.
            permanently: ``True`` stops reconnecting and fires ``terminate``
                with ``TERMINATED_BY_USER``. ``False`` only ends the current
                attempt; the loop reconnects as usual.
        """
        if self._socket is not None:
            force_close(self._socket, code, reason)
        if permanently:
            self._cleanup(TerminationCode.TERMINATED_BY_USER)

    async def wait_closed(self) -> None:
        """Wait until the reconnection loop has finished."""
        await asyncio.shield(self._loop_task)

    async def aclose(self, code: int | None = None, reason: str | None = None) -> None:
        """Close permanently and wait for the reconnection loop to finish."""
        self.close(code, reason)
        await self.wait_closed()

    async def __aenter__(self) -> ReconnectingWebSocket:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    def __aiter__(self) -> AsyncIterator[MessageEvent]:
        return self.messages()

    async def messages(self) -> AsyncIterator[MessageEvent]:
        """Iterate over received messages until the instance terminates.

        Example::

            async with ReconnectingWebSocket(url) as ws:
                async for event in ws:
                    print(event.data)
        """
        queue: asyncio.Queue[MessageEvent | None] = asyncio.Queue()
        on_message: Callable[[Any], None] = queue.put_nowait

        def on_terminate(_event: Event) -> None:
            queue.put_nowait(None)

        if self.is_terminated:
            return
        self.add_event_listener("message", on_message)
        self.add_event_listener("terminate", on_terminate)
        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            self.remove_event_listener("message", on_message)
            self.remove_event_listener("terminate", on_terminate)

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of the handle's state."""
        reason = self.termination_reason
        return {
            "url": self.url,
            "ready_state": self.ready_state.name,
            "attempt": self._attempt,
            "max_retries": self.reconnect_options.max_retries,
            "terminated": self.is_terminated,
            "termination_code": reason.code.value if reason is not None else None,
            "outbound_buffer": self._buffer.get_stats(),
        }

    # -- Internal: reconnection loop -------------------------------------------

    def _create_socket(self) -> Transport:
        """Resolve url/protocols and build the socket for the next attempt."""
        url = resolve(self._url_provider)
        protocols = resolve(self._protocols_provider)
        transport = self.reconnect_options.transport

        socket = create_socket_with_timeout(
            lambda: transport(url, protocols),
            self.reconnect_options.connection_timeout,
        )
        socket.binary_type = self._binary_type
        return socket

    async def _run_loop(self) -> None:
        try:
            while not self.is_terminated:
                self._socket = self._create_socket()
                logger.debug("Connecting to %s (attempt %d)", self._socket.url, self._attempt)
                await self._await_socket_lifecycle(self._socket)
                if self.is_terminated:
                    break

                attempt = self._attempt
                max_retries = self.reconnect_options.max_retries
                if attempt >= max_retries:
                    logger.error("Max reconnect attempts (%d) reached", max_retries)
                    self._cleanup(TerminationCode.RECONNECTION_LIMIT)
                    break
                self._attempt += 1

                delay = resolve_delay(self.reconnect_options.reconnection_delay, attempt)
                logger.info(
                    "Reconnecting in %.2fs (attempt %d/%d)", delay, attempt + 1, max_retries
                )
                await sleep(delay, self._abort_controller.signal)
        except asyncio.CancelledError as exc:
            self._cleanup(TerminationCode.UNKNOWN_ERROR, exc)
            raise
        except Exception as exc:
            # A no-op when the exception is the abort of an already
            # terminated instance interrupting the sleep.
            self._cleanup(TerminationCode.UNKNOWN_ERROR, exc)

    def _await_socket_lifecycle(self, socket: Transport) -> asyncio.Future[None]:
        """Forward *socket*'s events until it closes.

        Subscribes synchronously so no notification of a freshly created
        socket can be missed. Every listener of this attempt is detached on
        the first close; later close notifications from the same socket
        (native or synthetic) reach nobody.

        Returns:
            Future resolved once, by the first close notification.
        """
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        scope = AbortController()

        def on_open(_event: Event) -> None:
            self._attempt = 0
            try:
                self._buffer.flush(socket.send)
            except Exception as exc:
                logger.warning(
                    "Replaying buffered messages failed, %d kept for next attempt: %s",
                    len(self._buffer),
                    exc,
                )
                socket.close()
                return
            self.dispatch_event(Event("open"))

        def on_message(event: Event) -> None:
            self.dispatch_event(
                MessageEvent(
                    "message",
                    data=getattr(event, "data", None),
                    origin=getattr(event, "origin", ""),
                )
            )

        def on_error(_event: Event) -> None:
            self.dispatch_event(Event("error"))

        def on_close(event: Event) -> None:
            scope.abort()
            self.dispatch_event(
                CloseEvent(
                    "close",
                    code=getattr(event, "code", 0),
                    reason=getattr(event, "reason", ""),
                    was_clean=getattr(event, "was_clean", False),
                )
            )
            if not done.done():
                done.set_result(None)

        socket.add_event_listener("open", on_open, signal=scope.signal)
        socket.add_event_listener("message", on_message, signal=scope.signal)
        socket.add_event_listener("error", on_error, signal=scope.signal)
        socket.add_event_listener("close", on_close, signal=scope.signal)
        return done

    def _cleanup(self, code: TerminationCode, cause: BaseException | None = None) -> None:
        """Terminate permanently. No-op when already terminated."""
        if self.is_terminated:
            return

        error = ReconnectingWebSocketError(code, cause)
        self._abort_controller.abort(error)
        if self._socket is not None:
            try:
                force_close(self._socket)
            except Exception as exc:
                logger.debug("Closing socket on termination failed: %s", exc)
        self._buffer.clear()

        if code == TerminationCode.UNKNOWN_ERROR:
            logger.error("Terminated by unexpected error: %r", cause)
        else:
            logger.info("Terminated: %s", code.value)
        self.dispatch_event(TerminateEvent("terminate", detail=error))

    # -- Internal: attribute handlers --------------------------------------------

    def _set_attribute_listener(self, type: str, handler: EventHandler | None) -> None:
        previous = self._attribute_listeners.pop(type, None)
        if previous is not None:
            self.remove_event_listener(type, previous)

        if handler is None:
            self._attribute_handlers.pop(type, None)
            return
        if not callable(handler):
            raise TypeError(f"on{type} handler must be callable or None")

        def listener(event: Event) -> Any:
            return handler(event)

        self._attribute_handlers[type] = handler
        self._attribute_listeners[type] = listener
        self.add_event_listener(type, listener)
