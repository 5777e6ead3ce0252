"""Shared fixtures: an in-memory transport the reconnection core can drive."""

import asyncio

import pytest

from reconnecting_ws.errors import InvalidStateError
from reconnecting_ws.events import EventTarget
from reconnecting_ws.types import BinaryType, CloseEvent, Event, MessageEvent, ReadyState


class FakeSocket(EventTarget):
    """One fake connection, created by :class:`FakeServer`."""

    def __init__(self, server, url, protocols=None):
        super().__init__()
        self.server = server
        self.url = url
        self.protocols = [protocols] if isinstance(protocols, str) else protocols
        self.protocol = ""
        self.extensions = ""
        self.ready_state = ReadyState.CONNECTING
        self.buffered_amount = 0
        self.binary_type = BinaryType.BYTES
        self.sent = []
        self.close_calls = []

    # -- Peer side ------------------------------------------------------------

    def start(self):
        if self.ready_state != ReadyState.CONNECTING:
            return
        if self.server.behavior == "open":
            self.accept()
        elif self.server.behavior == "refuse":
            self.ready_state = ReadyState.CLOSED
            self.dispatch_event(Event("error"))
            self.dispatch_event(CloseEvent("close", code=1006, reason="", was_clean=False))
        # "hang": stay CONNECTING

    def accept(self):
        self.protocol = self.protocols[0] if self.protocols else ""
        self.ready_state = ReadyState.OPEN
        self.dispatch_event(Event("open"))

    def message(self, data):
        self.dispatch_event(MessageEvent("message", data=data, origin="ws://fake"))

    def error(self):
        self.dispatch_event(Event("error"))

    def drop(self, code=1006, reason=""):
        self.ready_state = ReadyState.CLOSED
        self.dispatch_event(CloseEvent("close", code=code, reason=reason, was_clean=False))

    # -- Transport interface -----------------------------------------------------

    def send(self, data):
        if self.ready_state != ReadyState.OPEN:
            raise InvalidStateError("not open")
        if data in self.server.fail_once:
            self.server.fail_once.remove(data)
            raise RuntimeError(f"send failed: {data!r}")
        self.sent.append(data)
        self.server.received.append(data)

    def close(self, code=None, reason=None):
        self.close_calls.append((code, reason))
        if self.ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        loop = asyncio.get_running_loop()
        if self.ready_state == ReadyState.CONNECTING:
            if self.server.silent_close_while_connecting:
                self.ready_state = ReadyState.CLOSED
                return
            self.ready_state = ReadyState.CLOSING
            loop.call_soon(self._finish, 1006, "", False)
            return
        self.ready_state = ReadyState.CLOSING
        loop.call_soon(self._finish, code or 1000, reason or "", True)

    def _finish(self, code, reason, was_clean):
        self.ready_state = ReadyState.CLOSED
        self.dispatch_event(CloseEvent("close", code=code, reason=reason, was_clean=was_clean))


class FakeServer:
    """Transport factory recording every socket it creates.

    Attributes:
        behavior: ``"open"`` (accept on the next tick), ``"refuse"`` (error
            then close 1006) or ``"hang"`` (never answer).
        silent_close_while_connecting: Closing a CONNECTING socket produces
            no close notification.
        fail_once: Payloads whose next send raises.
        received: Every payload delivered, across all sockets.
    """

    def __init__(self, behavior="open"):
        self.behavior = behavior
        self.silent_close_while_connecting = False
        self.fail_once = []
        self.received = []
        self.sockets = []

    def __call__(self, url, protocols=None):
        socket = FakeSocket(self, url, protocols)
        self.sockets.append(socket)
        asyncio.get_running_loop().call_soon(socket.start)
        return socket

    @property
    def last(self):
        return self.sockets[-1]


async def wait_until(predicate, timeout=2.0):
    """Poll *predicate* until true or fail the test."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


class Recorder:
    """Collects events dispatched for one type."""

    def __init__(self, target, type):
        self.events = []
        target.add_event_listener(type, self.events.append)

    def __len__(self):
        return len(self.events)

    @property
    def last(self):
        return self.events[-1]


@pytest.fixture
def server():
    return FakeServer()
