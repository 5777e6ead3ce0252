"""Integration tests: ReconnectingWebSocket + WebSocketTransport against a
real websockets server on localhost.

Tests the full lifecycle: start server, connect, buffer and echo messages,
drop the connection from the server side, reconnect, terminate.
"""

import asyncio
import contextlib
import socket
from unittest.mock import AsyncMock, MagicMock

import pytest
from websockets.asyncio.server import serve

from conftest import Recorder, wait_until
from reconnecting_ws import ReconnectingWebSocket, ReconnectOptions, connect
from reconnecting_ws.errors import InvalidStateError
from reconnecting_ws.transport import WebSocketTransport
from reconnecting_ws.types import BinaryType, ReadyState, TerminationCode

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def echo(ws):
    async for message in ws:
        await ws.send(message)


@contextlib.asynccontextmanager
async def running_server(handler, **kwargs):
    """Start a websockets server on a free port and yield its URL."""
    async with serve(handler, "127.0.0.1", 0, **kwargs) as server:
        port = list(server.sockets)[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}/"


@contextlib.asynccontextmanager
async def hanging_server():
    """TCP server that accepts connections but never answers the handshake."""

    async def hang(reader, writer):
        await reader.read()
        writer.close()

    server = await asyncio.start_server(hang, "127.0.0.1", 0)
    async with server:
        port = server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}/"


def unused_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------


class TestMessaging:
    @pytest.mark.asyncio
    async def test_buffered_send_is_echoed(self):
        async with running_server(echo) as url:
            async with connect(url, reconnection_delay=0) as ws:
                messages = Recorder(ws, "message")
                ws.send("hello")
                assert ws.ready_state == ReadyState.CONNECTING

                await wait_until(lambda: len(messages) == 1)
                assert messages.last.data == "hello"
                assert messages.last.origin == url.rstrip("/")
                assert ws.url == url

    @pytest.mark.asyncio
    async def test_binary_type_bytearray(self):
        async with running_server(echo) as url:
            async with connect(url, reconnection_delay=0) as ws:
                ws.binary_type = BinaryType.BYTEARRAY
                messages = Recorder(ws, "message")
                ws.send(b"\x01\x02")

                await wait_until(lambda: len(messages) == 1)
                assert messages.last.data == bytearray(b"\x01\x02")
                assert isinstance(messages.last.data, bytearray)

    @pytest.mark.asyncio
    async def test_subprotocol_negotiated(self):
        async with running_server(echo, subprotocols=["chat"]) as url:
            async with connect(url, "chat", reconnection_delay=0) as ws:
                await wait_until(lambda: ws.ready_state == ReadyState.OPEN)
                assert ws.protocol == "chat"

    @pytest.mark.asyncio
    async def test_async_iteration(self):
        async with running_server(echo) as url:
            ws = connect(url, reconnection_delay=0)
            ws.send("one")
            ws.send("two")
            received = []
            async for event in ws:
                received.append(event.data)
                if len(received) == 2:
                    break
            await ws.aclose()
            assert received == ["one", "two"]


# ---------------------------------------------------------------------------
# Reconnection
# ---------------------------------------------------------------------------


class TestReconnection:
    @pytest.mark.asyncio
    async def test_refused_port_terminates_after_retries(self):
        url = f"ws://127.0.0.1:{unused_port()}/"
        ws = connect(url, max_retries=2, reconnection_delay=0)
        closes = Recorder(ws, "close")
        errors = Recorder(ws, "error")
        terminated = Recorder(ws, "terminate")

        await asyncio.wait_for(ws.wait_closed(), timeout=5.0)
        assert len(closes) == 3
        assert len(errors) == 3
        assert len(terminated) == 1
        assert terminated.last.detail.code == TerminationCode.RECONNECTION_LIMIT

    @pytest.mark.asyncio
    async def test_handshake_timeout(self):
        async with hanging_server() as url:
            ws = connect(url, max_retries=0, connection_timeout=0.1)
            closes = Recorder(ws, "close")

            await asyncio.wait_for(ws.wait_closed(), timeout=5.0)
            assert len(closes) == 1
            assert closes.last.code in (1006, 3008)
            assert ws.termination_reason.code == TerminationCode.RECONNECTION_LIMIT

    @pytest.mark.asyncio
    async def test_server_drop_triggers_reconnect(self):
        connections = 0

        async def drop_first(ws):
            nonlocal connections
            connections += 1
            if connections == 1:
                await ws.close(4000, "dropped")
                return
            await echo(ws)

        async with running_server(drop_first) as url:
            ws = connect(url, reconnection_delay=0)
            opens = Recorder(ws, "open")
            closes = Recorder(ws, "close")
            messages = Recorder(ws, "message")

            await wait_until(lambda: len(opens) == 2)
            assert closes.events[0].code == 4000
            assert closes.events[0].reason == "dropped"
            assert closes.events[0].was_clean is True

            ws.send("back")
            await wait_until(lambda: len(messages) == 1)
            assert messages.last.data == "back"
            await ws.aclose()

    @pytest.mark.asyncio
    async def test_temporary_close_reopens(self):
        async with running_server(echo) as url:
            ws = connect(url, reconnection_delay=0)
            opens = Recorder(ws, "open")
            terminated = Recorder(ws, "terminate")
            await wait_until(lambda: len(opens) == 1)

            ws.close(permanently=False)
            await wait_until(lambda: len(opens) == 2)
            assert len(terminated) == 0
            await ws.aclose()

    @pytest.mark.asyncio
    async def test_aclose_is_clean(self):
        async with running_server(echo) as url:
            ws = ReconnectingWebSocket(url, ReconnectOptions(reconnection_delay=0))
            closes = Recorder(ws, "close")
            await wait_until(lambda: ws.ready_state == ReadyState.OPEN)

            await ws.aclose()
            assert len(closes) == 1
            assert closes.last.code == 1000
            assert closes.last.was_clean is True
            assert ws.ready_state == ReadyState.CLOSED
            assert ws.termination_reason.code == TerminationCode.TERMINATED_BY_USER


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class TestWebSocketTransport:
    @pytest.mark.asyncio
    async def test_send_while_connecting(self):
        async with running_server(echo) as url:
            transport = WebSocketTransport(url)
            closes = Recorder(transport, "close")
            with pytest.raises(InvalidStateError):
                transport.send("too early")

            transport.close()
            await wait_until(lambda: len(closes) == 1)
            assert transport.ready_state == ReadyState.CLOSED

    @pytest.mark.asyncio
    async def test_write_failure_closes_connection(self):
        transport = WebSocketTransport(f"ws://127.0.0.1:{unused_port()}/")
        transport.close()
        errors = Recorder(transport, "error")

        ws = MagicMock()
        ws.send = AsyncMock(side_effect=RuntimeError("write failed"))
        ws.close = AsyncMock()
        transport._buffered_amount = 4
        transport._outgoing.put_nowait("ping")

        await asyncio.wait_for(transport._write_loop(ws), timeout=1.0)
        ws.close.assert_awaited_once_with(1011)
        assert len(errors) == 1
        assert transport.buffered_amount == 0

    @pytest.mark.asyncio
    async def test_invalid_close_arguments(self):
        async with running_server(echo) as url:
            transport = WebSocketTransport(url)
            with pytest.raises(ValueError):
                transport.close(1001)
            with pytest.raises(ValueError):
                transport.close(1000, "x" * 124)

            closes = Recorder(transport, "close")
            await wait_until(lambda: transport.ready_state == ReadyState.OPEN)
            transport.send("ping")
            transport.close(1000, "done")
            await wait_until(lambda: len(closes) == 1)
            assert closes.last.code == 1000
            assert closes.last.reason == "done"
            assert transport.buffered_amount == 0
