"""Tests for the TCP transport."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from conftest import PROPERTIES_REPLY, STATUS_REPLY, FakeBreezartServer

from breezart_client.errors import (
    BreezartConnectionError,
    BreezartIdleTimeoutError,
    BreezartResponseTimeoutError,
    BreezartTransportError,
)
from breezart_client.transport import BreezartTransport, TransportState, backoff_delay


def make_transport(server: FakeBreezartServer, **kwargs: object) -> BreezartTransport:
    """Create a transport pointing at the scripted server."""
    kwargs.setdefault("response_timeout", 0.3)
    kwargs.setdefault("idle_timeout", None)
    return BreezartTransport("127.0.0.1", server.port, **kwargs)  # type: ignore[arg-type]


class TestBackoffDelay:
    """Tests for backoff_delay."""

    def test_doubles_until_cap(self) -> None:
        """Test the delay doubles per attempt and stops at 256 s."""
        assert [backoff_delay(attempt) for attempt in range(4)] == [1, 2, 4, 8]
        assert backoff_delay(8) == 256
        assert backoff_delay(20) == 256


class TestBreezartTransport:
    """Tests for BreezartTransport."""

    @pytest.mark.asyncio
    async def test_send_returns_reply(self, fake_server: FakeBreezartServer) -> None:
        """Test a frame is written and its reply returned, skipping the banner."""
        lines: list[str] = []
        transport = make_transport(fake_server, on_data=lines.append)
        await transport.async_open()
        assert transport.state is TransportState.CONNECTED

        assert await transport.async_send("VPr07_0") == PROPERTIES_REPLY
        assert await transport.async_send("VSt07_0") == STATUS_REPLY
        assert fake_server.requests == ["VPr07_0", "VSt07_0"]
        assert lines[0] == "/ #"
        assert PROPERTIES_REPLY in lines

        await transport.async_close()
        assert transport.state is TransportState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_response_timeout_recovers(
        self, fake_server: FakeBreezartServer
    ) -> None:
        """Test a missing reply times out and the next request still works."""
        fake_server.replies["VSt07"] = None
        transport = make_transport(fake_server)
        await transport.async_open()

        with pytest.raises(BreezartResponseTimeoutError, match="VSt07"):
            await transport.async_send("VSt07_0")
        assert await transport.async_send("VPr07_0") == PROPERTIES_REPLY

        await transport.async_close()

    @pytest.mark.asyncio
    async def test_send_when_closed(self, fake_server: FakeBreezartServer) -> None:
        """Test sending without a connection fails."""
        transport = make_transport(fake_server)
        with pytest.raises(BreezartConnectionError):
            await transport.async_send("VSt07_0")

    @pytest.mark.asyncio
    async def test_open_refused(self) -> None:
        """Test an unreachable controller raises a connection error."""
        server = FakeBreezartServer()
        await server.start()
        await server.stop()

        transport = make_transport(server)
        with pytest.raises(BreezartConnectionError, match="Cannot connect"):
            await transport.async_open()
        assert transport.state is TransportState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_remote_close(self, fake_server: FakeBreezartServer) -> None:
        """Test a connection closed by the controller is reported."""
        closed = asyncio.Event()
        causes: list[BreezartTransportError] = []

        def on_closed(cause: BreezartTransportError) -> None:
            causes.append(cause)
            closed.set()

        transport = make_transport(fake_server, on_closed=on_closed)
        await transport.async_open()
        await transport.async_send("VPr07_0")
        await fake_server.drop_connections()

        await asyncio.wait_for(closed.wait(), 2)
        assert isinstance(causes[0], BreezartConnectionError)
        assert transport.connected is False

    @pytest.mark.asyncio
    async def test_pending_request_fails_on_close(
        self, fake_server: FakeBreezartServer
    ) -> None:
        """Test a request waiting for its reply fails when the socket drops."""
        fake_server.replies["VSt07"] = None
        transport = make_transport(fake_server, response_timeout=2)
        await transport.async_open()

        request = asyncio.create_task(transport.async_send("VSt07_0"))
        while not fake_server.requests:
            await asyncio.sleep(0.01)
        await fake_server.drop_connections()

        with pytest.raises(BreezartConnectionError):
            await request

    @pytest.mark.asyncio
    async def test_idle_timeout(self, fake_server: FakeBreezartServer) -> None:
        """Test an idle connection is closed and both hooks fire."""
        closed = asyncio.Event()
        idle: list[bool] = []
        causes: list[BreezartTransportError] = []

        def on_closed(cause: BreezartTransportError) -> None:
            causes.append(cause)
            closed.set()

        transport = make_transport(
            fake_server,
            idle_timeout=0.1,
            on_idle=lambda: idle.append(True),
            on_closed=on_closed,
        )
        await transport.async_open()

        await asyncio.wait_for(closed.wait(), 2)
        assert idle == [True]
        assert isinstance(causes[0], BreezartIdleTimeoutError)
        assert transport.state is TransportState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, fake_server: FakeBreezartServer) -> None:
        """Test closing twice is harmless and does not report a loss."""
        causes: list[BreezartTransportError] = []
        transport = make_transport(fake_server, on_closed=causes.append)
        await transport.async_open()

        await transport.async_close()
        await transport.async_close()
        assert causes == []

    @pytest.mark.asyncio
    async def test_reply_split_across_chunks(
        self, fake_server: FakeBreezartServer
    ) -> None:
        """Test text that is not yet a reply waits for the rest of the line."""
        transport = make_transport(fake_server)
        await transport.async_open()
        pending: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        transport._pending = pending

        transport._feed("O")
        assert not pending.done()
        transport._feed("K_VWSpd_7\r\n")
        assert pending.result() == "OK_VWSpd_7"

        transport._pending = None
        await transport.async_close()

    @pytest.mark.asyncio
    async def test_unterminated_reply(self, fake_server: FakeBreezartServer) -> None:
        """Test a reply sent without a line terminator is delivered."""
        fake_server.terminator = ""
        transport = make_transport(fake_server)
        await transport.async_open()

        assert await transport.async_send("VPr07_0") == PROPERTIES_REPLY
        assert await transport.async_send("VWSpd_0_7") == "OK_VWSpd_7"

        await transport.async_close()

    @pytest.mark.asyncio
    async def test_unterminated_text_at_end_of_stream(
        self, fake_server: FakeBreezartServer
    ) -> None:
        """Test text left in the buffer is handled when the stream ends."""
        lines: list[str] = []
        transport = make_transport(fake_server, on_data=lines.append)
        await transport.async_open()
        pending: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        transport._pending = pending

        transport._feed("Bye")
        assert "Bye" not in lines
        transport._flush()
        assert lines[-1] == "Bye"
        assert not pending.done()

        transport._pending = None
        await transport.async_close()

    @pytest.mark.asyncio
    async def test_multibyte_character_split_across_reads(self) -> None:
        """Test a UTF-8 character split between two reads is decoded whole."""
        line = f"{STATUS_REPLY[:-len('All OK')]}Замените фильтр"
        encoded = line.encode()
        # Cut inside the two-byte letter before the last one
        cut = len(encoded) - 3
        received = asyncio.Event()
        lines: list[str] = []

        def on_data(text: str) -> None:
            lines.append(text)
            if "".join(lines).endswith("фильтр"):
                received.set()

        async def handle(
            reader: asyncio.StreamReader, writer: asyncio.StreamWriter
        ) -> None:
            writer.write(encoded[:cut])
            await writer.drain()
            await asyncio.sleep(0.05)
            writer.write(encoded[cut:] + b"\r\n")
            await writer.drain()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        transport = BreezartTransport(
            "127.0.0.1", port, idle_timeout=None, on_data=on_data
        )
        await transport.async_open()

        await asyncio.wait_for(received.wait(), 2)
        assert "".join(lines) == line
        assert "\ufffd" not in "".join(lines)

        await transport.async_close()
        server.close()
        await server.wait_closed()

    @pytest.mark.asyncio
    async def test_close_while_connecting(
        self, fake_server: FakeBreezartServer
    ) -> None:
        """Test closing during the connect aborts it instead of connecting."""
        open_connection = asyncio.open_connection

        async def slow_open_connection(
            *args: object,
        ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
            await asyncio.sleep(0.2)
            return await open_connection(*args)  # type: ignore[arg-type]

        transport = make_transport(fake_server)
        with patch(
            "breezart_client.transport.asyncio.open_connection", slow_open_connection
        ):
            opening = asyncio.create_task(transport.async_open())
            await asyncio.sleep(0.05)
            assert transport.state is TransportState.CONNECTING
            await transport.async_close()

            with pytest.raises(
                BreezartConnectionError, match="closed while connecting"
            ):
                await opening

        assert transport.state is TransportState.DISCONNECTED
        assert fake_server.connections == 0
