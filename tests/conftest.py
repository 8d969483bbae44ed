"""Pytest configuration and fixtures for Breezart client tests."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from breezart_client.config import BreezartConfig

PROPERTIES_REPLY = "VPr07_2C06_906_6301_D413_FE02_FD03_EA60"
STATUS_WORDS = ("841", "2015", "1312", "0", "6422", "85", "1017", "A1F", "1202")
STATUS_MESSAGE = "All OK"
STATUS_REPLY = "_".join(("VSt07", *STATUS_WORDS, STATUS_MESSAGE))
SENSORS_REPLY = "VSens__e6_fb07_fb07_fb07_fb07_fb07_fb07_0"

# Bounds used by the scripted controller to reject set values
SET_LIMITS = {
    "VWSpd": (6, 9),
    "VWTmp": (6, 44),
    "VWHum": (1, 99),
}


def with_humidifier(properties_reply: str = PROPERTIES_REPLY) -> str:
    """Return a properties reply with the humidifier flag set."""
    fields = properties_reply.split("_")
    fields[4] = f"{int(fields[4], 16) | 0x2000:X}"
    return "_".join(fields)


def with_status_word(index: int, word: str) -> tuple[str, ...]:
    """Return the status words with one word replaced."""
    words = list(STATUS_WORDS)
    words[index] = word
    return tuple(words)


class FakeBreezartServer:
    """Scripted controller answering requests the way the device does.

    Attributes:
        password: Password the requests must carry.
        requests: Every request line received, in order.
        replies: Per command reply override; None means never reply.
        properties_reply: Reply to ``VPr07``.
        status_words: Words of the ``VSt07`` reply.
        banner: Line sent on connect, like the Telnet prompt.
        terminator: Appended to every reply; the device may send none.

    """

    def __init__(self, password: int = 0) -> None:
        """Initialize the server."""
        self.password = password
        self.requests: list[str] = []
        self.replies: dict[str, str | None] = {}
        self.properties_reply = PROPERTIES_REPLY
        self.status_words = STATUS_WORDS
        self.status_message = STATUS_MESSAGE
        self.banner: str | None = "/ #"
        self.terminator = "\r\n"
        self.connections = 0
        self.port = 0
        self._server: asyncio.Server | None = None
        self._writers: list[asyncio.StreamWriter] = []

    async def start(self) -> None:
        """Start listening on a free local port."""
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        """Close all connections and stop listening."""
        await self.drop_connections()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def drop_connections(self) -> None:
        """Close the connected sockets from the server side."""
        writers, self._writers = self._writers, []
        for writer in writers:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

    def commands(self) -> list[str]:
        """Return the command prefix of every request received."""
        return [request.split("_", 1)[0] for request in self.requests]

    def reply_to(self, request: str) -> str | None:
        """Return the reply line for a request line."""
        fields = request.split("_")
        command = fields[0]
        if command in self.replies:
            return self.replies[command]
        if len(fields) < 2 or int(fields[1], 16) != self.password:
            return "VEPas"

        if command == "VPr07":
            return self.properties_reply
        if command == "VSt07":
            return "_".join(("VSt07", *self.status_words, self.status_message))
        if command == "VSens":
            return SENSORS_REPLY
        if command in (*SET_LIMITS, "VWPwr"):
            if len(fields) < 3:
                return "VEFrm"
            value = int(fields[2], 16)
            low, high = SET_LIMITS.get(command, (0x10, 0x11))
            if value < low:
                return "VEDat_L1"
            if value > high:
                return "VEDat_H1"
            return f"OK_{command}_{fields[2]}"
        return "VECd1"

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.connections += 1
        self._writers.append(writer)
        if self.banner is not None:
            writer.write(f"{self.banner}\r\n".encode())

        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                request = line.decode().strip()
                self.requests.append(request)
                reply = self.reply_to(request)
                if reply is not None:
                    writer.write(f"{reply}{self.terminator}".encode())
                    await writer.drain()
        except (ConnectionError, OSError):
            pass
        finally:
            writer.close()


@pytest_asyncio.fixture
async def fake_server() -> AsyncIterator[FakeBreezartServer]:
    """Fixture providing a running scripted controller."""
    server = FakeBreezartServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def client_config(fake_server: FakeBreezartServer) -> BreezartConfig:
    """Fixture providing a config pointing at the scripted controller."""
    return BreezartConfig(
        host="127.0.0.1",
        port=fake_server.port,
        password=0,
        response_timeout=0.5,
        idle_timeout=None,
        auto_reconnect=False,
    )
