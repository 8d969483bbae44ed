"""Line oriented TCP transport for the Breezart controller.

The transport owns one asyncio stream connection. A background reader task
collects lines and hands the first line that looks like a device reply to the
single pending request. The controller may send a reply without a line
terminator, so text that looks like a reply is handed over as soon as it
arrives while a request waits. Lines arriving while no request waits
(such as the Telnet prompt sent after connect) are reported through the data
hook and otherwise ignored.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from .const import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_RESPONSE_TIMEOUT,
    ENCODING,
    LINE_TERMINATOR,
    READ_CHUNK_SIZE,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_DOUBLINGS,
)
from .errors import (
    BreezartConnectionError,
    BreezartIdleTimeoutError,
    BreezartResponseTimeoutError,
    BreezartTransportError,
)
from .frame import looks_like_reply, split_lines

if TYPE_CHECKING:
    from collections.abc import Callable

_LOGGER = logging.getLogger(__name__)


class TransportState(StrEnum):
    """Connection state of the transport."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def backoff_delay(attempt: int) -> float:
    """Return the reconnect delay in seconds for a zero-based attempt."""
    return RECONNECT_BASE_DELAY * 2 ** min(max(attempt, 0), RECONNECT_MAX_DOUBLINGS)


class BreezartTransport:
    """Asyncio stream connection speaking one request and one reply at a time."""

    def __init__(  # noqa: PLR0913
        self,
        host: str,
        port: int,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
        idle_timeout: float | None = DEFAULT_IDLE_TIMEOUT,
        on_data: Callable[[str], None] | None = None,
        on_idle: Callable[[], None] | None = None,
        on_closed: Callable[[BreezartTransportError], None] | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            host: Controller host name or address.
            port: Controller TCP port.
            connect_timeout: Seconds to wait for the connection.
            response_timeout: Seconds to wait for the reply to one frame.
            idle_timeout: Seconds without socket activity before the
                connection is dropped, None to keep it forever.
            on_data: Called with every received line.
            on_idle: Called when the idle timeout fires.
            on_closed: Called with the cause when the connection is lost.
                Not called for :meth:`async_close`.

        """
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._response_timeout = response_timeout
        self._idle_timeout = idle_timeout
        self._on_data = on_data
        self._on_idle = on_idle
        self._on_closed = on_closed

        self._state = TransportState.DISCONNECTED
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._pending: asyncio.Future[str] | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        self._connect_task: asyncio.Task[
            tuple[asyncio.StreamReader, asyncio.StreamWriter]
        ] | None = None
        self._decoder = codecs.getincrementaldecoder(ENCODING)(errors="replace")
        self._buffer = ""

    @property
    def state(self) -> TransportState:
        """Return the connection state."""
        return self._state

    @property
    def connected(self) -> bool:
        """Return True if the socket is open."""
        return self._state is TransportState.CONNECTED

    async def async_open(self) -> None:
        """Open the connection.

        Raises:
            BreezartConnectionError: If the controller cannot be reached in
                time.

        """
        if self._state is not TransportState.DISCONNECTED:
            return

        self._state = TransportState.CONNECTING
        _LOGGER.debug("Connecting to %s:%s", self._host, self._port)
        self._connect_task = asyncio.create_task(
            asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                self._connect_timeout,
            )
        )
        try:
            reader, writer = await self._connect_task
        except asyncio.CancelledError as err:
            self._state = TransportState.DISCONNECTED
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            msg = f"Connection to {self._host}:{self._port} closed while connecting"
            raise BreezartConnectionError(msg) from err
        except TimeoutError as err:
            self._state = TransportState.DISCONNECTED
            msg = f"Timed out connecting to {self._host}:{self._port}"
            raise BreezartConnectionError(msg) from err
        except OSError as err:
            self._state = TransportState.DISCONNECTED
            msg = f"Cannot connect to {self._host}:{self._port}: {err}"
            raise BreezartConnectionError(msg) from err
        finally:
            self._connect_task = None

        if self._state is not TransportState.CONNECTING:
            # Closed while the connection was being established
            writer.close()
            msg = f"Connection to {self._host}:{self._port} closed while connecting"
            raise BreezartConnectionError(msg)

        self._reader, self._writer = reader, writer
        self._state = TransportState.CONNECTED
        self._decoder.reset()
        self._buffer = ""
        self._reader_task = asyncio.create_task(self._read_loop())
        self._touch()
        _LOGGER.info("Connected to Breezart controller at %s:%s", self._host, self._port)

    async def async_send(self, frame: str) -> str:
        """Write a frame and wait for its reply line.

        Args:
            frame: Request frame without line terminator.

        Returns:
            The reply line, without line terminator.

        Raises:
            BreezartConnectionError: If not connected or the connection is
                lost before the reply.
            BreezartResponseTimeoutError: If no reply arrives in time.

        """
        if self._state is not TransportState.CONNECTED or self._writer is None:
            msg = "Not connected to the Breezart controller"
            raise BreezartConnectionError(msg)
        if self._pending is not None and not self._pending.done():
            msg = "A request is already waiting for its reply"
            raise RuntimeError(msg)

        pending: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending = pending
        _LOGGER.debug("Sending %s", frame)
        try:
            self._writer.write(f"{frame}{LINE_TERMINATOR}".encode("ascii"))
            await self._writer.drain()
            self._touch()
            return await asyncio.wait_for(pending, self._response_timeout)
        except TimeoutError as err:
            command = frame.split("_", 1)[0]
            msg = f"No reply to {command} within {self._response_timeout} s"
            raise BreezartResponseTimeoutError(msg) from err
        except OSError as err:
            msg = f"Error writing to the Breezart controller: {err}"
            raise BreezartConnectionError(msg) from err
        finally:
            if self._pending is pending:
                self._pending = None

    async def async_close(self) -> None:
        """Close the connection. Safe to call more than once."""
        writer = self._writer
        if self._connect_task is not None:
            self._connect_task.cancel()
        self._shutdown(BreezartConnectionError("Connection closed"))
        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None
        if writer is not None:
            with contextlib.suppress(OSError):
                await writer.wait_closed()
            _LOGGER.info("Disconnected from Breezart controller at %s", self._host)

    async def _read_loop(self) -> None:
        reader = self._reader
        if reader is None:
            return

        try:
            while True:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    self._flush()
                    cause: BreezartTransportError = BreezartConnectionError(
                        "Connection closed by the Breezart controller"
                    )
                    break
                self._touch()
                self._feed(self._decoder.decode(chunk))
        except OSError as err:
            cause = BreezartConnectionError(f"Socket error: {err}")

        _LOGGER.warning("Lost connection to %s: %s", self._host, cause)
        self._reader_task = None
        self._close_with(cause)

    def _feed(self, text: str) -> None:
        self._buffer += text
        end = max(self._buffer.rfind("\n"), self._buffer.rfind("\r"))
        if end >= 0:
            complete, self._buffer = self._buffer[: end + 1], self._buffer[end + 1 :]
            for line in split_lines(complete):
                self._handle_line(line)

        # Unterminated text is a whole line, unless a request waits and the
        # text does not look like a reply yet
        rest = self._buffer.strip()
        if not rest:
            return
        pending = self._pending
        if pending is not None and not pending.done() and not looks_like_reply(rest):
            return
        self._buffer = ""
        self._handle_line(rest)

    def _flush(self) -> None:
        """Handle text left without a terminator when the stream ends."""
        rest = (self._buffer + self._decoder.decode(b"", final=True)).strip()
        self._buffer = ""
        if rest:
            self._handle_line(rest)

    def _handle_line(self, line: str) -> None:
        _LOGGER.debug("Received %s", line)
        if self._on_data is not None:
            try:
                self._on_data(line)
            except Exception:
                _LOGGER.exception("Error in data callback")

        pending = self._pending
        if pending is not None and not pending.done() and looks_like_reply(line):
            pending.set_result(line)
        else:
            _LOGGER.debug("Ignoring unsolicited line: %s", line)

    def _touch(self) -> None:
        """Restart the idle timer after socket activity."""
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        if self._idle_timeout is None or self._state is not TransportState.CONNECTED:
            return
        self._idle_handle = asyncio.get_running_loop().call_later(
            self._idle_timeout, self._idle_expired
        )

    def _idle_expired(self) -> None:
        self._idle_handle = None
        _LOGGER.warning(
            "No activity on %s for %s s, closing connection",
            self._host,
            self._idle_timeout,
        )
        if self._on_idle is not None:
            try:
                self._on_idle()
            except Exception:
                _LOGGER.exception("Error in idle timeout callback")
        if self._reader_task is not None:
            self._reader_task.cancel()
            self._reader_task = None
        self._close_with(
            BreezartIdleTimeoutError(
                f"Connection idle for more than {self._idle_timeout} s"
            )
        )

    def _close_with(self, cause: BreezartTransportError) -> None:
        """Tear down after an unexpected loss and report it."""
        if self._state is TransportState.DISCONNECTED:
            return
        self._shutdown(cause)
        if self._on_closed is not None:
            try:
                self._on_closed(cause)
            except Exception:
                _LOGGER.exception("Error in connection closed callback")

    def _shutdown(self, cause: BreezartTransportError) -> None:
        self._state = TransportState.DISCONNECTED
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

        pending = self._pending
        self._pending = None
        if pending is not None and not pending.done():
            error = (
                cause
                if isinstance(cause, BreezartConnectionError)
                else BreezartConnectionError(str(cause))
            )
            pending.set_exception(error)

        if self._writer is not None:
            self._writer.close()
        self._writer = None
        self._reader = None
