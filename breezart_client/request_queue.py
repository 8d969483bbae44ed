"""FIFO request serializer for the single controller connection.

The controller answers one request at a time and its replies carry no
correlation id, so a reply can only be paired with a request by sending the
next frame after the previous reply arrived. :class:`RequestQueue` runs one
worker task that takes jobs in submission order, sends each frame, and runs
the job handler on the reply before picking up the next job.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import BreezartConnectionError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_LOGGER = logging.getLogger(__name__)


@dataclass
class _Job:
    frame: str
    handler: Callable[[str], Any]
    future: asyncio.Future[Any]


class RequestQueue:
    """Serialize requests so that exactly one is outstanding at a time."""

    def __init__(self, send: Callable[[str], Awaitable[str]]) -> None:
        """Initialize the queue.

        Args:
            send: Coroutine function that writes a frame and returns the
                reply line.

        """
        self._send = send
        self._jobs: asyncio.Queue[_Job] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._current: _Job | None = None
        self._running = False
        self._generation = 0

    @property
    def pending(self) -> int:
        """Return the number of jobs waiting to be sent."""
        return self._jobs.qsize()

    @property
    def running(self) -> bool:
        """Return True if the queue accepts and processes jobs."""
        return self._running

    @property
    def busy(self) -> bool:
        """Return True if a job is in flight."""
        return self._current is not None

    def start(self) -> None:
        """Start processing jobs."""
        if self._running:
            return
        self._running = True
        self._generation += 1
        self._worker = asyncio.create_task(self._run(self._generation))

    def stop(self, reason: str = "Connection closed") -> None:
        """Stop processing jobs.

        Jobs that were not sent yet fail with BreezartConnectionError. A job
        already in flight completes on its own.

        Args:
            reason: Message of the error given to the dropped jobs.

        """
        if not self._running and self._jobs.empty():
            return
        self._running = False

        dropped = 0
        while not self._jobs.empty():
            job = self._jobs.get_nowait()
            if not job.future.done():
                job.future.set_exception(BreezartConnectionError(reason))
            dropped += 1
        if dropped:
            _LOGGER.debug("Dropped %d queued request(s): %s", dropped, reason)

        if self._worker is not None and self._current is None:
            self._worker.cancel()
        self._worker = None

    async def async_submit(self, frame: str, handler: Callable[[str], Any]) -> Any:
        """Queue a frame and wait until it has been answered.

        Args:
            frame: Request frame without line terminator.
            handler: Called with the reply line inside the worker; its
                return value is returned to the caller.

        Returns:
            The value returned by the handler.

        Raises:
            BreezartConnectionError: If the queue is stopped.
            Exception: Whatever the transport or the handler raised.

        """
        if not self._running:
            msg = "Not connected to the Breezart controller"
            raise BreezartConnectionError(msg)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._jobs.put_nowait(_Job(frame, handler, future))
        return await future

    async def _run(self, generation: int) -> None:
        while self._running and generation == self._generation:
            job = await self._jobs.get()
            if job.future.done():
                continue

            self._current = job
            try:
                reply = await self._send(job.frame)
                result = job.handler(reply)
            except Exception as err:  # noqa: BLE001
                if not job.future.done():
                    job.future.set_exception(err)
            else:
                if not job.future.done():
                    job.future.set_result(result)
            finally:
                self._current = None
