"""
Raw terminal I/O helpers: a byte sink and an asyncio input reader.

The reader mirrors how an interactive program consumes a terminal: it waits
for the input fd to become readable, feeds each chunk to an InputDecoder,
and arms a timer for the decoder's escape timeout so a lone Escape key press
is delivered without waiting for further input.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Callable

from tty_core.decoder import InputDecoder
from tty_core.events import InputEvent

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 1024


class FdWriter:
    """Byte sink writing straight to a file descriptor (stdout by default)."""

    def __init__(self, fd: int | None = None) -> None:
        self._fd = sys.stdout.fileno() if fd is None else fd

    @property
    def fd(self) -> int:
        return self._fd

    def write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(self._fd, view)
            view = view[written:]

    __call__ = write


class InputReader:
    """
    Reads a terminal fd on the running event loop and dispatches events.

    Usage:
        reader = InputReader(decoder, on_event=handle)
        reader.start()
        ...
        reader.stop()
    """

    def __init__(
        self,
        decoder: InputDecoder,
        on_event: Callable[[InputEvent], None],
        fd: int | None = None,
        chunk_size: int = READ_CHUNK_SIZE,
    ) -> None:
        self._decoder = decoder
        self._on_event = on_event
        self._fd = sys.stdin.fileno() if fd is None else fd
        self._chunk_size = chunk_size
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._closed: asyncio.Future[None] | None = None

    @property
    def running(self) -> bool:
        return self._loop is not None

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._loop is not None:
            return
        self._loop = loop or asyncio.get_event_loop()
        self._closed = self._loop.create_future()
        self._loop.add_reader(self._fd, self._on_readable)

    def stop(self) -> None:
        if self._loop is None:
            return
        self._clear_timeout()
        self._loop.remove_reader(self._fd)
        if self._closed is not None and not self._closed.done():
            self._closed.set_result(None)
        self._loop = None

    async def wait_closed(self) -> None:
        """Wait until the reader stops (explicitly or at end of input)."""
        if self._closed is not None:
            await self._closed

    def _dispatch(self, events: list[InputEvent]) -> None:
        for event in events:
            self._on_event(event)

    def _clear_timeout(self) -> None:
        if self._timeout_handle:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _schedule_timeout(self) -> None:
        self._clear_timeout()
        delay = self._decoder.time_until_timeout()
        if delay is None or self._loop is None:
            return
        self._timeout_handle = self._loop.call_later(delay, self._on_timeout)

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        self._dispatch(self._decoder.poll())
        # Bytes re-decoded after the timeout may start a new sequence
        self._schedule_timeout()

    def _on_readable(self) -> None:
        try:
            data = os.read(self._fd, self._chunk_size)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            logger.warning("Terminal read failed: %s", exc)
            self._finish()
            return

        if not data:
            logger.debug("End of terminal input")
            self._finish()
            return

        self._dispatch(self._decoder.feed(data))
        self._schedule_timeout()

    def _finish(self) -> None:
        # Nothing else will complete a pending sequence
        self._dispatch(self._decoder.timeout())
        self.stop()
