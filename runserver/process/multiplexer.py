"""Non-blocking drain of the child's stdout/stderr pipes, line by line.

Each round waits at most ``POLL_INTERVAL`` for any still-open pipe to become
readable, reads one bounded chunk from every ready pipe, and hands each
complete line to that pipe's sink.  A timeout with nothing ready is a normal
wake-up: it lets the caller re-check child state and pending signals.
"""

from __future__ import annotations

import logging
import os
import selectors
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1
READ_CHUNK = 64 * 1024
MAX_LINE = READ_CHUNK * 16

LineSink = Callable[[bytes], None]


class LineBuffer:
    """Accumulates bytes and splits off complete newline-terminated lines.

    The trailing fragment after the last newline is held back until more
    data arrives.  At end-of-stream an unterminated fragment is dropped.
    A fragment that reaches *max_line* bytes without a newline is emitted
    as a line of its own, so a child writing no newlines cannot grow the
    buffer without bound.
    """

    def __init__(self, max_line: int = MAX_LINE) -> None:
        self._buf = bytearray()
        self._max_line = max_line

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a newline."""
        return len(self._buf)

    def feed(self, chunk: bytes) -> list[bytes]:
        """Append *chunk* and return every line it completed, without newlines."""
        self._buf += chunk
        lines: list[bytes] = []
        end = self._buf.rfind(b"\n")
        if end >= 0:
            lines = bytes(self._buf[:end]).split(b"\n")
            del self._buf[: end + 1]
        while len(self._buf) >= self._max_line:
            lines.append(bytes(self._buf[: self._max_line]))
            del self._buf[: self._max_line]
        return lines

    def discard(self) -> int:
        """Drop any unterminated fragment, returning its size."""
        size = len(self._buf)
        self._buf.clear()
        return size


@dataclass
class StreamSource:
    """One readable pipe end with its tag, line buffer and sink."""

    fd: int
    name: str
    sink: LineSink
    buffer: LineBuffer = field(default_factory=LineBuffer)
    closed: bool = False


class LineMultiplexer:
    """Drain several pipes without blocking on any single one.

    EOF on each source is tracked independently; a source that hit EOF is
    unregistered and its descriptor closed while the others keep flowing.
    """

    def __init__(
        self,
        sources: list[StreamSource],
        *,
        poll_interval: float = POLL_INTERVAL,
        read_chunk: int = READ_CHUNK,
    ) -> None:
        self._sources = sources
        self._poll_interval = poll_interval
        self._read_chunk = read_chunk
        self._selector = selectors.DefaultSelector()
        for source in sources:
            self._selector.register(source.fd, selectors.EVENT_READ, source)

    @property
    def all_closed(self) -> bool:
        return all(s.closed for s in self._sources)

    def poll(self) -> int:
        """Run one readiness round. Returns the number of lines dispatched.

        With every source closed this just sleeps for the poll interval, so
        callers waiting on the child still wake up at a bounded rate.
        """
        if self.all_closed:
            time.sleep(self._poll_interval)
            return 0
        ready = self._selector.select(timeout=self._poll_interval)
        dispatched = 0
        for key, _events in ready:
            dispatched += self._drain(key.data)
        return dispatched

    def _drain(self, source: StreamSource) -> int:
        logger.debug("%s reader has input", source.name)
        chunk = os.read(source.fd, self._read_chunk)
        if not chunk:
            self._close(source)
            return 0
        lines = source.buffer.feed(chunk)
        for line in lines:
            source.sink(line)
        return len(lines)

    def _close(self, source: StreamSource) -> None:
        logger.debug("eof on %s", source.name)
        leftover = source.buffer.discard()
        if leftover:
            logger.debug("dropping %d unterminated bytes from %s", leftover, source.name)
        self._selector.unregister(source.fd)
        os.close(source.fd)
        source.closed = True

    def close(self) -> None:
        """Close every source still open and release the selector."""
        for source in self._sources:
            if not source.closed:
                self._selector.unregister(source.fd)
                os.close(source.fd)
                source.closed = True
        self._selector.close()
