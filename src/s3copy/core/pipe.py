"""Bounded in-memory byte pipe connecting a producer thread to a consumer.

Used to stream the encryption codec into an upload (and a download into the
decryption codec) without buffering whole objects. Writers block once
``capacity`` bytes are queued; either side can abort, which wakes the peer
with a PipeClosedError chained to the original cause.
"""

from __future__ import annotations

import threading
from collections import deque

DEFAULT_CAPACITY = 4 * 1024 * 1024


class PipeClosedError(IOError):
    """Raised on a pipe end after the other end aborted."""


class BytePipe:
    """Thread-safe bounded byte channel with file-like read/write ends."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._buffer: deque[bytes] = deque()
        self._buffered = 0
        self._eof = False
        self._error: BaseException | None = None
        self._cond = threading.Condition()

    @property
    def buffered(self) -> int:
        """Number of bytes written but not yet read."""
        with self._cond:
            return self._buffered

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def _raise_if_aborted(self) -> None:
        if self._error is not None:
            raise PipeClosedError("pipe aborted") from self._error

    def write(self, data: bytes) -> int:
        """Queue ``data`` for the reader, blocking while the pipe is full."""
        data = bytes(data)
        if not data:
            return 0
        with self._cond:
            while True:
                self._raise_if_aborted()
                if self._eof:
                    raise PipeClosedError("write to closed pipe")
                if self._buffered < self._capacity:
                    break
                self._cond.wait()
            self._buffer.append(data)
            self._buffered += len(data)
            self._cond.notify_all()
        return len(data)

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes; ``-1`` reads until EOF. Returns b"" at EOF."""
        if size is None or size < 0:
            return self.readall()
        if size == 0:
            return b""
        with self._cond:
            while not self._buffer:
                self._raise_if_aborted()
                if self._eof:
                    return b""
                self._cond.wait()
            self._raise_if_aborted()

            parts: list[bytes] = []
            remaining = size
            while self._buffer and remaining > 0:
                head = self._buffer[0]
                if len(head) <= remaining:
                    parts.append(self._buffer.popleft())
                    remaining -= len(head)
                else:
                    parts.append(head[:remaining])
                    self._buffer[0] = head[remaining:]
                    remaining = 0
            data = b"".join(parts)
            self._buffered -= len(data)
            self._cond.notify_all()
            return data

    def readall(self) -> bytes:
        parts: list[bytes] = []
        while True:
            data = self.read(self._capacity)
            if not data:
                return b"".join(parts)
            parts.append(data)

    def close(self) -> None:
        """Signal end of stream to the reader.

        Data already written stays readable.
        """
        with self._cond:
            self._eof = True
            self._cond.notify_all()

    def abort(self, error: BaseException) -> None:
        """Fail both ends of the pipe with ``error`` as the cause."""
        with self._cond:
            if self._error is None:
                self._error = error
            self._buffer.clear()
            self._buffered = 0
            self._cond.notify_all()

    @property
    def aborted(self) -> bool:
        with self._cond:
            return self._error is not None
