"""Tests for the bounded byte pipe."""

import threading
import time

import pytest

from s3copy.core.pipe import BytePipe, PipeClosedError


class TestBytePipe:
    """Tests for BytePipe."""

    def test_rejects_invalid_capacity(self) -> None:
        """Capacity must be positive."""
        with pytest.raises(ValueError):
            BytePipe(capacity=0)

    def test_write_then_read(self) -> None:
        """Written bytes should be readable in order."""
        pipe = BytePipe()
        pipe.write(b"hello ")
        pipe.write(b"world")
        pipe.close()

        assert pipe.read(3) == b"hel"
        assert pipe.read(100) == b"lo world"
        assert pipe.read(10) == b""

    def test_read_all(self) -> None:
        """read() without a size should return everything until EOF."""
        pipe = BytePipe(capacity=4)

        def produce() -> None:
            for _ in range(10):
                pipe.write(b"abc")
            pipe.close()

        thread = threading.Thread(target=produce)
        thread.start()
        assert pipe.read() == b"abc" * 10
        thread.join()

    def test_buffered_tracks_unread_bytes(self) -> None:
        """buffered should count bytes written but not read."""
        pipe = BytePipe()
        pipe.write(b"12345")
        pipe.read(2)
        assert pipe.buffered == 3

    def test_write_blocks_when_full(self) -> None:
        """A writer should wait until the reader frees space."""
        pipe = BytePipe(capacity=4)
        pipe.write(b"1234")
        done = threading.Event()

        def produce() -> None:
            pipe.write(b"5678")
            done.set()

        thread = threading.Thread(target=produce)
        thread.start()
        assert not done.wait(0.2)

        assert pipe.read(4) == b"1234"
        assert done.wait(2)
        thread.join()
        assert pipe.read(4) == b"5678"

    def test_read_blocks_until_data(self) -> None:
        """A reader should wait for the writer."""
        pipe = BytePipe()
        result: list[bytes] = []

        thread = threading.Thread(target=lambda: result.append(pipe.read(10)))
        thread.start()
        time.sleep(0.1)
        assert not result

        pipe.write(b"late")
        thread.join(2)
        assert result == [b"late"]

    def test_write_after_close_fails(self) -> None:
        """Writing to a closed pipe should raise PipeClosedError."""
        pipe = BytePipe()
        pipe.close()
        with pytest.raises(PipeClosedError):
            pipe.write(b"x")

    def test_abort_wakes_blocked_writer(self) -> None:
        """Aborting from the reader side should fail a blocked writer with the cause."""
        pipe = BytePipe(capacity=2)
        pipe.write(b"12")
        errors: list[BaseException] = []

        def produce() -> None:
            try:
                pipe.write(b"34")
            except PipeClosedError as e:
                errors.append(e)

        thread = threading.Thread(target=produce)
        thread.start()
        time.sleep(0.1)
        cause = RuntimeError("upload rejected")
        pipe.abort(cause)
        thread.join(2)

        assert len(errors) == 1
        assert errors[0].__cause__ is cause
        assert pipe.aborted

    def test_abort_fails_reader(self) -> None:
        """Aborting from the writer side should fail the reader even with data buffered."""
        pipe = BytePipe()
        pipe.write(b"partial")
        pipe.abort(ValueError("read error"))

        with pytest.raises(PipeClosedError) as exc_info:
            pipe.read(10)
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert pipe.buffered == 0

    def test_first_abort_cause_wins(self) -> None:
        """A second abort should not replace the original cause."""
        pipe = BytePipe()
        first = RuntimeError("first")
        pipe.abort(first)
        pipe.abort(RuntimeError("second"))

        with pytest.raises(PipeClosedError) as exc_info:
            pipe.read(1)
        assert exc_info.value.__cause__ is first

    def test_is_not_seekable(self) -> None:
        """The pipe should advertise itself as a non-seekable stream."""
        pipe = BytePipe()
        assert pipe.readable()
        assert pipe.writable()
        assert not pipe.seekable()
