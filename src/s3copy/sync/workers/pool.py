"""Bounded worker pool for concurrent transfer operations.

This module provides:
- WorkerPool: Runs a task function over a fixed list or a streamed producer
  with at most ``max_workers`` tasks in flight
- PoolState: Lifecycle of a pool run

The first failure (from a worker or the producer) is kept, cancels the run
scope so queued tasks never start, and is re-raised once every worker has
finished. Callers that want per-task isolation catch errors inside the task
function instead.
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum, auto
from typing import TYPE_CHECKING, Generic, TypeVar

from s3copy.sync.types import ConfigurationError
from s3copy.sync.workers.base import CancelToken, OperationCancelled

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Queue capacity is max_workers * BUFFER_MULTIPLIER
BUFFER_MULTIPLIER = 2
POLL_INTERVAL = 0.1

_STOP = object()


class PoolState(Enum):
    """State of the worker pool."""

    STOPPED = auto()
    RUNNING = auto()
    STOPPING = auto()


class _PoolRun(Generic[T]):
    """State shared by the producer and workers of one run."""

    def __init__(self, parent: CancelToken, queue_size: int) -> None:
        self.scope = parent.child()
        self.tasks: queue.Queue[object] = queue.Queue(maxsize=queue_size)
        self.first_error: BaseException | None = None
        self._lock = threading.Lock()

    def fail(self, error: BaseException) -> None:
        with self._lock:
            if self.first_error is None:
                self.first_error = error
        self.scope.cancel()

    def put(self, item: object) -> None:
        """Block until ``item`` is queued or the run is cancelled."""
        while True:
            self.scope.raise_if_cancelled()
            try:
                self.tasks.put(item, timeout=POLL_INTERVAL)
                return
            except queue.Full:
                continue


class WorkerPool:
    """Pool of worker threads with bounded concurrency and cancellation.

    Usage:
        pool = WorkerPool(max_workers=4, cancel=token)

        # Fixed list
        pool.run(tasks, lambda task, cancel: do_work(task))

        # Streamed producer
        def produce(submit):
            for page in store.list(prefix):
                for item in page:
                    submit(item)

        pool.run_stream(produce, handle_item)
    """

    def __init__(self, max_workers: int, cancel: CancelToken | None = None) -> None:
        """Initialize the worker pool.

        Args:
            max_workers: Maximum concurrent tasks (must be >= 1).
            cancel: Caller's cancellation token. A fresh one is used if omitted.

        Raises:
            ConfigurationError: If max_workers is below 1.
        """
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")
        self._max_workers = max_workers
        self._cancel = cancel or CancelToken()
        self._pool_state = PoolState.STOPPED
        self._lock = threading.Lock()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def state(self) -> PoolState:
        """Get current pool state."""
        return self._pool_state

    def run(self, tasks: Sequence[T], worker: Callable[[T, CancelToken], None]) -> None:
        """Run ``worker`` over every task with bounded concurrency.

        Args:
            tasks: Tasks to process. An empty list returns immediately
                unless the caller's token is already cancelled.
            worker: Called as worker(task, cancel) at most once per task.

        Raises:
            OperationCancelled: If the caller's token is (or becomes) cancelled.
            Exception: The first error raised by any worker.
        """
        self._cancel.raise_if_cancelled()
        if not tasks:
            return

        def produce(submit: Callable[[T], None]) -> None:
            for task in tasks:
                submit(task)

        self._execute(produce, worker, min(self._max_workers, len(tasks)))

    def run_stream(
        self,
        producer: Callable[[Callable[[T], None]], None],
        worker: Callable[[T, CancelToken], None],
    ) -> None:
        """Run ``worker`` over tasks emitted by ``producer`` as they arrive.

        The producer runs on the calling thread and receives a ``submit``
        function that blocks while the queue is full and raises
        OperationCancelled once the run is cancelled.

        Raises:
            OperationCancelled: If the caller's token is (or becomes) cancelled.
            Exception: The first error raised by the producer or any worker.
        """
        self._cancel.raise_if_cancelled()
        self._execute(producer, worker, self._max_workers)

    def _execute(
        self,
        producer: Callable[[Callable[[T], None]], None],
        worker: Callable[[T, CancelToken], None],
        worker_count: int,
    ) -> None:
        with self._lock:
            if self._pool_state != PoolState.STOPPED:
                raise RuntimeError("Worker pool is already running")
            self._pool_state = PoolState.RUNNING

        run: _PoolRun[T] = _PoolRun(self._cancel, self._max_workers * BUFFER_MULTIPLIER)
        threads = [
            threading.Thread(
                target=self._worker_loop,
                args=(run, worker),
                name=f"WorkerPool-{i}",
                daemon=True,
            )
            for i in range(worker_count)
        ]
        for thread in threads:
            thread.start()
        logger.debug(f"Worker pool started with {worker_count} workers")

        try:
            try:
                producer(run.put)
            except OperationCancelled as e:
                if not run.scope.cancelled:
                    run.fail(e)
            except Exception as e:
                logger.debug(f"Producer failed: {e}")
                run.fail(e)

            self._pool_state = PoolState.STOPPING
            # Poison pills; skipped once cancelled since workers exit on their own
            try:
                for _ in threads:
                    run.put(_STOP)
            except OperationCancelled:
                pass

            for thread in threads:
                thread.join()
        finally:
            self._pool_state = PoolState.STOPPED

        if run.first_error is not None:
            raise run.first_error
        self._cancel.raise_if_cancelled()

    def _worker_loop(self, run: _PoolRun[T], worker: Callable[[T, CancelToken], None]) -> None:
        """Main loop for worker threads."""
        while not run.scope.cancelled:
            try:
                task = run.tasks.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue

            if task is _STOP:
                break
            if run.scope.cancelled:
                break

            try:
                worker(task, run.scope)  # type: ignore[arg-type]
            except OperationCancelled as e:
                if not run.scope.cancelled:
                    run.fail(e)
            except Exception as e:
                logger.debug(f"Task failed: {e}")
                run.fail(e)
