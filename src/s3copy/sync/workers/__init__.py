"""Worker pool and cancellation primitives.

This package provides:
- CancelToken: Cooperative cancellation with optional deadline
- OperationCancelled, DeadlineExceeded: Cancellation exceptions
- WorkerPool: Bounded-concurrency runner for fixed lists and streamed producers

Usage:
    from s3copy.sync.workers import CancelToken, WorkerPool

    pool = WorkerPool(max_workers=4, cancel=CancelToken(timeout=600))
    pool.run(tasks, lambda task, cancel: handle(task))
"""

from s3copy.sync.workers.base import CancelToken, DeadlineExceeded, OperationCancelled
from s3copy.sync.workers.pool import BUFFER_MULTIPLIER, PoolState, WorkerPool

__all__ = [
    # Base
    "CancelToken",
    "DeadlineExceeded",
    "OperationCancelled",
    # Pool
    "BUFFER_MULTIPLIER",
    "PoolState",
    "WorkerPool",
]
