"""Copy and sync operations between a local filesystem and an object store.

Architecture:
    scanner (local / remote Trees) → compute_diff → WorkerPool → transfers

Components:
- **scanner**: Builds Trees of FileRecords from a directory or a prefix
- **FileComparator**: Checksum or size/mtime change detection
- **compute_diff / SyncEngine**: One-way mirroring with deletes
- **upload_path / download_path**: Non-mirroring copy of files, globs and trees
- **FileUploader / FileDownloader**: Single-object transfers with optional encryption
- **WorkerPool**: Bounded-concurrency execution with cancellation
"""

from s3copy.sync.comparator import Comparison, FileComparator, match_checksum
from s3copy.sync.copy import download_path, upload_path
from s3copy.sync.engine import SyncEngine, compute_diff
from s3copy.sync.ignore import DEFAULT_IGNORE_PATTERNS, IgnorePatterns
from s3copy.sync.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_RETRIES,
    retry_with_backoff,
)
from s3copy.sync.scanner import iter_remote, normalize_prefix, scan_local, scan_remote
from s3copy.sync.transfers import FileDownloader, FileUploader, delete_local, delete_remote
from s3copy.sync.types import (
    ConfigurationError,
    DeleteError,
    DiffPlan,
    DownloadError,
    DownloadResult,
    SyncError,
    SyncReport,
    TransferAction,
    TransferTask,
    UploadError,
    UploadResult,
)
from s3copy.sync.workers import (
    CancelToken,
    DeadlineExceeded,
    OperationCancelled,
    WorkerPool,
)

__all__ = [
    # Comparator
    "Comparison",
    "FileComparator",
    "match_checksum",
    # Copy
    "download_path",
    "upload_path",
    # Engine
    "SyncEngine",
    "compute_diff",
    # Ignore
    "DEFAULT_IGNORE_PATTERNS",
    "IgnorePatterns",
    # Retry
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_BACKOFF",
    "DEFAULT_MAX_BACKOFF",
    "DEFAULT_MAX_RETRIES",
    "retry_with_backoff",
    # Scanner
    "iter_remote",
    "normalize_prefix",
    "scan_local",
    "scan_remote",
    # Transfers
    "FileDownloader",
    "FileUploader",
    "delete_local",
    "delete_remote",
    # Types
    "ConfigurationError",
    "DeleteError",
    "DiffPlan",
    "DownloadError",
    "DownloadResult",
    "SyncError",
    "SyncReport",
    "TransferAction",
    "TransferTask",
    "UploadError",
    "UploadResult",
    # Workers
    "CancelToken",
    "DeadlineExceeded",
    "OperationCancelled",
    "WorkerPool",
]
