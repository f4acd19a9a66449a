"""Shared types and dataclasses for sync and copy operations.

This module provides:
- SyncError, ConfigurationError, UploadError, DownloadError, DeleteError
- UploadResult, DownloadResult: Single-transfer outcomes
- SyncReport: Thread-safe aggregate of a sync or copy run
- DiffPlan: What a sync run must transfer and delete
- TransferAction, TransferTask: Units dispatched to the worker pool
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum


class SyncError(Exception):
    """Base exception for sync errors."""


class ConfigurationError(SyncError):
    """Invalid combination of arguments, detected before any I/O."""


class UploadError(SyncError):
    """Failed to upload a file."""


class DownloadError(SyncError):
    """Failed to download a file."""


class DeleteError(SyncError):
    """Failed to delete a file or object."""


@dataclass
class UploadResult:
    """Result of a file upload operation."""

    path: str
    key: str
    size: int
    skipped: bool = False
    encrypted: bool = False


@dataclass
class DownloadResult:
    """Result of a file download operation."""

    key: str
    local_path: str
    size: int
    skipped: bool = False


@dataclass
class SyncReport:
    """Result of a sync or copy run.

    Workers append concurrently, so every mutation goes through the
    ``record_*`` methods which hold the report lock.
    """

    uploaded: list[str] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    unchanged: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_upload(self, path: str) -> None:
        with self._lock:
            self.uploaded.append(path)

    def record_download(self, path: str) -> None:
        with self._lock:
            self.downloaded.append(path)

    def record_delete(self, path: str) -> None:
        with self._lock:
            self.deleted.append(path)

    def record_skip(self, path: str) -> None:
        with self._lock:
            self.skipped.append(path)

    def record_error(self, message: str) -> None:
        with self._lock:
            self.errors.append(message)

    @property
    def has_errors(self) -> bool:
        """Check if any task failed."""
        return len(self.errors) > 0

    @property
    def is_empty(self) -> bool:
        """True when nothing was transferred or deleted and nothing failed."""
        return not (self.uploaded or self.downloaded or self.deleted or self.errors)

    @property
    def has_changes(self) -> bool:
        return not self.is_empty


@dataclass
class DiffPlan:
    """Reconciliation plan between a source and a destination tree.

    Attributes:
        to_transfer: Source-side paths to copy over the destination.
        to_delete: Destination-side paths with no source counterpart.
        unchanged: Number of paths judged identical on both sides.
    """

    to_transfer: list[str] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    unchanged: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.to_transfer and not self.to_delete


class TransferAction(str, Enum):
    """Kind of work a TransferTask performs."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE_LOCAL = "delete_local"
    DELETE_REMOTE = "delete_remote"

    @property
    def is_delete(self) -> bool:
        return self in (TransferAction.DELETE_LOCAL, TransferAction.DELETE_REMOTE)


@dataclass(frozen=True)
class TransferTask:
    """A unit of work for the worker pool.

    Attributes:
        action: What to do.
        relative_path: Path reported in the SyncReport.
        source: Local path or object key to read from (empty for deletes).
        destination: Local path or object key to write or delete.
        mod_time: Remote modification time applied to downloaded files.
    """

    action: TransferAction
    relative_path: str
    source: str
    destination: str
    mod_time: int | None = None
