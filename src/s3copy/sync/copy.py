"""Non-mirroring copy between the local filesystem and the object store.

This module provides:
- upload_path: Upload a file, a glob, or (recursively) a directory
- download_path: Download a single object, or everything under a prefix

Unlike sync, copy never deletes anything and skips files whose content is
already present at the destination unless ``force`` is set. Directory and
prefix copies stream work into the pool while the walk or listing is still
running; failures are recorded per file in the report.
"""

from __future__ import annotations

import glob
import logging
import os
import posixpath
from pathlib import Path
from typing import TYPE_CHECKING

from s3copy.sync.scanner import iter_local, local_path_for, normalize_prefix
from s3copy.sync.transfers import FileDownloader, FileUploader
from s3copy.sync.types import ConfigurationError, SyncError, SyncReport
from s3copy.sync.workers import CancelToken, OperationCancelled, WorkerPool

if TYPE_CHECKING:
    from collections.abc import Callable

    from s3copy.core.config import TransferOptions
    from s3copy.storage import ObjectStore
    from s3copy.sync.ignore import IgnorePatterns

logger = logging.getLogger(__name__)


def _join_key(prefix: str, name: str) -> str:
    return normalize_prefix(prefix) + name


def _file_key(key: str, local_path: Path) -> str:
    """Append the file name when ``key`` is empty or names a "directory"."""
    key = key.lstrip("/")
    if not key or key.endswith("/"):
        return key + local_path.name
    return key


class _Copier:
    """Per-run state shared by the upload and download entry points."""

    def __init__(
        self,
        store: ObjectStore,
        options: TransferOptions,
        cancel: CancelToken | None,
    ) -> None:
        self.store = store
        self.options = options
        self.cancel = cancel or CancelToken()
        self.report = SyncReport()
        self.uploader = FileUploader(store, options, self.cancel)
        self.downloader = FileDownloader(store, options, self.cancel)

    def upload_one(self, local_path: Path, key: str) -> None:
        if self.options.dry_run:
            logger.info(f"Would upload: {local_path} -> {key}")
            self.report.record_upload(str(local_path))
            return
        try:
            result = self.uploader.upload_file(local_path, key, check_existing=True)
        except OperationCancelled:
            raise
        except Exception as e:
            message = f"Failed to upload {local_path}: {e}"
            logger.error(message)
            self.report.record_error(message)
            return
        if result.skipped:
            self.report.record_skip(str(local_path))
        else:
            logger.info(f"Uploaded: {local_path} -> {key}")
            self.report.record_upload(str(local_path))

    def download_one(self, key: str, local_path: Path) -> None:
        if self.options.dry_run:
            logger.info(f"Would download: {key} -> {local_path}")
            self.report.record_download(key)
            return
        try:
            result = self.downloader.download_file(key, local_path, skip_existing=not self.options.force)
        except OperationCancelled:
            raise
        except Exception as e:
            message = f"Failed to download {key}: {e}"
            logger.error(message)
            self.report.record_error(message)
            return
        if result.skipped:
            self.report.record_skip(key)
        else:
            logger.info(f"Downloaded: {key} -> {local_path}")
            self.report.record_download(key)

    def reject(self, key: str, destination: str) -> None:
        message = f"Failed to download {key}: does not map to a file under {destination}"
        logger.warning(message)
        self.report.record_error(message)

    def run_stream(
        self,
        producer: Callable[[Callable[[tuple[str, str]], None]], None],
        handle: Callable[[str, str], None],
    ) -> None:
        pool = WorkerPool(self.options.max_workers, self.cancel)
        pool.run_stream(producer, lambda task, cancel: handle(*task))


def upload_path(
    store: ObjectStore,
    source: str,
    key: str,
    options: TransferOptions,
    ignore: IgnorePatterns | None = None,
    recursive: bool = False,
    cancel: CancelToken | None = None,
) -> SyncReport:
    """Upload a file, a glob pattern, or a directory tree.

    Args:
        store: Destination object store.
        source: Local file, directory, or glob pattern.
        key: Destination key, or prefix for directories and multi-file globs.
        options: Transfer options.
        ignore: Patterns excluded from directory and glob uploads.
        recursive: Required to upload directories.
        cancel: Caller's cancellation token.

    Returns:
        SyncReport of uploaded, skipped and failed files.

    Raises:
        ConfigurationError: If a directory is given without ``recursive``.
        SyncError: If nothing matches ``source``.
    """
    copier = _Copier(store, options, cancel)
    matches = sorted(glob.glob(source)) if glob.has_magic(source) else []

    if not matches:
        path = Path(source)
        if not path.exists():
            raise SyncError(f"Source not found: {source}")
        if path.is_dir():
            if not recursive:
                raise ConfigurationError("Source is a directory, use -r flag for recursive copy")
            _upload_directory(copier, path, key, ignore)
        else:
            copier.upload_one(path, _file_key(key, path))
        return copier.report

    if len(matches) == 1 and Path(matches[0]).is_dir() and not recursive:
        raise ConfigurationError("Source is a directory, use -r flag for recursive copy")

    files: list[tuple[str, str]] = []
    for match in matches:
        path = Path(match)
        if ignore is not None and ignore.should_ignore(path.name, is_dir=path.is_dir()):
            logger.info(f"Ignoring: {match}")
            continue

        if len(matches) == 1:
            target = key if path.is_dir() else _file_key(key, path)
        else:
            target = _join_key(key, path.name)

        if path.is_dir():
            if recursive:
                _upload_directory(copier, path, target, ignore)
            else:
                logger.info(f"Skipping directory: {match} (use -r flag for recursive copy)")
        else:
            files.append((match, target))

    if files:
        _upload_files(copier, files)
    return copier.report


def _upload_files(copier: _Copier, files: list[tuple[str, str]]) -> None:
    def produce(submit: Callable[[tuple[str, str]], None]) -> None:
        for item in files:
            submit(item)

    copier.run_stream(produce, lambda path, key: copier.upload_one(Path(path), key))


def _upload_directory(
    copier: _Copier,
    root: Path,
    prefix: str,
    ignore: IgnorePatterns | None,
) -> None:
    def produce(submit: Callable[[tuple[str, str]], None]) -> None:
        for rel_path, file_path, _ in iter_local(root, ignore, copier.cancel):
            submit((str(file_path), _join_key(prefix, rel_path)))

    copier.run_stream(produce, lambda path, key: copier.upload_one(Path(path), key))


def download_path(
    store: ObjectStore,
    key: str,
    destination: str,
    options: TransferOptions,
    ignore: IgnorePatterns | None = None,
    cancel: CancelToken | None = None,
) -> SyncReport:
    """Download one object, or every object under a prefix.

    If ``key`` names an existing object it is downloaded to ``destination``
    (or into it, when ``destination`` is a directory or ends with a
    separator). Otherwise ``key`` is treated as a prefix and the tree below
    it is recreated under ``destination``.

    Raises:
        SyncError: If no object exists at or under ``key``.
    """
    copier = _Copier(store, options, cancel)
    key = key.lstrip("/")

    if key and not key.endswith("/") and store.head(key).exists:
        target: Path | None = Path(destination)
        if (
            destination.endswith(("/", os.sep))
            or destination in (".", "./")
            or target.is_dir()
        ):
            target = local_path_for(target, posixpath.basename(key))
        if target is None:
            copier.reject(key, destination)
        else:
            copier.download_one(key, target)
        return copier.report

    root = Path(destination)
    listed = 0

    def produce(submit: Callable[[tuple[str, str]], None]) -> None:
        nonlocal listed
        for page in store.list(key):
            for info in page:
                if info.key.endswith("/"):
                    continue
                listed += 1
                rel_path = info.key[len(key) :].lstrip("/") or posixpath.basename(info.key)
                if ignore is not None and ignore.should_ignore(rel_path):
                    logger.info(f"Ignoring: {info.key}")
                    continue
                target = local_path_for(root, rel_path)
                if target is None:
                    copier.reject(info.key, destination)
                    continue
                submit((info.key, str(target)))

    copier.run_stream(produce, lambda obj_key, path: copier.download_one(obj_key, Path(path)))

    if listed == 0:
        raise SyncError(f"No objects found with prefix: {key}")
    return copier.report
