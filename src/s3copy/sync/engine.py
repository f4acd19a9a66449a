"""One-way mirroring between a local directory and a remote prefix.

This module provides:
- compute_diff: Pure reconciliation of a source Tree against a destination Tree
- SyncEngine: Enumerates both sides, plans, and executes transfers and deletes

The source is authoritative: after a successful run the destination holds
exactly the source's files. Each task's failure is recorded in the report
and does not stop the others.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from s3copy.core.types import CompareMode, FileRecord, Tree
from s3copy.sync.comparator import FileComparator
from s3copy.sync.scanner import local_path_for, normalize_prefix, scan_local, scan_remote
from s3copy.sync.transfers import FileDownloader, FileUploader, delete_local, delete_remote
from s3copy.sync.types import (
    DiffPlan,
    SyncError,
    SyncReport,
    TransferAction,
    TransferTask,
)
from s3copy.sync.workers import CancelToken, OperationCancelled, WorkerPool

if TYPE_CHECKING:
    from s3copy.core.config import TransferOptions
    from s3copy.storage import ObjectStore
    from s3copy.sync.ignore import IgnorePatterns

logger = logging.getLogger(__name__)

CompareFunc = Callable[[FileRecord, FileRecord], bool]


def compute_diff(source: Tree, destination: Tree, compare: CompareFunc) -> DiffPlan:
    """Plan the work needed to make ``destination`` match ``source``.

    Args:
        source: Authoritative tree.
        destination: Tree to bring in line with the source.
        compare: Returns True when two records of the same path hold the same content.

    Returns:
        DiffPlan with sorted transfer and delete lists.
    """
    plan = DiffPlan()
    for path in sorted(source):
        dest_record = destination.get(path)
        if dest_record is None:
            plan.to_transfer.append(path)
        elif compare(source[path], dest_record):
            plan.unchanged += 1
        else:
            plan.to_transfer.append(path)

    plan.to_delete = sorted(path for path in destination if path not in source)
    return plan


class SyncEngine:
    """Mirrors a local directory to a remote prefix, or the reverse.

    Usage:
        engine = SyncEngine(store, TransferOptions(max_workers=8))
        report = engine.sync_up(Path("./photos"), "backup/photos")
        report = engine.sync_down("backup/photos", Path("./restore"))
    """

    def __init__(
        self,
        store: ObjectStore,
        options: TransferOptions,
        ignore: IgnorePatterns | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Remote side of the sync.
            options: Transfer options (workers, dry-run, compare mode, ...).
            ignore: Patterns excluded on both sides.
            cancel: Caller's cancellation token.
        """
        self._store = store
        self._options = options
        self._ignore = ignore
        self._cancel = cancel or CancelToken()
        self._comparator = FileComparator(store, options.compare_mode)
        self._uploader = FileUploader(store, options, self._cancel)
        self._downloader = FileDownloader(store, options, self._cancel)

    def sync_up(self, local_root: Path | str, prefix: str = "") -> SyncReport:
        """Make ``prefix`` hold exactly the files under ``local_root``.

        Raises:
            SyncError: If ``local_root`` is not a directory.
            StorageError: If the remote listing fails.
            OperationCancelled: If the run is cancelled.
        """
        local_root = Path(local_root)
        if not local_root.is_dir():
            raise SyncError(f"Source is not a directory: {local_root}")
        prefix = normalize_prefix(prefix)

        source = scan_local(local_root, self._ignore, self._checksums, self._cancel)
        destination = scan_remote(self._store, prefix, self._ignore, self._cancel)
        plan = compute_diff(source, destination, self._comparator)
        self._log_plan(plan, source, destination)

        tasks = [
            TransferTask(
                action=TransferAction.UPLOAD,
                relative_path=path,
                source=source[path].locator,
                destination=prefix + path,
            )
            for path in plan.to_transfer
        ]
        tasks += [
            TransferTask(
                action=TransferAction.DELETE_REMOTE,
                relative_path=path,
                source="",
                destination=destination[path].locator,
            )
            for path in plan.to_delete
        ]
        return self._execute(tasks, plan)

    def sync_down(self, prefix: str, local_root: Path | str) -> SyncReport:
        """Make ``local_root`` hold exactly the objects under ``prefix``.

        Raises:
            SyncError: If ``local_root`` cannot be created.
            StorageError: If the remote listing fails.
            OperationCancelled: If the run is cancelled.
        """
        local_root = Path(local_root)
        prefix = normalize_prefix(prefix)

        source = scan_remote(self._store, prefix, self._ignore, self._cancel)
        if not self._options.dry_run:
            try:
                local_root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise SyncError(f"Failed to create destination directory {local_root}: {e}") from e
        destination = scan_local(local_root, self._ignore, self._checksums, self._cancel)
        plan = compute_diff(source, destination, self._comparator)
        self._log_plan(plan, source, destination)

        set_mtime = self._options.compare_mode == CompareMode.SIZE_TIME
        tasks = []
        rejected = []
        for path in plan.to_transfer:
            target = local_path_for(local_root, path)
            if target is None:
                message = f"Failed to download {path}: resolves outside {local_root}"
                logger.warning(message)
                rejected.append(message)
                continue
            tasks.append(
                TransferTask(
                    action=TransferAction.DOWNLOAD,
                    relative_path=path,
                    source=source[path].locator,
                    destination=str(target),
                    mod_time=source[path].mod_time if set_mtime and source[path].mod_time else None,
                )
            )
        tasks += [
            TransferTask(
                action=TransferAction.DELETE_LOCAL,
                relative_path=path,
                source="",
                destination=destination[path].locator,
            )
            for path in plan.to_delete
        ]
        return self._execute(tasks, plan, rejected)

    @property
    def _checksums(self) -> bool:
        return self._options.compare_mode == CompareMode.CHECKSUM

    def _log_plan(self, plan: DiffPlan, source: Tree, destination: Tree) -> None:
        logger.info(
            f"Source: {len(source)} files, destination: {len(destination)} files, "
            f"{len(plan.to_transfer)} to transfer, {len(plan.to_delete)} to delete, "
            f"{plan.unchanged} unchanged"
        )

    def _execute(
        self, tasks: list[TransferTask], plan: DiffPlan, errors: list[str] | None = None
    ) -> SyncReport:
        report = SyncReport(unchanged=plan.unchanged, errors=list(errors or []))
        pool = WorkerPool(self._options.max_workers, self._cancel)
        pool.run(tasks, lambda task, cancel: self._run_task(task, report, cancel))
        return report

    def _run_task(self, task: TransferTask, report: SyncReport, cancel: CancelToken) -> None:
        """Execute one task, recording the outcome instead of raising."""
        action = task.action
        path = task.relative_path

        if self._options.dry_run:
            if action == TransferAction.UPLOAD:
                logger.info(f"Would upload: {path}")
                report.record_upload(path)
            elif action == TransferAction.DOWNLOAD:
                logger.info(f"Would download: {path}")
                report.record_download(path)
            else:
                logger.info(f"Would delete: {path}")
                report.record_delete(path)
            return

        cancel.raise_if_cancelled()
        try:
            if action == TransferAction.UPLOAD:
                self._uploader.upload_file(task.source, task.destination, check_existing=False)
                logger.info(f"Uploaded: {path}")
                report.record_upload(path)
            elif action == TransferAction.DOWNLOAD:
                self._downloader.download_file(task.source, task.destination, mod_time=task.mod_time)
                logger.info(f"Downloaded: {path}")
                report.record_download(path)
            elif action == TransferAction.DELETE_REMOTE:
                delete_remote(self._store, task.destination, self._options, cancel)
                logger.info(f"Deleted remote file: {path}")
                report.record_delete(path)
            else:
                delete_local(task.destination)
                logger.info(f"Deleted local file: {path}")
                report.record_delete(path)
        except OperationCancelled:
            raise
        except Exception as e:
            message = f"Failed to {action.value.replace('_', ' ')} {path}: {e}"
            logger.error(message)
            report.record_error(message)
