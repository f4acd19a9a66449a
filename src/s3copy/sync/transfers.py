"""Single-object transfers with optional encryption.

This module provides:
- FileUploader: Local file -> object, with skip-if-identical and streaming encryption
- FileDownloader: Object -> local file, with atomic replace and streaming decryption
- delete_remote / delete_local: Deletions used by sync

Encryption runs on a helper thread that feeds a BytePipe consumed by the
object store (and the reverse for downloads), so memory stays bounded for
objects of any size. Transient storage failures are retried; integrity
failures never are.
"""

from __future__ import annotations

import contextlib
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from s3copy.core.crypto import compute_file_md5, decrypt_stream, encrypt_stream
from s3copy.core.pipe import BytePipe, PipeClosedError
from s3copy.storage import METADATA_MD5, METADATA_MTIME, ObjectNotFoundError, StorageError
from s3copy.sync.comparator import match_checksum
from s3copy.sync.retry import retry_with_backoff
from s3copy.sync.types import (
    DeleteError,
    DownloadError,
    DownloadResult,
    UploadError,
    UploadResult,
)
from s3copy.sync.workers.base import OperationCancelled

if TYPE_CHECKING:
    from collections.abc import Callable

    from s3copy.core.config import TransferOptions
    from s3copy.storage import ObjectStore
    from s3copy.sync.workers.base import CancelToken

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".s3copy-partial"


def _run_piped(
    produce: Callable[[BytePipe], None],
    consume: Callable[[BytePipe], None],
    name: str,
) -> None:
    """Run ``produce`` on a helper thread and ``consume`` on this one.

    The helper is always joined before returning. An error on either side
    aborts the pipe so the other side unblocks. The PipeClosedError the
    other side then sees is only a consequence, so the root cause is raised.
    """
    pipe = BytePipe()
    producer_errors: list[Exception] = []

    def run_producer() -> None:
        try:
            produce(pipe)
        except Exception as e:
            producer_errors.append(e)
            pipe.abort(e)
        else:
            pipe.close()

    thread = threading.Thread(target=run_producer, name=name, daemon=True)
    thread.start()

    consumer_error: Exception | None = None
    try:
        consume(pipe)
    except Exception as e:
        consumer_error = e
        pipe.abort(e)
    finally:
        thread.join()

    errors = [*producer_errors, *([consumer_error] if consumer_error else [])]
    if errors:
        root = [e for e in errors if not isinstance(e, PipeClosedError)]
        raise (root or errors)[0]


class FileUploader:
    """Uploads local files to the object store."""

    def __init__(
        self,
        store: ObjectStore,
        options: TransferOptions,
        cancel: CancelToken | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            store: Destination object store.
            options: Transfer options (encryption password, retries, force).
            cancel: Token checked between retry attempts.
        """
        self._store = store
        self._options = options
        self._cancel = cancel

    def upload_file(self, local_path: Path | str, key: str, check_existing: bool = True) -> UploadResult:
        """Upload a file.

        Args:
            local_path: File to upload.
            key: Destination object key.
            check_existing: Skip the upload when the object already holds the
                same content (ignored with force or encryption).

        Returns:
            UploadResult, with skipped=True when nothing was sent.

        Raises:
            UploadError: If the upload fails after retries or the file cannot be read.
        """
        local_path = Path(local_path)
        encrypt = self._options.encrypt

        local_md5: str | None = None
        if not encrypt:
            try:
                local_md5 = compute_file_md5(local_path)
            except OSError as e:
                logger.debug(f"Could not calculate MD5 for {local_path}: {e}")

        metadata: dict[str, str] = {}
        size = 0
        try:
            st = local_path.stat()
            size = st.st_size
            metadata[METADATA_MTIME] = str(int(st.st_mtime))
        except OSError as e:
            logger.debug(f"Could not stat {local_path} for mtime metadata: {e}")
        if local_md5:
            metadata[METADATA_MD5] = local_md5

        if check_existing and not self._options.force and not encrypt and local_md5:
            if self._matches_remote(key, local_md5):
                logger.info(f"Skipping {local_path} (already exists with same checksum)")
                return UploadResult(path=str(local_path), key=key, size=size, skipped=True)

        def attempt() -> None:
            if encrypt:
                self._upload_encrypted(local_path, key, metadata)
            else:
                with open(local_path, "rb") as f:
                    self._store.upload(key, f, metadata)

        try:
            retry_with_backoff(
                attempt,
                max_retries=self._options.retries,
                cancel=self._cancel,
                description=f"upload {key}",
            )
        except OperationCancelled:
            raise
        except Exception as e:
            raise UploadError(f"Failed to upload {local_path}: {e}") from e

        logger.debug(f"Uploaded {local_path} -> {key} ({size} bytes)")
        return UploadResult(path=str(local_path), key=key, size=size, encrypted=encrypt)

    def _matches_remote(self, key: str, local_md5: str) -> bool:
        try:
            head = retry_with_backoff(
                lambda: self._store.head(key),
                max_retries=self._options.retries,
                cancel=self._cancel,
                description=f"head {key}",
            )
        except StorageError as e:
            logger.warning(f"Could not check {key}: {e}")
            return False
        if not head.exists:
            return False
        result = match_checksum(local_md5, head.etag, head.metadata)
        logger.debug(f"{key}: {result.reason}")
        return result.same

    def _upload_encrypted(self, local_path: Path, key: str, metadata: dict[str, str]) -> None:
        # Encrypted objects never carry a plaintext checksum
        encrypted_metadata = {k: v for k, v in metadata.items() if k == METADATA_MTIME}
        password = self._options.password or ""

        def produce(pipe: BytePipe) -> None:
            with open(local_path, "rb") as f:
                encrypt_stream(password, f, pipe)

        _run_piped(
            produce,
            lambda pipe: self._store.upload(key, pipe, encrypted_metadata),
            name=f"encrypt-{local_path.name}",
        )


class FileDownloader:
    """Downloads objects to local files with atomic replace."""

    def __init__(
        self,
        store: ObjectStore,
        options: TransferOptions,
        cancel: CancelToken | None = None,
    ) -> None:
        """Initialize the downloader.

        Args:
            store: Source object store.
            options: Transfer options (decryption password, retries).
            cancel: Token checked between retry attempts.
        """
        self._store = store
        self._options = options
        self._cancel = cancel

    def download_file(
        self,
        key: str,
        local_path: Path | str,
        skip_existing: bool = False,
        mod_time: int | None = None,
    ) -> DownloadResult:
        """Download an object with atomic write.

        The body is written to a hidden partial file next to the target,
        then renamed over it. On failure the partial file is removed and an
        existing target is left untouched.

        Args:
            key: Object key.
            local_path: Destination file path.
            skip_existing: Skip when the local file already has the same checksum.
            mod_time: Unix time applied to the file after download.

        Returns:
            DownloadResult with the number of bytes written.

        Raises:
            DownloadError: If the download fails or the object cannot be decrypted.
        """
        local_path = Path(local_path)

        if skip_existing and not self._options.encrypt and local_path.is_file():
            if self._matches_local(key, local_path):
                logger.info(f"Skipping {local_path} (local file already exists with same checksum)")
                return DownloadResult(
                    key=key, local_path=str(local_path), size=local_path.stat().st_size, skipped=True
                )

        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadError(f"Failed to create directory {local_path.parent}: {e}") from e

        tmp_path = local_path.with_name(f".{local_path.name}.{uuid.uuid4().hex[:8]}{PARTIAL_SUFFIX}")

        def attempt() -> int:
            with open(tmp_path, "wb") as f:
                if self._options.encrypt:
                    return self._download_encrypted(key, f)
                return self._store.download(key, f)

        try:
            size = retry_with_backoff(
                attempt,
                max_retries=self._options.retries,
                cancel=self._cancel,
                description=f"download {key}",
            )
            if mod_time is not None:
                os.utime(tmp_path, (mod_time, mod_time))
            os.replace(tmp_path, local_path)
        except OperationCancelled:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise
        except ObjectNotFoundError as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise DownloadError(f"Object not found: {key}") from e
        except Exception as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise DownloadError(f"Failed to download {key}: {e}") from e

        logger.debug(f"Downloaded {key} -> {local_path} ({size} bytes)")
        return DownloadResult(key=key, local_path=str(local_path), size=size)

    def _matches_local(self, key: str, local_path: Path) -> bool:
        try:
            local_md5 = compute_file_md5(local_path)
            head = self._store.head(key)
        except (OSError, StorageError) as e:
            logger.warning(f"Could not compare {local_path} with {key}: {e}")
            return False
        if not head.exists:
            return False
        return match_checksum(local_md5, head.etag, head.metadata).same

    def _download_encrypted(self, key: str, writer: BinaryIO) -> int:
        password = self._options.password or ""
        written: list[int] = []

        def consume(pipe: BytePipe) -> None:
            written.append(decrypt_stream(password, pipe, writer))

        # Download on the helper thread, decrypt on this one
        _run_piped(
            lambda pipe: self._store.download(key, pipe),
            consume,
            name=f"download-{key}",
        )
        return written[0]


def delete_remote(
    store: ObjectStore,
    key: str,
    options: TransferOptions,
    cancel: CancelToken | None = None,
) -> None:
    """Delete an object, retrying transient failures."""
    try:
        retry_with_backoff(
            lambda: store.delete(key),
            max_retries=options.retries,
            cancel=cancel,
            description=f"delete {key}",
        )
    except OperationCancelled:
        raise
    except Exception as e:
        raise DeleteError(f"Failed to delete {key}: {e}") from e


def delete_local(path: Path | str) -> None:
    """Delete a local file. A file that is already gone is not an error."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        raise DeleteError(f"Failed to delete {path}: {e}") from e
