"""Change detection for paths present on both sides of a sync.

This module provides:
- Comparison: Verdict plus the reason that drove it
- FileComparator: Checksum or size/mtime comparison of a local file and an object
- match_checksum: ETag / ``local-md5`` check shared with the uploader

Checksum mode trusts the ETag first. That is only a content digest for
single-part uploads; multipart objects written by other tools fall back to
the ``local-md5`` metadata and are transferred again when it is missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from s3copy.core.types import CompareMode, FileRecord
from s3copy.storage import METADATA_MD5, METADATA_MTIME, StorageError

if TYPE_CHECKING:
    from s3copy.storage import ObjectHead, ObjectStore

logger = logging.getLogger(__name__)

# Allowed clock skew between a local mtime and an object's LastModified
MTIME_TOLERANCE = 1


@dataclass(frozen=True)
class Comparison:
    """Result of comparing two records of the same path."""

    same: bool
    reason: str

    def __bool__(self) -> bool:
        return self.same


def match_checksum(local_md5: str, etag: str | None, metadata: dict[str, str] | None) -> Comparison:
    """Compare a local MD5 against an object's ETag, then its ``local-md5`` metadata."""
    if etag and local_md5 == etag:
        return Comparison(True, "etag matches")
    stored = (metadata or {}).get(METADATA_MD5)
    if stored is None:
        return Comparison(False, "no checksum metadata, will transfer")
    if stored == local_md5:
        return Comparison(True, "checksum metadata matches")
    return Comparison(False, "checksum differs")


class FileComparator:
    """Decide whether a local file and an object hold the same content.

    The object is only fetched with a HEAD request when the listing data is
    not enough to decide.
    """

    def __init__(self, store: ObjectStore, mode: CompareMode = CompareMode.CHECKSUM) -> None:
        self._store = store
        self._mode = CompareMode(mode)

    @property
    def mode(self) -> CompareMode:
        return self._mode

    def __call__(self, source: FileRecord, destination: FileRecord) -> bool:
        return self.compare(source, destination).same

    def compare(self, first: FileRecord, second: FileRecord) -> Comparison:
        """Compare two records of the same relative path, in either order."""
        if first.is_remote == second.is_remote:
            raise ValueError("comparison needs one local and one remote record")
        local, remote = (second, first) if first.is_remote else (first, second)

        if self._mode == CompareMode.SIZE_TIME:
            result = self._compare_size_time(local, remote)
        else:
            result = self._compare_checksum(local, remote)

        if result.reason == "no checksum metadata, will transfer":
            logger.info(f"{local.relative_path}: {result.reason}")
        else:
            logger.debug(f"{local.relative_path}: {'same' if result.same else 'different'} ({result.reason})")
        return result

    def _head(self, remote: FileRecord) -> ObjectHead | None:
        try:
            head = self._store.head(remote.locator)
        except StorageError as e:
            logger.warning(f"Cannot read metadata of {remote.locator}: {e}")
            return None
        return head if head.exists else None

    def _compare_checksum(self, local: FileRecord, remote: FileRecord) -> Comparison:
        if local.size != remote.size:
            return Comparison(False, "size differs")
        if not local.content_hash:
            return Comparison(False, "no local checksum")
        if remote.content_hash and local.content_hash == remote.content_hash:
            return Comparison(True, "etag matches")

        head = self._head(remote)
        if head is None:
            return Comparison(False, "metadata unavailable")
        return match_checksum(local.content_hash, None, head.metadata)

    def _compare_size_time(self, local: FileRecord, remote: FileRecord) -> Comparison:
        if local.size != remote.size:
            return Comparison(False, "size differs")

        local_mtime = local.mod_time or 0
        remote_mtime = remote.mod_time or 0
        if local_mtime > 0 and remote_mtime > 0 and abs(local_mtime - remote_mtime) <= MTIME_TOLERANCE:
            return Comparison(True, "mtime within tolerance")

        head = self._head(remote)
        if head is None:
            return Comparison(False, "metadata unavailable")
        stored = head.metadata.get(METADATA_MTIME)
        if stored is None:
            return Comparison(False, "no mtime metadata")
        try:
            stored_mtime = int(stored)
        except ValueError:
            return Comparison(False, f"invalid mtime metadata {stored!r}")
        if stored_mtime == local_mtime:
            return Comparison(True, "mtime metadata matches")
        return Comparison(False, "mtime differs")
