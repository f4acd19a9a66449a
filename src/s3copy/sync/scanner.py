"""Tree enumeration for local directories and remote prefixes.

This module provides:
- scan_local: Walk a local directory into a Tree
- iter_remote / scan_remote: List a remote prefix into FileRecords / a Tree
- normalize_prefix, relative_key, local_path_for: Key and path helpers shared with copy mode

Both sides produce slash-separated relative paths so a Tree built from disk
can be compared key-by-key with one built from a bucket listing.
"""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from s3copy.core.crypto import compute_file_md5
from s3copy.core.types import FileRecord, Tree

if TYPE_CHECKING:
    from s3copy.storage import ObjectStore
    from s3copy.sync.ignore import IgnorePatterns
    from s3copy.sync.workers.base import CancelToken

logger = logging.getLogger(__name__)


def normalize_prefix(prefix: str) -> str:
    """Return ``prefix`` with a trailing slash, or "" for the bucket root."""
    prefix = prefix.lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix


def relative_key(key: str, prefix: str) -> str:
    """Strip ``prefix`` from ``key``."""
    if prefix and key.startswith(prefix):
        return key[len(prefix) :]
    return key


def is_safe_relative_path(rel_path: str) -> bool:
    """Check that a slash-separated path names a file strictly below its root.

    Empty, ``.``, ``..`` and drive-letter segments are rejected, so the path
    can neither climb out of the root nor alias another key's local file.
    """
    if not rel_path:
        return False
    for part in rel_path.split("/"):
        if part in ("", ".", ".."):
            return False
        if len(part) == 2 and part[1] == ":" and part[0].isalpha():
            return False
    return True


def local_path_for(root: Path, rel_path: str) -> Path | None:
    """Map ``rel_path`` to a file under ``root``.

    Returns:
        The local path, or None if the path is unsafe or its directory
        resolves (through a symlink) outside ``root``.
    """
    if not is_safe_relative_path(rel_path):
        return None
    target = root.joinpath(*rel_path.split("/"))
    if not target.parent.resolve().is_relative_to(root.resolve()):
        return None
    return target


def iter_local(
    root: Path,
    ignore: IgnorePatterns | None = None,
    cancel: CancelToken | None = None,
) -> Iterator[tuple[str, Path, os.stat_result]]:
    """Yield (relative_path, absolute_path, stat) for regular files under root.

    Symlinks are never followed and ignored directories are pruned.
    """
    for dirpath, dirs, files in os.walk(root):
        if cancel is not None:
            cancel.raise_if_cancelled()
        current = Path(dirpath)
        rel_dir = current.relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        if ignore is not None:
            dirs[:] = sorted(
                d
                for d in dirs
                if not ignore.should_ignore(f"{rel_dir}/{d}" if rel_dir else d, is_dir=True)
            )
        else:
            dirs.sort()

        for filename in sorted(files):
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if ignore is not None and ignore.should_ignore(rel_path):
                continue

            file_path = current / filename
            try:
                st = file_path.lstat()
            except OSError as e:
                logger.warning(f"Cannot stat {file_path}: {e}")
                continue
            # Regular files only (skips symlinks, sockets, fifos)
            if not stat.S_ISREG(st.st_mode):
                continue

            yield rel_path, file_path, st


def scan_local(
    root: Path | str,
    ignore: IgnorePatterns | None = None,
    compute_hashes: bool = True,
    cancel: CancelToken | None = None,
) -> Tree:
    """Build a Tree from a local directory.

    Args:
        root: Directory to walk. A missing directory yields an empty Tree.
        ignore: Patterns to exclude.
        compute_hashes: Compute the MD5 of every file. Skip it when the
            comparison only needs size and mtime.
        cancel: Token checked between directories.

    Returns:
        Tree keyed by slash-separated relative path.
    """
    root = Path(root)
    if not root.exists():
        logger.debug(f"Local root {root} does not exist, treating as empty")
        return Tree()
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    records = []
    for rel_path, file_path, st in iter_local(root, ignore, cancel):
        content_hash = compute_file_md5(file_path) if compute_hashes else None
        records.append(
            FileRecord(
                relative_path=rel_path,
                size=st.st_size,
                locator=str(file_path),
                is_remote=False,
                content_hash=content_hash,
                mod_time=int(st.st_mtime),
            )
        )

    logger.debug(f"Scanned {len(records)} local files under {root}")
    return Tree(records)


def iter_remote(
    store: ObjectStore,
    prefix: str,
    ignore: IgnorePatterns | None = None,
) -> Iterator[list[FileRecord]]:
    """Yield one list of FileRecords per listing page under ``prefix``.

    Directory markers (keys that reduce to an empty path or end with ``/``)
    are skipped. Keys whose relative path has empty, ``.`` or ``..``
    segments (``p//x``, ``p/../x``) cannot be mapped to a local file of
    their own and are skipped with a warning.
    """
    prefix = normalize_prefix(prefix)
    for page in store.list(prefix):
        records = []
        for info in page:
            rel_path = relative_key(info.key, prefix)
            if not rel_path or info.key.endswith("/"):
                continue
            if not is_safe_relative_path(rel_path):
                logger.warning(f"Skipping {info.key!r}: not a valid relative path")
                continue
            if ignore is not None and ignore.should_ignore(rel_path):
                continue
            records.append(
                FileRecord(
                    relative_path=rel_path,
                    size=info.size,
                    locator=info.key,
                    is_remote=True,
                    content_hash=info.etag or None,
                    mod_time=info.last_modified,
                )
            )
        yield records


def scan_remote(
    store: ObjectStore,
    prefix: str,
    ignore: IgnorePatterns | None = None,
    cancel: CancelToken | None = None,
) -> Tree:
    """Build a Tree from every object under ``prefix``."""
    records: list[FileRecord] = []
    for page in iter_remote(store, prefix, ignore):
        if cancel is not None:
            cancel.raise_if_cancelled()
        records.extend(page)

    logger.debug(f"Scanned {len(records)} remote objects under {prefix!r}")
    return Tree(records)
