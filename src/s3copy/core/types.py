"""Shared types for s3copy.

FileRecord and Tree describe one side of a transfer; both local directories
and remote prefixes are reduced to the same shape before they are compared.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum


class CompareMode(str, Enum):
    """Change-detection strategy for paths present on both sides."""

    CHECKSUM = "checksum"
    SIZE_TIME = "size-time"


@dataclass(frozen=True)
class FileRecord:
    """One file on either side of a transfer.

    Attributes:
        relative_path: Slash-separated path relative to the tree root.
        size: Size in bytes.
        locator: Absolute local path, or full object key for remote records.
        is_remote: True for object-store records.
        content_hash: Local MD5 hex digest, or remote ETag without quotes.
        mod_time: Modification time in unix seconds.
    """

    relative_path: str
    size: int
    locator: str
    is_remote: bool = False
    content_hash: str | None = None
    mod_time: int | None = None


class Tree(Mapping[str, FileRecord]):
    """Immutable mapping of relative path to FileRecord."""

    def __init__(self, records: Iterable[FileRecord] = ()) -> None:
        entries: dict[str, FileRecord] = {}
        for record in records:
            if not record.relative_path:
                raise ValueError(f"empty relative path for {record.locator!r}")
            if record.relative_path in entries:
                raise ValueError(f"duplicate relative path: {record.relative_path}")
            entries[record.relative_path] = record
        self._entries = entries

    def __getitem__(self, path: str) -> FileRecord:
        return self._entries[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Tree({len(self._entries)} files)"

    @property
    def total_size(self) -> int:
        return sum(record.size for record in self._entries.values())
