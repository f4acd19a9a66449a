"""Ignore patterns for file transfers.

This module provides:
- IgnorePatterns: Handles gitignore-style pattern matching on relative paths
- DEFAULT_IGNORE_PATTERNS: Patterns that are always ignored
"""

from __future__ import annotations

import fnmatch
from pathlib import Path

# Partial downloads left behind by an interrupted run
DEFAULT_IGNORE_PATTERNS = [
    "*.s3copy-partial",
]


class IgnorePatterns:
    """Handles ignore pattern matching for slash-separated relative paths.

    Supported syntax (a subset of .gitignore):
    - ``*.log``: a pattern without ``/`` matches any path component
    - ``build/``: a trailing ``/`` matches directories only (and their contents)
    - ``docs/*.md`` or ``/top``: a pattern containing ``/`` is anchored to the root
    - ``**`` matches across directories
    """

    def __init__(self, patterns: list[str] | None = None) -> None:
        """Initialize with patterns.

        Args:
            patterns: List of gitignore-style patterns.
        """
        self._patterns = list(DEFAULT_IGNORE_PATTERNS)
        if patterns:
            for pattern in patterns:
                self.add_pattern(pattern)

    @classmethod
    def from_options(cls, patterns: str | None = None, ignore_file: Path | str | None = None) -> IgnorePatterns:
        """Build from a comma-separated pattern string and an optional file.

        Raises:
            OSError: If ``ignore_file`` cannot be read.
        """
        ignore = cls()
        if patterns:
            for pattern in patterns.split(","):
                ignore.add_pattern(pattern)
        if ignore_file:
            ignore.load_from_file(Path(ignore_file))
        return ignore

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    def add_pattern(self, pattern: str) -> None:
        """Add an ignore pattern. Blank patterns and comments are dropped."""
        pattern = pattern.strip()
        if pattern and not pattern.startswith("#"):
            self._patterns.append(pattern)

    def load_from_file(self, path: Path) -> None:
        """Load patterns from an ignore file, one per line."""
        with open(path, encoding="utf-8") as f:
            for line in f:
                self.add_pattern(line)

    def should_ignore(self, rel_path: str, is_dir: bool = False) -> bool:
        """Check if a relative path should be ignored.

        Args:
            rel_path: Path relative to the transfer root.
            is_dir: True when ``rel_path`` names a directory.

        Returns:
            True if the path should be ignored.
        """
        rel_str = rel_path.replace("\\", "/").strip("/")
        if not rel_str:
            return False
        parts = rel_str.split("/")

        for pattern in self._patterns:
            dir_only = pattern.endswith("/")
            pattern = pattern.rstrip("/")
            if not pattern:
                continue

            if "/" in pattern:
                # Anchored: match the path itself or any of its parent directories
                pattern = pattern.lstrip("/")
                for depth in range(1, len(parts) + 1):
                    candidate = "/".join(parts[:depth])
                    is_parent = depth < len(parts)
                    if dir_only and not (is_parent or is_dir):
                        continue
                    if fnmatch.fnmatchcase(candidate, pattern):
                        return True
            else:
                for index, part in enumerate(parts):
                    is_parent = index < len(parts) - 1
                    if dir_only and not (is_parent or is_dir):
                        continue
                    if fnmatch.fnmatchcase(part, pattern):
                        return True

        return False
