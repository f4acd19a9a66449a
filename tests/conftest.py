"""Shared fixtures for s3copy tests."""

from __future__ import annotations

import hashlib
import threading
import time
from collections.abc import Iterator
from typing import BinaryIO

import pytest

from s3copy.core.config import TransferOptions
from s3copy.storage import ObjectHead, ObjectInfo, ObjectNotFoundError, ObjectStore


class MemoryObjectStore(ObjectStore):
    """In-memory ObjectStore with failure injection and call recording."""

    def __init__(self, page_size: int = 1000) -> None:
        self.objects: dict[str, tuple[bytes, dict[str, str], int]] = {}
        self.page_size = page_size
        self.calls: list[tuple[str, str]] = []
        self.etags: dict[str, str] = {}
        self._failures: dict[tuple[str, str], list[Exception]] = {}
        self._cutoffs: dict[str, tuple[int, Exception]] = {}
        self._lock = threading.Lock()

    @property
    def location(self) -> str:
        return "memory://test"

    def put(
        self,
        key: str,
        data: bytes,
        metadata: dict[str, str] | None = None,
        mtime: int | None = None,
        etag: str | None = None,
    ) -> None:
        """Store an object directly, bypassing recording.

        ``etag`` overrides the MD5 ETag, e.g. to mimic a multipart upload.
        """
        self.objects[key] = (data, dict(metadata or {}), mtime if mtime is not None else int(time.time()))
        if etag is not None:
            self.etags[key] = etag

    def etag(self, key: str) -> str:
        return self.etags.get(key) or hashlib.md5(self.objects[key][0]).hexdigest()

    def data(self, key: str) -> bytes:
        return self.objects[key][0]

    def metadata(self, key: str) -> dict[str, str]:
        return self.objects[key][1]

    def fail(self, operation: str, key: str, *errors: Exception) -> None:
        """Raise ``errors`` (one per call) on the next calls of ``operation`` for ``key``."""
        self._failures.setdefault((operation, key), []).extend(errors)

    def fail_midway(self, key: str, after: int, error: Exception) -> None:
        """Make the next download of ``key`` write ``after`` bytes and then raise ``error``."""
        self._cutoffs[key] = (after, error)

    def count(self, operation: str, key: str | None = None) -> int:
        return sum(1 for op, k in self.calls if op == operation and (key is None or k == key))

    def _record(self, operation: str, key: str) -> None:
        with self._lock:
            self.calls.append((operation, key))
            pending = self._failures.get((operation, key))
            error = pending.pop(0) if pending else None
        if error is not None:
            raise error

    def list(self, prefix: str = "") -> Iterator[list[ObjectInfo]]:
        self._record("list", prefix)
        keys = sorted(k for k in self.objects if k.startswith(prefix))
        for start in range(0, max(len(keys), 1), self.page_size):
            yield [
                ObjectInfo(
                    key=k,
                    size=len(self.objects[k][0]),
                    last_modified=self.objects[k][2],
                    etag=self.etag(k),
                )
                for k in keys[start : start + self.page_size]
            ]

    def head(self, key: str) -> ObjectHead:
        self._record("head", key)
        if key not in self.objects:
            return ObjectHead(exists=False)
        data, metadata, _ = self.objects[key]
        return ObjectHead(
            exists=True,
            etag=self.etag(key),
            size=len(data),
            metadata=dict(metadata),
        )

    def download(self, key: str, writer: BinaryIO) -> int:
        self._record("download", key)
        if key not in self.objects:
            raise ObjectNotFoundError(f"download {key!r} failed: NoSuchKey")
        data = self.objects[key][0]
        cutoff = self._cutoffs.pop(key, None)
        if cutoff is not None:
            writer.write(data[: cutoff[0]])
            raise cutoff[1]
        for start in range(0, len(data), 65536):
            writer.write(data[start : start + 65536])
        return len(data)

    def upload(self, key: str, reader: BinaryIO, metadata: dict[str, str] | None = None) -> None:
        self._record("upload", key)
        parts = []
        while True:
            block = reader.read(65536)
            if not block:
                break
            parts.append(block)
        self.objects[key] = (b"".join(parts), dict(metadata or {}), int(time.time()))
        self.etags.pop(key, None)

    def delete(self, key: str) -> None:
        self._record("delete", key)
        self.objects.pop(key, None)
        self.etags.pop(key, None)


@pytest.fixture
def store() -> MemoryObjectStore:
    """Create an empty in-memory object store."""
    return MemoryObjectStore()


@pytest.fixture
def options() -> TransferOptions:
    """Plain transfer options without retries, so failures surface immediately."""
    return TransferOptions(max_workers=4, retries=0)


@pytest.fixture
def mock_s3(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Start a moto S3 backend with an empty ``test-bucket``."""
    pytest.importorskip("moto")
    import boto3
    from moto import mock_aws

    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket="test-bucket")
        yield
