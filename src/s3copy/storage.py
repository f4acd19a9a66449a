"""Object storage abstraction.

This module provides:
- Abstract interface used by the sync and copy engines
- S3ObjectStore for any S3-compatible endpoint (AWS, MinIO, OVH, ...)
- Translation of botocore failures into StorageError subclasses
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, BinaryIO
from urllib.parse import unquote_plus

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
    ResponseStreamingError,
)

if TYPE_CHECKING:
    from typing import Any

    from s3copy.core.config import S3Config

logger = logging.getLogger(__name__)

# Metadata written at upload time (x-amz-meta-*)
METADATA_MD5 = "local-md5"
METADATA_MTIME = "local-mtime"

TRANSIENT_ERROR_CODES = frozenset(
    {
        "RequestTimeout",
        "RequestTimeoutException",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "RequestThrottled",
        "ServiceUnavailable",
        "InternalError",
    }
)
NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

_NETWORK_ERRORS = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
    ResponseStreamingError,
)


class StorageError(Exception):
    """Base error for object store operations."""


class ObjectNotFoundError(StorageError):
    """Raised when an object doesn't exist."""


class TransientStorageError(StorageError):
    """Raised for failures worth retrying (network, throttling, 5xx)."""


@dataclass(frozen=True)
class ObjectInfo:
    """One entry of a listing page."""

    key: str
    size: int
    last_modified: int
    etag: str


@dataclass(frozen=True)
class ObjectHead:
    """Result of a metadata lookup. ``exists`` is False for missing objects."""

    exists: bool
    etag: str = ""
    size: int = 0
    metadata: dict[str, str] = field(default_factory=dict)


def strip_etag(etag: str | None) -> str:
    """Remove the quotes S3 wraps around ETags."""
    return (etag or "").strip('"')


def translate_error(error: Exception, action: str) -> StorageError:
    """Map a botocore exception onto the StorageError hierarchy."""
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        status = int(error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)
        message = f"{action} failed: {code or status} {error}"
        if code in NOT_FOUND_CODES or status == 404:
            return ObjectNotFoundError(message)
        if code in TRANSIENT_ERROR_CODES or status >= 500 or status == 429:
            return TransientStorageError(message)
        return StorageError(message)
    if isinstance(error, _NETWORK_ERRORS):
        return TransientStorageError(f"{action} failed: {error}")
    return StorageError(f"{action} failed: {error}")


class ObjectStore(ABC):
    """Abstract interface for a flat key/value object store."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of the store."""

    @abstractmethod
    def list(self, prefix: str = "") -> Iterator[list[ObjectInfo]]:
        """Yield pages of objects whose keys start with ``prefix``.

        Keys are returned decoded.
        """

    @abstractmethod
    def head(self, key: str) -> ObjectHead:
        """Look up an object's ETag, size and user metadata.

        Returns:
            ObjectHead with exists=False if the object is missing.
        """

    @abstractmethod
    def download(self, key: str, writer: BinaryIO) -> int:
        """Stream an object's body into ``writer``.

        Returns:
            Number of bytes written.

        Raises:
            ObjectNotFoundError: If the object doesn't exist.
        """

    @abstractmethod
    def upload(self, key: str, reader: BinaryIO, metadata: dict[str, str] | None = None) -> None:
        """Store everything readable from ``reader`` under ``key``.

        The object only becomes visible once the whole stream was accepted.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""


class S3ObjectStore(ObjectStore):
    """S3-compatible object store backed by boto3."""

    def __init__(self, config: S3Config, client: Any = None) -> None:
        """Initialize the store.

        Args:
            config: Connection settings.
            client: Pre-built boto3 S3 client. Created lazily when omitted.
        """
        self._config = config
        self._client = client
        self._lock = threading.Lock()

    @property
    def bucket(self) -> str:
        return self._config.bucket

    @property
    def location(self) -> str:
        return self._config.location

    @property
    def client(self) -> Any:
        """The boto3 client, built on first use."""
        with self._lock:
            if self._client is None:
                session = boto3.session.Session()
                self._client = session.client(
                    "s3",
                    endpoint_url=self._config.endpoint_url,
                    aws_access_key_id=self._config.access_key,
                    aws_secret_access_key=self._config.secret_key,
                    region_name=self._config.region,
                    config=self._config.client_config(),
                )
                logger.debug(f"Created S3 client for {self.location}")
            return self._client

    def list(self, prefix: str = "") -> Iterator[list[ObjectInfo]]:
        paginator = self.client.get_paginator("list_objects_v2")
        pages = paginator.paginate(Bucket=self.bucket, Prefix=prefix, EncodingType="url")
        try:
            for page in pages:
                yield [
                    ObjectInfo(
                        key=unquote_plus(item["Key"]),
                        size=int(item.get("Size", 0)),
                        last_modified=int(item["LastModified"].timestamp()),
                        etag=strip_etag(item.get("ETag")),
                    )
                    for item in page.get("Contents", [])
                ]
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, f"list {prefix!r}") from e

    def head(self, key: str) -> ObjectHead:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            error = translate_error(e, f"head {key!r}")
            if isinstance(error, ObjectNotFoundError):
                return ObjectHead(exists=False)
            raise error from e
        return ObjectHead(
            exists=True,
            etag=strip_etag(response.get("ETag")),
            size=int(response.get("ContentLength", 0)),
            metadata=dict(response.get("Metadata") or {}),
        )

    def download(self, key: str, writer: BinaryIO) -> int:
        written = 0
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            body = response["Body"]
            try:
                for block in body.iter_chunks(chunk_size=1024 * 1024):
                    writer.write(block)
                    written += len(block)
            finally:
                body.close()
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, f"download {key!r}") from e
        return written

    def upload(self, key: str, reader: BinaryIO, metadata: dict[str, str] | None = None) -> None:
        extra_args = {"Metadata": dict(metadata)} if metadata else None
        try:
            self.client.upload_fileobj(reader, self.bucket, key, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, f"upload {key!r}") from e
        except S3UploadFailedError as e:
            cause = e.__cause__ if isinstance(e.__cause__, (ClientError, BotoCoreError)) else e
            raise translate_error(cause, f"upload {key!r}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, f"delete {key!r}") from e
