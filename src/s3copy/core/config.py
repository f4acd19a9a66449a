"""Configuration classes for s3copy.

S3Config describes how to reach the object store; TransferOptions holds the
per-invocation knobs shared by copy and sync.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from botocore.config import Config

from s3copy.core.types import CompareMode

if TYPE_CHECKING:
    from typing import Any

DEFAULT_REGION = "us-east-1"
DEFAULT_MAX_WORKERS = 5
DEFAULT_RETRIES = 3


@dataclass
class S3Config:
    """Connection settings for an S3-compatible endpoint.

    Attributes:
        bucket: Target bucket name.
        endpoint_url: Custom endpoint URL (MinIO, OVH, ...). None means AWS.
        access_key: Access key ID. None falls back to the boto3 credential chain.
        secret_key: Secret access key.
        region: Region name (default: us-east-1).
        use_path_style: Use path-style addressing instead of virtual hosts.
        max_attempts: botocore retry attempts per request.
    """

    bucket: str
    endpoint_url: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    region: str = DEFAULT_REGION
    use_path_style: bool = False
    max_attempts: int = DEFAULT_RETRIES

    def __post_init__(self) -> None:
        """Normalize endpoint URL and region."""
        if self.endpoint_url:
            self.endpoint_url = self.endpoint_url.rstrip("/")
        else:
            self.endpoint_url = None
        self.region = self.region or DEFAULT_REGION

    def client_config(self) -> Config:
        """Build the botocore client configuration."""
        kwargs: dict[str, Any] = {
            "retries": {"max_attempts": max(1, self.max_attempts), "mode": "standard"},
        }
        if self.use_path_style:
            kwargs["s3"] = {"addressing_style": "path"}
        return Config(**kwargs)

    @property
    def location(self) -> str:
        """Human-readable description of the bucket."""
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}"
        return f"s3://{self.bucket}"


@dataclass
class TransferOptions:
    """Per-run transfer settings.

    Attributes:
        max_workers: Upper bound on concurrent transfers (>= 1).
        dry_run: Report actions without touching either side.
        force: Transfer even when the destination already matches.
        password: Encryption passphrase. Encryption is on when set.
        compare_mode: Change-detection strategy used by sync.
        retries: Extra attempts for transient storage failures.
        timeout: Overall deadline in seconds (0 disables it).
    """

    max_workers: int = DEFAULT_MAX_WORKERS
    dry_run: bool = False
    force: bool = False
    password: str | None = None
    compare_mode: CompareMode = CompareMode.CHECKSUM
    retries: int = DEFAULT_RETRIES
    timeout: float = 0.0

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.retries < 0:
            raise ValueError(f"retries cannot be negative, got {self.retries}")
        if self.timeout < 0:
            raise ValueError(f"timeout cannot be negative, got {self.timeout}")
        self.compare_mode = CompareMode(self.compare_mode)

    @property
    def encrypt(self) -> bool:
        """True when objects are encrypted on upload and decrypted on download."""
        return bool(self.password)
