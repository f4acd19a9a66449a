"""Shared helpers for s3copy CLI commands.

This module provides:
- Connection and transfer options shared by ``copy`` and ``sync``
- S3 URL parsing and endpoint/store construction
- Logging setup that routes library logs through click.echo
- Password prompting and the end-of-run summary
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import Any, NoReturn, TypeVar

import click

from s3copy.core.config import DEFAULT_MAX_WORKERS, DEFAULT_REGION, DEFAULT_RETRIES, S3Config
from s3copy.storage import S3ObjectStore, StorageError
from s3copy.sync.ignore import IgnorePatterns
from s3copy.sync.types import ConfigurationError, SyncError, SyncReport
from s3copy.sync.workers import CancelToken, DeadlineExceeded, OperationCancelled

F = TypeVar("F", bound=Callable[..., Any])

S3_SCHEME = "s3://"


class ClickEchoHandler(logging.Handler):
    """Logging handler that prints through click.echo.

    Warnings and errors go to stderr, everything else to stdout.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            click.echo(msg, err=record.levelno >= logging.WARNING)
        except Exception:
            self.handleError(record)


def configure_logging(quiet: bool = False, verbose: bool = False) -> None:
    """Install the click handler on the ``s3copy`` logger.

    Args:
        quiet: Only show warnings and errors.
        verbose: Also show debug messages (per-file comparison reasons).
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handler = ClickEchoHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(level)

    s3copy_logger = logging.getLogger("s3copy")
    for existing in s3copy_logger.handlers[:]:
        s3copy_logger.removeHandler(existing)
    s3copy_logger.addHandler(handler)
    s3copy_logger.setLevel(level)
    s3copy_logger.propagate = False


def is_s3_url(path: str) -> bool:
    return path.startswith(S3_SCHEME)


def parse_s3_url(url: str, bucket: str | None = None) -> tuple[str, str]:
    """Split an ``s3://bucket/key`` URL into bucket and key.

    Args:
        url: Path starting with ``s3://``.
        bucket: Bucket given with --bucket. The URL then holds only the key,
            optionally still prefixed by the bucket name.

    Returns:
        (bucket, key). The key may be empty.

    Raises:
        ConfigurationError: If no bucket can be determined.
    """
    path = url[len(S3_SCHEME) :] if is_s3_url(url) else url
    if bucket:
        if path == bucket:
            return bucket, ""
        return bucket, path.removeprefix(bucket + "/")

    name, _, key = path.partition("/")
    if not name:
        raise ConfigurationError(
            "Invalid S3 path, use s3://bucket/key or specify the bucket with -b"
        )
    return name, key


def build_store(
    bucket: str,
    endpoint: str | None,
    access_key: str | None,
    secret_key: str | None,
    region: str,
    use_path_style: bool,
    retries: int,
) -> S3ObjectStore:
    """Create the object store for a parsed bucket."""
    config = S3Config(
        bucket=bucket,
        endpoint_url=endpoint,
        access_key=access_key,
        secret_key=secret_key,
        region=region,
        use_path_style=use_path_style,
        max_attempts=retries + 1,
    )
    return S3ObjectStore(config)


def load_ignore(patterns: str | None, ignore_file: str | None) -> IgnorePatterns:
    """Build ignore patterns, exiting with an error if the file is unreadable."""
    try:
        return IgnorePatterns.from_options(patterns, ignore_file)
    except OSError as e:
        fail(f"failed to read ignore file {ignore_file}: {e}")


def resolve_password(encrypt: bool, password: str | None) -> str | None:
    """Return the encryption password, prompting when needed.

    Returns:
        The password, or None when encryption is off.
    """
    if not encrypt:
        return None
    if not password:
        password = click.prompt("Enter encryption password", hide_input=True, default="", show_default=False)
    if not password:
        fail("empty password provided for encryption")
    return password


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def connection_options(func: F) -> F:
    """Options shared by every command that talks to S3."""
    decorators = [
        click.option("--bucket", "-b", default=None, help="S3 bucket name (otherwise taken from the s3:// path)."),
        click.option("--endpoint", envvar="S3COPY_ENDPOINT", default=None, help="Custom S3 endpoint URL."),
        click.option("--access-key", envvar="S3COPY_ACCESS_KEY", default=None, help="S3 access key ID."),
        click.option("--secret-key", envvar="S3COPY_SECRET_KEY", default=None, help="S3 secret access key."),
        click.option("--region", envvar="S3COPY_REGION", default=DEFAULT_REGION, show_default=True, help="S3 region."),
        click.option(
            "--path-style/--no-path-style",
            "use_path_style",
            envvar="S3COPY_USE_PATH_STYLE",
            default=False,
            help="Use path-style bucket addressing.",
        ),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def transfer_options(func: F) -> F:
    """Options shared by ``copy`` and ``sync``."""
    decorators = [
        click.option("--encrypt", "-e", is_flag=True, help="Encrypt uploads and decrypt downloads."),
        click.option("--password", "-p", default=None, help="Encryption password (prompted when omitted)."),
        click.option("--ignore", "ignore_patterns", default=None, help="Comma-separated ignore patterns (gitignore syntax)."),
        click.option(
            "--ignore-file",
            type=click.Path(dir_okay=False),
            default=None,
            help="File with ignore patterns, one per line.",
        ),
        click.option(
            "--max-workers",
            type=click.IntRange(min=1),
            default=DEFAULT_MAX_WORKERS,
            show_default=True,
            help="Maximum concurrent transfers.",
        ),
        click.option("--dry-run", is_flag=True, help="Show what would be done without doing it."),
        click.option("--force", is_flag=True, help="Transfer even if the destination already matches."),
        click.option(
            "--retries",
            type=click.IntRange(min=0),
            default=DEFAULT_RETRIES,
            show_default=True,
            help="Retry attempts for transient failures.",
        ),
        click.option(
            "--timeout",
            type=click.IntRange(min=0),
            default=0,
            help="Overall timeout in seconds (0 for none).",
        ),
        click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors."),
        click.option("--verbose", "-v", is_flag=True, help="Show per-file details."),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def display_summary(report: SyncReport, title: str, verbose: bool = False) -> None:
    """Display the results of a copy or sync run."""
    click.echo(f"\n=== {title} ===")

    sections = [
        ("Uploaded", report.uploaded, "↑"),
        ("Downloaded", report.downloaded, "↓"),
        ("Deleted", report.deleted, "✗"),
        ("Skipped", report.skipped, "="),
    ]
    for label, paths, arrow in sections:
        if not paths:
            continue
        click.echo(f"{label}: {len(paths)} files")
        if verbose:
            for path in sorted(paths):
                click.echo(f"  {arrow} {path}")

    if report.unchanged and verbose:
        click.echo(f"Unchanged: {report.unchanged} files")

    if report.errors:
        click.echo(click.style(f"Errors: {len(report.errors)}", fg="red"))
        for error in report.errors:
            click.echo(f"  ⚠ {error}")


def run_operation(action: Callable[[CancelToken], SyncReport], timeout: int = 0) -> SyncReport:
    """Run a copy or sync action, turning failures into a clean exit.

    Args:
        action: Called with the run's cancellation token.
        timeout: Overall deadline in seconds (0 for none).
    """
    cancel = CancelToken(timeout=timeout or None)
    try:
        return action(cancel)
    except DeadlineExceeded:
        fail(f"operation timed out after {timeout}s")
    except OperationCancelled:
        fail("operation cancelled")
    except (SyncError, StorageError, OSError, ValueError) as e:
        fail(str(e))
