"""Copy command for s3copy CLI.

Commands:
- copy: Upload local files to S3 or download objects from S3
"""

from __future__ import annotations

import sys

import click

from s3copy.cli.config import (
    build_store,
    configure_logging,
    connection_options,
    display_summary,
    fail,
    is_s3_url,
    load_ignore,
    parse_s3_url,
    resolve_password,
    run_operation,
    transfer_options,
)
from s3copy.core.config import TransferOptions
from s3copy.sync.copy import download_path, upload_path
from s3copy.sync.types import SyncReport
from s3copy.sync.workers import CancelToken


@click.command()
@click.argument("source")
@click.argument("destination")
@click.option("--recursive", "-r", is_flag=True, help="Copy directories recursively.")
@transfer_options
@connection_options
def copy(
    source: str,
    destination: str,
    recursive: bool,
    encrypt: bool,
    password: str | None,
    ignore_patterns: str | None,
    ignore_file: str | None,
    max_workers: int,
    dry_run: bool,
    force: bool,
    retries: int,
    timeout: int,
    quiet: bool,
    verbose: bool,
    bucket: str | None,
    endpoint: str | None,
    access_key: str | None,
    secret_key: str | None,
    region: str,
    use_path_style: bool,
) -> None:
    """Copy files between the local filesystem and S3.

    Exactly one of SOURCE and DESTINATION must be an s3:// path. SOURCE may
    be a file, a glob pattern, or (with -r) a directory. Files that already
    exist at the destination with the same checksum are skipped unless
    --force is given.
    """
    configure_logging(quiet, verbose)

    source_is_s3 = is_s3_url(source)
    dest_is_s3 = is_s3_url(destination)
    if source_is_s3 and dest_is_s3:
        fail("S3 to S3 copy is not supported")
    if not source_is_s3 and not dest_is_s3:
        fail("at least one of source or destination must be S3")

    ignore = load_ignore(ignore_patterns, ignore_file)
    options = TransferOptions(
        max_workers=max_workers,
        dry_run=dry_run,
        force=force,
        password=resolve_password(encrypt, password),
        retries=retries,
        timeout=timeout,
    )

    def run(cancel: CancelToken) -> SyncReport:
        bucket_name, key = parse_s3_url(source if source_is_s3 else destination, bucket)
        store = build_store(bucket_name, endpoint, access_key, secret_key, region, use_path_style, retries)
        if source_is_s3:
            return download_path(store, key, destination, options, ignore, cancel)
        return upload_path(store, source, key, options, ignore, recursive, cancel)

    report = run_operation(run, timeout)

    if not quiet:
        display_summary(report, "Copy Summary", verbose)
    if report.has_errors:
        sys.exit(1)
    if not quiet:
        click.echo("Copy operation completed successfully!")
