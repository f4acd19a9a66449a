"""Sync command for s3copy CLI.

Commands:
- sync: Make a destination exactly mirror a source (one-way, destructive)
"""

from __future__ import annotations

import sys
from pathlib import Path

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
from s3copy.core.types import CompareMode
from s3copy.sync.engine import SyncEngine
from s3copy.sync.types import SyncReport
from s3copy.sync.workers import CancelToken


@click.command()
@click.argument("source")
@click.argument("destination")
@click.option(
    "--compare",
    type=click.Choice([mode.value for mode in CompareMode]),
    default=CompareMode.CHECKSUM.value,
    show_default=True,
    help="How files present on both sides are compared.",
)
@transfer_options
@connection_options
def sync(
    source: str,
    destination: str,
    compare: str,
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
    """Mirror SOURCE into DESTINATION.

    One side must be a local directory and the other an s3:// prefix.
    Files missing or different at the destination are transferred, and
    files that only exist at the destination are deleted.
    """
    configure_logging(quiet, verbose)

    source_is_s3 = is_s3_url(source)
    dest_is_s3 = is_s3_url(destination)
    if source_is_s3 and dest_is_s3:
        fail("S3 to S3 sync is not supported")
    if not source_is_s3 and not dest_is_s3:
        fail("at least one of source or destination must be S3")
    if not source_is_s3 and not Path(source).is_dir():
        fail(f"source must be a directory for sync: {source}")

    ignore = load_ignore(ignore_patterns, ignore_file)
    options = TransferOptions(
        max_workers=max_workers,
        dry_run=dry_run,
        force=force,
        password=resolve_password(encrypt, password),
        compare_mode=CompareMode(compare),
        retries=retries,
        timeout=timeout,
    )

    def run(cancel: CancelToken) -> SyncReport:
        bucket_name, prefix = parse_s3_url(source if source_is_s3 else destination, bucket)
        store = build_store(bucket_name, endpoint, access_key, secret_key, region, use_path_style, retries)
        engine = SyncEngine(store, options, ignore, cancel)
        if source_is_s3:
            return engine.sync_down(prefix, Path(destination))
        return engine.sync_up(Path(source), prefix)

    report = run_operation(run, timeout)

    if not quiet:
        display_summary(report, "Sync Summary", verbose)
        if report.is_empty:
            click.echo("Directories are already in sync!")
    if report.has_errors:
        sys.exit(1)
