"""Command-line interface for s3copy.

This module provides the main CLI entry point and assembles all commands.

Commands:
- copy: Copy files between the local filesystem and S3
- sync: Mirror a local directory to an S3 prefix, or the reverse
"""

from __future__ import annotations

import click

from s3copy.cli.config import parse_s3_url
from s3copy.cli.copy import copy
from s3copy.cli.sync import sync


@click.group()
@click.version_option(package_name="s3copy")
def cli() -> None:
    """s3copy - Copy and sync files with S3-compatible storage."""


cli.add_command(copy)
cli.add_command(sync)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "parse_s3_url",
]
