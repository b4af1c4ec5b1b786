"""Uploader CLI entry point."""

import functools
from pathlib import Path
from typing import Optional

import click

from common.logging_config import setup_logging
from uploader.batch import BatchRunner, FileState
from uploader.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
    UploaderConfig,
)
from uploader.coordinator_client import CoordinatorClient
from uploader.exceptions import ConfigurationError, UploaderError


def connection_options(func):
    """Options shared by every command that talks to the coordinator."""
    @click.option("--url", envvar="PHOTO_BACKUP_URL", default="", help="URL of the upload_request handler.")
    @click.option("--username", envvar="PHOTO_BACKUP_USERNAME", default="", help="Basic auth username.")
    @click.option("--password", envvar="PHOTO_BACKUP_PASSWORD", default="", help="Basic auth password.")
    @click.option("--timeout", type=float, default=DEFAULT_TIMEOUT, show_default=True, help="Request timeout in seconds.")
    @click.option(
        "--max-retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        show_default=True,
        help="Retries for coordinator requests on network errors and 5xx responses.",
    )
    @click.option("--debug", is_flag=True, help="Enable debug logging.")
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)
    return wrapper


@click.group()
def cli() -> None:
    """Back up media files through the upload coordinator."""


@cli.command()
@connection_options
@click.option(
    "--pending-dir",
    envvar="PHOTO_BACKUP_PENDING_DIR",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding files to upload.",
)
@click.option(
    "--done-dir",
    envvar="PHOTO_BACKUP_DONE_DIR",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory completed files are moved into (created if missing).",
)
@click.option("--test-upload", is_flag=True, help="Mark uploaded objects as test uploads.")
def batch(
    url: str,
    username: str,
    password: str,
    timeout: float,
    max_retries: int,
    debug: bool,
    pending_dir: Optional[Path],
    done_dir: Optional[Path],
    test_upload: bool,
) -> None:
    """Upload every media file of the pending directory, then move it to the done directory."""
    logger = setup_logging('uploader', log_level='DEBUG' if debug else None)

    config = UploaderConfig(
        url=url,
        username=username,
        password=password,
        pending_dir=pending_dir,
        done_dir=done_dir,
        timeout=timeout,
        max_retries=max_retries,
        test_upload=test_upload,
    )
    try:
        config.validate()
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    with CoordinatorClient(config, logger=logger) as client:
        runner = BatchRunner(config, client, logger=logger)
        try:
            report = runner.run()
        except UploaderError as e:
            raise click.ClickException(str(e))

    click.echo(
        f"{report.uploaded} uploaded, {report.skipped} already stored, "
        f"{report.not_media} not media ({report.total} files)"
    )


@cli.command()
@connection_options
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--test-upload/--no-test-upload",
    default=True,
    show_default=True,
    help="Mark the uploaded object as a test upload.",
)
def upload(
    url: str,
    username: str,
    password: str,
    timeout: float,
    max_retries: int,
    debug: bool,
    file: Path,
    test_upload: bool,
) -> None:
    """Upload a single FILE without moving it (for testing a deployment)."""
    logger = setup_logging('uploader', log_level='DEBUG' if debug else None)

    config = UploaderConfig(
        url=url,
        username=username,
        password=password,
        timeout=timeout,
        max_retries=max_retries,
        test_upload=test_upload,
    )
    try:
        config.validate(require_dirs=False)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    with CoordinatorClient(config, logger=logger) as client:
        runner = BatchRunner(config, client, logger=logger)
        try:
            outcome = runner.process_file(file, move=False)
        except UploaderError as e:
            raise click.ClickException(str(e))

    messages = {
        FileState.DONE: f"uploaded {file.name} id={outcome.content_id}",
        FileState.SKIPPED: f"{file.name} already stored id={outcome.content_id}",
        FileState.NOT_MEDIA: f"{file.name} not a media file ({outcome.content_type})",
    }
    click.echo(messages[outcome.state])


def main() -> None:
    """Entry point for the uploader CLI."""
    cli()


if __name__ == "__main__":
    main()
