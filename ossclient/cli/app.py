"""Typer CLI for uploading and downloading objects."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

import typer
from tqdm import tqdm

from ossclient import __version__
from ossclient.client import ObjectStorageClient
from ossclient.core.config.helpers import parse_bytes
from ossclient.core.exceptions import (
    AuthenticationError,
    ConfigLoadError,
    OssClientError,
)
from ossclient.transfer.models import UploadCheckpoint

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="Object storage chunked transfer command line interface.",
)


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the ossclient version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
    log_level: str = typer.Option(
        os.getenv("OSS_LOG_LEVEL", "WARNING"),
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    ),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _progress_updater(pbar: tqdm) -> Callable[[int, int | None], None]:
    """Adapt a tqdm bar to the cumulative ``(transferred, total)`` callback."""

    def update(bytes_transferred: int, total_bytes: int | None) -> None:
        if total_bytes is not None and pbar.total != total_bytes:
            pbar.total = total_bytes
        pbar.update(bytes_transferred - pbar.n)

    return update


def _make_client() -> ObjectStorageClient:
    try:
        return ObjectStorageClient.from_env()
    except (AuthenticationError, ConfigLoadError) as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc


@app.command("upload")
def upload(
    bucket: str = typer.Argument(..., help="Bucket key."),
    object_key: str = typer.Argument(..., help="Object key to write."),
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Local file to upload."
    ),
    content_type: str | None = typer.Option(
        None, "--content-type", help="MIME type stored with the object."
    ),
    checkpoint_path: Path | None = typer.Option(
        None,
        "--checkpoint",
        help=(
            "Persist upload progress to this file and resume from it when it "
            "exists. The file is removed after a successful upload."
        ),
    ),
) -> None:
    """Upload a local file through signed part URLs."""
    client = _make_client()
    try:
        with tqdm(
            total=file.stat().st_size, unit="B", unit_scale=True, unit_divisor=1024
        ) as pbar:
            if checkpoint_path is None:
                result = client.upload_file(
                    bucket,
                    object_key,
                    file,
                    content_type=content_type,
                    on_progress=_progress_updater(pbar),
                )
            else:
                checkpoint = None
                if checkpoint_path.exists():
                    checkpoint = UploadCheckpoint.model_validate_json(
                        checkpoint_path.read_text(encoding="utf-8")
                    )
                    logger.info(
                        "Resuming upload at part %s", checkpoint.next_part_index
                    )

                def save_checkpoint(state: UploadCheckpoint) -> None:
                    checkpoint_path.write_text(
                        state.model_dump_json(), encoding="utf-8"
                    )

                result = client.upload_object(
                    bucket,
                    object_key,
                    file.read_bytes(),
                    content_type=content_type,
                    on_progress=_progress_updater(pbar),
                    checkpoint=checkpoint,
                    on_checkpoint=save_checkpoint,
                )
                checkpoint_path.unlink(missing_ok=True)
    except OssClientError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc

    typer.echo(result.model_dump_json(by_alias=True, exclude_none=True))


@app.command("download")
def download(
    bucket: str = typer.Argument(..., help="Bucket key."),
    object_key: str = typer.Argument(..., help="Object key to read."),
    file: Path = typer.Argument(..., dir_okay=False, help="Local file to write."),
    chunk_size: str | None = typer.Option(
        None,
        "--chunk-size",
        help="Read by byte ranges of this size, e.g. 8mb.",
    ),
) -> None:
    """Download an object into a local file."""
    client = _make_client()
    try:
        max_chunk_bytes = parse_bytes(chunk_size) if chunk_size else None
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--chunk-size") from exc

    try:
        with tqdm(unit="B", unit_scale=True, unit_divisor=1024) as pbar:
            written = client.download_file(
                bucket,
                object_key,
                file,
                on_progress=_progress_updater(pbar),
                max_chunk_bytes=max_chunk_bytes,
            )
    except OssClientError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Wrote {written} bytes to {file}")


@app.command("resumable-status")
def resumable_status(
    bucket: str = typer.Argument(..., help="Bucket key."),
    object_key: str = typer.Argument(..., help="Object key being uploaded."),
    session_id: str = typer.Argument(..., help="Resumable session id."),
) -> None:
    """Print the byte ranges stored by a legacy resumable session."""
    client = _make_client()
    try:
        ranges = client.resumable_session(bucket, object_key, session_id).status()
    except OssClientError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc

    for uploaded_range in ranges:
        typer.echo(f"{uploaded_range.start}-{uploaded_range.end}")


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
