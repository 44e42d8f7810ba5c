"""Resumable attachment downloads.

When the destination file already exists the download resumes from where it
stopped. To avoid corrupting the file, a small overlapping chunk is
downloaded again and compared with the end of the local file::

    [-----existing local file-----]
                          [-------resumed download-------]
                          [overlap]

A mismatch raises :class:`~chatmover.errors.DownloadError` instead of silently
downloading the whole file again. A server that ignores ``Range`` answers with
the full content, in which case the local file is truncated first.
"""

import logging
from pathlib import Path
from typing import BinaryIO

import requests
import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from chatmover.errors import DownloadError

logger = structlog.get_logger(__name__)

DEFAULT_OVERLAP = 512
USER_AGENT = "chatmover/1.0"
CHUNK_SIZE = 64 * 1024
REQUEST_TIMEOUT = 60

_SIZE_UNITS = ("KiB", "MiB", "GiB", "TiB", "PiB")


def human_size(size: int) -> str:
    """Format a byte count, e.g. ``human_size(1536) == "1.50 KiB"``."""
    if size < 0:
        return "unknown"
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in _SIZE_UNITS:
        value /= 1024
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            return f"{value:.2f} {unit}"
    return f"{value:.2f} {_SIZE_UNITS[-1]}"


def calculate_size(existing: BinaryIO, size: int, overlap: int = DEFAULT_OVERLAP) -> tuple[int, int]:
    """Return ``(existing_size, overlap)`` for resuming into ``existing``.

    A local file larger than the expected ``size`` is emptied first.
    """
    existing.seek(0, 2)
    existing_size = existing.tell()
    if existing_size == size:
        return existing_size, 0
    if existing_size > size:
        existing.truncate(0)
        existing_size = 0
    return existing_size, min(overlap, existing_size)


def check_overlap(existing: BinaryIO, downloaded: bytes) -> None:
    """Compare the re-downloaded overlap with the end of the local file.

    Raises:
        DownloadError: If the bytes differ.
    """
    existing.seek(-len(downloaded), 2)
    local = existing.read(len(downloaded))
    if local != downloaded:
        raise DownloadError("download: the downloaded file doesn't match the one on disk")


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def _resume_download(existing: BinaryIO, size: int, url: str) -> None:
    existing_size, overlap = calculate_size(existing, size)
    if size >= 0 and existing_size == size:
        return

    start = existing_size - overlap
    if start:
        logger.info("download_resuming", url=url, offset=human_size(start))

    headers = {"User-Agent": USER_AGENT, "Range": f"bytes={start}-"}
    with requests.get(url, headers=headers, stream=True, timeout=REQUEST_TIMEOUT) as response:
        if response.status_code == requests.codes.ok:
            overlap = 0
            existing.truncate(0)
        elif response.status_code != requests.codes.partial_content:
            raise DownloadError(f"download: HTTP request failed with status {response.status_code} {response.reason}")

        chunks = response.iter_content(chunk_size=CHUNK_SIZE)
        pending = b""
        if overlap:
            for chunk in chunks:
                pending += chunk
                if len(pending) >= overlap:
                    break
            if len(pending) < overlap:
                raise DownloadError("download: error downloading the overlapping data")
            check_overlap(existing, pending[:overlap])
            pending = pending[overlap:]

        existing.seek(0, 2)
        if pending:
            existing.write(pending)
        for chunk in chunks:
            existing.write(chunk)


def download_into(path: Path, url: str, size: int) -> None:
    """Download ``url`` into ``path``, resuming a partial file when present.

    Args:
        path: Destination file; created when missing.
        url: Source URL.
        size: Expected size in bytes, or a negative value when unknown.

    Raises:
        DownloadError: If the server refuses the request or the overlap check fails.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = "r+b" if path.exists() else "w+b"
    try:
        with path.open(mode) as existing:
            _resume_download(existing, size, url)
    except requests.RequestException as e:
        raise DownloadError(f"download: error during HTTP request: {e}") from e
    logger.info("download_finished", url=url, path=str(path))


__all__ = [
    "DEFAULT_OVERLAP",
    "calculate_size",
    "check_overlap",
    "download_into",
    "human_size",
]
