"""Zip archive helpers for the grid partitioner.

Extraction is idempotent: a destination that already has content is reused
as it is, so an interrupted partitioning run can be resumed. Stale data in
the destination is therefore never refreshed; remove the directory to start
over.
"""

import os
import shutil
import zipfile
from pathlib import Path

import structlog

from chatmover.errors import PartitionIOError

logger = structlog.get_logger(__name__)

EXTRACT_PROGRESS_INTERVAL = 1000


def sanitize_entry_name(name: str) -> str:
    """Drop ``:`` from an entry name.

    File conversations are exported as ``FC:123:456`` directories, which are
    not valid on every filesystem.
    """
    return name.replace(":", "")


def dir_has_content(path: Path) -> bool:
    """Create ``path`` if needed and report whether it holds any entry."""
    path.mkdir(parents=True, exist_ok=True)
    return any(path.iterdir())


def extract_directory(archive: zipfile.ZipFile, destination: str | Path) -> bool:
    """Extract ``archive`` into ``destination``.

    Args:
        archive: The open archive.
        destination: Target directory, created when missing.

    Returns:
        False when the destination already had content and extraction was
        skipped, True otherwise.

    Raises:
        PartitionIOError: If an entry cannot be written.
    """
    destination = Path(destination)
    logger.info("extracting_archive", destination=str(destination))

    try:
        if dir_has_content(destination):
            logger.info("extraction_skipped", destination=str(destination), reason="directory not empty")
            return False

        entries = archive.infolist()
        total = len(entries)
        for index, info in enumerate(entries):
            target = destination / sanitize_entry_name(info.filename)
            if not target.resolve().is_relative_to(destination.resolve()):
                logger.warning("archive_entry_outside_destination", entry=info.filename)
                continue
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue

            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as source, target.open("wb") as out:
                shutil.copyfileobj(source, out)

            if index % EXTRACT_PROGRESS_INTERVAL == 0 or index == total - 1:
                logger.info("extract_progress", entry=index, total=total)
    except (OSError, zipfile.BadZipFile) as e:
        raise PartitionIOError(f"Error extracting archive into {destination}: {e}") from e

    logger.info("extraction_finished", destination=str(destination), entries=total)
    return True


def zip_directory(source: str | Path, target: str | Path) -> Path:
    """Write the content of ``source`` into a new zip at ``target``.

    Entry names are relative to ``source``, so the directory itself is the
    archive root. Files are deflated.

    Raises:
        PartitionIOError: If the directory cannot be read or the zip written.
    """
    source = Path(source)
    target = Path(target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for root, dirs, files in os.walk(source):
                dirs.sort()
                root_path = Path(root)
                relative_root = root_path.relative_to(source)
                if relative_root != Path("."):
                    archive.write(root_path, f"{relative_root.as_posix()}/")
                for file_name in sorted(files):
                    file_path = root_path / file_name
                    archive.write(file_path, file_path.relative_to(source).as_posix())
    except OSError as e:
        raise PartitionIOError(f"Error zipping {source} to {target}: {e}") from e

    logger.info("directory_zipped", source=str(source), target=str(target))
    return target


__all__ = [
    "dir_has_content",
    "extract_directory",
    "sanitize_entry_name",
    "zip_directory",
]
