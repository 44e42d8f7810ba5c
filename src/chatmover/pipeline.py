"""End-to-end conversion jobs.

Each job wires a collector, a transformer and the exporter together:

1. Parse the provider export into raw provider models
2. Transform them into the canonical model for one team
3. Write the bulk-import JSONL file and the conversion result file

``grid_transform`` instead splits an Enterprise Grid export into one
workspace export archive per team. It does not convert them; each archive
is meant to be fed to ``transform_slack`` (the ``transform-slack`` command)
as a regular workspace export.
"""

import zipfile
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from chatmover.collectors.slack.parser import parse_slack_export, precheck
from chatmover.collectors.telegram.parser import (
    find_missing_attachments,
    get_media_statistics,
    parse_telegram_export,
)
from chatmover.collectors.telegram.validation import validate_export_structure, validate_for_import
from chatmover.config import Settings, get_settings
from chatmover.errors import ExportStructureError
from chatmover.exporters.bulk import BulkExporter, ExportResult, resolve_attachment_paths, write_result_file
from chatmover.partition.grid import GridTransformer, grid_precheck
from chatmover.transformers.base import TransformOptions
from chatmover.transformers.emoji import EmojiTable
from chatmover.transformers.slack_transformer import SlackTransformer
from chatmover.transformers.telegram_transformer import TelegramTransformer

logger = structlog.get_logger(__name__)

TELEGRAM_RESULT_FILE = "result.json"


@dataclass
class GridResult:
    """Per-listing move counts and the team archives written."""

    moved: dict[str, int] = field(default_factory=dict)
    archives: list[Path] = field(default_factory=list)
    extracted: bool = True


def _export(
    exporter: BulkExporter,
    output: str,
    max_chunk_size: int,
    options: TransformOptions,
    result_file: str | None,
) -> ExportResult:
    result = exporter.export(output, max_chunk_size)
    resolve_attachment_paths(result, options.attachments_dir)
    if result_file:
        write_result_file(result_file, result)
    return result


def transform_slack(
    input_path: str | Path,
    team_name: str,
    output: str | None = None,
    options: TransformOptions | None = None,
    max_chunk_size: int | None = None,
    result_file: str | None = None,
    settings: Settings | None = None,
    emoji_table: EmojiTable | None = None,
) -> ExportResult:
    """Convert a Slack workspace export archive into an import file.

    Args:
        input_path: Path of the export zip.
        team_name: Team the data is imported into.
        output: JSONL output path. Defaults to the configured output.
        options: Transform switches. Defaults to the configured ones.
        max_chunk_size: Maximum posts per output file, 0 for a single file.
        result_file: Where to write the conversion result. Defaults to the
            configured path.
        settings: Application settings. Defaults to loading from environment.
        emoji_table: Shared emoji lookup.

    Returns:
        The written chunks and exported channel IDs.

    Raises:
        ExportStructureError: If the archive is not a usable Slack export.
        MissingEmailError: If a user has no email and no fallback applies.
    """
    settings = settings or get_settings()
    options = options or TransformOptions.from_settings(settings.transform)
    output = output or settings.transform.output
    if max_chunk_size is None:
        max_chunk_size = settings.transform.max_chunk_size
    if result_file is None:
        result_file = settings.transform.result_file

    job_log = logger.bind(job_type="transform_slack", team=team_name, input=str(input_path))
    job_log.info("transform_started")

    try:
        archive = zipfile.ZipFile(input_path)
    except (OSError, zipfile.BadZipFile) as e:
        raise ExportStructureError(f"Error opening {input_path}: {e}") from e

    with archive:
        if not precheck(archive):
            raise ExportStructureError(f"{input_path} is missing required files")
        export = parse_slack_export(archive, team_name)
        transformer = SlackTransformer(team_name, options, emoji_table)
        intermediate = transformer.transform(export)

    result = _export(BulkExporter(team_name, intermediate), output, max_chunk_size, options, result_file)
    job_log.info("transform_completed", output=output, chunks=len(result.chunks), channels=len(result.channels))
    return result


def transform_telegram(
    input_path: str | Path,
    team_name: str,
    output: str | None = None,
    options: TransformOptions | None = None,
    max_chunk_size: int | None = None,
    result_file: str | None = None,
    settings: Settings | None = None,
    emoji_table: EmojiTable | None = None,
) -> ExportResult:
    """Convert a Telegram chat export into an import file.

    ``input_path`` is either the export directory or its ``result.json``;
    media paths are resolved relative to the directory. A malformed root
    aborts the run; problems with single messages are logged.

    Raises:
        ExportStructureError: If the export is malformed.
    """
    settings = settings or get_settings()
    options = options or TransformOptions.from_settings(settings.transform)
    output = output or settings.transform.output
    if max_chunk_size is None:
        max_chunk_size = settings.transform.max_chunk_size
    if result_file is None:
        result_file = settings.transform.result_file

    input_path = Path(input_path)
    json_path = input_path / TELEGRAM_RESULT_FILE if input_path.is_dir() else input_path
    export_dir = json_path.parent

    job_log = logger.bind(job_type="transform_telegram", team=team_name, input=str(json_path))
    job_log.info("transform_started")

    export = parse_telegram_export(json_path)

    for issue in validate_export_structure(export):
        job_log.warning("export_issue", issue=str(issue))
    for issue in validate_for_import(export):
        job_log.warning("import_issue", issue=str(issue))

    if not options.skip_attachments:
        missing = find_missing_attachments(export, export_dir)
        if missing:
            job_log.warning("media_files_missing", count=len(missing), first=missing[:5])
        stats = get_media_statistics(export)
        job_log.info(
            "media_statistics",
            photos=stats.photos,
            videos=stats.videos,
            stickers=stats.stickers,
            animations=stats.animations,
            documents=stats.documents,
            total_size=stats.total_size,
        )

    transformer = TelegramTransformer(team_name, export_dir, options, emoji_table)
    intermediate = transformer.transform(export)

    result = _export(BulkExporter(team_name, intermediate), output, max_chunk_size, options, result_file)
    job_log.info("transform_completed", output=output, chunks=len(result.chunks), channels=len(result.channels))
    return result


def grid_transform(
    input_path: str | Path,
    teams: dict[str, str],
    work_dir: str | Path | None = None,
    output_dir: str | Path | None = None,
    settings: Settings | None = None,
) -> GridResult:
    """Split an Enterprise Grid export into one workspace export per team.

    Args:
        input_path: Path of the Grid export zip.
        teams: Team ID to team name.
        work_dir: Extraction directory. Defaults to the configured one,
            relative to the current directory.
        output_dir: Directory receiving ``<team-name>.zip`` files.
        settings: Application settings. Defaults to loading from environment.

    Raises:
        ExportStructureError: If a channel listing is missing or malformed.
        PartitionIOError: If extraction, a channel move or zipping fails.
    """
    settings = settings or get_settings()
    work_dir = Path(work_dir or Path.cwd() / settings.grid.work_dir)
    output_dir = Path(output_dir or settings.grid.output_dir)

    job_log = logger.bind(job_type="grid_transform", input=str(input_path), work_dir=str(work_dir))
    job_log.info("grid_transform_started", teams=len(teams))

    transformer = GridTransformer(teams, work_dir)
    result = GridResult()
    try:
        archive = zipfile.ZipFile(input_path)
    except (OSError, zipfile.BadZipFile) as e:
        raise ExportStructureError(f"Error opening {input_path}: {e}") from e

    with archive:
        if not grid_precheck(archive):
            raise ExportStructureError(f"{input_path} is missing required channel listings")
        result.extracted = transformer.extract(archive)
        export = transformer.parse_grid_export(archive)

    result.moved = transformer.partition(export)
    transformer.copy_user_listings()
    transformer.write_missing_listings()
    result.archives = transformer.zip_team_directories(output_dir)

    job_log.info("grid_transform_completed", moved=result.moved, archives=[str(path) for path in result.archives])
    return result


__all__ = ["GridResult", "grid_transform", "transform_slack", "transform_telegram"]
