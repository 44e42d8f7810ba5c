"""Slack workspace export parsing.

A Slack export is a zip archive with fixed-name channel listings at its root,
one directory of daily message files per channel and an ``__uploads`` tree
holding attached files:

    channels.json   groups.json   mpims.json   dms.json   users.json
    general/2024-01-15.json
    D0123ABCD/2024-01-15.json
    __uploads/F0123/report.pdf

The channel type comes from the listing a channel appears in.
"""

import json
import zipfile
from collections.abc import Iterable

import structlog
from pydantic import TypeAdapter, ValidationError

from chatmover.collectors.base import BaseCollector, CollectionStats, SourceType
from chatmover.collectors.slack.models import SlackChannel, SlackExport, SlackPost, SlackUser
from chatmover.errors import ExportStructureError
from chatmover.schemas.intermediate import ChannelType

logger = structlog.get_logger(__name__)

CHANNEL_LISTINGS: dict[str, ChannelType] = {
    "channels.json": ChannelType.OPEN,
    "groups.json": ChannelType.PRIVATE,
    "mpims.json": ChannelType.GROUP,
    "dms.json": ChannelType.DIRECT,
}
USERS_FILE = "users.json"
UPLOADS_DIR = "__uploads"

REQUIRED_FILES: tuple[str, ...] = ("channels.json", USERS_FILE)

_users_adapter = TypeAdapter(list[SlackUser])


def check_for_required_file(names: Iterable[str], file_name: str) -> bool:
    """Report whether ``file_name`` sits at the archive root.

    A copy found only inside a subdirectory is logged separately, since that
    usually means the export was re-zipped with an extra top-level folder.
    """
    found = False
    found_in_subdirectory = False
    for name in names:
        if name == file_name:
            found = True
        elif name.endswith("/" + file_name):
            found_in_subdirectory = True

    if not found:
        if found_in_subdirectory:
            logger.error("required_file_in_subdirectory", file=file_name)
        else:
            logger.error("required_file_missing", file=file_name)
        return False
    return True


def precheck(archive: zipfile.ZipFile, required: Iterable[str] = REQUIRED_FILES) -> bool:
    """Check that every required root file is present, logging each missing one."""
    names = archive.namelist()
    valid = True
    for file_name in required:
        valid = check_for_required_file(names, file_name) and valid
    return valid


def parse_channels(data: bytes, channel_type: ChannelType, source: str = "") -> list[SlackChannel]:
    """Parse a channel listing and tag every descriptor with ``channel_type``.

    Raises:
        ExportStructureError: If the listing is not a JSON array of channels.
    """
    try:
        raw = json.loads(data)
        if not isinstance(raw, list):
            raise ExportStructureError(f"{source or 'channel listing'} is not a JSON array")
        return [
            SlackChannel.model_validate(item).model_copy(update={"channel_type": channel_type})
            for item in raw
        ]
    except (json.JSONDecodeError, ValidationError) as e:
        raise ExportStructureError(f"Error parsing {source or 'channel listing'}: {e}") from e


def parse_users(data: bytes) -> list[SlackUser]:
    """Parse ``users.json``.

    Raises:
        ExportStructureError: If the file is not a JSON array of users.
    """
    try:
        return _users_adapter.validate_json(data)
    except ValidationError as e:
        raise ExportStructureError(f"Error parsing {USERS_FILE}: {e}") from e


def parse_posts(data: bytes, source: str = "", stats: CollectionStats | None = None) -> list[SlackPost]:
    """Parse one daily message file.

    Malformed files yield an empty list and malformed entries are dropped,
    both with a warning; one bad file never aborts the run. Dropped files and
    entries are counted in ``stats`` when given.
    """
    try:
        raw = json.loads(data)
    except json.JSONDecodeError as e:
        logger.warning("message_file_unreadable", file=source, error=str(e))
        if stats is not None:
            stats.items_skipped += 1
            stats.errors.append(f"{source}: {e}")
        return []

    if not isinstance(raw, list):
        logger.warning("message_file_not_a_list", file=source)
        if stats is not None:
            stats.items_skipped += 1
            stats.errors.append(f"{source}: not a list of messages")
        return []

    posts: list[SlackPost] = []
    for index, item in enumerate(raw):
        try:
            posts.append(SlackPost.model_validate(item))
        except ValidationError as e:
            logger.warning("message_entry_invalid", file=source, index=index, error=str(e))
            if stats is not None:
                stats.items_skipped += 1
                stats.errors.append(f"{source}[{index}]: {e.error_count()} validation errors")
    return posts


class SlackCollector(BaseCollector[zipfile.ZipFile, SlackExport]):
    """Collector reading a Slack workspace export archive.

    Example:
        >>> with zipfile.ZipFile("export.zip") as archive:
        ...     export = SlackCollector("myteam").run(archive)
    """

    def __init__(self, team_name: str) -> None:
        super().__init__(SourceType.SLACK)
        self.team_name = team_name

    def collect(self, source: zipfile.ZipFile) -> SlackExport:
        names = set(source.namelist())
        for required in REQUIRED_FILES:
            if required not in names:
                raise ExportStructureError(f"Required file {required} is missing from the export")

        export = SlackExport(team_name=self.team_name, archive=source)

        for info in source.infolist():
            if info.is_dir():
                continue
            name = info.filename
            self._stats.files_read += 1

            if name in CHANNEL_LISTINGS:
                channels = parse_channels(source.read(info), CHANNEL_LISTINGS[name], name)
                self._assign_channels(export, CHANNEL_LISTINGS[name], channels)
                self._stats.items_collected += len(channels)
            elif name == USERS_FILE:
                export.users = parse_users(source.read(info))
                self._stats.items_collected += len(export.users)
            else:
                parts = name.split("/")
                if len(parts) == 2 and parts[1].endswith(".json"):
                    posts = parse_posts(source.read(info), name, self._stats)
                    export.posts.setdefault(parts[0], []).extend(posts)
                    self._stats.items_collected += len(posts)
                elif len(parts) == 3 and parts[0] == UPLOADS_DIR:
                    export.uploads[parts[1]] = info

        logger.info(
            "slack_export_parsed",
            team=self.team_name,
            public_channels=len(export.public_channels),
            private_channels=len(export.private_channels),
            group_channels=len(export.group_channels),
            direct_channels=len(export.direct_channels),
            users=len(export.users),
            message_dirs=len(export.posts),
            uploads=len(export.uploads),
        )
        return export

    @staticmethod
    def _assign_channels(
        export: SlackExport, channel_type: ChannelType, channels: list[SlackChannel]
    ) -> None:
        if channel_type == ChannelType.OPEN:
            export.public_channels = channels
        elif channel_type == ChannelType.PRIVATE:
            export.private_channels = channels
        elif channel_type == ChannelType.GROUP:
            export.group_channels = channels
        else:
            export.direct_channels = channels


def parse_slack_export(archive: zipfile.ZipFile, team_name: str) -> SlackExport:
    """Parse a Slack export archive for ``team_name``.

    Args:
        archive: The open export archive. It must stay open while the export
            is transformed, since uploads are read from it lazily.
        team_name: Name of the team the data will be imported into.

    Returns:
        The parsed export.

    Raises:
        ExportStructureError: If ``channels.json`` or ``users.json`` is missing
            or a root listing is malformed.
    """
    return SlackCollector(team_name).run(archive)


__all__ = [
    "CHANNEL_LISTINGS",
    "REQUIRED_FILES",
    "SlackCollector",
    "check_for_required_file",
    "parse_channels",
    "parse_posts",
    "parse_slack_export",
    "parse_users",
    "precheck",
]
