"""Enterprise Grid export partitioning.

A Grid export holds the channels of every workspace of an organization in a
single archive. Channels do not record which workspace they belong to; the
``team`` field of their messages does. Partitioning extracts the archive,
infers the team of every channel from its messages and moves each channel
directory into a per-team tree that is a regular workspace export:

    tmp/slack_grid/
        channels.json  groups.json  mpims.json  dms.json  users.json
        teams/
            engineering/
                channels.json  groups.json  mpims.json  dms.json  users.json
                general/2024-01-15.json
            sales/
                ...

Each team tree is finally zipped into ``<team-name>.zip``.

Example usage:
    transformer = GridTransformer(load_team_map("teams.json"))
    with zipfile.ZipFile("grid.zip") as archive:
        if grid_precheck(archive):
            transformer.extract(archive)
            transformer.partition(transformer.parse_grid_export(archive))
    transformer.copy_user_listings()
    transformer.write_missing_listings()
    transformer.zip_team_directories(".")
"""

import json
import shutil
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from chatmover.archive import extract_directory, zip_directory
from chatmover.collectors.base import RawModel
from chatmover.collectors.slack.models import SlackChannel
from chatmover.collectors.slack.parser import parse_channels, precheck
from chatmover.errors import (
    ChannelPartitionError,
    ConfigurationError,
    PartitionIOError,
    TeamIDNotFoundError,
    TeamNameNotFoundError,
)
from chatmover.schemas.intermediate import ChannelType

logger = structlog.get_logger(__name__)

DEFAULT_DIR_PATH = "tmp/slack_grid"
TEAMS_DIR = "teams"
USER_LISTINGS: tuple[str, ...] = ("users.json", "org_users.json")
MOVE_PROGRESS_INTERVAL = 100


class ChannelCategory(str, Enum):
    """Channel listings of a Grid export, by file stem."""

    PUBLIC = "channels"
    PRIVATE = "groups"
    GM = "mpims"
    DM = "dms"

    @property
    def listing(self) -> str:
        return f"{self.value}.json"

    @property
    def channel_type(self) -> ChannelType:
        return _CATEGORY_TYPES[self]


_CATEGORY_TYPES: dict[ChannelCategory, ChannelType] = {
    ChannelCategory.PUBLIC: ChannelType.OPEN,
    ChannelCategory.PRIVATE: ChannelType.PRIVATE,
    ChannelCategory.GM: ChannelType.GROUP,
    ChannelCategory.DM: ChannelType.DIRECT,
}

GRID_REQUIRED_FILES: tuple[str, ...] = tuple(category.listing for category in ChannelCategory)

_team_map_adapter = TypeAdapter(dict[str, str])


class GridPost(RawModel):
    """The team field of a message in a Grid export."""

    team: str = ""


_grid_posts_adapter = TypeAdapter(list[GridPost])


@dataclass
class GridSlackExport:
    """Root channel listings of a Grid export."""

    public: list[SlackChannel] = field(default_factory=list)
    private: list[SlackChannel] = field(default_factory=list)
    gms: list[SlackChannel] = field(default_factory=list)
    dms: list[SlackChannel] = field(default_factory=list)

    def by_category(self) -> list[tuple[ChannelCategory, list[SlackChannel]]]:
        """Listings in the order they are partitioned."""
        return [
            (ChannelCategory.PUBLIC, self.public),
            (ChannelCategory.PRIVATE, self.private),
            (ChannelCategory.GM, self.gms),
            (ChannelCategory.DM, self.dms),
        ]


@dataclass
class ChannelsToMove:
    """A channel whose team is known and that is ready to be relocated.

    Attributes:
        channel: The channel descriptor from the root listing.
        team_id: Team ID found in the channel's messages.
        team_name: Team name the ID maps to.
        path: Directory name of the channel, its name or its ID for DMs.
        moved: Set once the directory has been relocated.
    """

    channel: SlackChannel
    team_id: str
    team_name: str
    path: str
    moved: bool = False


def load_team_map(path: str | Path) -> dict[str, str]:
    """Read a team map, a JSON object of team ID to team name.

    Raises:
        ConfigurationError: If the file is missing or not a string mapping.
    """
    try:
        return _team_map_adapter.validate_json(Path(path).read_bytes())
    except OSError as e:
        raise ConfigurationError(f"Error reading team map {path}: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(f"Error parsing team map {path}: {e}") from e


def grid_precheck(archive: zipfile.ZipFile) -> bool:
    """Check that the four channel listings sit at the archive root."""
    return precheck(archive, GRID_REQUIRED_FILES)


def channel_dir_name(channel: SlackChannel, category: ChannelCategory) -> str:
    """DMs are stored under their ID, every other channel under its name."""
    if category == ChannelCategory.DM:
        return channel.id
    return channel.name


def find_team_id_from_posts(data: bytes) -> str:
    """Return the first non-empty ``team`` of a message file, or ``""``.

    Raises:
        ValidationError: If the file is not a JSON array of messages.
    """
    for post in _grid_posts_adapter.validate_json(data):
        if post.team:
            return post.team
    return ""


class GridTransformer:
    """Splits a Grid export into one workspace export per team.

    Attributes:
        teams: Team ID to team name.
        dir_path: Directory the export is extracted into and partitioned in.
    """

    def __init__(self, teams: dict[str, str], dir_path: str | Path | None = None) -> None:
        self.teams = teams
        self.dir_path = Path(dir_path) if dir_path is not None else Path.cwd() / DEFAULT_DIR_PATH
        self._moved_ids: set[str] = set()

    @property
    def teams_dir(self) -> Path:
        return self.dir_path / TEAMS_DIR

    def extract(self, archive: zipfile.ZipFile) -> bool:
        """Extract ``archive`` into :attr:`dir_path` unless it already has content."""
        return extract_directory(archive, self.dir_path)

    def parse_grid_export(self, archive: zipfile.ZipFile) -> GridSlackExport:
        """Read the root channel listings of ``archive``.

        Raises:
            ExportStructureError: If a listing is malformed.
        """
        export = GridSlackExport()
        names = set(archive.namelist())
        for category, channels in export.by_category():
            if category.listing in names:
                channels.extend(parse_channels(archive.read(category.listing), category.channel_type, category.listing))
        logger.info(
            "grid_export_parsed",
            public=len(export.public),
            private=len(export.private),
            gms=len(export.gms),
            dms=len(export.dms),
        )
        return export

    def partition(self, export: GridSlackExport) -> dict[str, int]:
        """Move the channels of every listing into their team directories.

        Returns:
            Number of channels moved per listing.
        """
        moved: dict[str, int] = {}
        for category, channels in export.by_category():
            moved[category.value] = self.handle_moving_channels(channels, category)
        return moved

    def handle_moving_channels(self, channels: list[SlackChannel], category: ChannelCategory) -> int:
        """Find the team of every channel of one listing and relocate it.

        Channels whose team cannot be determined are logged and left in place.

        Returns:
            Number of channels moved.

        Raises:
            PartitionIOError: If a directory cannot be moved or a team listing
                cannot be written.
        """
        logger.info("moving_channels", category=category.value, channels=len(channels), dir_path=str(self.dir_path))
        channels_to_move = self.get_channels_to_move(channels, category)
        return self.move_channels(channels_to_move, category)

    def get_channels_to_move(self, channels: list[SlackChannel], category: ChannelCategory) -> list[ChannelsToMove]:
        """Resolve the team of each channel, skipping the ones that fail."""
        channels_to_move: list[ChannelsToMove] = []
        for channel in channels:
            if channel.id in self._moved_ids:
                logger.debug("channel_already_moved", channel_id=channel.id)
                continue
            try:
                team_id = self.find_team_id_for_channel(channel, category)
                move = self.create_move_channel(channel, team_id, category)
            except ChannelPartitionError as e:
                logger.error("channel_team_unresolved", channel=channel.name, channel_id=channel.id, error=str(e))
                continue
            logger.debug("channel_to_move", channel=move.path, team=move.team_name)
            channels_to_move.append(move)
        return channels_to_move

    def find_team_id_for_channel(self, channel: SlackChannel, category: ChannelCategory) -> str:
        """Locate the channel directory and read its team ID.

        Raises:
            TeamIDNotFoundError: If the directory is missing or declares no team.
        """
        dir_name = channel_dir_name(channel, category)
        if not dir_name or not (self.dir_path / dir_name).is_dir():
            raise TeamIDNotFoundError(channel.name, channel.id)
        return self.find_team_id_from_channel_dir(dir_name, channel.id)

    def find_team_id_from_channel_dir(self, dir_name: str, channel_id: str = "") -> str:
        """Return the first team ID declared by the messages of a channel directory.

        Message files are read in file name order, so the earliest day that
        names a team wins.

        Raises:
            TeamIDNotFoundError: If no message declares a team.
        """
        channel_path = self.dir_path / dir_name
        try:
            post_files = sorted(path for path in channel_path.iterdir() if path.is_file())
        except OSError as e:
            raise TeamIDNotFoundError(dir_name, channel_id) from e

        for post_file in post_files:
            try:
                team_id = find_team_id_from_posts(post_file.read_bytes())
            except (OSError, ValidationError) as e:
                logger.warning("message_file_unreadable", file=str(post_file), error=str(e))
                continue
            if team_id:
                return team_id
        raise TeamIDNotFoundError(dir_name, channel_id)

    def create_move_channel(self, channel: SlackChannel, team_id: str, category: ChannelCategory) -> ChannelsToMove:
        """Pair a channel with its team name.

        Raises:
            TeamNameNotFoundError: If the team ID is not in the team map.
        """
        team_name = self.teams.get(team_id, "")
        if not team_name:
            raise TeamNameNotFoundError(channel.name or channel.id, team_id)
        return ChannelsToMove(
            channel=channel,
            team_id=team_id,
            team_name=team_name,
            path=channel_dir_name(channel, category),
        )

    def move_channels(self, channels_to_move: list[ChannelsToMove], category: ChannelCategory) -> int:
        total = len(channels_to_move)
        logger.info("moving_channels_started", category=category.value, total=total)
        for index, move in enumerate(channels_to_move):
            if total > MOVE_PROGRESS_INTERVAL and index % MOVE_PROGRESS_INTERVAL == 0:
                logger.info("move_progress", category=category.value, moved=index, total=total)
            self.perform_channel_move(move, category)
        logger.info("moving_channels_finished", category=category.value, total=total)
        return total

    def perform_channel_move(self, move: ChannelsToMove, category: ChannelCategory) -> None:
        """Relocate one channel directory and record it in its team's listing.

        Raises:
            PartitionIOError: If the move or the listing update fails.
        """
        logger.debug(
            "moving_channel",
            channel=move.path,
            team=move.team_name,
            team_id=move.team_id,
            channel_id=move.channel.id,
        )
        source = self.dir_path / move.path
        destination = self.teams_dir / move.team_name / move.path
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            source.rename(destination)
        except OSError as e:
            raise PartitionIOError(f"error moving channel {move.path} to team {move.team_name}: {e}") from e

        move.moved = True
        self._moved_ids.add(move.channel.id)
        self.append_channel_to_team_listing(move, category)

    def append_channel_to_team_listing(self, move: ChannelsToMove, category: ChannelCategory) -> None:
        """Add the channel descriptor to ``teams/<team>/<listing>``.

        Raises:
            PartitionIOError: If the listing cannot be read or written.
        """
        path = self.teams_dir / move.team_name / category.listing
        try:
            channels = json.loads(path.read_bytes()) if path.exists() else []
            channels.append(move.channel.model_dump(mode="json"))
            path.write_text(json.dumps(channels), encoding="utf-8")
        except (OSError, json.JSONDecodeError) as e:
            raise PartitionIOError(f"error appending channel {move.path} to team {move.team_name}: {e}") from e

    def team_directories(self) -> list[Path]:
        if not self.teams_dir.is_dir():
            return []
        return sorted(path for path in self.teams_dir.iterdir() if path.is_dir())

    def copy_user_listings(self) -> int:
        """Copy the root user listings into every team directory.

        Returns:
            Number of files copied.
        """
        copied = 0
        for listing in USER_LISTINGS:
            source = self.dir_path / listing
            if not source.is_file():
                continue
            for team_dir in self.team_directories():
                try:
                    shutil.copyfile(source, team_dir / listing)
                except OSError as e:
                    raise PartitionIOError(f"error copying {listing} to {team_dir.name}: {e}") from e
                copied += 1
        logger.info("user_listings_copied", files=copied)
        return copied

    def write_missing_listings(self) -> int:
        """Write an empty listing for every channel category a team has no channel in.

        A team archive then carries all the listings a workspace export
        needs, e.g. ``channels.json`` for a team with only private channels.

        Returns:
            Number of listings written.

        Raises:
            PartitionIOError: If a listing cannot be written.
        """
        written = 0
        for team_dir in self.team_directories():
            for category in ChannelCategory:
                path = team_dir / category.listing
                if path.exists():
                    continue
                try:
                    path.write_text("[]", encoding="utf-8")
                except OSError as e:
                    raise PartitionIOError(f"error writing {category.listing} for team {team_dir.name}: {e}") from e
                written += 1
        logger.info("empty_listings_written", files=written)
        return written

    def zip_team_directories(self, output_dir: str | Path) -> list[Path]:
        """Zip each team directory into ``<output_dir>/<team-name>.zip``."""
        team_dirs = self.team_directories()
        logger.info("zipping_team_directories", teams=len(team_dirs))
        return [zip_directory(team_dir, Path(output_dir) / f"{team_dir.name}.zip") for team_dir in team_dirs]


__all__ = [
    "GRID_REQUIRED_FILES",
    "ChannelCategory",
    "ChannelsToMove",
    "GridPost",
    "GridSlackExport",
    "GridTransformer",
    "channel_dir_name",
    "find_team_id_from_posts",
    "grid_precheck",
    "load_team_map",
]
