"""Exception hierarchy for chatmover.

Fatal errors abort a run. Per-record errors (``ChannelPartitionError`` and its
subclasses) are raised by helpers and caught by their callers, which log the
problem and skip the record.
"""


class ChatMoverError(Exception):
    """Base class for all chatmover errors."""


class ExportStructureError(ChatMoverError):
    """A provider export is missing required files or is malformed at the top level."""


class MissingEmailError(ChatMoverError):
    """A user has no email and neither a default domain nor skip_empty_emails was given."""


class ConfigurationError(ChatMoverError):
    """A configuration input such as the team map is missing or malformed."""


class DownloadError(ChatMoverError):
    """An attachment download failed or did not match the partially downloaded file."""


class UserDirectoryError(ChatMoverError):
    """A user lookup against the user directory failed."""


class PartitionIOError(ChatMoverError):
    """Relocating a channel directory or writing a team listing failed."""


class ChannelPartitionError(ChatMoverError):
    """A single channel could not be assigned to a team."""


class TeamIDNotFoundError(ChannelPartitionError):
    """No message in the channel directory declares a team ID."""

    def __init__(self, channel_name: str, channel_id: str) -> None:
        super().__init__(f"Could not find team ID for channel {channel_name}, ID: {channel_id}")
        self.channel_name = channel_name
        self.channel_id = channel_id


class TeamNameNotFoundError(ChannelPartitionError):
    """The inferred team ID has no entry in the team map."""

    def __init__(self, channel_name: str, team_id: str) -> None:
        super().__init__(f"Could not find team name for channel {channel_name} (team {team_id})")
        self.channel_name = channel_name
        self.team_id = team_id


__all__ = [
    "ChannelPartitionError",
    "ChatMoverError",
    "ConfigurationError",
    "DownloadError",
    "ExportStructureError",
    "MissingEmailError",
    "PartitionIOError",
    "TeamIDNotFoundError",
    "TeamNameNotFoundError",
    "UserDirectoryError",
]
