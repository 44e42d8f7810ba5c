"""Canonical in-memory model shared by every provider transformer.

Provider transformers populate an :class:`Intermediate`; the bulk exporter
serializes it. Nothing here knows about Slack or Telegram.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from chatmover.errors import MissingEmailError

logger = structlog.get_logger(__name__)

# Field limits enforced by the import target
CHANNEL_NAME_MAX_LENGTH = 64
CHANNEL_DISPLAY_NAME_MAX_RUNES = 64
CHANNEL_PURPOSE_MAX_RUNES = 250
CHANNEL_HEADER_MAX_RUNES = 1024
USER_FIRST_NAME_MAX_RUNES = 64
USER_LAST_NAME_MAX_RUNES = 64
USER_POSITION_MAX_RUNES = 128
CHANNEL_GROUP_MAX_USERS = 8
POST_PROPS_MAX_RUNES = 800000
POST_MAX_ATTACHMENTS = 5

ATTACHMENTS_INTERNAL = "bulk-export-attachments"

SHORT_CHANNEL_NAME_PREFIX = "slack-channel-"

_VALID_CHANNEL_NAME = re.compile(r"^[a-zA-Z0-9\-_]+$")


def is_valid_channel_name(name: str) -> bool:
    """Return True if ``name`` only uses the characters allowed in channel handles."""
    return bool(_VALID_CHANNEL_NAME.match(name))


def truncate_runes(value: str, limit: int) -> str:
    """Cut ``value`` down to at most ``limit`` code points."""
    if len(value) > limit:
        return value[:limit]
    return value


class ChannelType(str, Enum):
    """Channel kinds understood by the import target."""

    OPEN = "O"
    PRIVATE = "P"
    GROUP = "G"
    DIRECT = "D"


class PostType(str, Enum):
    """Post subtypes emitted by the transformers."""

    JOIN_CHANNEL = "system_join_channel"
    LEAVE_CHANNEL = "system_leave_channel"
    ADD_TO_CHANNEL = "system_add_to_channel"
    GENERIC = "system_generic"
    CUSTOM_CALLS = "custom_calls"


@dataclass
class IntermediateUser:
    """A user as it will be imported.

    Attributes:
        id: Provider ID the user was created from.
        username: Unique, lowercase handle.
        email: Lowercase email, may be blank when empty emails are allowed.
        memberships: Names of the open and private channels the user belongs to.
        delete_at: Deactivation time in milliseconds, 0 for active users.
    """

    id: str
    username: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    position: str = ""
    profile_image: str | None = None
    memberships: list[str] = field(default_factory=list)
    delete_at: int = 0
    auth_service: str = ""
    auth_data: str = ""
    is_admin: bool = False

    def sanitise(self, default_email_domain: str = "", skip_empty_emails: bool = False) -> None:
        """Fill in a missing email and truncate names to the import limits.

        Raises:
            MissingEmailError: If the user has no email and neither a default
                domain nor ``skip_empty_emails`` was given.
        """
        if not self.email:
            if skip_empty_emails:
                logger.warning("user_email_blank", username=self.username)
            elif default_email_domain:
                self.email = f"{self.username}@{default_email_domain}".lower()
                logger.warning("user_email_generated", username=self.username, email=self.email)
            else:
                raise MissingEmailError(
                    f"User {self.username} does not have an email address in the export. "
                    "Provide an email domain with --default-email-domain, or use "
                    "--skip-empty-emails to set the email to an empty string."
                )

        if len(self.first_name) > USER_FIRST_NAME_MAX_RUNES:
            logger.warning("user_first_name_truncated", username=self.username)
            self.first_name = truncate_runes(self.first_name, USER_FIRST_NAME_MAX_RUNES)

        if len(self.last_name) > USER_LAST_NAME_MAX_RUNES:
            logger.warning("user_last_name_truncated", username=self.username)
            self.last_name = truncate_runes(self.last_name, USER_LAST_NAME_MAX_RUNES)

        if len(self.position) > USER_POSITION_MAX_RUNES:
            logger.warning("user_position_truncated", username=self.username)
            self.position = truncate_runes(self.position, USER_POSITION_MAX_RUNES)


@dataclass
class IntermediateChannel:
    """A channel as it will be imported.

    ``members`` holds provider user IDs. ``members_usernames`` is only filled
    for group and direct channels, which are exported with explicit members.
    """

    id: str
    original_name: str
    name: str
    display_name: str
    type: ChannelType
    members: list[str] = field(default_factory=list)
    members_usernames: list[str] = field(default_factory=list)
    purpose: str = ""
    header: str = ""
    topic: str = ""
    creator: str = ""

    @property
    def is_direct(self) -> bool:
        """Group and direct channels are addressed by their member list."""
        return self.type in (ChannelType.DIRECT, ChannelType.GROUP)

    def sanitise(self) -> None:
        """Normalize the handle and display name and truncate long texts."""
        if self.type == ChannelType.DIRECT:
            return

        if len(self.name.strip("_-")) > CHANNEL_NAME_MAX_LENGTH:
            logger.warning("channel_name_truncated", channel=self.display_name)
        self.name = sanitize_channel_handle(self.name, self.id)

        display_name = self.display_name.strip("_-")
        if len(display_name) > CHANNEL_DISPLAY_NAME_MAX_RUNES:
            logger.warning("channel_display_name_truncated", channel=display_name)
            display_name = truncate_runes(display_name, CHANNEL_DISPLAY_NAME_MAX_RUNES)
        if len(display_name) == 1:
            display_name = SHORT_CHANNEL_NAME_PREFIX + display_name
        if not is_valid_channel_name(display_name):
            display_name = self.id.lower()
        self.display_name = display_name

        if len(self.purpose) > CHANNEL_PURPOSE_MAX_RUNES:
            logger.warning("channel_purpose_truncated", channel=self.display_name)
            self.purpose = truncate_runes(self.purpose, CHANNEL_PURPOSE_MAX_RUNES)

        if len(self.header) > CHANNEL_HEADER_MAX_RUNES:
            logger.warning("channel_header_truncated", channel=self.display_name)
            self.header = truncate_runes(self.header, CHANNEL_HEADER_MAX_RUNES)


def sanitize_channel_handle(name: str, channel_id: str) -> str:
    """Turn a provider channel name into a valid, stable channel handle.

    Leading and trailing ``_``/``-`` are stripped, long names are cut to the
    handle limit, single characters get a prefix, and names with characters
    outside ``[a-zA-Z0-9_-]`` fall back to the lowercased channel ID. Applying
    the function to its own output returns it unchanged.

    Example:
        >>> sanitize_channel_handle("-x-", "C1")
        'slack-channel-x'
        >>> sanitize_channel_handle("dev ops", "C0123")
        'c0123'
    """
    new_name = name.strip("_-")
    if len(new_name) > CHANNEL_NAME_MAX_LENGTH:
        new_name = new_name[:CHANNEL_NAME_MAX_LENGTH].rstrip("_-")
    if len(new_name) == 1:
        return SHORT_CHANNEL_NAME_PREFIX + new_name
    if is_valid_channel_name(new_name):
        return new_name
    return channel_id.lower()


@dataclass
class IntermediateReaction:
    user: str
    emoji_name: str
    create_at: int


@dataclass
class IntermediatePost:
    """A root post or a reply.

    ``channel`` is used for open and private channels, ``channel_members``
    when ``is_direct`` is set. Replies and reactions are owned by the post.
    """

    user: str
    channel: str = ""
    message: str = ""
    props: dict[str, Any] | None = None
    create_at: int = 0
    type: str | None = None
    attachments: list[str] = field(default_factory=list)
    replies: list["IntermediatePost"] = field(default_factory=list)
    reactions: list[IntermediateReaction] = field(default_factory=list)
    is_direct: bool = False
    channel_members: list[str] = field(default_factory=list)


@dataclass
class Intermediate:
    """Everything one transform run produces for a single team."""

    public_channels: list[IntermediateChannel] = field(default_factory=list)
    private_channels: list[IntermediateChannel] = field(default_factory=list)
    group_channels: list[IntermediateChannel] = field(default_factory=list)
    direct_channels: list[IntermediateChannel] = field(default_factory=list)
    users_by_id: dict[str, IntermediateUser] = field(default_factory=dict)
    posts: list[IntermediatePost] = field(default_factory=list)
    channel_owners: dict[str, list[str]] = field(default_factory=dict)

    def all_channels(self) -> list[IntermediateChannel]:
        """Channels in export order: public, private, group, direct."""
        return [
            *self.public_channels,
            *self.private_channels,
            *self.group_channels,
            *self.direct_channels,
        ]


__all__ = [
    "ATTACHMENTS_INTERNAL",
    "CHANNEL_DISPLAY_NAME_MAX_RUNES",
    "CHANNEL_GROUP_MAX_USERS",
    "CHANNEL_HEADER_MAX_RUNES",
    "CHANNEL_NAME_MAX_LENGTH",
    "CHANNEL_PURPOSE_MAX_RUNES",
    "POST_MAX_ATTACHMENTS",
    "POST_PROPS_MAX_RUNES",
    "ChannelType",
    "Intermediate",
    "IntermediateChannel",
    "IntermediatePost",
    "IntermediateReaction",
    "IntermediateUser",
    "PostType",
    "is_valid_channel_name",
    "sanitize_channel_handle",
    "truncate_runes",
]
