"""Base transformer interface for converting provider exports into the canonical model.

This module defines the abstract base class shared by the provider
transformers, and the rules every provider follows: user registration with
unique usernames, channel registration with unique handles, membership
propagation, thread assembly with timestamp de-duplication, and attachment
overflow splitting.

Example usage:
    class SlackTransformer(BaseTransformer[SlackExport]):
        source_name = "slack"

        def transform(self, export: SlackExport) -> Intermediate:
            for user in export.users:
                self.add_user(IntermediateUser(id=user.id, username=user.username))
            ...
            return self.finish()
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from chatmover.config import TransformSettings
from chatmover.schemas.intermediate import (
    CHANNEL_NAME_MAX_LENGTH,
    POST_PROPS_MAX_RUNES,
    ChannelType,
    Intermediate,
    IntermediateChannel,
    IntermediatePost,
    IntermediateUser,
)
from chatmover.transformers.attachments import reserve_timestamp, split_attachment_overflow
from chatmover.transformers.emoji import EmojiTable
from chatmover.transformers.text import DEFAULT_MAX_MESSAGE_LENGTH, deduplicate, sanitize_username

logger = structlog.get_logger(__name__)

# Type variable for provider exports
# Each collector produces its own export type (SlackExport, TelegramExport)
ExportT = TypeVar("ExportT")


@dataclass
class TransformOptions:
    """Switches controlling a transform run.

    Attributes:
        skip_convert_posts: Keep provider markup and mention tokens as they are.
        skip_attachments: Do not copy or reference attached files.
        allow_download: Download Slack files missing from the archive.
        discard_invalid_props: Drop posts whose props exceed the size limit
            instead of dropping only the props.
        skip_empty_emails: Export users without email with a blank address.
        default_email_domain: Domain for generated ``<username>@<domain>`` emails.
        auth_service: Authentication service recorded on every user.
        max_message_length: Longer messages are split into replies.
        channel_only: Only transform the channel with this name.
        attachments_dir: Directory that receives ``bulk-export-attachments``.
    """

    skip_convert_posts: bool = False
    skip_attachments: bool = False
    allow_download: bool = False
    discard_invalid_props: bool = False
    skip_empty_emails: bool = False
    default_email_domain: str = ""
    auth_service: str = ""
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH
    channel_only: str = ""
    attachments_dir: str = "data"

    @classmethod
    def from_settings(cls, settings: TransformSettings, **overrides: Any) -> "TransformOptions":
        """Build options from settings, with keyword arguments taking precedence."""
        values: dict[str, Any] = {
            "skip_empty_emails": settings.skip_empty_emails,
            "default_email_domain": settings.default_email_domain,
            "auth_service": settings.auth_service,
            "max_message_length": settings.max_message_length,
            "attachments_dir": settings.attachments_dir,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


def props_fit(props: dict[str, Any]) -> bool:
    """Whether the JSON form of ``props`` stays within the import size limit."""
    return len(json.dumps(props, ensure_ascii=False)) <= POST_PROPS_MAX_RUNES


class ChannelThreads:
    """Assembles the root posts of one channel.

    Posts are placed in creation order and keyed by their provider message
    key. A post naming a parent key becomes a reply of that parent's root post.
    Every placed post and reply gets a timestamp unique within the channel.
    """

    def __init__(self, channel: IntermediateChannel) -> None:
        self.channel = channel
        self.timestamps: set[int] = set()
        self._roots: dict[str, IntermediatePost] = {}
        self._root_of: dict[str, str] = {}

    def place(self, post: IntermediatePost, key: str, parent_key: str | None = None) -> bool:
        """Add ``post`` as a root or as a reply.

        Returns:
            False when the parent is unknown and the post was dropped.
        """
        if self.channel.is_direct:
            post.is_direct = True
            post.channel_members = list(self.channel.members_usernames)
        else:
            post.is_direct = False
            post.channel = self.channel.name

        post.create_at = reserve_timestamp(post.create_at, self.timestamps)
        for reply in post.replies:
            reply.create_at = reserve_timestamp(reply.create_at, self.timestamps)

        if parent_key is not None and parent_key != key:
            root_key = self._root_of.get(parent_key, parent_key)
            root = self._roots.get(root_key)
            if root is None:
                logger.warning(
                    "orphaned_reply_dropped",
                    channel=self.channel.name,
                    message_key=key,
                    parent_key=parent_key,
                )
                return False
            root.replies.append(post)
            root.replies.extend(post.replies)
            post.replies = []
            self._root_of[key] = root_key
            return True

        if key in self._roots:
            logger.warning("thread_root_overwritten", channel=self.channel.name, message_key=key)
        self._roots[key] = post
        self._root_of[key] = key
        return True

    def finish(self) -> list[IntermediatePost]:
        """Return the root posts with attachment overflow moved into extra replies."""
        posts = list(self._roots.values())
        for post in posts:
            replies = split_attachment_overflow(post, self.timestamps)
            for reply in post.replies:
                replies.append(reply)
                replies.extend(split_attachment_overflow(reply, self.timestamps))
            post.replies = replies
        return posts


class BaseTransformer(ABC, Generic[ExportT]):
    """Abstract base class for turning a provider export into an :class:`Intermediate`.

    Type Parameters:
        ExportT: The provider export this transformer consumes.

    Attributes:
        source_name: Identifier for the provider (e.g. "slack", "telegram").
        team_name: Team every channel and user is imported into.
        intermediate: The model being built.
    """

    source_name: str = "unknown"

    def __init__(
        self,
        team_name: str,
        options: TransformOptions | None = None,
        emoji_table: EmojiTable | None = None,
    ) -> None:
        """Initialize the transformer.

        Args:
            team_name: Name of the target team.
            options: Transform switches; defaults apply when omitted.
            emoji_table: Shared emoji lookup. Built from the ``emoji`` package
                when omitted.
        """
        self.team_name = team_name
        self.options = options or TransformOptions()
        self.emoji_table = emoji_table or EmojiTable.default()
        self.intermediate = Intermediate()
        self._taken_usernames: set[str] = set()
        self._taken_channel_names: set[str] = set()

    @abstractmethod
    def transform(self, export: ExportT) -> Intermediate:
        """Transform ``export`` into the canonical model.

        Raises:
            MissingEmailError: If a user has no email and the options allow
                neither a generated nor a blank one.
        """
        ...

    def channel_selected(self, name: str) -> bool:
        """Whether a channel passes the ``channel_only`` filter."""
        if self.options.channel_only and name != self.options.channel_only:
            logger.info("channel_skipped_by_filter", channel=name, channel_only=self.options.channel_only)
            return False
        return True

    def add_user(self, user: IntermediateUser) -> IntermediateUser:
        """Normalize and register ``user``.

        The username is sanitized, falling back to the lowercased ID, and made
        unique with a numeric suffix. The email is lowercased and completed
        according to the options.
        """
        username = sanitize_username(user.username) or sanitize_username(user.id) or user.id.lower()
        unique = deduplicate(username, self._taken_usernames)
        if unique != username:
            logger.warning("username_deduplicated", user_id=user.id, username=username, renamed_to=unique)
        user.username = unique
        user.email = user.email.strip().lower()
        if self.options.auth_service and not user.auth_service:
            user.auth_service = self.options.auth_service
            user.auth_data = user.auth_data or user.email or user.username

        user.sanitise(self.options.default_email_domain, self.options.skip_empty_emails)
        self.intermediate.users_by_id[user.id] = user
        return user

    def placeholder_user(self, user_id: str) -> IntermediateUser:
        """Return the user with ``user_id``, creating a "Deleted User" when unknown."""
        existing = self.intermediate.users_by_id.get(user_id)
        if existing is not None:
            return existing
        logger.warning("placeholder_user_created", user_id=user_id)
        user = IntermediateUser(
            id=user_id,
            username=user_id.lower(),
            first_name="Deleted",
            last_name="User",
            email=f"{user_id}@local".lower(),
        )
        return self.add_user(user)

    def add_channel(self, channel: IntermediateChannel) -> IntermediateChannel:
        """Sanitize ``channel`` and append it to the list matching its type.

        Open and private channel handles are made unique within the team.
        """
        channel.sanitise()
        if not channel.is_direct:
            name = deduplicate(channel.name, self._taken_channel_names, "-", CHANNEL_NAME_MAX_LENGTH)
            if name != channel.name:
                logger.warning("channel_name_deduplicated", channel_id=channel.id, name=channel.name, renamed_to=name)
                channel.name = name

        target = {
            ChannelType.OPEN: self.intermediate.public_channels,
            ChannelType.PRIVATE: self.intermediate.private_channels,
            ChannelType.GROUP: self.intermediate.group_channels,
            ChannelType.DIRECT: self.intermediate.direct_channels,
        }[channel.type]
        target.append(channel)
        return channel

    def populate_user_memberships(self) -> None:
        """Record on every user the open and private channels listing them as member."""
        logger.info("populating_user_memberships", users=len(self.intermediate.users_by_id))
        named_channels = [*self.intermediate.public_channels, *self.intermediate.private_channels]
        for user_id, user in self.intermediate.users_by_id.items():
            user.memberships = [channel.name for channel in named_channels if user_id in channel.members]

    def populate_channel_memberships(self) -> None:
        """Resolve group and direct channel members to usernames."""
        users = self.intermediate.users_by_id
        for channel in [*self.intermediate.group_channels, *self.intermediate.direct_channels]:
            channel.members_usernames = [users[member].username for member in channel.members if member in users]

    def valid_members(self, members: list[str]) -> list[str]:
        """Members that are known users, in order."""
        return [member for member in members if member in self.intermediate.users_by_id]

    def finish(self) -> Intermediate:
        """Log a summary and return the model."""
        intermediate = self.intermediate
        logger.info(
            "transform_finished",
            source=self.source_name,
            team=self.team_name,
            users=len(intermediate.users_by_id),
            public_channels=len(intermediate.public_channels),
            private_channels=len(intermediate.private_channels),
            group_channels=len(intermediate.group_channels),
            direct_channels=len(intermediate.direct_channels),
            posts=len(intermediate.posts),
        )
        return intermediate

    def __repr__(self) -> str:
        """Return a string representation of the transformer."""
        return f"{self.__class__.__name__}(source={self.source_name!r}, team={self.team_name!r})"


__all__ = [
    "BaseTransformer",
    "ChannelThreads",
    "ExportT",
    "TransformOptions",
    "props_fit",
]
