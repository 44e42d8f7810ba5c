"""Slack transformer for converting a parsed Slack export into the canonical model.

Key features:
- Builds users, with a "Deleted User" placeholder for authors missing from
  ``users.json``
- Turns group messages with more than eight members into private channels
- Rewrites mentions and markup to markdown
- Rebuilds threads from ``thread_ts`` and de-duplicates timestamps per channel
- Copies attached files out of the archive, or downloads them when allowed

Example usage:
    export = parse_slack_export(archive, team_name="acme")
    transformer = SlackTransformer("acme", options, emoji_table=EmojiTable.default())
    intermediate = transformer.transform(export)
"""

import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from chatmover.collectors.slack.models import SlackChannel, SlackExport, SlackFile, SlackPost, SlackReaction, SlackUser
from chatmover.download import download_into
from chatmover.errors import DownloadError
from chatmover.schemas.intermediate import (
    CHANNEL_GROUP_MAX_USERS,
    ChannelType,
    Intermediate,
    IntermediateChannel,
    IntermediatePost,
    IntermediateReaction,
    IntermediateUser,
    PostType,
    sanitize_channel_handle,
)
from chatmover.transformers.base import BaseTransformer, ChannelThreads, TransformOptions, props_fit
from chatmover.transformers.emoji import EmojiTable
from chatmover.transformers.markup import convert_slack_markup, convert_slack_mentions
from chatmover.transformers.text import convert_slack_timestamp, normalized_attachment_path, split_message

logger = structlog.get_logger(__name__)

HUDDLE_MESSAGE = "Call ended"

# Type alias for the download function: (destination, url, expected size)
Downloader = Callable[[Path, str, int], None]


def build_huddle_props(post: SlackPost) -> dict[str, Any]:
    """Props of the call post that replaces a huddle thread message."""
    start_at = end_at = 0
    if post.room is not None:
        start_at = post.room.date_start * 1000
        end_at = post.room.date_end * 1000
    return {
        "title": "",
        "start_at": start_at,
        "end_at": end_at,
        "attachments": [{"id": 0, "text": HUDDLE_MESSAGE, "fallback": HUDDLE_MESSAGE}],
        "from_plugin": True,
    }


class SlackTransformer(BaseTransformer[SlackExport]):
    """Transformer for Slack workspace exports.

    Attributes:
        source_name: Identifier for the data source ("slack").
    """

    source_name: str = "slack"

    def __init__(
        self,
        team_name: str,
        options: TransformOptions | None = None,
        emoji_table: EmojiTable | None = None,
        downloader: Downloader | None = None,
    ) -> None:
        """Initialize the Slack transformer.

        Args:
            team_name: Name of the target team.
            options: Transform switches.
            emoji_table: Shared emoji lookup used to validate reaction names.
            downloader: Function fetching a file URL into a path. Defaults to
                the resumable :func:`~chatmover.download.download_into`.
        """
        super().__init__(team_name, options, emoji_table)
        self._downloader = downloader or download_into
        self._channels_by_original_name: dict[str, IntermediateChannel] = {}
        self._usernames: dict[str, str] = {}
        self._channel_names: dict[str, str] = {}

    def transform(self, export: SlackExport) -> Intermediate:
        self.transform_users(export.users)
        self.transform_all_channels(export)
        self.populate_user_memberships()
        self.populate_channel_memberships()
        self.transform_posts(export)
        return self.finish()

    def transform_users(self, users: list[SlackUser]) -> None:
        logger.info("transforming_users", count=len(users))
        for slack_user in users:
            names = slack_user.profile.real_name.split(" ") if slack_user.profile.real_name else [""]
            delete_at = 0
            if slack_user.deleted:
                delete_at = slack_user.updated * 1000 if slack_user.updated else 1

            user_id = slack_user.id
            if slack_user.is_bot and slack_user.profile.bot_id:
                user_id = slack_user.profile.bot_id

            self.add_user(
                IntermediateUser(
                    id=user_id,
                    username=slack_user.username,
                    email=slack_user.profile.email,
                    first_name=names[0],
                    last_name=" ".join(names[1:]),
                    position=slack_user.profile.title,
                    delete_at=delete_at,
                    is_admin=slack_user.is_admin,
                )
            )

    def transform_channel(self, slack_channel: SlackChannel) -> IntermediateChannel | None:
        """Convert and register one channel, or return None when it is skipped."""
        if not self.channel_selected(slack_channel.name):
            return None

        members = self.valid_members(slack_channel.members)
        channel_type = slack_channel.channel_type
        name = slack_channel.name

        if channel_type in (ChannelType.DIRECT, ChannelType.GROUP) and len(members) <= 1:
            logger.warning(
                "direct_channel_single_member_skipped",
                channel_id=slack_channel.id,
                channel=slack_channel.original_name,
            )
            return None

        if channel_type == ChannelType.GROUP and len(members) > CHANNEL_GROUP_MAX_USERS:
            name = slack_channel.purpose.value
            channel_type = ChannelType.PRIVATE

        handle = sanitize_channel_handle(name, slack_channel.id)
        channel = self.add_channel(
            IntermediateChannel(
                id=slack_channel.id,
                original_name=slack_channel.original_name,
                name=handle,
                display_name=handle,
                type=channel_type,
                members=members,
                purpose=slack_channel.purpose.value,
                header=slack_channel.topic.value,
                topic=slack_channel.topic.value,
                creator=slack_channel.creator,
            )
        )
        self._channels_by_original_name[channel.original_name] = channel

        if not channel.is_direct and channel.creator in self.intermediate.users_by_id:
            self.intermediate.channel_owners.setdefault(channel.creator, []).append(channel.name)
        return channel

    def transform_all_channels(self, export: SlackExport) -> None:
        logger.info("transforming_channels", channel_only=self.options.channel_only or None)
        for slack_channel in export.channels:
            self.transform_channel(slack_channel)

    def transform_posts(self, export: SlackExport) -> None:
        logger.info("transforming_posts")
        self._usernames = {user_id: user.username for user_id, user in self.intermediate.users_by_id.items()}
        self._channel_names = {channel.id: channel.name for channel in self.intermediate.all_channels()}

        for directory in sorted(export.posts):
            channel = self._channels_by_original_name.get(directory)
            if channel is None:
                logger.warning("posts_channel_not_found", channel=directory)
                continue
            if not self.channel_selected(channel.name):
                continue

            logger.info("transforming_channel_posts", channel=channel.name)
            threads = ChannelThreads(channel)
            timed = sorted(
                ((convert_slack_timestamp(post.ts), post) for post in export.posts[directory]),
                key=lambda pair: pair[0],
            )
            for create_at, slack_post in timed:
                post = self.convert_post(slack_post, create_at, export)
                if post is None:
                    continue
                if threads.place(post, slack_post.ts, slack_post.thread_ts or None):
                    post.reactions = self.convert_reactions(slack_post.reactions or [], post.create_at)

            self.intermediate.posts.extend(threads.finish())

    def convert_text(self, text: str) -> str:
        """Rewrite mentions and markup unless conversion is switched off."""
        if self.options.skip_convert_posts:
            return text
        return convert_slack_markup(convert_slack_mentions(text, self._usernames, self._channel_names))

    def convert_post(
        self,
        slack_post: SlackPost,
        create_at: int,
        export: SlackExport,
    ) -> IntermediatePost | None:
        """Build the post for one Slack message, or None when it cannot be imported."""
        text = self.convert_text(slack_post.text)
        if slack_post.is_plain_message():
            if not slack_post.user:
                logger.warning("message_user_missing", ts=slack_post.ts)
                return None
            author = self.placeholder_user(slack_post.user)
            parts = split_message(text, self.options.max_message_length)
            post = IntermediatePost(user=author.username, message=parts[0], create_at=create_at)
            for index, part in enumerate(parts[1:], start=1):
                post.replies.append(IntermediatePost(user=author.username, message=part, create_at=create_at + index))
            self.add_files(slack_post, export, post)
            return self.add_props(slack_post, post)

        if slack_post.is_file_comment():
            if slack_post.comment is None:
                logger.warning("file_comment_missing", ts=slack_post.ts)
                return None
            if not slack_post.comment.user:
                logger.warning("message_user_missing", ts=slack_post.ts)
                return None
            author = self.placeholder_user(slack_post.comment.user)
            message = self.convert_text(slack_post.comment.comment)
            return IntermediatePost(user=author.username, message=message, create_at=create_at)

        if slack_post.is_bot_message():
            bot_id = slack_post.bot_id or slack_post.user
            if not bot_id:
                logger.warning("message_user_missing", ts=slack_post.ts)
                return None
            author = self.placeholder_user(bot_id)
            post = IntermediatePost(user=author.username, message=text, create_at=create_at)
            self.add_files(slack_post, export, post)
            return self.add_props(slack_post, post)

        if slack_post.is_huddle_thread():
            if not slack_post.user:
                logger.warning("message_user_missing", ts=slack_post.ts)
                return None
            poster = slack_post.user
            if slack_post.room is not None and slack_post.room.created_by:
                poster = slack_post.room.created_by
            author = self.placeholder_user(poster)
            return IntermediatePost(
                user=author.username,
                message=HUDDLE_MESSAGE,
                create_at=create_at,
                props=build_huddle_props(slack_post),
                type=PostType.CUSTOM_CALLS.value,
            )

        if (
            slack_post.is_join_leave_message()
            or slack_post.is_me_message()
            or slack_post.is_channel_topic_message()
            or slack_post.is_channel_purpose_message()
            or slack_post.is_channel_name_message()
        ):
            if not slack_post.user:
                logger.warning("message_user_missing", ts=slack_post.ts)
                return None
            author = self.placeholder_user(slack_post.user)
            post_type = None
            if slack_post.subtype == "channel_join":
                post_type = PostType.JOIN_CHANNEL.value
            elif slack_post.subtype == "channel_leave":
                post_type = PostType.LEAVE_CHANNEL.value
            return IntermediatePost(user=author.username, message=text, create_at=create_at, type=post_type)

        logger.warning("message_type_unsupported", post_type=slack_post.type, post_subtype=slack_post.subtype)
        return None

    def add_props(self, slack_post: SlackPost, post: IntermediatePost) -> IntermediatePost | None:
        """Attach Slack message attachments as props, honoring the size limit."""
        if not slack_post.attachments:
            return post
        props: dict[str, Any] = {"attachments": slack_post.attachments}
        if props_fit(props):
            post.props = props
            return post
        if self.options.discard_invalid_props:
            logger.warning("post_discarded_props_too_large", ts=slack_post.ts)
            return None
        logger.warning("post_props_dropped_too_large", ts=slack_post.ts)
        return post

    def add_files(self, slack_post: SlackPost, export: SlackExport, post: IntermediatePost) -> None:
        if self.options.skip_attachments:
            return
        files: list[SlackFile] = []
        if slack_post.file is not None:
            files = [slack_post.file]
        elif slack_post.files:
            files = slack_post.files

        for slack_file in files:
            if not slack_file.name:
                logger.warning("file_access_denied", file_id=slack_file.id)
                continue
            try:
                self.add_file(slack_file, export, post)
            except (DownloadError, OSError) as e:
                logger.error("attachment_failed", file_id=slack_file.id, error=str(e))

    def add_file(self, slack_file: SlackFile, export: SlackExport, post: IntermediatePost) -> None:
        """Place one file under the attachments directory and reference it from ``post``.

        Raises:
            DownloadError: If a download fails or does not match a partial file.
            OSError: If the file cannot be written.
        """
        relative_path = normalized_attachment_path(slack_file.id, slack_file.name)
        destination = Path(self.options.attachments_dir) / relative_path
        upload = export.uploads.get(slack_file.id)

        if upload is None and not (self.options.allow_download and slack_file.url_private_download):
            logger.warning("attachment_not_in_archive", file_id=slack_file.id, file=slack_file.name)
            return

        destination.parent.mkdir(parents=True, exist_ok=True)
        if upload is not None and export.archive is not None:
            with export.archive.open(upload) as source, destination.open("wb") as target:
                shutil.copyfileobj(source, target)
            logger.debug("attachment_copied", file_id=slack_file.id, path=relative_path)
        else:
            logger.info("attachment_downloading", url=slack_file.url_private_download, path=relative_path)
            self._downloader(destination, slack_file.url_private_download, slack_file.size)

        post.attachments.append(relative_path)

    def convert_reactions(self, reactions: list[SlackReaction], post_create_at: int) -> list[IntermediateReaction]:
        result: list[IntermediateReaction] = []
        for reaction in reactions:
            if not self.emoji_table.is_known_name(reaction.name):
                logger.warning("reaction_emoji_unknown", emoji=reaction.name)
                continue
            emoji_name = reaction.name.split("::", 1)[0]
            for user_id in reaction.users:
                user = self.intermediate.users_by_id.get(user_id)
                if user is None:
                    logger.warning("reaction_user_unknown", user_id=user_id, emoji=emoji_name)
                    continue
                result.append(
                    IntermediateReaction(user=user.username, emoji_name=emoji_name, create_at=post_create_at + 1)
                )
        return result


__all__ = ["HUDDLE_MESSAGE", "Downloader", "SlackTransformer", "build_huddle_props"]
