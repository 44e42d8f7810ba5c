"""Telegram transformer for converting a chat export into the canonical model.

A Telegram export describes a single chat. It becomes one private channel
holding every participant, or a direct channel for a personal chat between
two people.

Key features:
- Users come from message authors, service-message actors and reaction authors
- Text spans are rendered as markdown, ``mention_name`` spans resolved to usernames
- Replies are attached to the thread of the message they answer
- Media files are copied next to the import file; animated stickers are dropped
- Unicode reactions map to emoji names; custom emoji reactions are dropped
"""

import posixpath
import shutil
from pathlib import Path

import structlog

from chatmover.collectors.telegram.models import (
    PlainText,
    TelegramExport,
    TelegramMessage,
    TelegramReaction,
)
from chatmover.collectors.telegram.parser import get_unique_users
from chatmover.schemas.intermediate import (
    ATTACHMENTS_INTERNAL,
    CHANNEL_DISPLAY_NAME_MAX_RUNES,
    ChannelType,
    Intermediate,
    IntermediateChannel,
    IntermediatePost,
    IntermediateReaction,
    IntermediateUser,
    PostType,
    truncate_runes,
)
from chatmover.transformers.base import BaseTransformer, ChannelThreads, TransformOptions
from chatmover.transformers.emoji import EmojiTable
from chatmover.transformers.markup import convert_telegram_spans
from chatmover.transformers.text import sanitize_username, slugify_channel_name, split_message

logger = structlog.get_logger(__name__)

DEFAULT_EMAIL_DOMAIN = "telegram.local"
PERSONAL_CHAT_TYPE = "personal_chat"
ANIMATED_STICKER_MIME_TYPE = "application/x-tgsticker"
ANIMATED_STICKER_SUFFIX = ".tgs"


def is_animated_sticker(message: TelegramMessage) -> bool:
    """Animated stickers have no static representation the import understands."""
    return message.mime_type == ANIMATED_STICKER_MIME_TYPE or message.file.endswith(ANIMATED_STICKER_SUFFIX)


class TelegramTransformer(BaseTransformer[TelegramExport]):
    """Transformer for Telegram chat exports.

    Attributes:
        source_name: Identifier for the data source ("telegram").
        export_dir: Directory holding ``result.json`` and the media it references.
    """

    source_name: str = "telegram"

    def __init__(
        self,
        team_name: str,
        export_dir: str | Path,
        options: TransformOptions | None = None,
        emoji_table: EmojiTable | None = None,
    ) -> None:
        super().__init__(team_name, options, emoji_table)
        self.export_dir = Path(export_dir)
        self._usernames_by_id: dict[str, str] = {}

    def transform(self, export: TelegramExport) -> Intermediate:
        logger.info("telegram_transform_started", chat=export.name, chat_type=export.type)
        self.transform_users(export)
        channel = self.transform_channel(export)
        self.populate_user_memberships()
        self.populate_channel_memberships()
        self.transform_messages(export, channel)
        return self.finish()

    def transform_users(self, export: TelegramExport) -> None:
        domain = self.options.default_email_domain or DEFAULT_EMAIL_DOMAIN
        users = get_unique_users(export)
        logger.info("transforming_users", count=len(users))
        for user_id, info in users.items():
            names = info.display_name.split()
            candidate = sanitize_username(info.username or user_id) or user_id.lower()
            user = self.add_user(
                IntermediateUser(
                    id=user_id,
                    username=candidate,
                    email=f"{candidate}@{domain}",
                    first_name=names[0] if names else "",
                    last_name=" ".join(names[1:]),
                )
            )
            if user.username != candidate:
                user.email = f"{user.username}@{domain}".lower()
        self._usernames_by_id = {user_id: user.username for user_id, user in self.intermediate.users_by_id.items()}

    def transform_channel(self, export: TelegramExport) -> IntermediateChannel:
        """Register the single channel every message of the chat goes to."""
        members = list(self.intermediate.users_by_id)
        channel_id = f"telegram-{export.id}"

        if export.type == PERSONAL_CHAT_TYPE and len(members) == 2:
            channel = self.add_channel(
                IntermediateChannel(
                    id=channel_id,
                    original_name=export.name,
                    name=channel_id,
                    display_name=export.name,
                    type=ChannelType.DIRECT,
                    members=members,
                )
            )
        else:
            channel = self.add_channel(
                IntermediateChannel(
                    id=channel_id,
                    original_name=export.name,
                    name=slugify_channel_name(export.name),
                    display_name=export.name,
                    type=ChannelType.PRIVATE,
                    members=members,
                    purpose=f"Imported from Telegram chat: {export.name}",
                )
            )
            # Display names keep the chat title, which is free text
            channel.display_name = truncate_runes(export.name.strip(), CHANNEL_DISPLAY_NAME_MAX_RUNES) or channel.name

        logger.info("channel_created", channel=channel.name, channel_type=channel.type.value)
        return channel

    def transform_messages(self, export: TelegramExport, channel: IntermediateChannel) -> None:
        logger.info("transforming_messages", count=len(export.messages))
        threads = ChannelThreads(channel)

        for message in export.messages:
            post = self.convert_message(message)
            if post is None:
                continue
            parent_key = str(message.reply_to_message_id) if message.reply_to_message_id is not None else None
            if threads.place(post, str(message.id), parent_key):
                post.reactions = self.convert_reactions(message.reactions, post.create_at)

        posts = threads.finish()
        self.intermediate.posts.extend(posts)
        logger.info("messages_transformed", posts=len(posts))

    def convert_message(self, message: TelegramMessage) -> IntermediatePost | None:
        """Build the post for one message, or None when it is skipped."""
        author_id = message.author_id
        if not author_id:
            logger.warning("message_author_missing", message_id=message.id)
            return None
        author = self.intermediate.users_by_id.get(author_id)
        if author is None:
            logger.warning("message_author_unknown", message_id=message.id, user_id=author_id)
            return None

        create_at = message.timestamp_ms()
        if create_at is None:
            logger.warning("bad_timestamp", message_id=message.id, date=message.date)
            create_at = 1

        post = IntermediatePost(user=author.username, create_at=create_at)
        if message.is_regular_message():
            return self._fill_regular_message(message, post)
        if message.is_service_message():
            return self._fill_service_message(message, post)

        logger.warning("message_type_unknown", message_id=message.id, message_type=message.type)
        return None

    def render_text(self, message: TelegramMessage) -> str:
        """Markdown of the message text, from its entities when present."""
        if self.options.skip_convert_posts:
            return message.text.flatten()
        if message.text_entities:
            return convert_telegram_spans(message.text_entities, self._usernames_by_id)
        if isinstance(message.text, PlainText):
            return message.text.text
        return convert_telegram_spans(message.text.parts, self._usernames_by_id)

    def _fill_regular_message(self, message: TelegramMessage, post: IntermediatePost) -> IntermediatePost:
        text = self.render_text(message)
        if message.forwarded_from:
            text = f"*Forwarded from {message.forwarded_from}:*\n{text}"

        parts = split_message(text, self.options.max_message_length)
        post.message = parts[0]
        for index, part in enumerate(parts[1:], start=1):
            post.replies.append(IntermediatePost(user=post.user, message=part, create_at=post.create_at + index))

        if not self.options.skip_attachments and message.has_media():
            self.add_media(message, post)
        return post

    def _fill_service_message(self, message: TelegramMessage, post: IntermediatePost) -> IntermediatePost:
        if message.action == "join_group_by_link":
            post.message = f"{message.actor} joined the group"
            post.type = PostType.JOIN_CHANNEL.value
        elif message.action == "invite_members":
            if message.members:
                post.message = f"{message.actor} invited {', '.join(message.members)} to the group"
            else:
                post.message = f"{message.actor} invited members to the group"
            post.type = PostType.ADD_TO_CHANNEL.value
        else:
            post.message = f"Service: {message.action}"
            post.type = PostType.GENERIC.value
        return post

    def add_media(self, message: TelegramMessage, post: IntermediatePost) -> None:
        """Copy the message's photo and file and reference them from ``post``."""
        for source, is_file in ((message.photo, False), (message.file, True)):
            if not source:
                continue
            if is_file and is_animated_sticker(message):
                logger.warning("animated_sticker_dropped", message_id=message.id, file=source)
                continue
            relative_path = posixpath.join(ATTACHMENTS_INTERNAL, posixpath.basename(source))
            if self.copy_media_file(source, relative_path):
                post.attachments.append(relative_path)

    def copy_media_file(self, source: str, relative_path: str) -> bool:
        """Copy one media file into the attachments directory.

        Returns:
            False when the source file is missing from the export.
        """
        source_path = self.export_dir / source
        if not source_path.is_file():
            logger.warning("media_file_missing", path=str(source_path))
            return False
        destination = Path(self.options.attachments_dir) / relative_path
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source_path, destination)
        logger.debug("media_file_copied", source=source, destination=relative_path)
        return True

    def convert_reactions(self, reactions: list[TelegramReaction], post_create_at: int) -> list[IntermediateReaction]:
        result: list[IntermediateReaction] = []
        for reaction in reactions:
            if reaction.type == "custom_emoji":
                logger.warning("custom_emoji_reaction_dropped", document_id=reaction.document_id)
                continue
            emoji_name = self.emoji_table.name_for(reaction.emoji)
            if emoji_name is None:
                logger.warning("reaction_emoji_unknown", emoji=reaction.emoji)
                continue
            for author in reaction.recent:
                user = self.intermediate.users_by_id.get(author.from_id)
                if user is None:
                    logger.warning("reaction_user_unknown", user_id=author.from_id)
                    continue
                result.append(
                    IntermediateReaction(user=user.username, emoji_name=emoji_name, create_at=post_create_at + 1)
                )
        return result


__all__ = ["DEFAULT_EMAIL_DOMAIN", "TelegramTransformer", "is_animated_sticker"]
