"""Bulk-import JSONL exporter.

Lines are written in the order the importer needs them: the version line,
then public and private channels, users (whose memberships reference those
channels), group and direct channels, and finally posts, channel posts first
and direct posts after them.

With a maximum chunk size the posts are spread over several files named
``<prefix>.<n>.jsonl``. Every chunk starts with the version line and only the
first one carries channels and users.
"""

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

import structlog
from pydantic import BaseModel, Field

from chatmover.schemas.import_lines import (
    IMPORT_FORMAT_VERSION,
    AttachmentImportData,
    ChannelImportData,
    DirectChannelImportData,
    DirectPostImportData,
    LineImportData,
    PostImportData,
    ReactionImportData,
    ReplyImportData,
    UserChannelImportData,
    UserImportData,
    UserTeamImportData,
)
from chatmover.schemas.intermediate import (
    Intermediate,
    IntermediateChannel,
    IntermediatePost,
    IntermediateReaction,
    IntermediateUser,
)

logger = structlog.get_logger(__name__)

SYSTEM_USER_ROLE = "system_user"
SYSTEM_ADMIN_ROLE = "system_admin"
TEAM_USER_ROLE = "team_user"
CHANNEL_USER_ROLE = "channel_user"
CHANNEL_ADMIN_ROLE = "channel_admin"

JSONL_SUFFIX = ".jsonl"


class ChunkInfo(BaseModel):
    """One output file and the attachments its posts reference."""

    id: int
    file: str
    attachments: list[str] = Field(default_factory=list)
    zip: str | None = None


class ConversionResult(BaseModel):
    """Content of the conversion result file."""

    chunks: list[ChunkInfo] = Field(default_factory=list)
    channels: list[str] = Field(default_factory=list)


@dataclass
class ExportResult:
    """Files written by an export and the IDs of the exported channels."""

    chunks: list[ChunkInfo] = field(default_factory=list)
    channels: list[str] = field(default_factory=list)


def chunk_path(output_path: str, chunk: int) -> str:
    """Name of chunk ``chunk`` of ``output_path``.

    Example:
        >>> chunk_path("export.jsonl", 2)
        'export.2.jsonl'
    """
    prefix = output_path[: -len(JSONL_SUFFIX)] if output_path.endswith(JSONL_SUFFIX) else output_path
    return f"{prefix}.{chunk}{JSONL_SUFFIX}"


def attachment_data(paths: list[str]) -> list[AttachmentImportData] | None:
    return [AttachmentImportData(path=path) for path in paths] or None


def reaction_data(reactions: list[IntermediateReaction]) -> list[ReactionImportData] | None:
    return [
        ReactionImportData(user=reaction.user, emoji_name=reaction.emoji_name, create_at=reaction.create_at)
        for reaction in reactions
    ] or None


def channel_line(team: str, channel: IntermediateChannel) -> LineImportData:
    """Line for an open or private channel, which is exported without members."""
    return LineImportData(
        type="channel",
        channel=ChannelImportData(
            team=team,
            name=channel.name,
            display_name=channel.display_name,
            type=channel.type.value,
            header=channel.header,
            purpose=channel.purpose,
        ),
    )


def direct_channel_line(channel: IntermediateChannel) -> LineImportData:
    """Line for a group or direct channel, identified by its members."""
    return LineImportData(
        type="direct_channel",
        direct_channel=DirectChannelImportData(
            members=list(channel.members_usernames),
            header=channel.topic,
        ),
    )


def user_line(user: IntermediateUser, team: str, owned_channels: list[str]) -> LineImportData:
    """Line for a user and its team and channel memberships.

    Args:
        user: The user.
        team: Team every user joins.
        owned_channels: Names of the channels the user created; the user is
            made channel admin there.
    """
    memberships = [
        UserChannelImportData(
            name=channel_name,
            roles=CHANNEL_ADMIN_ROLE if channel_name in owned_channels else CHANNEL_USER_ROLE,
        )
        for channel_name in user.memberships
    ]
    roles = SYSTEM_USER_ROLE
    if user.is_admin:
        roles = f"{SYSTEM_USER_ROLE} {SYSTEM_ADMIN_ROLE}"

    return LineImportData(
        type="user",
        user=UserImportData(
            username=user.username,
            email=user.email,
            auth_service=user.auth_service,
            auth_data=user.auth_data if user.auth_service else None,
            nickname="",
            first_name=user.first_name,
            last_name=user.last_name,
            position=user.position,
            roles=roles,
            delete_at=user.delete_at or None,
            teams=[UserTeamImportData(name=team, roles=TEAM_USER_ROLE, channels=memberships)],
        ),
    )


def reply_data(reply: IntermediatePost) -> ReplyImportData:
    return ReplyImportData(
        user=reply.user,
        message=reply.message,
        create_at=reply.create_at,
        attachments=attachment_data(reply.attachments),
        reactions=reaction_data(reply.reactions),
    )


def post_line(post: IntermediatePost, team: str) -> tuple[LineImportData, list[str]]:
    """Line for a root post and the attachment paths it and its replies reference."""
    attachments = list(post.attachments)
    for reply in post.replies:
        attachments.extend(reply.attachments)

    fields = {
        "user": post.user,
        "type": post.type,
        "message": post.message,
        "props": post.props,
        "create_at": post.create_at,
        "reactions": reaction_data(post.reactions),
        "replies": [reply_data(reply) for reply in post.replies] or None,
        "attachments": attachment_data(post.attachments),
    }
    if post.is_direct:
        line = LineImportData(
            type="direct_post",
            direct_post=DirectPostImportData(channel_members=list(post.channel_members), **fields),
        )
    else:
        line = LineImportData(type="post", post=PostImportData(team=team, channel=post.channel, **fields))
    return line, attachments


class BulkExporter:
    """Writes an :class:`Intermediate` as bulk-import JSONL.

    Example:
        >>> exporter = BulkExporter("myteam", intermediate)
        >>> result = exporter.export("bulk-export.jsonl", max_chunk_size=10000)
        >>> [chunk.file for chunk in result.chunks]
        ['bulk-export.0.jsonl', 'bulk-export.1.jsonl']
    """

    def __init__(self, team_name: str, intermediate: Intermediate) -> None:
        self.team_name = team_name
        self.intermediate = intermediate

    def ordered_posts(self) -> list[IntermediatePost]:
        """Channel posts followed by direct posts, each in their original order."""
        posts = self.intermediate.posts
        return [post for post in posts if not post.is_direct] + [post for post in posts if post.is_direct]

    @staticmethod
    def write_line(out: TextIO, line: LineImportData) -> None:
        out.write(line.to_json())
        out.write("\n")

    def write_version(self, out: TextIO) -> None:
        self.write_line(out, LineImportData(type="version", version=IMPORT_FORMAT_VERSION))

    def write_channels(self, out: TextIO, channels: list[IntermediateChannel]) -> None:
        for channel in channels:
            self.write_line(out, channel_line(self.team_name, channel))

    def write_direct_channels(self, out: TextIO, channels: list[IntermediateChannel]) -> None:
        for channel in channels:
            self.write_line(out, direct_channel_line(channel))

    def write_users(self, out: TextIO) -> None:
        owners = self.intermediate.channel_owners
        for user in self.intermediate.users_by_id.values():
            self.write_line(out, user_line(user, self.team_name, owners.get(user.id, [])))

    def write_posts(self, out: TextIO, posts: list[IntermediatePost]) -> list[str]:
        """Write ``posts`` and return the attachment paths they reference."""
        attachments: list[str] = []
        for post in posts:
            line, post_attachments = post_line(post, self.team_name)
            self.write_line(out, line)
            attachments.extend(post_attachments)
        return attachments

    def export(self, output_path: str | Path, max_chunk_size: int = 0) -> ExportResult:
        """Write the import file, split into chunks when ``max_chunk_size`` is set.

        Args:
            output_path: Path of the JSONL file, or the naming base of the chunks.
            max_chunk_size: Maximum number of root posts per file; 0 writes a
                single file.

        Returns:
            The written chunks and the IDs of the exported channels.

        Raises:
            OSError: If an output file cannot be written.
        """
        output_path = str(output_path)
        posts = self.ordered_posts()
        chunk_size = max_chunk_size or len(posts)
        chunks = 1
        if max_chunk_size and len(posts) > max_chunk_size:
            chunks = (len(posts) - 1) // max_chunk_size + 1

        result = ExportResult()
        intermediate = self.intermediate
        for chunk in range(chunks):
            file_path = chunk_path(output_path, chunk) if chunks > 1 else output_path
            info = ChunkInfo(id=chunk, file=file_path)

            with open(file_path, "w", encoding="utf-8") as out:
                self.write_version(out)
                if chunk == 0:
                    logger.info("exporting_channels_and_users", file=file_path)
                    self.write_channels(out, intermediate.public_channels)
                    self.write_channels(out, intermediate.private_channels)
                    self.write_users(out)
                    self.write_direct_channels(out, intermediate.group_channels)
                    self.write_direct_channels(out, intermediate.direct_channels)

                if posts:
                    start = chunk * chunk_size
                    end = min((chunk + 1) * chunk_size, len(posts))
                    logger.info("exporting_posts", file=file_path, first=start + 1, last=end)
                    info.attachments = self.write_posts(out, posts[start:end])

            result.chunks.append(info)

        result.channels = [channel.id for channel in intermediate.all_channels()]
        logger.info("export_finished", chunks=len(result.chunks), channels=len(result.channels), posts=len(posts))
        return result


def resolve_attachment_paths(result: ExportResult, attachments_dir: str) -> ExportResult:
    """Prefix every chunk attachment with the directory holding the files."""
    for chunk in result.chunks:
        chunk.attachments = [posixpath.join(attachments_dir, path) for path in chunk.attachments]
    return result


def write_result_file(path: str | Path, result: ExportResult) -> None:
    """Write the conversion result file listing the chunks and exported channels."""
    content = ConversionResult(chunks=result.chunks, channels=result.channels)
    Path(path).write_text(content.model_dump_json(exclude_none=True, indent=2), encoding="utf-8")
    logger.info("result_file_written", path=str(path))


__all__ = [
    "BulkExporter",
    "ChunkInfo",
    "ConversionResult",
    "ExportResult",
    "channel_line",
    "chunk_path",
    "direct_channel_line",
    "post_line",
    "resolve_attachment_paths",
    "user_line",
    "write_result_file",
]
