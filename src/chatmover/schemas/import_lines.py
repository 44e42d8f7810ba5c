"""Line schema of the bulk-import JSONL file.

Every line is a :class:`LineImportData` whose ``type`` names the single
populated payload field. Models allow unknown keys so that a file produced by
another tool survives a read-modify-write round trip unchanged.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

IMPORT_FORMAT_VERSION = 1

LineType = Literal["version", "channel", "direct_channel", "user", "post", "direct_post"]


class _ImportModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class AttachmentImportData(_ImportModel):
    path: str = Field(..., description="Path of the file relative to the attachments directory")


class ReactionImportData(_ImportModel):
    user: str
    emoji_name: str
    create_at: int


class ReplyImportData(_ImportModel):
    user: str
    message: str = ""
    create_at: int
    attachments: list[AttachmentImportData] | None = None
    reactions: list[ReactionImportData] | None = None
    flagged_by: list[str] | None = None


class ChannelImportData(_ImportModel):
    team: str
    name: str
    display_name: str
    type: str
    header: str | None = None
    purpose: str | None = None


class DirectChannelImportData(_ImportModel):
    members: list[str]
    header: str | None = None
    favorited_by: list[str] | None = None


class UserChannelImportData(_ImportModel):
    name: str
    roles: str | None = None


class UserTeamImportData(_ImportModel):
    name: str
    roles: str | None = None
    channels: list[UserChannelImportData] | None = None


class UserImportData(_ImportModel):
    username: str
    email: str
    auth_service: str | None = None
    auth_data: str | None = None
    password: str | None = None
    nickname: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    position: str | None = None
    roles: str | None = None
    delete_at: int | None = None
    teams: list[UserTeamImportData] | None = None


class PostImportData(_ImportModel):
    team: str
    channel: str
    user: str
    type: str | None = None
    message: str = ""
    props: dict[str, Any] | None = None
    create_at: int
    flagged_by: list[str] | None = None
    reactions: list[ReactionImportData] | None = None
    replies: list[ReplyImportData] | None = None
    attachments: list[AttachmentImportData] | None = None


class DirectPostImportData(_ImportModel):
    channel_members: list[str]
    user: str
    type: str | None = None
    message: str = ""
    props: dict[str, Any] | None = None
    create_at: int
    flagged_by: list[str] | None = None
    reactions: list[ReactionImportData] | None = None
    replies: list[ReplyImportData] | None = None
    attachments: list[AttachmentImportData] | None = None


class LineImportData(_ImportModel):
    """One line of the import file."""

    type: LineType
    version: int | None = None
    channel: ChannelImportData | None = None
    direct_channel: DirectChannelImportData | None = None
    user: UserImportData | None = None
    post: PostImportData | None = None
    direct_post: DirectPostImportData | None = None

    def to_json(self) -> str:
        """Serialize without the payload fields that are not set."""
        return self.model_dump_json(exclude_none=True)


__all__ = [
    "IMPORT_FORMAT_VERSION",
    "AttachmentImportData",
    "ChannelImportData",
    "DirectChannelImportData",
    "DirectPostImportData",
    "LineImportData",
    "LineType",
    "PostImportData",
    "ReactionImportData",
    "ReplyImportData",
    "UserChannelImportData",
    "UserImportData",
    "UserTeamImportData",
]
