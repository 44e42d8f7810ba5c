"""Raw Slack export records."""

import zipfile
from dataclasses import dataclass, field
from typing import Any

from pydantic import ConfigDict, Field

from chatmover.collectors.base import RawModel
from chatmover.schemas.intermediate import ChannelType


class SlackChannelSub(RawModel):
    value: str = ""


class SlackChannel(RawModel):
    """A channel descriptor from one of the channel listings.

    The channel type is not part of the descriptor; it is set from the listing
    file the channel was found in. Unknown keys are kept so that a descriptor
    can be written back unchanged when a grid export is split.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str = ""
    creator: str = ""
    members: list[str] = Field(default_factory=list)
    purpose: SlackChannelSub = Field(default_factory=SlackChannelSub)
    topic: SlackChannelSub = Field(default_factory=SlackChannelSub)
    channel_type: ChannelType = Field(default=ChannelType.OPEN, exclude=True)

    @property
    def original_name(self) -> str:
        """Name of the channel directory in the export, the ID when unnamed."""
        return self.name or self.id


class SlackProfile(RawModel):
    bot_id: str = ""
    real_name: str = ""
    email: str = ""
    title: str = ""


class SlackUser(RawModel):
    id: str
    username: str = Field(default="", alias="name")
    is_bot: bool = False
    is_admin: bool = False
    deleted: bool = False
    updated: int | None = None
    profile: SlackProfile = Field(default_factory=SlackProfile)


class SlackFile(RawModel):
    id: str
    name: str = ""
    size: int = -1
    url_private_download: str = ""


class SlackReaction(RawModel):
    name: str
    count: int = 0
    users: list[str] = Field(default_factory=list)


class SlackRoom(RawModel):
    """A huddle or call attached to a ``huddle_thread`` message."""

    id: str = ""
    name: str = ""
    created_by: str = ""
    date_start: int = 0
    date_end: int = 0
    participants: list[str] = Field(default_factory=list)
    thread_root_ts: str = ""
    channels: list[str] = Field(default_factory=list)
    has_ended: bool = False


class SlackComment(RawModel):
    user: str = ""
    comment: str = ""


class SlackPost(RawModel):
    """A single entry of a ``<channel>/<date>.json`` message file."""

    user: str = ""
    bot_id: str = ""
    bot_username: str = Field(default="", alias="username")
    text: str = ""
    ts: str = ""
    thread_ts: str = ""
    type: str = ""
    subtype: str = ""
    team: str = ""
    comment: SlackComment | None = None
    upload: bool = False
    file: SlackFile | None = None
    files: list[SlackFile] | None = None
    attachments: list[dict[str, Any]] | None = None
    reactions: list[SlackReaction] | None = None
    room: SlackRoom | None = None

    def _is(self, *subtypes: str) -> bool:
        return self.type == "message" and self.subtype in subtypes

    def is_plain_message(self) -> bool:
        return self._is("", "file_share", "thread_broadcast")

    def is_file_comment(self) -> bool:
        return self._is("file_comment")

    def is_bot_message(self) -> bool:
        return self._is("bot_message", "tombstone")

    def is_join_leave_message(self) -> bool:
        return self._is("channel_join", "channel_leave")

    def is_me_message(self) -> bool:
        return self._is("me_message")

    def is_channel_topic_message(self) -> bool:
        return self._is("channel_topic")

    def is_channel_purpose_message(self) -> bool:
        return self._is("channel_purpose")

    def is_channel_name_message(self) -> bool:
        return self._is("channel_name")

    def is_huddle_thread(self) -> bool:
        return self._is("huddle_thread")


@dataclass
class SlackExport:
    """Everything parsed out of one Slack workspace export.

    ``posts`` is keyed by the message directory name, which is the channel
    name for most channels and the channel ID for direct messages.
    ``uploads`` maps file IDs to their entry in ``archive``.
    """

    team_name: str
    public_channels: list[SlackChannel] = field(default_factory=list)
    private_channels: list[SlackChannel] = field(default_factory=list)
    group_channels: list[SlackChannel] = field(default_factory=list)
    direct_channels: list[SlackChannel] = field(default_factory=list)
    users: list[SlackUser] = field(default_factory=list)
    posts: dict[str, list[SlackPost]] = field(default_factory=dict)
    uploads: dict[str, zipfile.ZipInfo] = field(default_factory=dict)
    archive: zipfile.ZipFile | None = None

    @property
    def channels(self) -> list[SlackChannel]:
        return [
            *self.public_channels,
            *self.private_channels,
            *self.group_channels,
            *self.direct_channels,
        ]


__all__ = [
    "SlackChannel",
    "SlackChannelSub",
    "SlackComment",
    "SlackExport",
    "SlackFile",
    "SlackPost",
    "SlackProfile",
    "SlackReaction",
    "SlackRoom",
    "SlackUser",
]
