"""Raw Telegram export records.

The ``text`` field of a Telegram message is either a plain string or an array
mixing strings and span objects. It is resolved once, while the message is
validated, into the :data:`MessageText` tagged union.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import Field, field_validator

from chatmover.collectors.base import RawModel

TELEGRAM_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class TextSpan(RawModel):
    """A formatted span of message text.

    ``href`` is set for ``text_link``, ``user_id`` for ``mention_name`` and
    ``document_id`` for ``custom_emoji``.
    """

    type: str = "plain"
    text: str = ""
    href: str = ""
    user_id: int | None = None
    document_id: str = ""


@dataclass(frozen=True)
class PlainText:
    text: str

    def flatten(self) -> str:
        return self.text


@dataclass(frozen=True)
class Spans:
    parts: tuple[str | TextSpan, ...]

    def flatten(self) -> str:
        return "".join(part if isinstance(part, str) else part.text for part in self.parts)


MessageText = PlainText | Spans


def parse_message_text(raw: Any) -> MessageText:
    """Resolve the raw ``text`` value of a message.

    Strings become :class:`PlainText`. Arrays become :class:`Spans`, keeping
    string elements and object elements; elements of any other JSON type are
    ignored.

    Raises:
        ValueError: If ``raw`` is neither a string nor an array.
    """
    if raw is None:
        return PlainText("")
    if isinstance(raw, PlainText | Spans):
        return raw
    if isinstance(raw, str):
        return PlainText(raw)
    if isinstance(raw, list):
        parts: list[str | TextSpan] = []
        for item in raw:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                parts.append(TextSpan.model_validate(item))
        return Spans(tuple(parts))
    raise ValueError(f"unsupported text value of type {type(raw).__name__}")


class TelegramReactionAuthor(RawModel):
    from_: str = Field(default="", alias="from")
    from_id: str = ""
    date: str = ""


class TelegramReaction(RawModel):
    type: str = "emoji"
    count: int = 0
    emoji: str = ""
    document_id: str = ""
    recent: list[TelegramReactionAuthor] = Field(default_factory=list)


class TelegramMessage(RawModel):
    """A single entry of the export's ``messages`` array."""

    id: int = 0
    type: str = ""
    date: str = ""
    date_unixtime: str = ""
    from_: str = Field(default="", alias="from")
    from_id: str = ""
    actor: str = ""
    actor_id: str = ""
    action: str = ""
    inviter: str = ""
    members: list[str] = Field(default_factory=list)
    text: MessageText = Field(default_factory=lambda: PlainText(""))
    text_entities: list[TextSpan] = Field(default_factory=list)

    reply_to_message_id: int | None = None
    forwarded_from: str = ""
    edited: str = ""
    edited_unixtime: str = ""

    photo: str = ""
    photo_file_size: int | None = None
    file: str = ""
    file_name: str = ""
    file_size: int | None = None
    thumbnail: str = ""
    media_type: str = ""
    mime_type: str = ""
    width: int | None = None
    height: int | None = None
    duration_seconds: int | None = None
    sticker_emoji: str = ""

    reactions: list[TelegramReaction] = Field(default_factory=list)

    @field_validator("text", mode="before")
    @classmethod
    def resolve_text(cls, v: Any) -> MessageText:
        return parse_message_text(v)

    @field_validator("members", mode="before")
    @classmethod
    def drop_null_members(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [member for member in v if member is not None]
        return v

    def author_info(self) -> tuple[str, str]:
        """Return ``(name, id)`` of the sender, or of the actor for service messages."""
        if self.from_:
            return self.from_, self.from_id
        return self.actor, self.actor_id

    @property
    def author_id(self) -> str:
        """Sender ID; falls back to the actor ID for service messages."""
        return self.from_id or self.actor_id

    def is_service_message(self) -> bool:
        return self.type == "service"

    def is_regular_message(self) -> bool:
        return self.type == "message"

    def has_media(self) -> bool:
        return bool(self.photo or self.file)

    def has_reactions(self) -> bool:
        return bool(self.reactions)

    def timestamp_ms(self) -> int | None:
        """Creation time in milliseconds, or None when no date can be parsed.

        ``date_unixtime`` is preferred; ``date`` is a naive local timestamp and
        is read as UTC.
        """
        if self.date_unixtime:
            try:
                return int(self.date_unixtime) * 1000
            except ValueError:
                pass
        try:
            parsed = datetime.strptime(self.date, TELEGRAM_DATE_FORMAT).replace(tzinfo=UTC)
        except ValueError:
            return None
        return int(parsed.timestamp()) * 1000


class TelegramExport(RawModel):
    """Root of a Telegram chat export (``result.json``)."""

    name: str = ""
    type: str = ""
    id: int = 0
    messages: list[TelegramMessage] = Field(default_factory=list)


__all__ = [
    "MessageText",
    "PlainText",
    "Spans",
    "TelegramExport",
    "TelegramMessage",
    "TelegramReaction",
    "TelegramReactionAuthor",
    "TextSpan",
    "parse_message_text",
]
