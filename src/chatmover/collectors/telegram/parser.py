"""Telegram chat export parsing and inspection helpers."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from chatmover.collectors.base import BaseCollector, SourceType
from chatmover.collectors.telegram.models import TelegramExport, TelegramMessage
from chatmover.errors import ExportStructureError

logger = structlog.get_logger(__name__)

# Number of leading messages checked for required fields when parsing
MESSAGE_SAMPLE_SIZE = 10


@dataclass
class UserInfo:
    """A Telegram user seen in the export.

    ``username`` is only known when a mention could be attributed to the user.
    """

    display_name: str
    username: str = ""


@dataclass
class MediaStatistics:
    photos: int = 0
    videos: int = 0
    stickers: int = 0
    animations: int = 0
    documents: int = 0
    total_size: int = 0


def _check_root(raw: dict[str, Any]) -> None:
    if not raw.get("name"):
        raise ExportStructureError("export missing required 'name' field")
    if not raw.get("type"):
        raise ExportStructureError("export missing required 'type' field")
    if not raw.get("id"):
        raise ExportStructureError("export missing required 'id' field")
    if not isinstance(raw.get("messages"), list) or not raw["messages"]:
        raise ExportStructureError("export contains no messages")


def _check_sample(messages: list[TelegramMessage]) -> None:
    for index, message in enumerate(messages[:MESSAGE_SAMPLE_SIZE]):
        if not message.id:
            raise ExportStructureError(f"message at index {index} missing required 'id' field")
        if not message.type:
            raise ExportStructureError(f"message at index {index} missing required 'type' field")
        if not message.date:
            raise ExportStructureError(f"message at index {index} missing required 'date' field")
        name, author_id = message.author_info()
        if not name or not author_id:
            raise ExportStructureError(f"message at index {index} missing author information")


class TelegramCollector(BaseCollector[Path, TelegramExport]):
    """Collector reading a Telegram ``result.json`` export."""

    def __init__(self) -> None:
        super().__init__(SourceType.TELEGRAM)

    def collect(self, source: Path) -> TelegramExport:
        try:
            raw = json.loads(Path(source).read_bytes())
        except OSError as e:
            raise ExportStructureError(f"failed to read Telegram export file: {source}") from e
        except json.JSONDecodeError as e:
            raise ExportStructureError(f"failed to parse Telegram export JSON: {source}") from e
        self._stats.files_read += 1

        if not isinstance(raw, dict):
            raise ExportStructureError(f"invalid Telegram export format: {source}")
        _check_root(raw)

        messages: list[TelegramMessage] = []
        for index, item in enumerate(raw["messages"]):
            try:
                messages.append(TelegramMessage.model_validate(item))
            except ValidationError as e:
                logger.warning("telegram_message_invalid", index=index, error=str(e))
                self._stats.items_skipped += 1
                self._stats.errors.append(f"message {index}: {e.error_count()} validation errors")
        if not messages:
            raise ExportStructureError("export contains no valid messages")
        _check_sample(messages)

        try:
            export = TelegramExport(name=raw["name"], type=raw["type"], id=raw["id"], messages=messages)
        except ValidationError as e:
            raise ExportStructureError(f"invalid Telegram export format: {source}") from e

        self._stats.items_collected = len(messages)
        logger.info(
            "telegram_export_parsed",
            chat=export.name,
            chat_type=export.type,
            messages=len(messages),
        )
        return export


def parse_telegram_export(path: str | Path) -> TelegramExport:
    """Parse a Telegram JSON export.

    Raises:
        ExportStructureError: If the file cannot be read, is not JSON, lacks
            ``name``/``type``/``id``, has no messages, or one of the first
            messages lacks an id, type, date or author.
    """
    return TelegramCollector().run(Path(path))


def get_unique_users(export: TelegramExport) -> dict[str, UserInfo]:
    """Collect every user that wrote, acted or reacted, keyed by user ID.

    Usernames are inferred from ``@mention`` spans on a best-effort basis: a
    mention is attributed to the first user without a username whose display
    name or ID contains the mentioned handle.
    """
    users: dict[str, UserInfo] = {}

    for message in export.messages:
        name, author_id = message.author_info()
        if name and author_id and author_id not in users:
            users[author_id] = UserInfo(display_name=name)

        for reaction in message.reactions:
            for author in reaction.recent:
                if author.from_ and author.from_id and author.from_id not in users:
                    users[author.from_id] = UserInfo(display_name=author.from_)

    for message in export.messages:
        for entity in message.text_entities:
            if entity.type != "mention" or not entity.text.startswith("@"):
                continue
            handle = entity.text[1:]
            if not handle:
                continue
            lowered = handle.lower()
            for user_id, info in users.items():
                if info.username:
                    continue
                if lowered in info.display_name.lower() or lowered in user_id.lower():
                    info.username = handle
                    break

    return users


def get_attachment_paths(export: TelegramExport) -> list[str]:
    """Return every relative media path referenced by the export, sorted."""
    paths: set[str] = set()
    for message in export.messages:
        for value in (message.photo, message.file, message.thumbnail):
            if value:
                paths.add(value)
    return sorted(paths)


def find_missing_attachments(export: TelegramExport, export_dir: str | Path) -> list[str]:
    """Return the referenced media paths that do not exist under ``export_dir``."""
    base = Path(export_dir)
    return [path for path in get_attachment_paths(export) if not (base / path).exists()]


def get_messages_by_type(export: TelegramExport) -> dict[str, list[TelegramMessage]]:
    grouped: dict[str, list[TelegramMessage]] = {}
    for message in export.messages:
        grouped.setdefault(message.type, []).append(message)
    return grouped


def get_media_statistics(export: TelegramExport) -> MediaStatistics:
    """Count media by kind and sum their declared sizes."""
    stats = MediaStatistics()
    for message in export.messages:
        if message.photo:
            stats.photos += 1
            stats.total_size += message.photo_file_size or 0
        if message.file:
            if message.media_type == "video_file":
                stats.videos += 1
            elif message.media_type == "sticker":
                stats.stickers += 1
            elif message.media_type == "animation":
                stats.animations += 1
            else:
                stats.documents += 1
            stats.total_size += message.file_size or 0
    return stats


__all__ = [
    "MediaStatistics",
    "TelegramCollector",
    "UserInfo",
    "find_missing_attachments",
    "get_attachment_paths",
    "get_media_statistics",
    "get_messages_by_type",
    "get_unique_users",
    "parse_telegram_export",
]
