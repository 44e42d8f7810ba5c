"""Telegram export collector."""

from chatmover.collectors.telegram.models import (
    MessageText,
    PlainText,
    Spans,
    TelegramExport,
    TelegramMessage,
    TelegramReaction,
    TelegramReactionAuthor,
    TextSpan,
    parse_message_text,
)
from chatmover.collectors.telegram.parser import (
    MediaStatistics,
    TelegramCollector,
    UserInfo,
    find_missing_attachments,
    get_attachment_paths,
    get_media_statistics,
    get_messages_by_type,
    get_unique_users,
    parse_telegram_export,
)
from chatmover.collectors.telegram.validation import (
    ValidationIssue,
    validate_export_structure,
    validate_for_import,
)

__all__ = [
    "MediaStatistics",
    "MessageText",
    "PlainText",
    "Spans",
    "TelegramCollector",
    "TelegramExport",
    "TelegramMessage",
    "TelegramReaction",
    "TelegramReactionAuthor",
    "TextSpan",
    "UserInfo",
    "ValidationIssue",
    "find_missing_attachments",
    "get_attachment_paths",
    "get_media_statistics",
    "get_messages_by_type",
    "get_unique_users",
    "parse_message_text",
    "parse_telegram_export",
    "validate_export_structure",
    "validate_for_import",
]
