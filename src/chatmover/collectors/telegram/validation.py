"""Structural and import-limit validation of Telegram exports.

Validation never raises: it returns every issue found so that the caller can
report them together before transforming.
"""

from pathlib import PurePosixPath

from pydantic import BaseModel, Field

from chatmover.collectors.telegram.models import TelegramExport, TelegramMessage
from chatmover.collectors.telegram.parser import get_unique_users
from chatmover.schemas.intermediate import (
    CHANNEL_DISPLAY_NAME_MAX_RUNES,
    USER_FIRST_NAME_MAX_RUNES,
    USER_LAST_NAME_MAX_RUNES,
)

POST_MESSAGE_MAX_RUNES = 16383

_INVALID_PATH_CHARACTERS = set('<>:"|?*')


class ValidationIssue(BaseModel):
    """A single validation finding.

    Attributes:
        type: Category such as ``missing_field`` or ``length_exceeded``.
        field: The offending field.
        message: Human readable description.
        index: Position of the message in the export, when message-specific.
    """

    type: str = Field(description="Issue category")
    field: str = Field(description="Offending field")
    message: str = Field(description="Human readable description")
    index: int | None = Field(default=None, description="Message index, if any")

    def __str__(self) -> str:
        if self.index is not None:
            return f"{self.field} at index {self.index}: {self.message}"
        return f"{self.field}: {self.message}"


def _validate_message(message: TelegramMessage, index: int) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    def add(kind: str, field: str, text: str) -> None:
        issues.append(ValidationIssue(type=kind, field=field, message=text, index=index))

    if not message.id:
        add("missing_field", "id", "Message missing required 'id' field")
    if not message.type:
        add("missing_field", "type", "Message missing required 'type' field")
    if not message.date:
        add("missing_field", "date", "Message missing required 'date' field")

    name, author_id = message.author_info()
    if not name or not author_id:
        add(
            "missing_author",
            "author",
            "Message missing author information (from/from_id or actor/actor_id)",
        )

    if message.is_regular_message() and not message.text.flatten() and not message.has_media():
        add("empty_content", "text", "Message has no text content and no media attachments")

    if message.is_service_message() and not message.action:
        add("missing_field", "action", "Service message missing required 'action' field")

    return issues


def validate_export_structure(export: TelegramExport) -> list[ValidationIssue]:
    """Check the root fields and every message for required content."""
    issues: list[ValidationIssue] = []

    if not export.name:
        issues.append(
            ValidationIssue(type="missing_field", field="name", message="Export missing required 'name' field")
        )
    if not export.type:
        issues.append(
            ValidationIssue(type="missing_field", field="type", message="Export missing required 'type' field")
        )
    if not export.id:
        issues.append(
            ValidationIssue(type="missing_field", field="id", message="Export missing required 'id' field")
        )
    if not export.messages:
        issues.append(
            ValidationIssue(type="empty_data", field="messages", message="Export contains no messages")
        )

    for index, message in enumerate(export.messages):
        issues.extend(_validate_message(message, index))

    return issues


def validate_file_path(path: str) -> str | None:
    """Return why ``path`` is not a safe relative media path, or None if it is."""
    if not path:
        return "file path cannot be empty"
    if ".." in path:
        return "file path contains invalid '..' sequence"
    if PurePosixPath(path).is_absolute():
        return "file path must be relative, not absolute"
    if _INVALID_PATH_CHARACTERS.intersection(path):
        return "file path contains invalid characters"
    return None


def validate_for_import(export: TelegramExport) -> list[ValidationIssue]:
    """Check names, user names, message lengths and media paths against import limits."""
    issues: list[ValidationIssue] = []

    if len(export.name) > CHANNEL_DISPLAY_NAME_MAX_RUNES:
        issues.append(
            ValidationIssue(
                type="length_exceeded",
                field="channel_display_name",
                message=f"Channel display name exceeds maximum length of {CHANNEL_DISPLAY_NAME_MAX_RUNES} runes",
            )
        )

    for user_id, info in get_unique_users(export).items():
        parts = info.display_name.split()
        if parts and len(parts[0]) > USER_FIRST_NAME_MAX_RUNES:
            issues.append(
                ValidationIssue(
                    type="length_exceeded",
                    field="user_first_name",
                    message=f"First name of {user_id} exceeds maximum length of {USER_FIRST_NAME_MAX_RUNES} runes",
                )
            )
        if len(" ".join(parts[1:])) > USER_LAST_NAME_MAX_RUNES:
            issues.append(
                ValidationIssue(
                    type="length_exceeded",
                    field="user_last_name",
                    message=f"Last name of {user_id} exceeds maximum length of {USER_LAST_NAME_MAX_RUNES} runes",
                )
            )

    for index, message in enumerate(export.messages):
        if len(message.text.flatten()) > POST_MESSAGE_MAX_RUNES:
            issues.append(
                ValidationIssue(
                    type="length_exceeded",
                    field="message_text",
                    message=f"Message text exceeds maximum length of {POST_MESSAGE_MAX_RUNES} runes",
                    index=index,
                )
            )
        for field_name, value in (("photo", message.photo), ("file", message.file)):
            if not value:
                continue
            problem = validate_file_path(value)
            if problem:
                issues.append(
                    ValidationIssue(
                        type="invalid_file_path",
                        field=field_name,
                        message=f"Invalid {field_name} path: {problem}",
                        index=index,
                    )
                )

    return issues


__all__ = [
    "ValidationIssue",
    "validate_export_structure",
    "validate_file_path",
    "validate_for_import",
]
