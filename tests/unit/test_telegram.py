"""Unit tests for Telegram export parsing, validation and transformation.

Tests cover:
1. Root and message checks while parsing
2. User discovery and media inspection
3. Structural and import-limit validation
4. Conversion into a private or direct channel with threads and reactions
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from chatmover.collectors.telegram.models import PlainText, Spans, TelegramExport, TextSpan, parse_message_text
from chatmover.collectors.telegram.parser import (
    find_missing_attachments,
    get_media_statistics,
    get_unique_users,
    parse_telegram_export,
)
from chatmover.collectors.telegram.validation import (
    validate_export_structure,
    validate_file_path,
    validate_for_import,
)
from chatmover.errors import ExportStructureError
from chatmover.schemas.intermediate import ChannelType, Intermediate, PostType
from chatmover.transformers.base import TransformOptions
from chatmover.transformers.emoji import EmojiTable
from chatmover.transformers.telegram_transformer import TelegramTransformer

ExportWriter = Callable[[dict[str, Any]], Path]


def _message(message_id: int, user_id: str, name: str, **fields: Any) -> dict[str, Any]:
    message = {
        "id": message_id,
        "type": "message",
        "date": "2024-01-15T10:00:00",
        "date_unixtime": str(1705312800 + message_id),
        "from": name,
        "from_id": user_id,
        "text": f"message {message_id}",
    }
    message.update(fields)
    return message


@pytest.fixture
def transform(write_telegram_export: ExportWriter, options: TransformOptions, emoji_table: EmojiTable) -> Any:
    """Write, parse and transform an export."""

    def factory(data: dict[str, Any], transform_options: TransformOptions | None = None) -> Intermediate:
        path = write_telegram_export(data)
        export = parse_telegram_export(path)
        transformer = TelegramTransformer("acme", path.parent, transform_options or options, emoji_table)
        return transformer.transform(export)

    return factory


class TestParseTelegramExport:
    """Tests for reading result.json."""

    def test_sample_export(self, write_telegram_export: ExportWriter, sample_telegram_export: dict[str, Any]) -> None:
        """Test that the root and every message are parsed."""
        export = parse_telegram_export(write_telegram_export(sample_telegram_export))

        assert (export.name, export.type, export.id) == ("Team Chat", "private_group", 4242)
        assert len(export.messages) == 3
        assert isinstance(export.messages[0].text, PlainText)
        assert isinstance(export.messages[1].text, Spans)
        assert export.messages[1].text.flatten() == "Look at this"
        assert export.messages[1].reply_to_message_id == 1
        assert export.messages[2].author_info() == ("Carol", "user333")

    @pytest.mark.parametrize("missing", ["name", "type", "id"])
    def test_missing_root_field(
        self,
        write_telegram_export: ExportWriter,
        sample_telegram_export: dict[str, Any],
        missing: str,
    ) -> None:
        """Test that each required root field is enforced."""
        del sample_telegram_export[missing]
        with pytest.raises(ExportStructureError):
            parse_telegram_export(write_telegram_export(sample_telegram_export))

    def test_no_messages(self, write_telegram_export: ExportWriter, sample_telegram_export: dict[str, Any]) -> None:
        """Test that an export without messages is rejected."""
        sample_telegram_export["messages"] = []
        with pytest.raises(ExportStructureError, match="no messages"):
            parse_telegram_export(write_telegram_export(sample_telegram_export))

    def test_message_without_author(
        self, write_telegram_export: ExportWriter, sample_telegram_export: dict[str, Any]
    ) -> None:
        """Test that leading messages need author information."""
        del sample_telegram_export["messages"][0]["from_id"]
        with pytest.raises(ExportStructureError, match="author"):
            parse_telegram_export(write_telegram_export(sample_telegram_export))

    def test_unreadable_file(self, tmp_path: Path) -> None:
        """Test that missing and invalid files are reported as structure errors."""
        with pytest.raises(ExportStructureError):
            parse_telegram_export(tmp_path / "missing.json")

        broken = tmp_path / "broken.json"
        broken.write_text("{nope", encoding="utf-8")
        with pytest.raises(ExportStructureError):
            parse_telegram_export(broken)

    def test_message_text_variants(self) -> None:
        """Test resolving string, array and null text values."""
        assert parse_message_text("hi") == PlainText("hi")
        assert parse_message_text(None) == PlainText("")

        spans = parse_message_text(["a", {"type": "bold", "text": "b"}, 3])
        assert isinstance(spans, Spans)
        assert spans.parts == ("a", TextSpan(type="bold", text="b"))

        with pytest.raises(ValueError):
            parse_message_text(42)

    def test_timestamp_fallback_to_date(self) -> None:
        """Test that the naive date is read as UTC when no unix time is given."""
        export = TelegramExport.model_validate(
            {"name": "x", "type": "private_group", "id": 1, "messages": [_message(1, "user1", "A", date_unixtime="")]}
        )
        assert export.messages[0].timestamp_ms() == 1705312800000


class TestInspection:
    """Tests for user discovery and media helpers."""

    def test_unique_users(self, sample_telegram_export: dict[str, Any]) -> None:
        """Test that authors, reaction authors and actors are collected."""
        export = TelegramExport.model_validate(sample_telegram_export)
        users = get_unique_users(export)
        assert list(users) == ["user111", "user222", "user333"]
        assert users["user111"].display_name == "Alice Smith"

    def test_mention_infers_username(self, sample_telegram_export: dict[str, Any]) -> None:
        """Test that @mentions are attributed to a matching user."""
        sample_telegram_export["messages"][0]["text_entities"].append({"type": "mention", "text": "@bob"})
        users = get_unique_users(TelegramExport.model_validate(sample_telegram_export))
        assert users["user222"].username == "bob"
        assert users["user111"].username == ""

    def test_media_statistics_and_missing_files(self, tmp_path: Path) -> None:
        """Test media counts and detection of files absent from the export."""
        (tmp_path / "photos").mkdir()
        (tmp_path / "photos" / "a.jpg").write_bytes(b"jpg")
        export = TelegramExport.model_validate(
            {
                "name": "x",
                "type": "private_group",
                "id": 1,
                "messages": [
                    _message(1, "user1", "A", photo="photos/a.jpg", photo_file_size=10),
                    _message(2, "user1", "A", file="video/v.mp4", media_type="video_file", file_size=100),
                    _message(3, "user1", "A", file="files/doc.pdf", file_size=5),
                ],
            }
        )
        stats = get_media_statistics(export)

        assert (stats.photos, stats.videos, stats.documents, stats.total_size) == (1, 1, 1, 115)
        assert find_missing_attachments(export, tmp_path) == ["files/doc.pdf", "video/v.mp4"]


class TestValidation:
    """Tests for export validation."""

    def test_sample_export_is_valid(self, sample_telegram_export: dict[str, Any]) -> None:
        """Test that a well-formed export has no issues."""
        export = TelegramExport.model_validate(sample_telegram_export)
        assert validate_export_structure(export) == []
        assert validate_for_import(export) == []

    def test_message_issues(self, sample_telegram_export: dict[str, Any]) -> None:
        """Test empty regular messages and service messages without action."""
        sample_telegram_export["messages"][0]["text"] = ""
        sample_telegram_export["messages"][0]["text_entities"] = []
        del sample_telegram_export["messages"][2]["action"]
        issues = validate_export_structure(TelegramExport.model_validate(sample_telegram_export))

        assert [(issue.type, issue.field, issue.index) for issue in issues] == [
            ("empty_content", "text", 0),
            ("missing_field", "action", 2),
        ]
        assert str(issues[0]).startswith("text at index 0:")

    def test_import_limits(self, sample_telegram_export: dict[str, Any]) -> None:
        """Test that long names and bad media paths are reported."""
        sample_telegram_export["name"] = "n" * 65
        sample_telegram_export["messages"][0]["photo"] = "../secret.jpg"
        issues = validate_for_import(TelegramExport.model_validate(sample_telegram_export))

        assert [(issue.type, issue.field) for issue in issues] == [
            ("length_exceeded", "channel_display_name"),
            ("invalid_file_path", "photo"),
        ]

    @pytest.mark.parametrize(
        ("path", "valid"),
        [
            ("photos/a.jpg", True),
            ("", False),
            ("../a.jpg", False),
            ("/etc/passwd", False),
            ("files/a|b.txt", False),
        ],
    )
    def test_file_paths(self, path: str, valid: bool) -> None:
        """Test media path validation."""
        assert (validate_file_path(path) is None) is valid


class TestTelegramTransformer:
    """Tests for converting a chat into the canonical model."""

    def test_group_chat(self, transform: Any, sample_telegram_export: dict[str, Any]) -> None:
        """Test users, the private channel and its posts."""
        intermediate = transform(sample_telegram_export)

        alice = intermediate.users_by_id["user111"]
        assert (alice.username, alice.email) == ("user111", "user111@telegram.local")
        assert (alice.first_name, alice.last_name) == ("Alice", "Smith")

        (channel,) = intermediate.private_channels
        assert (channel.name, channel.display_name) == ("team-chat", "Team Chat")
        assert channel.purpose == "Imported from Telegram chat: Team Chat"
        assert alice.memberships == ["team-chat"]

        root, service = intermediate.posts
        assert root.message == "Hello team"
        assert root.channel == "team-chat"
        assert root.create_at == 1705312800000
        assert [(r.user, r.message) for r in root.replies] == [("user222", "Look at **this**")]
        assert [(r.user, r.emoji_name) for r in root.reactions] == [("user222", "thumbsup")]

        assert service.message == "Carol joined the group"
        assert service.type == PostType.JOIN_CHANNEL.value

    def test_personal_chat_becomes_direct_channel(self, transform: Any) -> None:
        """Test that a two-person chat is exported as a direct channel."""
        data = {
            "name": "Bob",
            "type": "personal_chat",
            "id": 7,
            "messages": [_message(1, "user1", "Alice"), _message(2, "user2", "Bob")],
        }
        intermediate = transform(data)

        assert intermediate.private_channels == []
        (channel,) = intermediate.direct_channels
        assert channel.type == ChannelType.DIRECT
        assert channel.members_usernames == ["user1", "user2"]
        assert all(post.is_direct and post.channel_members == ["user1", "user2"] for post in intermediate.posts)

    def test_default_email_domain(
        self, transform: Any, sample_telegram_export: dict[str, Any], tmp_path: Path
    ) -> None:
        """Test that the configured domain replaces the placeholder domain."""
        options = TransformOptions(attachments_dir=str(tmp_path / "data"), default_email_domain="example.org")
        intermediate = transform(sample_telegram_export, options)
        assert intermediate.users_by_id["user111"].email == "user111@example.org"

    def test_service_and_forwarded_messages(self, transform: Any) -> None:
        """Test invitation and forwarded message rendering."""
        data = {
            "name": "Group",
            "type": "private_group",
            "id": 9,
            "messages": [
                _message(1, "user1", "Alice", text="news", forwarded_from="Channel"),
                {
                    "id": 2,
                    "type": "service",
                    "date": "2024-01-15T10:00:02",
                    "date_unixtime": "1705312802",
                    "actor": "Alice",
                    "actor_id": "user1",
                    "action": "invite_members",
                    "members": ["Dave", None, "Eve"],
                    "text": "",
                },
                {
                    "id": 3,
                    "type": "service",
                    "date": "2024-01-15T10:00:03",
                    "date_unixtime": "1705312803",
                    "actor": "Alice",
                    "actor_id": "user1",
                    "action": "pin_message",
                    "text": "",
                },
            ],
        }
        forwarded, invite, other = transform(data).posts

        assert forwarded.message == "*Forwarded from Channel:*\nnews"
        assert invite.message == "Alice invited Dave, Eve to the group"
        assert invite.type == PostType.ADD_TO_CHANNEL.value
        assert other.message == "Service: pin_message"
        assert other.type == PostType.GENERIC.value

    def test_reply_to_unknown_message_is_dropped(self, transform: Any) -> None:
        """Test that replies to messages missing from the export are dropped."""
        data = {
            "name": "Group",
            "type": "private_group",
            "id": 9,
            "messages": [_message(1, "user1", "Alice"), _message(2, "user1", "Alice", reply_to_message_id=99)],
        }
        intermediate = transform(data)
        assert [post.message for post in intermediate.posts] == ["message 1"]
        assert intermediate.posts[0].replies == []

    def test_media_files(
        self,
        transform: Any,
        write_telegram_export: ExportWriter,
        tmp_path: Path,
    ) -> None:
        """Test that media is copied and animated stickers are dropped."""
        export_dir = write_telegram_export({}).parent
        (export_dir / "photos").mkdir()
        (export_dir / "photos" / "p.jpg").write_bytes(b"jpg")
        (export_dir / "stickers").mkdir()
        (export_dir / "stickers" / "s.tgs").write_bytes(b"tgs")

        data = {
            "name": "Group",
            "type": "private_group",
            "id": 9,
            "messages": [
                _message(1, "user1", "Alice", photo="photos/p.jpg"),
                _message(2, "user1", "Alice", file="stickers/s.tgs", media_type="sticker"),
                _message(3, "user1", "Alice", file="files/missing.pdf"),
            ],
        }
        photo, sticker, missing = transform(data).posts

        assert photo.attachments == ["bulk-export-attachments/p.jpg"]
        assert (tmp_path / "data" / "bulk-export-attachments" / "p.jpg").read_bytes() == b"jpg"
        assert sticker.attachments == []
        assert missing.attachments == []
