"""Shared test fixtures and configuration for chatmover tests."""

import io
import json
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from chatmover.transformers.base import TransformOptions
from chatmover.transformers.emoji import EmojiTable

ZipFactory = Callable[[dict[str, Any]], zipfile.ZipFile]


def _entry_bytes(content: Any) -> bytes:
    if isinstance(content, bytes):
        return content
    if isinstance(content, str):
        return content.encode("utf-8")
    return json.dumps(content).encode("utf-8")


@pytest.fixture(scope="session")
def emoji_table() -> EmojiTable:
    """Build the emoji table once for the whole session."""
    return EmojiTable.default()


@pytest.fixture
def options(tmp_path: Path) -> TransformOptions:
    """Transform options writing attachments below the test directory."""
    return TransformOptions(attachments_dir=str(tmp_path / "data"))


@pytest.fixture
def make_zip() -> ZipFactory:
    """Create in-memory zip archives.

    The returned factory takes a mapping of entry name to content. Bytes and
    strings are stored as they are, anything else is stored as JSON.
    """

    def factory(entries: dict[str, Any]) -> zipfile.ZipFile:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for name, content in entries.items():
                archive.writestr(name, _entry_bytes(content))
        buffer.seek(0)
        return zipfile.ZipFile(buffer)

    return factory


@pytest.fixture
def write_zip(tmp_path: Path) -> Callable[[str, dict[str, Any]], Path]:
    """Write a zip archive to disk below ``tmp_path`` and return its path."""

    def factory(name: str, entries: dict[str, Any]) -> Path:
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as archive:
            for entry, content in entries.items():
                archive.writestr(entry, _entry_bytes(content))
        return path

    return factory


# Sample Slack workspace data
@pytest.fixture
def sample_slack_users() -> list[dict[str, Any]]:
    """Create sample users.json entries."""
    return [
        {
            "id": "U001",
            "name": "Alice",
            "is_admin": True,
            "profile": {"real_name": "Alice Smith", "email": "Alice@Example.com", "title": "Engineer"},
        },
        {
            "id": "U002",
            "name": "bob",
            "profile": {"real_name": "Bob Jones", "email": "bob@example.com"},
        },
        {
            "id": "U003",
            "name": "carol",
            "deleted": True,
            "updated": 1700000000,
            "profile": {"real_name": "Carol", "email": "carol@example.com"},
        },
    ]


@pytest.fixture
def sample_slack_channels() -> list[dict[str, Any]]:
    """Create sample channels.json entries."""
    return [
        {
            "id": "C001",
            "name": "general",
            "creator": "U001",
            "members": ["U001", "U002", "U003"],
            "topic": {"value": "General talk"},
            "purpose": {"value": "Company-wide announcements"},
        },
        {
            "id": "C002",
            "name": "random",
            "creator": "U002",
            "members": ["U001", "U002"],
            "topic": {"value": ""},
            "purpose": {"value": ""},
        },
    ]


@pytest.fixture
def sample_slack_messages() -> list[dict[str, Any]]:
    """Create sample messages of the #general channel, one thread included."""
    return [
        {
            "type": "message",
            "user": "U001",
            "text": "Hello <@U002>, see <#C002|random>",
            "ts": "1700000000.000100",
            "reactions": [{"name": "thumbsup", "count": 1, "users": ["U002"]}],
        },
        {
            "type": "message",
            "user": "U002",
            "text": "Thanks!",
            "ts": "1700000001.000200",
            "thread_ts": "1700000000.000100",
        },
        {
            "type": "message",
            "subtype": "channel_join",
            "user": "U003",
            "text": "<@U003> has joined the channel",
            "ts": "1700000002.000300",
        },
    ]


@pytest.fixture
def slack_export_entries(
    sample_slack_users: list[dict[str, Any]],
    sample_slack_channels: list[dict[str, Any]],
    sample_slack_messages: list[dict[str, Any]],
) -> dict[str, Any]:
    """Entries of a small but complete Slack workspace export."""
    return {
        "channels.json": sample_slack_channels,
        "users.json": sample_slack_users,
        "groups.json": [],
        "mpims.json": [],
        "dms.json": [{"id": "D001", "members": ["U001", "U002"]}],
        "general/2023-11-14.json": sample_slack_messages,
        "random/2023-11-14.json": [
            {"type": "message", "user": "U002", "text": "*bold* move", "ts": "1700000100.000000"},
        ],
        "D001/2023-11-14.json": [
            {"type": "message", "user": "U001", "text": "hi bob", "ts": "1700000200.000000"},
        ],
    }


# Sample Telegram chat data
@pytest.fixture
def sample_telegram_export() -> dict[str, Any]:
    """Create a Telegram group chat export."""
    return {
        "name": "Team Chat",
        "type": "private_group",
        "id": 4242,
        "messages": [
            {
                "id": 1,
                "type": "message",
                "date": "2024-01-15T10:00:00",
                "date_unixtime": "1705312800",
                "from": "Alice Smith",
                "from_id": "user111",
                "text": "Hello team",
                "text_entities": [{"type": "plain", "text": "Hello team"}],
                "reactions": [
                    {
                        "type": "emoji",
                        "count": 1,
                        "emoji": "👍",
                        "recent": [{"from": "Bob", "from_id": "user222", "date": "2024-01-15T10:01:00"}],
                    },
                    {
                        "type": "custom_emoji",
                        "count": 1,
                        "document_id": "5368324170671202286",
                        "recent": [{"from": "Bob", "from_id": "user222", "date": "2024-01-15T10:01:00"}],
                    },
                ],
            },
            {
                "id": 2,
                "type": "message",
                "date": "2024-01-15T10:05:00",
                "date_unixtime": "1705313100",
                "from": "Bob",
                "from_id": "user222",
                "reply_to_message_id": 1,
                "text": ["Look at ", {"type": "bold", "text": "this"}],
                "text_entities": [
                    {"type": "plain", "text": "Look at "},
                    {"type": "bold", "text": "this"},
                ],
            },
            {
                "id": 3,
                "type": "service",
                "date": "2024-01-15T10:10:00",
                "date_unixtime": "1705313400",
                "actor": "Carol",
                "actor_id": "user333",
                "action": "join_group_by_link",
                "text": "",
                "text_entities": [],
            },
        ],
    }


@pytest.fixture
def write_telegram_export(tmp_path: Path) -> Callable[[dict[str, Any]], Path]:
    """Write a Telegram export as ``result.json`` in its own directory."""

    def factory(data: dict[str, Any]) -> Path:
        export_dir = tmp_path / "ChatExport"
        export_dir.mkdir(exist_ok=True)
        path = export_dir / "result.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return factory
