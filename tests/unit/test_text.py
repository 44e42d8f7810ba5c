"""Unit tests for the string helpers shared by the transformers.

Tests cover:
1. Slack timestamp conversion
2. Username, channel handle and slug normalization
3. Message splitting and name de-duplication
"""

import pytest

from chatmover.schemas.intermediate import sanitize_channel_handle
from chatmover.transformers.text import (
    FALLBACK_CHAT_SLUG,
    convert_slack_timestamp,
    deduplicate,
    make_alpha_num,
    normalized_attachment_path,
    sanitize_username,
    slugify_channel_name,
    split_message,
)


class TestSlackTimestamp:
    """Tests for converting Slack ``ts`` values to milliseconds."""

    def test_fraction_is_truncated_to_milliseconds(self) -> None:
        """Test that microseconds below half a millisecond are dropped."""
        assert convert_slack_timestamp("1700000000.123456") == 1700000000123

    def test_fraction_rounds_half_up(self) -> None:
        """Test that the fourth fractional digit rounds the result."""
        assert convert_slack_timestamp("1700000000.123500") == 1700000000124

    def test_missing_fraction(self) -> None:
        """Test that a timestamp without a fraction is whole seconds."""
        assert convert_slack_timestamp("1700000000") == 1700000000000

    @pytest.mark.parametrize("ts", ["abc", "17000.12x4", "-1.5"])
    def test_unparseable_timestamp_yields_sentinel(self, ts: str) -> None:
        """Test that garbage input yields 1 instead of raising."""
        assert convert_slack_timestamp(ts) == 1


class TestUsernames:
    """Tests for username normalization."""

    def test_lowercases_and_keeps_allowed_characters(self) -> None:
        """Test that dots, dashes and underscores survive."""
        assert sanitize_username("John.Doe-Jr_") == "john.doe-jr"

    def test_leading_digit_gets_prefix(self) -> None:
        """Test that a username never starts with a digit."""
        assert sanitize_username("123abc") == "u123abc"

    def test_accents_are_removed(self) -> None:
        """Test that accented characters are reduced to ASCII."""
        assert sanitize_username("José") == "jose"

    def test_nothing_usable_left(self) -> None:
        """Test that a name of only symbols yields an empty string."""
        assert sanitize_username("...") == ""

    def test_deduplicate_adds_lowest_free_suffix(self) -> None:
        """Test that repeated names get _2, then _3."""
        taken: set[str] = set()
        assert deduplicate("alice", taken) == "alice"
        assert deduplicate("alice", taken) == "alice_2"
        assert deduplicate("alice", taken) == "alice_3"
        assert taken == {"alice", "alice_2", "alice_3"}

    def test_deduplicate_respects_max_length(self) -> None:
        """Test that the base is shortened to make room for the suffix."""
        taken = {"abcdef"}
        assert deduplicate("abcdef", taken, "-", max_length=6) == "abcd-2"


class TestChannelNames:
    """Tests for channel handles and chat title slugs."""

    def test_short_handle_gets_prefix(self) -> None:
        """Test that a single character handle is prefixed."""
        assert sanitize_channel_handle("-x-", "C1") == "slack-channel-x"

    def test_invalid_handle_falls_back_to_id(self) -> None:
        """Test that names with spaces fall back to the lowercased ID."""
        assert sanitize_channel_handle("dev ops", "C0123") == "c0123"

    def test_handle_is_stable(self) -> None:
        """Test that sanitizing a sanitized handle changes nothing."""
        once = sanitize_channel_handle("_" + "a" * 80 + "_", "C1")
        assert len(once) == 64
        assert sanitize_channel_handle(once, "C1") == once

    def test_slug_strips_accents_and_punctuation(self) -> None:
        """Test the slug of a free-form chat title."""
        assert slugify_channel_name("Équipe Café!") == "equipe-cafe"

    def test_slug_collapses_dashes(self) -> None:
        """Test that runs of separators collapse into one dash."""
        assert slugify_channel_name("Team -- Chat") == "team-chat"

    def test_slug_fallback(self) -> None:
        """Test that titles without usable characters get the fallback slug."""
        assert slugify_channel_name("!!!") == FALLBACK_CHAT_SLUG
        assert slugify_channel_name("Чат") == FALLBACK_CHAT_SLUG


class TestMessageSplitting:
    """Tests for splitting long messages."""

    def test_short_message_is_untouched(self) -> None:
        """Test that messages within the limit yield a single part."""
        assert split_message("hello world", 20) == ["hello world"]

    def test_splits_on_last_space(self) -> None:
        """Test that splits happen on word boundaries."""
        assert split_message("aaa bbb ccc", 7) == ["aaa", "bbb ccc"]

    def test_hard_split_without_spaces(self) -> None:
        """Test that a long word is cut at the limit."""
        assert split_message("abcdefghij", 4) == ["abcd", "efgh", "ij"]

    def test_non_positive_limit_disables_splitting(self) -> None:
        """Test that a zero limit keeps the message whole."""
        assert split_message("a" * 100, 0) == ["a" * 100]

    def test_empty_message(self) -> None:
        """Test that an empty message still yields one part."""
        assert split_message("", 10) == [""]


class TestAttachmentPaths:
    """Tests for attachment path normalization."""

    def test_path_is_prefixed_with_file_id(self) -> None:
        """Test that unsafe characters in file names are replaced."""
        assert normalized_attachment_path("F1", "my report (1).pdf") == "bulk-export-attachments/F1_my_report__1_.pdf"

    def test_make_alpha_num_keeps_allowed(self) -> None:
        """Test that allowed characters are kept and others replaced."""
        assert make_alpha_num("a.b c", ".") == "a.b_c"
