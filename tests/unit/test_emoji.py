"""Unit tests for the emoji lookup table."""

from chatmover.transformers.emoji import EmojiTable


class TestEmojiTable:
    """Tests for mapping emoji characters to reaction names."""

    def test_overridden_names(self, emoji_table: EmojiTable) -> None:
        """Test that common reactions use the import's names."""
        assert emoji_table.name_for("👍") == "thumbsup"
        assert emoji_table.name_for("👎") == "thumbsdown"
        assert emoji_table.name_for("\u2764\ufe0f") == "heart"

    def test_unknown_character(self, emoji_table: EmojiTable) -> None:
        """Test that non-emoji characters have no name."""
        assert emoji_table.name_for("a") is None
        assert "a" not in emoji_table

    def test_known_names(self, emoji_table: EmojiTable) -> None:
        """Test name validation with colons and skin tones."""
        assert emoji_table.is_known_name("joy")
        assert emoji_table.is_known_name(":joy:")
        assert emoji_table.is_known_name("+1::skin-tone-2")
        assert not emoji_table.is_known_name("definitely_not_an_emoji")

    def test_table_is_populated(self, emoji_table: EmojiTable) -> None:
        """Test that the table covers the emoji package data."""
        assert len(emoji_table) > 1000
        assert "😂" in emoji_table

    def test_custom_table(self) -> None:
        """Test a table built from explicit data."""
        table = EmojiTable({"x": "ex"}, ["ex"])
        assert table.name_for("x") == "ex"
        assert table.is_known_name("ex")
        assert not table.is_known_name("joy")
