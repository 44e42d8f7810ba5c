"""Unit tests for provider markup conversion."""

from chatmover.collectors.telegram.models import TextSpan
from chatmover.transformers.markup import convert_slack_markup, convert_slack_mentions, convert_telegram_spans


class TestSlackMentions:
    """Tests for rewriting Slack mention tokens."""

    def test_known_and_unknown_users(self) -> None:
        """Test that unknown users fall back to their ID."""
        text = convert_slack_mentions("<@U1> and <@UX|someone>", {"U1": "alice"}, {})
        assert text == "@alice and @UX"

    def test_channel_mentions(self) -> None:
        """Test that channels resolve to their handle, or to the inline name."""
        text = convert_slack_mentions("<#C1|general> <#C9|old> <#C8>", {}, {"C1": "general-2"})
        assert text == "~general-2 ~old <#C8>"

    def test_special_mentions(self) -> None:
        """Test that broadcast mentions are mapped."""
        text = convert_slack_mentions("<!here> <!channel|channel> <!everyone>", {}, {})
        assert text == "@here @channel @all"

    def test_text_without_tokens_is_untouched(self) -> None:
        """Test the fast path for plain text."""
        assert convert_slack_mentions("plain text", {"U1": "alice"}, {}) == "plain text"


class TestSlackMarkup:
    """Tests for Slack markup to markdown."""

    def test_links_and_bold(self) -> None:
        """Test that labelled links and single-star bold are converted."""
        assert convert_slack_markup("see <https://example.com|docs> *now*") == "see [docs](https://example.com) **now**"

    def test_strikethrough(self) -> None:
        """Test that single tildes become double tildes."""
        assert convert_slack_markup("this is ~gone~") == "this is ~~gone~~"

    def test_escaped_quote(self) -> None:
        """Test that escaped quote markers are restored."""
        assert convert_slack_markup("&gt; quoted") == "> quoted"

    def test_multi_paragraph_quote(self) -> None:
        """Test that every line of a multi-paragraph quote is quoted."""
        assert convert_slack_markup(">&gt;&gt;first\nsecond") == ">first\n>second"


class TestTelegramSpans:
    """Tests for rendering Telegram text spans."""

    def test_mixed_spans(self) -> None:
        """Test formatting, links and resolved mentions."""
        parts = [
            "Hi ",
            TextSpan(type="bold", text="all"),
            " ",
            TextSpan(type="text_link", text="docs", href="https://example.com"),
            " ",
            TextSpan(type="mention_name", text="Bob", user_id=222),
        ]
        rendered = convert_telegram_spans(parts, {"user222": "bob"})
        assert rendered == "Hi **all** [docs](https://example.com) @bob"

    def test_unresolved_mention_uses_text(self) -> None:
        """Test that a mention of an unknown user keeps its display text."""
        parts = [TextSpan(type="mention_name", text="Bob", user_id=999)]
        assert convert_telegram_spans(parts, {}) == "@Bob"

    def test_code_and_quotes(self) -> None:
        """Test code blocks, inline code and block quotes."""
        parts = [
            TextSpan(type="code", text="x = 1"),
            "\n",
            TextSpan(type="pre", text="print(x)"),
            "\n",
            TextSpan(type="blockquote", text="a\nb"),
        ]
        assert convert_telegram_spans(parts, {}) == "`x = 1`\n```\nprint(x)\n```\n> a\n> b"

    def test_hashtag_and_plain_types(self) -> None:
        """Test that hashtags keep one hash and plain-like spans render bare."""
        parts = [
            TextSpan(type="hashtag", text="#news"),
            " ",
            TextSpan(type="url", text="https://example.com"),
            " ",
            TextSpan(type="underline", text="u"),
        ]
        assert convert_telegram_spans(parts, {}) == "#news https://example.com u"
