"""Conversion of provider message markup to the import's markdown dialect.

Slack messages use ``<...>`` tokens for mentions and links and single
``*``/``~`` for bold and strikethrough. Telegram messages carry typed text
spans. Both are rewritten to plain markdown with ``@username`` and
``~channel`` mentions.
"""

import re
from collections.abc import Iterable, Mapping

import structlog

from chatmover.collectors.telegram.models import TextSpan

logger = structlog.get_logger(__name__)

USER_MENTION_PATTERN = re.compile(r"<@([A-Z0-9]+)(?:\|[^<>]*)?>")
CHANNEL_MENTION_PATTERN = re.compile(r"<#([A-Z0-9]+)(?:\|([^<>]*))?>")

SPECIAL_MENTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"<!here(?:\|@?here)?>"), "@here"),
    (re.compile(r"<!channel(?:\|@?channel)?>"), "@channel"),
    (re.compile(r"<!everyone(?:\|@?everyone)?>"), "@all"),
)

_MARKUP_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"<([^|<>]+)\|([^|<>]+)>"), r"[\2](\1)"),
    (re.compile(r"(^|[\s.;,])\*(\S[^*\n]+)\*"), r"\1**\2**"),
    (re.compile(r"(^|[\s.;,])~(\S[^~\n]+)~"), r"\1~~\2~~"),
    # Slack escapes ">" of single-paragraph quotes
    (re.compile(r"^&gt;", re.MULTILINE | re.DOTALL), ">"),
)
_MULTI_PARAGRAPH_QUOTE = re.compile(r"^>&gt;&gt;(.+)$", re.MULTILINE | re.DOTALL)
_QUOTE_PREFIX = re.compile(r"^(\n)?>&gt;&gt;")
_LINE_START = re.compile(r"^", re.MULTILINE)

TELEGRAM_USER_ID_PREFIX = "user"

# Span types rendered as their bare text
_TELEGRAM_PLAIN_TYPES: frozenset[str] = frozenset(
    {"plain", "url", "email", "phone", "cashtag", "bank_card", "underline", "spoiler", "mention"}
)


def convert_slack_mentions(
    text: str,
    usernames: Mapping[str, str],
    channel_names: Mapping[str, str],
) -> str:
    """Rewrite Slack user, channel and broadcast mentions.

    Args:
        text: Raw Slack message text.
        usernames: Username by Slack user ID.
        channel_names: Channel handle by Slack channel ID.

    Returns:
        The text with ``<@U1>`` replaced by ``@username``, ``<#C1|x>`` by
        ``~channel``, and ``<!here>``/``<!channel>``/``<!everyone>`` by
        ``@here``/``@channel``/``@all``. Unknown users become ``@<ID>``.
    """
    if "<" not in text:
        return text

    def replace_user(match: re.Match[str]) -> str:
        user_id = match.group(1)
        username = usernames.get(user_id)
        if username is None:
            logger.warning("mention_user_unknown", user_id=user_id)
            return f"@{user_id}"
        return f"@{username}"

    def replace_channel(match: re.Match[str]) -> str:
        channel_id, inline_name = match.group(1), match.group(2)
        name = channel_names.get(channel_id)
        if name is None:
            logger.warning("mention_channel_unknown", channel_id=channel_id)
            return f"~{inline_name}" if inline_name else match.group(0)
        return f"~{name}"

    text = USER_MENTION_PATTERN.sub(replace_user, text)
    text = CHANNEL_MENTION_PATTERN.sub(replace_channel, text)
    for pattern, mention in SPECIAL_MENTIONS:
        text = pattern.sub(mention, text)
    return text


def _expand_quote(match: re.Match[str]) -> str:
    block = _QUOTE_PREFIX.sub(lambda m: m.group(1) or "", match.group(0))
    return _LINE_START.sub(">", block)


def convert_slack_markup(text: str) -> str:
    """Convert Slack links, bold, strikethrough and quotes to markdown.

    Example:
        >>> convert_slack_markup("see <https://example.com|docs> *now*")
        'see [docs](https://example.com) **now**'
    """
    for pattern, replacement in _MARKUP_RULES:
        text = pattern.sub(replacement, text)
    return _MULTI_PARAGRAPH_QUOTE.sub(_expand_quote, text)


def _render_span(span: TextSpan, usernames_by_id: Mapping[str, str]) -> str:
    kind, text = span.type, span.text
    if kind in _TELEGRAM_PLAIN_TYPES:
        return text
    if kind == "bold":
        return f"**{text}**"
    if kind == "italic":
        return f"*{text}*"
    if kind == "strikethrough":
        return f"~~{text}~~"
    if kind in ("code", "bot_command"):
        return f"`{text}`"
    if kind == "pre":
        return f"```\n{text}\n```"
    if kind == "blockquote":
        return _LINE_START.sub("> ", text)
    if kind == "text_link":
        return f"[{text}]({span.href})" if span.href else text
    if kind == "hashtag":
        return "#" + text.removeprefix("#")
    if kind == "custom_emoji":
        return text
    if kind == "mention_name":
        if span.user_id is not None:
            username = usernames_by_id.get(f"{TELEGRAM_USER_ID_PREFIX}{span.user_id}")
            if username:
                return f"@{username}"
            logger.warning("mention_name_user_unknown", user_id=span.user_id, text=text)
        return f"@{text}"

    logger.warning("text_entity_unknown", entity_type=kind)
    return text


def convert_telegram_spans(
    parts: Iterable[str | TextSpan],
    usernames_by_id: Mapping[str, str],
) -> str:
    """Render Telegram text parts as markdown.

    Args:
        parts: Plain strings and typed spans, in order.
        usernames_by_id: Username by Telegram user ID (``user<digits>``), used
            to resolve ``mention_name`` spans.
    """
    rendered: list[str] = []
    for part in parts:
        if isinstance(part, str):
            rendered.append(part)
        else:
            rendered.append(_render_span(part, usernames_by_id))
    return "".join(rendered)


__all__ = [
    "CHANNEL_MENTION_PATTERN",
    "SPECIAL_MENTIONS",
    "TELEGRAM_USER_ID_PREFIX",
    "USER_MENTION_PATTERN",
    "convert_slack_markup",
    "convert_slack_mentions",
    "convert_telegram_spans",
]
