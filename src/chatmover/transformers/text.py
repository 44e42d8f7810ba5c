"""String helpers shared by the provider transformers."""

import posixpath
import re
import unicodedata

import structlog

from chatmover.schemas.intermediate import ATTACHMENTS_INTERNAL, is_valid_channel_name

logger = structlog.get_logger(__name__)

DEFAULT_MAX_MESSAGE_LENGTH = 16383

_DIGITS = re.compile(r"^\d+$", re.ASCII)

_SPECIAL_REPLACEMENTS: dict[str, str] = {"ß": "ss"}

_SLUG_PUNCTUATION = re.compile(r"[\s.,;:!?@#$%^&*()+={}\[\]|\\/\"'<>]+")
_SLUG_INVALID = re.compile(r"[^a-z0-9\-_]")
_SLUG_DASHES = re.compile(r"-+")
_SLUG_ACCENTS: dict[str, str] = {
    "ñ": "n", "ç": "c", "ß": "ss",
    "à": "a", "á": "a", "â": "a", "ã": "a", "ä": "a", "å": "a", "æ": "ae",
    "è": "e", "é": "e", "ê": "e", "ë": "e",
    "ì": "i", "í": "i", "î": "i", "ï": "i",
    "ò": "o", "ó": "o", "ô": "o", "õ": "o", "ö": "o", "ø": "o", "œ": "oe",
    "ù": "u", "ú": "u", "û": "u", "ü": "u",
    "ý": "y", "ÿ": "y",
}  # fmt: skip
FALLBACK_CHAT_SLUG = "telegram-chat"


def convert_slack_timestamp(ts: str) -> int:
    """Convert a Slack ``ts`` such as ``"1700000000.123456"`` to milliseconds.

    Only the first four fractional digits are used and the result is rounded
    half away from zero. Unparseable input yields the sentinel ``1``.

    Example:
        >>> convert_slack_timestamp("1700000000.123456")
        1700000000123
    """
    seconds, _, fraction = ts.partition(".")
    digits = seconds + fraction.ljust(4, "0")[:4]
    if not _DIGITS.match(digits):
        logger.warning("bad_timestamp", ts=ts)
        return 1
    return (int(digits) + 5) // 10


def make_alpha_num(value: str, *allowed: str) -> str:
    """Reduce ``value`` to ASCII letters, digits and the ``allowed`` characters.

    Accents are decomposed and dropped, other non-ASCII characters are removed
    and remaining ASCII characters outside the allowed set become ``_``.
    """
    for match, replacement in _SPECIAL_REPLACEMENTS.items():
        value = value.replace(match, replacement)

    result: list[str] = []
    for char in unicodedata.normalize("NFKD", value):
        if char in allowed:
            result.append(char)
        elif ord(char) > 127:
            continue
        elif char.isalnum():
            result.append(char)
        else:
            result.append("_")
    return "".join(result)


def normalized_attachment_path(file_id: str, file_name: str) -> str:
    """Relative import path of an attached file, e.g. ``bulk-export-attachments/F1_a_b.png``."""
    name = make_alpha_num(file_name, ".", "-", "_")
    path = posixpath.join(ATTACHMENTS_INTERNAL, f"{file_id}_{name}")
    return unicodedata.normalize("NFC", path)


def split_message(message: str, max_length: int) -> list[str]:
    """Split ``message`` into parts of at most ``max_length`` characters.

    Splits happen on the last space before the limit when there is one, and
    parts are stripped. A non-positive ``max_length`` disables splitting. The
    result always has at least one element.
    """
    if not message:
        return [""]
    if max_length <= 0 or len(message) <= max_length:
        return [message]

    parts: list[str] = []
    while len(message) > max_length:
        split_index = message.rfind(" ", 0, max_length)
        if split_index <= 0:
            split_index = max_length
        parts.append(message[:split_index].strip())
        message = message[split_index:].strip()

    if message:
        parts.append(message)
    return parts or [""]


def sanitize_username(value: str) -> str:
    """Lowercase ``value`` and restrict it to ``[a-z0-9._-]``, starting with a letter.

    Returns an empty string when nothing usable is left.
    """
    name = make_alpha_num(value.strip().lower(), ".", "-", "_").lower()
    name = name.strip(".-_")
    if name and not name[0].isalpha():
        name = "u" + name
    return name


def deduplicate(name: str, taken: set[str], separator: str = "_", max_length: int | None = None) -> str:
    """Return ``name``, or ``name`` plus the lowest free numeric suffix, and mark it taken."""
    candidate = name
    counter = 2
    while candidate in taken:
        suffix = f"{separator}{counter}"
        base = name if max_length is None else name[: max_length - len(suffix)]
        candidate = base + suffix
        counter += 1
    taken.add(candidate)
    return candidate


def slugify_channel_name(name: str) -> str:
    """Build a channel handle from a free-form chat title.

    Example:
        >>> slugify_channel_name("Équipe Café!")
        'equipe-cafe'
    """
    name = name.lower()
    name = _SLUG_PUNCTUATION.sub("-", name)
    for match, replacement in _SLUG_ACCENTS.items():
        name = name.replace(match, replacement)
    name = unicodedata.normalize("NFKD", name)
    name = _SLUG_INVALID.sub("", name)
    name = _SLUG_DASHES.sub("-", name)
    name = name.strip("-_")

    if len(name) < 2 or not is_valid_channel_name(name):
        return FALLBACK_CHAT_SLUG
    return name


__all__ = [
    "DEFAULT_MAX_MESSAGE_LENGTH",
    "FALLBACK_CHAT_SLUG",
    "convert_slack_timestamp",
    "deduplicate",
    "make_alpha_num",
    "normalized_attachment_path",
    "sanitize_username",
    "slugify_channel_name",
    "split_message",
]
