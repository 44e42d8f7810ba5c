"""Unicode emoji to reaction-name lookup."""

import re
from collections.abc import Iterable, Mapping
from types import MappingProxyType

import emoji

_SHORT_NAME = re.compile(r"^[a-z0-9_]+$")
_VARIATION_SELECTOR = "\ufe0f"

# Names the import target uses for emoji the library calls differently
_OVERRIDES: dict[str, str] = {
    "👍": "thumbsup",
    "👎": "thumbsdown",
    "\u2764": "heart",
    "\u2764\ufe0f": "heart",
}
_EXTRA_NAMES: frozenset[str] = frozenset({"+1", "-1", "thumbsup", "thumbsdown", "heart"})


def _strip_colons(name: str) -> str:
    return name.strip(":").lower()


def _preferred_name(data: Mapping[str, object]) -> str | None:
    aliases = [_strip_colons(alias) for alias in data.get("alias", []) or []]  # type: ignore[union-attr]
    for alias in aliases:
        if _SHORT_NAME.match(alias):
            return alias
    english = data.get("en")
    if isinstance(english, str) and english:
        return _strip_colons(english)
    return aliases[0] if aliases else None


class EmojiTable:
    """Immutable mapping from emoji characters to reaction names.

    Build it once with :meth:`default` and hand the same instance to every
    transformer that needs it.

    Example:
        >>> table = EmojiTable.default()
        >>> table.name_for("👍")
        'thumbsup'
        >>> table.is_known_name("joy")
        True
    """

    def __init__(self, by_emoji: Mapping[str, str], names: Iterable[str]) -> None:
        self._by_emoji: Mapping[str, str] = MappingProxyType(dict(by_emoji))
        self._names: frozenset[str] = frozenset(names)

    @classmethod
    def default(cls) -> "EmojiTable":
        """Build the table from the ``emoji`` package data."""
        by_emoji: dict[str, str] = {}
        names: set[str] = set(_EXTRA_NAMES)
        for char, data in emoji.EMOJI_DATA.items():
            name = _preferred_name(data)
            if not name:
                continue
            by_emoji[char] = name
            names.add(name)
            names.update(_strip_colons(alias) for alias in data.get("alias", []) or [])
            if isinstance(data.get("en"), str):
                names.add(_strip_colons(data["en"]))
        by_emoji.update(_OVERRIDES)
        return cls(by_emoji, names)

    def name_for(self, char: str) -> str | None:
        """Return the reaction name of ``char``, or None if it is not a known emoji."""
        name = self._by_emoji.get(char)
        if name is None and _VARIATION_SELECTOR in char:
            name = self._by_emoji.get(char.replace(_VARIATION_SELECTOR, ""))
        return name

    def is_known_name(self, name: str) -> bool:
        """Whether ``name`` (with or without colons and skin tone) is a standard emoji name."""
        base = _strip_colons(name).split("::", 1)[0]
        return base in self._names

    def __len__(self) -> int:
        return len(self._by_emoji)

    def __contains__(self, char: object) -> bool:
        return isinstance(char, str) and self.name_for(char) is not None


__all__ = ["EmojiTable"]
