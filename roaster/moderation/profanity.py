"""Profanity filter applied to roast lines when a group has safe mode on.

Matching is a case-insensitive *substring* test against a fixed lexicon.
This also flags words that merely contain a lexicon entry (for
example "Scunthorpe" or "damnation"); callers treat such hits as blocked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lexicon
# ---------------------------------------------------------------------------

DEFAULT_LEXICON: frozenset[str] = frozenset({
    "fuck", "shit", "bitch", "asshole", "damn", "cunt",
    "nigger", "faggot",
})


@dataclass
class FilterResult:
    """Outcome of checking one line."""

    allowed: bool
    matched: list[str] = field(default_factory=list)


class ProfanityFilter:
    """Stateless lexicon matcher."""

    def __init__(self, lexicon: Optional[Iterable[str]] = None) -> None:
        words = DEFAULT_LEXICON if lexicon is None else lexicon
        self._lexicon = tuple(sorted({w.lower() for w in words if w.strip()}))

    @property
    def lexicon(self) -> tuple[str, ...]:
        return self._lexicon

    def matches(self, text: str) -> list[str]:
        """Return every lexicon entry found inside *text*."""
        lowered = text.lower()
        return [word for word in self._lexicon if word in lowered]

    def contains_disallowed_language(self, text: str) -> bool:
        lowered = text.lower()
        return any(word in lowered for word in self._lexicon)

    def check(self, text: str) -> FilterResult:
        hits = self.matches(text)
        if hits:
            logger.debug("Lexicon hit %s in line: %.50s", hits, text)
        return FilterResult(allowed=not hits, matched=hits)


_default_filter = ProfanityFilter()


def contains_disallowed_language(text: str) -> bool:
    """Module-level shortcut using the default lexicon."""
    return _default_filter.contains_disallowed_language(text)
