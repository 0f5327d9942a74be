"""Tiered roast content loaded from ``roasts_<tier>.txt`` files."""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Callable, Optional, Sequence

from roaster.errors import ContentUnavailable
from roaster.models import Tier

logger = logging.getLogger(__name__)

PACKAGED_CORPUS_DIR = Path(__file__).resolve().parent / "corpus"

Choice = Callable[[Sequence[str]], str]


class ContentSource:
    """Loads candidate roast lines per tier and draws one at random.

    Parameters
    ----------
    corpus_dir:
        Directory holding ``roasts_tame.txt``, ``roasts_spicy.txt`` and
        ``roasts_nuclear.txt``.  Defaults to the packaged corpus.
    choice:
        Draw function taking the candidate sequence and returning one
        element.  Defaults to :func:`random.choice`; tests substitute a
        deterministic one.
    """

    def __init__(
        self,
        corpus_dir: Optional[str | Path] = None,
        choice: Optional[Choice] = None,
    ) -> None:
        self._dir = Path(corpus_dir) if corpus_dir else PACKAGED_CORPUS_DIR
        self._choice = choice or random.choice

    def path_for_tier(self, tier: Tier) -> Path:
        return self._dir / f"roasts_{Tier(tier).value}.txt"

    def lines_for_tier(self, tier: Tier) -> list[str]:
        """Return every non-empty trimmed line of the tier's corpus."""
        path = self.path_for_tier(tier)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Error loading roasts for tier %s: %s", Tier(tier).value, exc)
            raise ContentUnavailable(f"No roasts available for tier: {Tier(tier).value}") from exc

        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not lines:
            raise ContentUnavailable(f"No roasts available for tier: {Tier(tier).value}")
        return lines

    def draw(self, tier: Tier) -> str:
        """Pick one line from the tier's corpus."""
        return self._choice(self.lines_for_tier(tier))
