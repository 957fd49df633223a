"""
Content Filter Module - Reject retrieved fragments that are noise.
==================================================================

A precision-biased heuristic: useful-but-short fragments may be dropped so
that boilerplate, tables of contents and garbled text never reach the
context window.

Rules, applied in order, first match wins:
1. Too short                      → reject
2. Boilerplate / legal notice     → reject
3. Looks like a table of contents → reject
4. Too few letters for its length → reject
5. Substantive-content signal     → accept
6. Otherwise                      → reject
"""

import re
from typing import Optional

from library_rag.shared.config import ContentFilterConfig, get_settings
from library_rag.shared.logging import get_logger
from library_rag.shared.schemas import Fragment

logger = get_logger(__name__)

DIGIT_SEQUENCE = re.compile(r"\d+")


def _split_vocabulary(words: tuple[str, ...]) -> tuple[tuple[str, ...], Optional[re.Pattern]]:
    """
    Split a vocabulary into substring entries and one word-boundary pattern.

    Latin-script words only count as whole words ("so" must not match
    "personal"); CJK entries have no word boundaries and match as substrings.
    """
    substrings = []
    latin = []
    for word in words:
        stripped = word.strip().lower()
        if not stripped:
            continue
        if stripped.isascii():
            latin.append(re.escape(stripped))
        else:
            substrings.append(stripped)

    pattern = re.compile(r"\b(?:" + "|".join(latin) + r")\b") if latin else None
    return tuple(substrings), pattern


class ContentFilter:
    """
    Pure, stateless fragment classifier.

    Example:
        >>> content_filter = ContentFilter()
        >>> useful = [f for f in fragments if content_filter.is_useful(f)]
    """

    def __init__(self, config: Optional[ContentFilterConfig] = None):
        self.config = config or get_settings().content_filter
        self._connectives, self._connective_words = _split_vocabulary(self.config.connectives)
        self._copulas, self._copula_words = _split_vocabulary(self.config.copulas)

    def is_useful(self, fragment: Fragment) -> bool:
        """Whether a fragment should be admitted into retrieval results."""
        verdict, reason = self.evaluate(fragment.text)
        if not verdict:
            logger.debug(f"Filtered fragment {fragment.id}: {reason}")
        return verdict

    def is_useful_text(self, text: str) -> bool:
        return self.evaluate(text)[0]

    def filter(self, fragments: list[Fragment]) -> list[Fragment]:
        """Keep useful fragments, preserving order."""
        return [fragment for fragment in fragments if self.is_useful(fragment)]

    def evaluate(self, text: str) -> tuple[bool, str]:
        """
        Classify text.

        Returns:
            (verdict, reason) where reason names the rule that decided
        """
        cfg = self.config
        text = text or ""
        length = len(text)

        if length < cfg.min_length:
            return False, "too_short"

        lowered = text.lower()
        if any(phrase.lower() in lowered for phrase in cfg.boilerplate_phrases):
            return False, "boilerplate"

        dots = text.count(".") + text.count("…") + text.count("·")
        digits = sum(1 for ch in text if ch.isdigit())
        if dots > cfg.toc_min_dots and digits > cfg.toc_min_digits and length < cfg.toc_max_length:
            return False, "table_of_contents"

        letters = sum(1 for ch in text if ch.isalpha())
        if letters / length < cfg.min_letter_ratio and length > cfg.letter_ratio_min_length:
            return False, "low_letter_ratio"

        if self._has_substantive_signal(text, lowered, length):
            return True, "substantive"

        return False, "no_substantive_signal"

    def _has_substantive_signal(self, text: str, lowered: str, length: int) -> bool:
        cfg = self.config

        has_ending = any(mark in text for mark in cfg.sentence_endings)
        has_comma = any(mark in text for mark in cfg.commas)
        if has_ending and has_comma:
            return True

        if any(mark in text for mark in cfg.clause_marks):
            return True

        if self._mentions(lowered, self._connectives, self._connective_words):
            return True

        if self._mentions(lowered, self._copulas, self._copula_words):
            return True

        if cfg.substantive_min_length < length < cfg.substantive_max_length:
            return True

        return DIGIT_SEQUENCE.search(text) is not None

    @staticmethod
    def _mentions(lowered: str, substrings: tuple[str, ...], words: Optional[re.Pattern]) -> bool:
        if any(entry in lowered for entry in substrings):
            return True
        return words is not None and words.search(lowered) is not None
