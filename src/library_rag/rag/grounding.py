"""
Grounding Module - Reasoning extraction and the relevance gate.
===============================================================

Decides whether a grounded answer is usable before the router commits to
the library path:
- ReasoningParser separates the user-facing answer from a
  <think>…</think> deliberation segment, with explicit fallback branches
- RelevanceGate requires a long-enough extracted answer that contains no
  negative-indicator phrase
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from library_rag.shared.config import RelevanceConfig, get_settings
from library_rag.shared.logging import get_logger
from library_rag.shared.schemas import RetrievalResult
from library_rag.shared.utils import truncate_text

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Reasoning Parser
# ─────────────────────────────────────────────────────────────────────────────


class ExtractionBranch(str, Enum):
    """Which rule produced the extracted answer."""

    PLAIN = "plain"  # no markers at all
    AFTER_END = "after_end"  # content after the last end marker
    BEFORE_START = "before_start"  # content before the first start marker
    REASONING_ONLY = "reasoning_only"  # complete pair, nothing outside it
    STRIPPED = "stripped"  # unpaired marker, removed from the text


@dataclass(frozen=True)
class ExtractedAnswer:
    """An answer with its reasoning segment removed."""

    text: str
    branch: ExtractionBranch
    reasoning: str = ""


class ReasoningParser:
    """
    Extracts the final answer from model output.

    Branches, tried in order:
    1. No markers: the whole text
    2. Content after the last end marker, if any
    3. Content before the first start marker, if any
    4. A complete marker pair with nothing outside it: empty answer
    5. Otherwise the text with markers removed

    Example:
        >>> parser = ReasoningParser()
        >>> parser.extract("<think>端口问题</think>默认端口是3306。").text
        '默认端口是3306。'
    """

    def __init__(self, start_marker: str = "<think>", end_marker: str = "</think>"):
        self.start_marker = start_marker
        self.end_marker = end_marker

    @classmethod
    def from_config(cls, config: Optional[RelevanceConfig] = None) -> "ReasoningParser":
        config = config or get_settings().relevance
        return cls(config.reasoning_start_marker, config.reasoning_end_marker)

    def extract(self, answer: Optional[str]) -> ExtractedAnswer:
        text = answer or ""
        start = text.find(self.start_marker)
        end = text.rfind(self.end_marker)

        if start == -1 and end == -1:
            return ExtractedAnswer(text=text.strip(), branch=ExtractionBranch.PLAIN)

        reasoning = self._reasoning_segment(text, start, end)

        if end != -1:
            after = text[end + len(self.end_marker):].strip()
            if after:
                return ExtractedAnswer(text=after, branch=ExtractionBranch.AFTER_END, reasoning=reasoning)

        if start != -1:
            before = text[:start].strip()
            if before:
                return ExtractedAnswer(text=before, branch=ExtractionBranch.BEFORE_START, reasoning=reasoning)

        if start != -1 and end > start:
            return ExtractedAnswer(text="", branch=ExtractionBranch.REASONING_ONLY, reasoning=reasoning)

        stripped = text.replace(self.start_marker, "").replace(self.end_marker, "").strip()
        return ExtractedAnswer(text=stripped, branch=ExtractionBranch.STRIPPED)

    def _reasoning_segment(self, text: str, start: int, end: int) -> str:
        if start != -1 and end > start:
            return text[start + len(self.start_marker):end].strip()
        return ""


# ─────────────────────────────────────────────────────────────────────────────
# Relevance Gate
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class GateVerdict:
    """Outcome of a relevance check."""

    passed: bool
    reason: str
    answer: str = ""


class RelevanceGate:
    """
    Judges whether a grounded answer is trustworthy enough to return.

    Example:
        >>> gate = RelevanceGate()
        >>> gate.evaluate("抱歉，文档中没有相关信息。").passed
        False
    """

    def __init__(
        self,
        config: Optional[RelevanceConfig] = None,
        parser: Optional[ReasoningParser] = None,
    ):
        self.config = config or get_settings().relevance
        self.parser = parser or ReasoningParser(
            self.config.reasoning_start_marker, self.config.reasoning_end_marker
        )
        self._negative = tuple(phrase.lower() for phrase in self.config.negative_indicators)

    def admits(self, result: RetrievalResult) -> bool:
        """An empty retrieval never reaches generation."""
        return not result.is_empty

    def evaluate(self, answer: Optional[str]) -> GateVerdict:
        """Check the extracted answer for length and negative phrases."""
        extracted = self.parser.extract(answer)
        lowered = extracted.text.lower()

        for phrase in self._negative:
            if phrase in lowered:
                logger.info(f"Relevance gate failed: negative indicator '{phrase}'")
                return GateVerdict(False, f"negative_indicator:{phrase}", extracted.text)

        if len(extracted.text) < self.config.min_answer_length:
            logger.info(
                f"Relevance gate failed: answer too short ({len(extracted.text)} chars, "
                f"branch={extracted.branch.value}): {truncate_text(extracted.text, 60)!r}"
            )
            return GateVerdict(False, "too_short", extracted.text)

        logger.info(f"Relevance gate passed ({len(extracted.text)} chars, branch={extracted.branch.value})")
        return GateVerdict(True, "passed", extracted.text)

    def is_relevant(self, answer: Optional[str]) -> bool:
        return self.evaluate(answer).passed
