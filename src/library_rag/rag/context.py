"""
Context Module - Bounded context assembly from retrieved fragments.
===================================================================

Joins fragments, in order, into a single prompt context whose length never
exceeds a cap. The cap grows with the number of corroborating fragments:

    fragments   cap
    ≤ 3         base
    4 – 5       base × 1.2
    > 5         base × 1.5

When the next fragment would overflow, a truncated prefix ending in "..."
is admitted if at least 100 characters of budget remain; assembly then stops.
"""

from typing import Optional

from library_rag.shared.config import ContextConfig, get_settings
from library_rag.shared.logging import get_logger
from library_rag.shared.schemas import AssembledContext, Fragment

logger = get_logger(__name__)


class ContextAssembler:
    """
    Builds AssembledContext values.

    Example:
        >>> assembler = ContextAssembler()
        >>> context = assembler.assemble(result.fragments)
        >>> len(context.text) <= context.cap
        True
    """

    def __init__(self, config: Optional[ContextConfig] = None):
        self.config = config or get_settings().context

    def compute_cap(self, fragment_count: int, base_length: Optional[int] = None) -> int:
        """Dynamic cap for a given number of fragments."""
        base = base_length if base_length is not None else self.config.base_max_length

        if fragment_count >= self.config.large_tier_min_fragments:
            return int(base * self.config.large_multiplier)
        if fragment_count >= self.config.medium_tier_min_fragments:
            return int(base * self.config.medium_multiplier)
        return base

    def assemble(self, fragments: list[Fragment], base_length: Optional[int] = None) -> AssembledContext:
        """Assemble with the dynamic cap."""
        cap = self.compute_cap(len(fragments), base_length)
        context = self.assemble_with_cap(fragments, cap)
        logger.info(
            f"Assembled context: {len(context.text)}/{cap} chars from "
            f"{len(context.fragment_ids)}/{len(fragments)} fragments"
            + (" (truncated)" if context.truncated else "")
        )
        return context

    def assemble_fast(self, fragments: list[Fragment]) -> AssembledContext:
        """Assemble with the fixed, smaller streaming cap."""
        context = self.assemble_with_cap(fragments, self.config.fast_max_length)
        logger.info(
            f"Assembled fast context: {len(context.text)}/{context.cap} chars from "
            f"{len(context.fragment_ids)} fragments"
        )
        return context

    def assemble_with_cap(self, fragments: list[Fragment], cap: int) -> AssembledContext:
        """Append fragments in order until the cap is reached."""
        separator = self.config.separator
        ellipsis = self.config.ellipsis

        parts: list[str] = []
        used_ids: list[str] = []
        length = 0
        truncated = False

        for fragment in fragments:
            joiner = separator if parts else ""
            addition = len(joiner) + len(fragment.text)

            if length + addition <= cap:
                parts.append(joiner + fragment.text)
                used_ids.append(fragment.id)
                length += addition
                continue

            remaining = cap - length - len(joiner)
            if remaining >= self.config.min_tail_budget:
                prefix = fragment.text[: remaining - len(ellipsis)]
                parts.append(joiner + prefix + ellipsis)
                used_ids.append(fragment.id)
                truncated = True
            break

        text = "".join(parts).rstrip()
        return AssembledContext(text=text, fragment_ids=used_ids, cap=cap, truncated=truncated)
