"""
Retriever Module - Cascading similarity retrieval with keyword augmentation.
============================================================================

One retrieval function shared by the single-shot and streaming paths:
- Cascading mode: high threshold first, then the standard threshold; an
  empty cascade is itself the "no relevant content" signal
- Unbounded mode: plain top-K search for best-effort grounding
- Every tier's raw hits go through the content filter, with one widened
  re-query when filtering leaves too few
- Keyword augmentation: literal tokens derived from fixed rules are searched
  as substrings and placed ahead of vector hits
"""

from typing import Optional

from library_rag.indexing.base import KeywordIndex, VectorIndex
from library_rag.rag.content_filter import ContentFilter
from library_rag.shared.config import RetrievalConfig, get_settings
from library_rag.shared.errors import RetrievalFailure
from library_rag.shared.logging import get_logger
from library_rag.shared.schemas import Fragment, RetrievalHit, RetrievalResult, RetrievalTier
from library_rag.shared.utils import dedupe_preserving_order

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Keyword Extraction
# ─────────────────────────────────────────────────────────────────────────────


def extract_keywords(query: str, config: Optional[RetrievalConfig] = None) -> list[str]:
    """
    Derive literal search tokens from a query using the configured rules.

    Example:
        >>> extract_keywords("MySQL的默认端口是多少？")
        ['mysql', '3306', '端口', 'port', '默认端口', '默认', 'default']
    """
    config = config or get_settings().retrieval
    lowered = (query or "").lower()

    tokens: list[str] = []
    for rule in config.keyword_rules:
        if any(trigger.lower() in lowered for trigger in rule.triggers):
            tokens.extend(rule.keywords)

    return dedupe_preserving_order(tokens)


# ─────────────────────────────────────────────────────────────────────────────
# Retrieval Cascade
# ─────────────────────────────────────────────────────────────────────────────


class RetrievalCascade:
    """
    Queries the vector index at decreasing confidence and merges keyword hits.

    Index failures are logged and treated as empty retrieval, so callers
    route to the general path rather than erroring.

    Example:
        >>> cascade = RetrievalCascade(vector_index=store, keyword_index=store)
        >>> result = cascade.retrieve("What is the default MySQL port?")
        >>> print(result.tier, len(result.hits))
    """

    def __init__(
        self,
        vector_index: VectorIndex,
        keyword_index: Optional[KeywordIndex] = None,
        content_filter: Optional[ContentFilter] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        """
        Initialize the cascade.

        Args:
            vector_index: Similarity search collaborator
            keyword_index: Substring search collaborator (augmentation off if None)
            content_filter: Fragment quality filter (default from settings)
            config: Retrieval settings (default from settings)
        """
        self.vector_index = vector_index
        self.keyword_index = keyword_index
        self.content_filter = content_filter or ContentFilter()
        self.config = config or get_settings().retrieval

    # ─────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────

    def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> RetrievalResult:
        """
        Cascading retrieval followed by keyword augmentation.

        Args:
            query: User question
            top_k: Desired number of vector hits (default from config)
            threshold: Explicit similarity floor; skips the cascade and runs
                a single tier at this threshold

        Returns:
            RetrievalResult; empty when no vector tier matched
        """
        if threshold is not None:
            k = self._clamp(top_k)
            hits = self.search_tier(query, k, threshold, RetrievalTier.STANDARD_SIMILARITY)
            vector_result = RetrievalResult(
                hits=hits,
                tier=RetrievalTier.STANDARD_SIMILARITY if hits else RetrievalTier.NONE,
            )
        else:
            vector_result = self.cascade(query, top_k)

        if vector_result.is_empty:
            return vector_result
        return self.augment_with_keywords(query, vector_result)

    def cascade(self, query: str, top_k: Optional[int] = None) -> RetrievalResult:
        """Vector-only cascade: high threshold, then standard threshold."""
        k = self._clamp(top_k)

        tiers = (
            (self.config.high_threshold, RetrievalTier.HIGH_SIMILARITY),
            (self.config.standard_threshold, RetrievalTier.STANDARD_SIMILARITY),
        )
        for threshold, tier in tiers:
            hits = self.search_tier(query, k, threshold, tier)
            if hits:
                logger.info(f"Cascade matched at {tier.value} (>= {threshold}): {len(hits)} fragments")
                return RetrievalResult(hits=hits, tier=tier)
            logger.debug(f"Cascade tier {tier.value} (>= {threshold}) returned nothing")

        logger.info("Cascade found no relevant content")
        return RetrievalResult.empty()

    def retrieve_unbounded(self, query: str, top_k: Optional[int] = None) -> RetrievalResult:
        """Plain top-K search without a threshold, then keyword augmentation."""
        k = self._clamp(top_k)
        hits = self.search_tier(query, k, None, RetrievalTier.UNBOUNDED)
        result = RetrievalResult(hits=hits, tier=RetrievalTier.UNBOUNDED if hits else RetrievalTier.NONE)

        logger.info(f"Unbounded retrieval returned {len(hits)} fragments")
        if result.is_empty:
            return result
        return self.augment_with_keywords(query, result)

    def search_tier(
        self,
        query: str,
        top_k: int,
        threshold: Optional[float],
        tier: RetrievalTier,
    ) -> list[RetrievalHit]:
        """
        Search one tier and filter its hits.

        If filtering leaves fewer than top_k hits while the raw search was
        saturated, the search is repeated once with a widened K.
        """
        raw = self._safe_search(query, top_k, threshold)
        useful = [hit for hit in raw if self.content_filter.is_useful(hit.fragment)]

        if len(useful) < top_k and len(raw) == top_k:
            widened = min(top_k * self.config.requery_factor, self.config.requery_cap)
            if widened > top_k:
                logger.debug(
                    f"Filtered {len(raw) - len(useful)}/{len(raw)} hits, re-querying with top_k={widened}"
                )
                raw = self._safe_search(query, widened, threshold)
                useful = [hit for hit in raw if self.content_filter.is_useful(hit.fragment)]

        seen: set[str] = set()
        hits: list[RetrievalHit] = []
        for scored in useful:
            if scored.fragment.id in seen:
                continue
            seen.add(scored.fragment.id)
            hits.append(RetrievalHit(fragment=scored.fragment, tier=tier, score=scored.score))
            if len(hits) >= top_k:
                break

        return hits

    def augment_with_keywords(self, query: str, result: RetrievalResult) -> RetrievalResult:
        """
        Prepend keyword-only hits ahead of vector hits.

        Additions are capped at max(0, max_merged_fragments - vector hit count).
        """
        if self.keyword_index is None:
            return result

        keywords = extract_keywords(query, self.config)
        if not keywords:
            return result

        limit = max(0, self.config.max_merged_fragments - len(result.hits))
        if limit == 0:
            return result

        existing = set(result.fragment_ids)
        keyword_hits = [
            RetrievalHit(fragment=fragment, tier=RetrievalTier.KEYWORD)
            for fragment in self.keyword_search(keywords)
            if fragment.id not in existing
        ][:limit]

        logger.info(
            f"Keyword search ({', '.join(keywords)}) contributed {len(keyword_hits)} fragments"
        )
        if not keyword_hits:
            return result

        return RetrievalResult(
            hits=keyword_hits + list(result.hits),
            tier=result.tier,
            keyword_count=len(keyword_hits),
        )

    def keyword_search(self, keywords: list[str]) -> list[Fragment]:
        """Search each keyword; failures for one keyword are logged and skipped."""
        if self.keyword_index is None:
            return []

        found: list[Fragment] = []
        seen: set[str] = set()
        for keyword in keywords:
            try:
                fragments = self.keyword_index.find_by_content_containing(
                    keyword, self.config.keyword_page_limit
                )
            except RetrievalFailure as e:
                logger.warning(f"Keyword search for '{keyword}' failed: {e}")
                continue

            for fragment in fragments:
                if fragment.id not in seen:
                    seen.add(fragment.id)
                    found.append(fragment)
            logger.debug(f"Keyword '{keyword}' matched {len(fragments)} fragments")

        return found

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _clamp(self, top_k: Optional[int]) -> int:
        k = top_k if top_k is not None else self.config.top_k
        return max(1, min(k, self.config.max_top_k))

    def _safe_search(self, query: str, top_k: int, threshold: Optional[float]):
        try:
            return self.vector_index.search(query, top_k, threshold=threshold)
        except RetrievalFailure as e:
            logger.warning(f"Vector search failed, treating as empty: {e}")
            return []
