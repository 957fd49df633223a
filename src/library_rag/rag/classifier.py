"""
Classifier Module - Rule-based question classification.
========================================================

Lightweight heuristics over a lower-cased copy of the question:
- Greeting: exact or prefix match against a greeting/thanks vocabulary
- Domain-preferred: any configured library/document keyword present
- Factual: interrogative patterns ("what is", "how to", "默认", ...)
- Creative: generative-request patterns ("write me", "design", ...)

The result is advisory. It decides whether retrieval is attempted at all
and supplies the greeting short-circuit; whether grounding succeeds is
decided by the retrieval cascade.
"""

import re
from typing import Optional

from library_rag.shared.config import ClassifierConfig, get_settings
from library_rag.shared.logging import get_logger
from library_rag.shared.schemas import QuestionAnalysis

logger = get_logger(__name__)


class QuestionClassifier:
    """
    Stateless question classifier.

    Patterns are compiled once from the injected vocabulary.

    Example:
        >>> classifier = QuestionClassifier()
        >>> classifier.analyze("MySQL的默认端口是什么？").should_retrieve
        True
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or get_settings().classifier
        self._greetings = tuple(g.lower() for g in self.config.greetings)
        self._domain_keywords = tuple(k.lower() for k in self.config.domain_keywords)
        self._factual = [re.compile(p, re.IGNORECASE) for p in self.config.factual_patterns]
        self._creative = [re.compile(p, re.IGNORECASE) for p in self.config.creative_patterns]

    def analyze(self, question: str) -> QuestionAnalysis:
        """Classify a question."""
        normalized = (question or "").strip().lower()

        analysis = QuestionAnalysis(
            is_greeting=self.is_greeting(normalized),
            prefer_library=any(keyword in normalized for keyword in self._domain_keywords),
            is_factual=any(p.search(normalized) for p in self._factual),
            is_creative=any(p.search(normalized) for p in self._creative),
        )

        logger.debug(
            f"Question analysis: greeting={analysis.is_greeting}, "
            f"library={analysis.prefer_library}, factual={analysis.is_factual}, "
            f"creative={analysis.is_creative}"
        )
        return analysis

    def is_greeting(self, question: str) -> bool:
        """Exact match, or a greeting word followed by a separator."""
        normalized = (question or "").strip().lower()
        if not normalized:
            return False

        for greeting in self._greetings:
            if normalized == greeting:
                return True
            if any(normalized.startswith(greeting + sep) for sep in self.config.greeting_separators):
                return True
        return False
