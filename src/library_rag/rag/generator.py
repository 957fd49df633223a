"""
Generator Module - Grounded and general answer generation.
==========================================================

Wraps the language model with the prompt templates and context assembly:
- Single-shot grounded generation over the dynamically capped context
- Optional multi-round extract-then-synthesize mode
- General-knowledge generation
- Streaming variants that yield cleaned text deltas
"""

import re
from typing import Iterator, Optional

from library_rag.rag.context import ContextAssembler
from library_rag.rag.llm import LanguageModel
from library_rag.rag.prompts import PromptBuilder
from library_rag.rag.retriever import RetrievalCascade
from library_rag.rag.streaming import clean_delta
from library_rag.shared.config import GenerationConfig, MessagesConfig, get_settings
from library_rag.shared.errors import GenerationFailure
from library_rag.shared.logging import get_logger, log_duration
from library_rag.shared.schemas import Fragment

logger = get_logger(__name__)

EXCESS_BLANK_LINES = re.compile(r"\n{3,}")


def postprocess_response(text: Optional[str]) -> str:
    """Collapse runs of three or more newlines and trim."""
    if not text:
        return ""
    return EXCESS_BLANK_LINES.sub("\n\n", text).strip()


# ─────────────────────────────────────────────────────────────────────────────
# Answer Generator
# ─────────────────────────────────────────────────────────────────────────────


class AnswerGenerator:
    """
    Turns fragments and questions into model answers.

    Generation methods raise GenerationFailure; the router decides how
    failures surface to the user.

    Example:
        >>> generator = AnswerGenerator(llm=GeminiLanguageModel())
        >>> text = generator.generate_grounded(question, result.fragments)
    """

    def __init__(
        self,
        llm: LanguageModel,
        assembler: Optional[ContextAssembler] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        config: Optional[GenerationConfig] = None,
        messages: Optional[MessagesConfig] = None,
        retriever: Optional[RetrievalCascade] = None,
    ):
        """
        Initialize the generator.

        Args:
            llm: Language model adapter
            assembler: Context assembler (default from settings)
            prompt_builder: Prompt templates (default from settings)
            config: Generation settings (default from settings)
            messages: User-facing strings (default from settings)
            retriever: Cascade used by answer_from_index()
        """
        settings = get_settings()

        self.llm = llm
        self.config = config or settings.generation
        self.messages = messages or settings.messages
        self.assembler = assembler or ContextAssembler()
        self.prompt_builder = prompt_builder or PromptBuilder(self.config)
        self.retriever = retriever

    # ─────────────────────────────────────────────────────────────────────
    # Grounded generation
    # ─────────────────────────────────────────────────────────────────────

    def generate_grounded(self, question: str, fragments: list[Fragment]) -> str:
        """Grounded answer, multi-round when enabled and enough fragments exist."""
        if (
            self.config.multi_round_enabled
            and len(fragments) >= self.config.multi_round_min_fragments
        ):
            return self.generate_multi_round(question, fragments)
        return self.answer_single_round(question, fragments)

    def answer_single_round(self, question: str, fragments: list[Fragment]) -> str:
        """Single-shot grounded answer regardless of the multi-round setting."""
        context = self.assembler.assemble(fragments)
        prompt = self.prompt_builder.build_grounded_prompt(question, context.text)

        with log_duration(logger, "Grounded generation"):
            response = self.llm.complete(prompt)

        answer = postprocess_response(response)
        logger.info(f"Grounded answer: {len(answer)} chars from {len(context.fragment_ids)} fragments")
        return answer

    def generate_multi_round(self, question: str, fragments: list[Fragment]) -> str:
        """
        Extract per round of fragments, then synthesize.

        Falls back to single-shot over the first round's fragments when no
        round yields information, and over all fragments on other failures.
        """
        per_round = self.config.fragments_per_round

        try:
            extractions: list[str] = []
            for round_index in range(self.config.max_rounds):
                batch = fragments[round_index * per_round:(round_index + 1) * per_round]
                if not batch:
                    break

                logger.info(f"Extraction round {round_index + 1}: {len(batch)} fragments")
                extracted = self._extract(question, batch)
                if extracted is None:
                    continue
                extractions.append(extracted)

            if not extractions:
                logger.info("No round yielded information, falling back to single-shot")
                return self.answer_single_round(question, fragments[:per_round])

            prompt = self.prompt_builder.build_synthesis_prompt(question, extractions)
            with log_duration(logger, "Synthesis"):
                answer = postprocess_response(self.llm.complete(prompt))
            logger.info(f"Synthesized answer from {len(extractions)} extractions: {len(answer)} chars")
            return answer

        except Exception as e:
            logger.warning(f"Multi-round generation failed, falling back to single-shot: {e}")
            return self.answer_single_round(question, fragments)

    def _extract(self, question: str, fragments: list[Fragment]) -> Optional[str]:
        """One extraction round; None means no information."""
        context = self.assembler.assemble(fragments)
        prompt = self.prompt_builder.build_extraction_prompt(question, context.text)

        try:
            extracted = self.llm.complete(prompt)
        except GenerationFailure as e:
            logger.warning(f"Extraction failed, treating as no information: {e}")
            return None

        extracted = (extracted or "").strip()
        if not extracted or self.config.no_info_marker in extracted:
            logger.debug("Extraction round reported no information")
            return None
        return extracted

    def answer_from_index(self, question: str) -> str:
        """
        Standalone grounded query: unbounded top-5 retrieval, then generation.

        Returns the not-found message when retrieval is empty and the
        generation apology when the model fails.
        """
        if self.retriever is None:
            raise ValueError("answer_from_index() requires a retriever")

        result = self.retriever.retrieve_unbounded(question, top_k=5)
        if result.is_empty:
            return self.messages.not_found

        try:
            return self.generate_grounded(question, result.fragments)
        except GenerationFailure as e:
            logger.error(f"Generation from index failed: {e}")
            return self.messages.generation_apology

    # ─────────────────────────────────────────────────────────────────────
    # General generation
    # ─────────────────────────────────────────────────────────────────────

    def generate_general(self, question: str) -> str:
        """Answer from the model's general knowledge."""
        prompt = self.prompt_builder.build_general_prompt(question)
        with log_duration(logger, "General generation"):
            answer = postprocess_response(self.llm.complete(prompt))
        logger.info(f"General answer: {len(answer)} chars")
        return answer

    # ─────────────────────────────────────────────────────────────────────
    # Streaming
    # ─────────────────────────────────────────────────────────────────────

    def stream_grounded(self, question: str, fragments: list[Fragment]) -> Iterator[str]:
        """Stream a grounded answer over the fast (smaller) context."""
        context = self.assembler.assemble_fast(fragments)
        prompt = self.prompt_builder.build_grounded_prompt(question, context.text)
        return self._stream(prompt)

    def stream_general(self, question: str) -> Iterator[str]:
        """Stream a general-knowledge answer."""
        return self._stream(self.prompt_builder.build_general_prompt(question))

    def _stream(self, prompt: str) -> Iterator[str]:
        received = 0
        sent = 0
        for delta in self.llm.stream(prompt):
            received += 1
            cleaned = clean_delta(delta)
            if cleaned is None:
                logger.debug(f"Dropped delta {received}")
                continue
            sent += 1
            yield cleaned
        logger.info(f"Stream finished: received {received} deltas, forwarded {sent}")
