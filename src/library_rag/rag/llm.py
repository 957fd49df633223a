"""
LLM Module - Language model contract and the Gemini adapter.
============================================================

The routing engine consumes a language model through two calls:
- complete(prompt) → text (blocking)
- stream(prompt) → iterator of text deltas

GeminiLanguageModel implements both on google-generativeai, retrying
transient failures with tenacity and raising GenerationFailure once the
attempts are exhausted.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional

from tenacity import (
    Retrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from library_rag.shared.config import GenerationConfig, get_settings
from library_rag.shared.errors import GenerationFailure
from library_rag.shared.logging import get_logger

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Abstract Base Class
# ─────────────────────────────────────────────────────────────────────────────


class LanguageModel(ABC):
    """
    Language model contract.

    Implementations raise GenerationFailure when a call fails or times out.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name being used."""

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Generate a full response for a prompt."""

    @abstractmethod
    def stream(self, prompt: str) -> Iterator[str]:
        """Yield response text deltas as they are produced."""


# ─────────────────────────────────────────────────────────────────────────────
# Gemini Implementation
# ─────────────────────────────────────────────────────────────────────────────


class GeminiLanguageModel(LanguageModel):
    """
    Gemini adapter using google-generativeai.

    Requires:
    - GEMINI_API_KEY environment variable (or api_key argument)

    Example:
        >>> llm = GeminiLanguageModel()
        >>> for delta in llm.stream("解释一下数据库索引"):
        ...     print(delta, end="")
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
    ):
        """
        Initialize the adapter.

        Args:
            model_name: Gemini model name (default from config / GEMINI_MODEL)
            api_key: Gemini API key (default from GEMINI_API_KEY)
            config: Generation parameters (default from settings)
        """
        settings = get_settings()

        self.config = config or settings.generation
        self._model_name = model_name or settings.get_effective_model_name()
        self.api_key = api_key or settings.gemini_api_key

        self._client = None
        self._model = None

        logger.info(
            f"Language model configured: model={self._model_name}, "
            f"temp={self.config.temperature}, max_tokens={self.config.max_output_tokens}"
        )

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def client(self):
        """Lazy-load Gemini client."""
        if self._client is None:
            if not self.api_key:
                raise GenerationFailure(
                    "Gemini API key not found. Set GEMINI_API_KEY environment variable."
                )
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self._client = genai
            logger.debug("Gemini client initialized")
        return self._client

    @property
    def model(self):
        """Lazy-load Gemini model."""
        if self._model is None:
            self._model = self.client.GenerativeModel(
                model_name=self._model_name,
                generation_config={
                    "temperature": self.config.temperature,
                    "max_output_tokens": self.config.max_output_tokens,
                    "top_p": self.config.top_p,
                    "top_k": self.config.top_k,
                },
            )
            logger.debug(f"Gemini model loaded: {self._model_name}")
        return self._model

    def complete(self, prompt: str) -> str:
        try:
            response = self._generate_content(prompt)
            return response.text or ""
        except GenerationFailure:
            raise
        except Exception as e:
            logger.error(f"Generation failed after retries: {e}")
            raise GenerationFailure(f"Generation failed: {e}") from e

    def stream(self, prompt: str) -> Iterator[str]:
        try:
            response = self._generate_content(prompt, stream=True)
            for chunk in response:
                text = getattr(chunk, "text", "")
                if text:
                    yield text
        except GenerationFailure:
            raise
        except Exception as e:
            logger.error(f"Streaming generation failed: {e}")
            raise GenerationFailure(f"Streaming generation failed: {e}") from e

    def _generate_content(self, prompt: str, stream: bool = False):
        """Call the model with retry logic (the stream is retried only until it opens)."""
        retrying = Retrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_not_exception_type(GenerationFailure),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if stream:
                    response = self.model.generate_content(prompt, stream=True)
                else:
                    response = self.model.generate_content(prompt)
        return response


def create_language_model(model_name: Optional[str] = None) -> LanguageModel:
    """Create the default language model adapter."""
    return GeminiLanguageModel(model_name=model_name)
