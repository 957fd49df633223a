"""
RAG Module - Retrieval routing and context assembly.
====================================================

This module implements the query-time workflow:

- content_filter: Heuristic rejection of noise fragments
- retriever: Similarity-threshold cascade with keyword augmentation
- context: Bounded context assembly with a dynamic cap
- classifier: Greeting / domain / factual / creative heuristics
- grounding: Reasoning extraction and the relevance gate
- prompts: Grounded, general, extraction and synthesis templates
- llm: Language model contract and the Gemini adapter
- generator: Single-shot, multi-round and streaming generation
- streaming: Event channel and reasoning-aware delta splitting
- router: End-to-end routing for single-shot and streaming requests

RAG Flow:
    Query → Classifier → Cascade → Filter → Context → Generator → Gate → Answer / Stream
"""

from library_rag.rag.classifier import QuestionClassifier
from library_rag.rag.content_filter import ContentFilter
from library_rag.rag.context import ContextAssembler
from library_rag.rag.generator import AnswerGenerator
from library_rag.rag.grounding import ReasoningParser, RelevanceGate
from library_rag.rag.llm import GeminiLanguageModel, LanguageModel
from library_rag.rag.prompts import PromptBuilder
from library_rag.rag.retriever import RetrievalCascade, extract_keywords
from library_rag.rag.router import Router, create_router
from library_rag.rag.streaming import ReasoningStreamSplitter, StreamChannel

__all__ = [
    # Classification & filtering
    "QuestionClassifier",
    "ContentFilter",
    # Retrieval
    "RetrievalCascade",
    "extract_keywords",
    "ContextAssembler",
    # Generation
    "PromptBuilder",
    "LanguageModel",
    "GeminiLanguageModel",
    "AnswerGenerator",
    # Gate
    "ReasoningParser",
    "RelevanceGate",
    # Streaming
    "StreamChannel",
    "ReasoningStreamSplitter",
    # Router
    "Router",
    "create_router",
]
