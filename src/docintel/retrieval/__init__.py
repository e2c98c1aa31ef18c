"""Query path: similarity search, generation and answer composition."""

from .answer import NO_RESULTS_ANSWER, AnswerComposer
from .generation import GenerationCapability, OllamaGenerator
from .search import RetrievalEngine

__all__ = [
    "AnswerComposer",
    "GenerationCapability",
    "NO_RESULTS_ANSWER",
    "OllamaGenerator",
    "RetrievalEngine",
]
