"""Embedding Stage - Turn text into fixed-dimension vectors.

The embedding model is an external capability reached through the narrow
EmbeddingGateway interface. The Ollama-backed gateway below performs no
retries; callers decide retry policy. Every transport failure, error
response, or malformed payload is raised as UpstreamUnavailable.
"""

from typing import Optional, Protocol

import httpx

from docintel.config import settings
from docintel.errors import UpstreamUnavailable
from docintel.logging_config import get_logger
from docintel.models import EmbeddingBatch, TokenUsage

logger = get_logger(__name__)


class EmbeddingGateway(Protocol):
    """Text → vector capability."""

    dimension: int

    def embed(self, text: str) -> list[float]:
        ...

    def embed_batch(self, texts: list[str]) -> EmbeddingBatch:
        ...


def estimate_tokens(text: str) -> int:
    """Rough token estimate used when the backend reports no usage."""
    return -(-len(text) // 4)


class OllamaEmbeddingGateway:
    """EmbeddingGateway backed by Ollama's /api/embed endpoint."""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        batch_size: Optional[int] = None,
        cost_per_million_tokens: Optional[float] = None,
    ):
        """Initialize gateway.

        Args:
            client: Shared httpx client (created from settings if omitted).
            model: Ollama embedding model name.
            dimension: Expected vector length.
            batch_size: Texts per request in embed_batch.
            cost_per_million_tokens: Used for usage cost estimates.
        """
        self.client = client or httpx.Client(
            base_url=settings.ollama_host, timeout=settings.request_timeout
        )
        self.model = model or settings.embedding_model
        self.dimension = dimension or settings.embedding_dimension
        self.batch_size = batch_size or settings.embedding_batch_size
        self.cost_per_million_tokens = (
            settings.embedding_cost_per_million_tokens
            if cost_per_million_tokens is None
            else cost_per_million_tokens
        )

    def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        if not text or not text.strip():
            raise ValueError("Input text cannot be empty")

        vectors, _ = self._request([text])
        return vectors[0]

    def embed_batch(self, texts: list[str]) -> EmbeddingBatch:
        """Embed texts in batches, preserving input order."""
        vectors: list[list[float]] = []
        tokens = 0

        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            batch_vectors, batch_tokens = self._request(batch)
            vectors.extend(batch_vectors)
            tokens += batch_tokens

        usage = TokenUsage(tokens=tokens, estimated_cost=self.estimate_cost(tokens))
        logger.info(
            "batch_embedding_completed",
            texts=len(texts),
            tokens=usage.tokens,
            estimated_cost=usage.estimated_cost,
        )
        return EmbeddingBatch(vectors=vectors, usage=usage)

    def estimate_cost(self, tokens: int) -> float:
        return tokens / 1_000_000 * self.cost_per_million_tokens

    def _request(self, texts: list[str]) -> tuple[list[list[float]], int]:
        """Call /api/embed once; returns (vectors, prompt tokens)."""
        try:
            response = self.client.post(
                "/api/embed", json={"model": self.model, "input": texts}
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.error("embedding_request_failed", error=str(e), texts=len(texts))
            raise UpstreamUnavailable("embedding", str(e)) from e
        except ValueError as e:
            raise UpstreamUnavailable("embedding", f"invalid JSON response: {e}") from e

        vectors = body.get("embeddings") if isinstance(body, dict) else None
        if not isinstance(vectors, list) or len(vectors) != len(texts):
            raise UpstreamUnavailable(
                "embedding", f"expected {len(texts)} embeddings in response"
            )
        for vector in vectors:
            if not isinstance(vector, list) or len(vector) != self.dimension:
                got = len(vector) if isinstance(vector, list) else type(vector).__name__
                raise UpstreamUnavailable(
                    "embedding",
                    f"expected embedding with dimension {self.dimension}, got {got}",
                )

        tokens = body.get("prompt_eval_count")
        if not isinstance(tokens, int):
            tokens = sum(estimate_tokens(t) for t in texts)

        return [[float(x) for x in v] for v in vectors], tokens
