"""Similarity search over the vector index.

Search never raises on backend failure: an unreachable or broken index
degrades to "no matches", which callers treat as a legitimate empty
result.
"""

from typing import Any, Optional

from pydantic import ValidationError

from docintel.config import settings
from docintel.errors import VectorStoreError
from docintel.logging_config import get_logger
from docintel.models import SearchResult
from docintel.storage.vector_backend import VectorBackend

logger = get_logger(__name__)


class RetrievalEngine:
    """Read side of the vector index."""

    def __init__(self, backend: VectorBackend, keyword_weight: Optional[float] = None):
        """Initialize engine.

        Args:
            backend: Vector store backend.
            keyword_weight: Share of the score taken from keyword matching,
                0 for pure vector similarity.
        """
        self.backend = backend
        self.keyword_weight = (
            settings.keyword_weight if keyword_weight is None else keyword_weight
        )
        if not 0.0 <= self.keyword_weight <= 1.0:
            raise ValueError(f"keyword_weight must be in [0, 1], got {self.keyword_weight}")

    def hybrid_search(
        self,
        query_vector: list[float],
        query_text: str,
        k: int,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[SearchResult]:
        """Vector search optionally blended with a keyword score.

        Returns:
            At most k results sorted by descending similarity score.
        """
        return self._search(query_vector, query_text, k, self.keyword_weight, filters)

    def vector_search(
        self,
        query_vector: list[float],
        k: int,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[SearchResult]:
        """Pure approximate nearest-neighbour search."""
        return self._search(query_vector, None, k, 0.0, filters)

    def _search(
        self,
        query_vector: list[float],
        query_text: Optional[str],
        k: int,
        keyword_weight: float,
        filters: Optional[dict[str, Any]],
    ) -> list[SearchResult]:
        if k <= 0:
            return []

        try:
            hits = self.backend.knn_search(
                query_vector,
                k,
                query_text=query_text,
                keyword_weight=keyword_weight,
                filters=filters,
            )
        except VectorStoreError as e:
            logger.warning("search_failed", error=str(e), k=k)
            return []

        results = [r for r in (self._to_result(hit) for hit in hits) if r is not None]
        results.sort(key=lambda r: r.similarity_score, reverse=True)
        results = results[:k]

        logger.debug("search_completed", requested=k, returned=len(results))
        return results

    @staticmethod
    def _to_result(hit: dict[str, Any]) -> Optional[SearchResult]:
        source = hit.get("source") or {}
        try:
            return SearchResult(
                chunk_id=source.get("chunkId") or hit.get("id"),
                document_id=source.get("documentId", ""),
                content=source.get("content", ""),
                similarity_score=hit.get("score", 0.0),
                metadata=source.get("metadata") or {},
            )
        except ValidationError:
            logger.warning("malformed_search_hit", hit_id=hit.get("id"))
            return None
