"""Chunk models for embeddings, indexing and retrieval."""

from typing import Any, Optional

from pydantic import Field

from docintel.errors import PartialIndexFailure

from .base import BaseIRModel
from .document import utcnow


def make_chunk_id(document_id: str, sequence: int) -> str:
    """Deterministic chunk id; re-indexing a document overwrites its chunks."""
    return f"{document_id}-chunk-{sequence}"


class ChunkFragment(BaseIRModel):
    """Window of page text produced by the chunker."""

    text: str
    page_number: int


class ChunkMetadata(BaseIRModel):
    page: Optional[int] = None
    source: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: utcnow().isoformat())


class Chunk(BaseIRModel):
    """
    Embedding unit written to the vector index.

    The embedding length must match the dimension the index was created
    with.
    """

    chunk_id: str
    document_id: str
    content: str
    embedding: list[float]
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    def to_document(self) -> dict[str, Any]:
        """Vector store wire representation."""
        return {
            "chunkId": self.chunk_id,
            "documentId": self.document_id,
            "content": self.content,
            "embedding": list(self.embedding),
            "metadata": self.metadata.model_dump(exclude_none=True),
        }


class SearchResult(BaseIRModel):
    """Ranked hit returned by retrieval."""

    chunk_id: str
    document_id: str
    content: str
    similarity_score: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def page_number(self) -> Optional[int]:
        page = self.metadata.get("page")
        if isinstance(page, int) and not isinstance(page, bool):
            return page
        return None


class IndexItemError(BaseIRModel):
    chunk_id: str
    error: str


class BulkIndexResult(BaseIRModel):
    """Per-item outcome accounting for one bulk upsert."""

    indexed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[IndexItemError] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.indexed + self.skipped + self.failed

    def raise_for_failures(self) -> None:
        """Raise PartialIndexFailure if any item failed."""
        if self.failed:
            raise PartialIndexFailure(self)


class TokenUsage(BaseIRModel):
    tokens: int = 0
    estimated_cost: float = 0.0


class EmbeddingBatch(BaseIRModel):
    """Vectors for a batch of texts, aligned with the input order."""

    vectors: list[list[float]] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)


class IngestionReport(BaseIRModel):
    """Outcome of indexing one parsed document."""

    document_id: str
    chunk_count: int = 0
    deleted: int = 0
    indexed: int = 0
    skipped: int = 0
    failed: int = 0
    usage: TokenUsage = Field(default_factory=TokenUsage)
