"""Integration tests for the pgvector backend.

Skipped unless DOCINTEL_TEST_DATABASE_URL points at a PostgreSQL database
with the vector extension available.
"""

import os
import uuid
from datetime import datetime

import pytest

from builders import DIMENSION, text_vector
from docintel.models import Chunk, ChunkMetadata
from docintel.pipeline.stage_index import IndexWriter
from docintel.retrieval.search import RetrievalEngine
from docintel.storage.database import create_db_engine
from docintel.storage.vector_backend import PgVectorBackend

DATABASE_URL = os.environ.get("DOCINTEL_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not DATABASE_URL, reason="DOCINTEL_TEST_DATABASE_URL not set"
)


@pytest.fixture
def pg_backend():
    engine = create_db_engine(DATABASE_URL)
    backend = PgVectorBackend(
        engine, index_name=f"test_chunks_{uuid.uuid4().hex[:8]}", dimension=DIMENSION
    )
    yield backend
    backend.table.drop(engine, checkfirst=True)
    engine.dispose()


def make_chunk(i: int, text: str, document_id: str = "doc-1") -> Chunk:
    return Chunk(
        chunk_id=f"{document_id}-chunk-{i}",
        document_id=document_id,
        content=text,
        embedding=text_vector(text, DIMENSION),
        metadata=ChunkMetadata(page=i + 1, source="report.pdf"),
    )


class TestPgVectorBackend:
    """Round trips against a real database."""

    def test_upsert_search_delete(self, pg_backend):
        writer = IndexWriter(pg_backend, dimension=DIMENSION)
        writer.ensure_index()
        writer.ensure_index()

        chunks = [make_chunk(0, "invoice total due"), make_chunk(1, "weather report")]
        first = writer.bulk_upsert(chunks)
        again = writer.bulk_upsert(chunks)

        assert first.indexed == 2
        assert again.skipped == 2

        results = RetrievalEngine(pg_backend).hybrid_search(
            chunks[0].embedding, "invoice", k=1
        )
        assert results[0].chunk_id == "doc-1-chunk-0"
        assert results[0].similarity_score == pytest.approx(1.0, abs=1e-5)
        assert results[0].page_number == 1

        assert writer.delete_by_document_id("doc-1") == 2
        assert RetrievalEngine(pg_backend).vector_search(chunks[0].embedding, k=5) == []

    def test_keyword_blend(self, pg_backend):
        writer = IndexWriter(pg_backend, dimension=DIMENSION)
        writer.ensure_index()
        writer.bulk_upsert([make_chunk(0, "invoice total due"), make_chunk(1, "weather report")])

        results = RetrievalEngine(pg_backend, keyword_weight=0.5).hybrid_search(
            text_vector("weather report", DIMENSION), "invoice", k=2
        )

        assert len(results) == 2
        assert results[0].similarity_score >= results[1].similarity_score

    def test_hits_carry_timestamp(self, pg_backend):
        """Hits expose metadata.timestamp like the in-memory backend."""
        writer = IndexWriter(pg_backend, dimension=DIMENSION)
        writer.ensure_index()
        chunk = make_chunk(0, "invoice total due")
        writer.bulk_upsert([chunk])

        hits = pg_backend.knn_search(chunk.embedding, 1)

        metadata = hits[0]["source"]["metadata"]
        assert metadata["page"] == 1
        assert metadata["source"] == "report.pdf"
        assert datetime.fromisoformat(metadata["timestamp"]) == datetime.fromisoformat(
            chunk.metadata.timestamp
        )

    def test_delete_keeps_listed_chunks(self, pg_backend):
        writer = IndexWriter(pg_backend, dimension=DIMENSION)
        writer.ensure_index()
        writer.bulk_upsert([make_chunk(i, f"chunk {i}") for i in range(3)])

        deleted = writer.delete_by_document_id("doc-1", keep={"doc-1-chunk-0"})

        assert deleted == 2
        hits = pg_backend.knn_search(text_vector("chunk 0", DIMENSION), 5)
        assert [h["id"] for h in hits] == ["doc-1-chunk-0"]
