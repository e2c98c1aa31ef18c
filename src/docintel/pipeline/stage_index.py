"""Indexing Stage - Write chunks into the vector index.

IndexWriter owns the index lifecycle (create on first use), bulk upserts
with per-item accounting, and per-document deletes. Backend transport
failures are folded into the BulkIndexResult rather than raised.
"""

from typing import Collection, Optional

from docintel.config import settings
from docintel.errors import IndexAlreadyExists, ValidationError, VectorStoreError
from docintel.logging_config import get_logger
from docintel.models import BulkIndexResult, Chunk, IndexItemError
from docintel.storage.vector_backend import CREATED, NOOP, UPDATED, VectorBackend

logger = get_logger(__name__)

BULK_OPERATION = "bulk_operation"


class IndexWriter:
    """Write side of the vector index."""

    def __init__(self, backend: VectorBackend, dimension: Optional[int] = None):
        """Initialize writer.

        Args:
            backend: Vector store backend.
            dimension: Embedding length chunks must match.
        """
        self.backend = backend
        self.dimension = dimension or settings.embedding_dimension
        self._index_ready = False

    def ensure_index(self) -> None:
        """Create the index if it does not exist yet.

        Safe to call concurrently from several writers: losing the
        create race counts as success.
        """
        if self._index_ready:
            return

        if not self.backend.index_exists():
            try:
                self.backend.create_index()
                logger.info(
                    "vector_index_created",
                    index_name=self.backend.index_name,
                    dimension=self.dimension,
                )
            except IndexAlreadyExists:
                logger.info("vector_index_already_exists", index_name=self.backend.index_name)

        self._index_ready = True

    def bulk_upsert(self, chunks: list[Chunk]) -> BulkIndexResult:
        """Upsert chunks in one batched request.

        Returns:
            Per-item counts. Items whose content is unchanged are skipped.
        """
        if not chunks:
            return BulkIndexResult()

        try:
            outcomes = self.backend.bulk_write([chunk.to_document() for chunk in chunks])
        except VectorStoreError as e:
            logger.error("bulk_upsert_failed", chunks=len(chunks), error=str(e))
            return BulkIndexResult(
                failed=len(chunks),
                errors=[IndexItemError(chunk_id=BULK_OPERATION, error=str(e))],
            )

        indexed = skipped = failed = 0
        errors: list[IndexItemError] = []
        for outcome in outcomes:
            if outcome.error:
                failed += 1
                errors.append(IndexItemError(chunk_id=outcome.chunk_id, error=outcome.error))
            elif outcome.result in (CREATED, UPDATED):
                indexed += 1
            elif outcome.result == NOOP:
                skipped += 1
            else:
                failed += 1
                errors.append(
                    IndexItemError(
                        chunk_id=outcome.chunk_id,
                        error=f"unexpected result: {outcome.result}",
                    )
                )

        result = BulkIndexResult(indexed=indexed, skipped=skipped, failed=failed, errors=errors)
        logger.info(
            "bulk_upsert_completed",
            indexed=result.indexed,
            skipped=result.skipped,
            failed=result.failed,
        )
        return result

    def delete_by_document_id(
        self, document_id: str, keep: Optional[Collection[str]] = None
    ) -> int:
        """Remove a document's chunks; returns how many were deleted.

        Args:
            document_id: Document whose chunks are removed.
            keep: Chunk ids of that document to leave in place.
        """
        if not document_id:
            raise ValidationError("document_id", "Document id is required")

        deleted = self.backend.delete_by_document_id(document_id, keep=keep)
        logger.info(
            "document_chunks_deleted",
            document_id=document_id,
            deleted=deleted,
            kept=len(keep or ()),
        )
        return deleted
