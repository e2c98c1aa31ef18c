"""Vector store backends.

Both backends speak the same wire contract:
- upsert documents ``{chunkId, documentId, content, embedding, metadata}``
- search ``(vector, k, filters)`` → hits ``[{id, score, source}]``

Scores are cosine similarities (1.0 for an identical direction), optionally
blended with a keyword score. Transport failures raise VectorStoreError;
the IndexWriter and RetrievalEngine decide how to absorb them.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Collection, Optional, Protocol

import numpy as np
from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Column,
    DateTime,
    Engine,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    delete,
    func,
    inspect,
    literal_column,
    or_,
    select,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.exc import IntegrityError, ProgrammingError, SQLAlchemyError

from docintel.errors import IndexAlreadyExists, VectorStoreError
from docintel.logging_config import get_logger

logger = get_logger(__name__)

# Outcome names mirror a search engine's bulk API item results
CREATED = "created"
UPDATED = "updated"
NOOP = "noop"


@dataclass
class ItemOutcome:
    """Result of writing one document in a bulk request."""

    chunk_id: str
    result: Optional[str] = None
    error: Optional[str] = None


class VectorBackend(Protocol):
    """Storage seam used by IndexWriter and RetrievalEngine."""

    index_name: str
    dimension: int

    def index_exists(self) -> bool:
        ...

    def create_index(self) -> None:
        ...

    def bulk_write(self, documents: list[dict[str, Any]]) -> list[ItemOutcome]:
        ...

    def delete_by_document_id(
        self, document_id: str, keep: Optional[Collection[str]] = None
    ) -> int:
        ...

    def knn_search(
        self,
        vector: list[float],
        k: int,
        query_text: Optional[str] = None,
        keyword_weight: float = 0.0,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        ...


def _dimension_error(document: dict[str, Any], dimension: int) -> Optional[str]:
    embedding = document.get("embedding") or []
    if len(embedding) != dimension:
        return f"expected embedding with dimension {dimension}, got {len(embedding)}"
    return None


def _dedupe(documents: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], set[int]]:
    """Keep the last document per chunk id; return (kept, positions superseded)."""
    last_position: dict[str, int] = {}
    for i, doc in enumerate(documents):
        last_position[doc["chunkId"]] = i
    superseded = {i for i, doc in enumerate(documents) if last_position[doc["chunkId"]] != i}
    kept = [doc for i, doc in enumerate(documents) if i not in superseded]
    return kept, superseded


def _hit(document: dict[str, Any], score: float) -> dict[str, Any]:
    return {
        "id": document["chunkId"],
        "score": float(score),
        "source": {
            "chunkId": document["chunkId"],
            "documentId": document["documentId"],
            "content": document["content"],
            "metadata": dict(document.get("metadata") or {}),
        },
    }


class PgVectorBackend:
    """Vector index stored in PostgreSQL with the pgvector extension.

    The "index" is a table holding one row per chunk, with an HNSW index on
    the embedding (cosine distance) and a GIN full-text index on content.
    """

    def __init__(
        self,
        engine: Engine,
        index_name: str,
        dimension: int,
        hnsw_m: int = 24,
        hnsw_ef_construction: int = 128,
    ):
        self.engine = engine
        self.index_name = index_name
        self.dimension = dimension
        self.metadata = MetaData()
        self.table = Table(
            index_name,
            self.metadata,
            Column("chunk_id", String(255), primary_key=True),
            Column("document_id", String(255), nullable=False, index=True),
            Column("content", Text, nullable=False),
            Column("embedding", Vector(dimension), nullable=False),
            Column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
            Column("page", Integer, nullable=True),
            Column("indexed_at", DateTime(timezone=True), server_default=func.now()),
        )
        Index(
            f"ix_{index_name}_embedding_hnsw",
            self.table.c.embedding,
            postgresql_using="hnsw",
            postgresql_with={"m": hnsw_m, "ef_construction": hnsw_ef_construction},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        )
        Index(
            f"ix_{index_name}_content_fts",
            func.to_tsvector("english", self.table.c.content),
            postgresql_using="gin",
        )

    def index_exists(self) -> bool:
        try:
            return inspect(self.engine).has_table(self.index_name)
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Failed to check index {self.index_name}: {e}") from e

    def create_index(self) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                self.table.create(conn, checkfirst=True)
        except (IntegrityError, ProgrammingError) as e:
            # Lost a create race with another writer
            if "already exists" in str(e).lower() or "duplicate" in str(e).lower():
                raise IndexAlreadyExists(self.index_name, e) from e
            raise VectorStoreError(f"Failed to create index {self.index_name}: {e}") from e
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Failed to create index {self.index_name}: {e}") from e

    def bulk_write(self, documents: list[dict[str, Any]]) -> list[ItemOutcome]:
        """Upsert documents in a single statement.

        Rows whose content, embedding and metadata are unchanged are left
        alone and reported as no-ops.
        """
        outcomes = [ItemOutcome(chunk_id=doc["chunkId"]) for doc in documents]
        kept, superseded = _dedupe(documents)
        for i in superseded:
            outcomes[i].result = NOOP

        rows = []
        for doc in kept:
            error = _dimension_error(doc, self.dimension)
            if error:
                for outcome in outcomes:
                    if outcome.chunk_id == doc["chunkId"] and outcome.result is None:
                        outcome.error = error
                continue
            metadata = dict(doc.get("metadata") or {})
            indexed_at = metadata.pop("timestamp", None)
            rows.append(
                {
                    "chunk_id": doc["chunkId"],
                    "document_id": doc["documentId"],
                    "content": doc["content"],
                    "embedding": doc["embedding"],
                    "metadata": metadata,
                    "page": metadata.get("page"),
                    "indexed_at": _parse_timestamp(indexed_at),
                }
            )

        written: dict[str, bool] = {}
        if rows:
            stmt = insert(self.table).values(rows)
            excluded = stmt.excluded
            stmt = stmt.on_conflict_do_update(
                index_elements=[self.table.c.chunk_id],
                set_={
                    "document_id": excluded.document_id,
                    "content": excluded.content,
                    "embedding": excluded.embedding,
                    "metadata": excluded.metadata,
                    "page": excluded.page,
                    "indexed_at": excluded.indexed_at,
                },
                where=or_(
                    self.table.c.document_id.is_distinct_from(excluded.document_id),
                    self.table.c.content.is_distinct_from(excluded.content),
                    self.table.c.embedding.is_distinct_from(excluded.embedding),
                    self.table.c.metadata.is_distinct_from(excluded.metadata),
                ),
            ).returning(
                self.table.c.chunk_id,
                literal_column(f'("{self.index_name}".xmax = 0)').label("inserted"),
            )
            try:
                with self.engine.begin() as conn:
                    for row in conn.execute(stmt):
                        written[row.chunk_id] = bool(row.inserted)
            except SQLAlchemyError as e:
                raise VectorStoreError(f"Bulk write to {self.index_name} failed: {e}") from e

        for outcome in outcomes:
            if outcome.result is not None or outcome.error is not None:
                continue
            if outcome.chunk_id in written:
                outcome.result = CREATED if written[outcome.chunk_id] else UPDATED
            else:
                outcome.result = NOOP
        return outcomes

    def delete_by_document_id(
        self, document_id: str, keep: Optional[Collection[str]] = None
    ) -> int:
        stmt = delete(self.table).where(self.table.c.document_id == document_id)
        if keep:
            stmt = stmt.where(self.table.c.chunk_id.not_in(list(keep)))
        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Delete from {self.index_name} failed: {e}") from e

    def knn_search(
        self,
        vector: list[float],
        k: int,
        query_text: Optional[str] = None,
        keyword_weight: float = 0.0,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        distance = self.table.c.embedding.cosine_distance(vector)
        similarity = 1 - distance

        if query_text and keyword_weight > 0:
            # Normalization flag 32 maps rank into [0, 1)
            keyword = func.ts_rank_cd(
                func.to_tsvector("english", self.table.c.content),
                func.plainto_tsquery("english", query_text),
                32,
            )
            score = (1 - keyword_weight) * similarity + keyword_weight * keyword
        else:
            score = similarity

        stmt = select(
            self.table.c.chunk_id,
            self.table.c.document_id,
            self.table.c.content,
            self.table.c.metadata,
            self.table.c.indexed_at,
            score.label("score"),
        )
        document_id = (filters or {}).get("document_id")
        if document_id:
            stmt = stmt.where(self.table.c.document_id == document_id)
        if query_text and keyword_weight > 0:
            stmt = stmt.order_by(score.desc())
        else:
            # Order by the raw distance so the HNSW index is used
            stmt = stmt.order_by(distance)
        stmt = stmt.limit(k)

        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Search on {self.index_name} failed: {e}") from e

        return [
            _hit(
                {
                    "chunkId": row.chunk_id,
                    "documentId": row.document_id,
                    "content": row.content,
                    "metadata": _with_timestamp(row.metadata, row.indexed_at),
                },
                row.score,
            )
            for row in rows
        ]


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def _with_timestamp(
    metadata: Optional[dict[str, Any]], indexed_at: Optional[datetime]
) -> dict[str, Any]:
    """Restore the ``timestamp`` key that bulk_write moved into its own column."""
    restored = dict(metadata or {})
    if indexed_at is not None:
        restored["timestamp"] = indexed_at.isoformat()
    return restored


_TOKEN = re.compile(r"\w+")


class InMemoryVectorBackend:
    """Process-local backend with exact cosine search.

    Used for tests and for running the pipeline without a database. Nothing
    is persisted between processes.
    """

    def __init__(self, index_name: str = "docintel_chunks", dimension: int = 1024):
        self.index_name = index_name
        self.dimension = dimension
        self.documents: Optional[dict[str, dict[str, Any]]] = None

    def index_exists(self) -> bool:
        return self.documents is not None

    def create_index(self) -> None:
        if self.documents is not None:
            raise IndexAlreadyExists(self.index_name)
        self.documents = {}

    def _require_index(self) -> dict[str, dict[str, Any]]:
        if self.documents is None:
            raise VectorStoreError(f"Index does not exist: {self.index_name}")
        return self.documents

    def bulk_write(self, documents: list[dict[str, Any]]) -> list[ItemOutcome]:
        store = self._require_index()
        outcomes = []
        for doc in documents:
            outcome = ItemOutcome(chunk_id=doc["chunkId"])
            error = _dimension_error(doc, self.dimension)
            if error:
                outcome.error = error
            else:
                existing = store.get(doc["chunkId"])
                if existing is not None and _same_content(existing, doc):
                    outcome.result = NOOP
                else:
                    outcome.result = UPDATED if existing is not None else CREATED
                    store[doc["chunkId"]] = dict(doc)
            outcomes.append(outcome)
        return outcomes

    def delete_by_document_id(
        self, document_id: str, keep: Optional[Collection[str]] = None
    ) -> int:
        store = self._require_index()
        keep = set(keep or ())
        doomed = [
            cid
            for cid, doc in store.items()
            if doc["documentId"] == document_id and cid not in keep
        ]
        for chunk_id in doomed:
            del store[chunk_id]
        return len(doomed)

    def knn_search(
        self,
        vector: list[float],
        k: int,
        query_text: Optional[str] = None,
        keyword_weight: float = 0.0,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        store = self._require_index()
        if len(vector) != self.dimension:
            raise VectorStoreError(
                f"Query vector has dimension {len(vector)}, index expects {self.dimension}"
            )
        document_id = (filters or {}).get("document_id")
        candidates = [
            doc
            for doc in store.values()
            if not document_id or doc["documentId"] == document_id
        ]
        if not candidates or k <= 0:
            return []

        query = np.asarray(vector, dtype=float)
        matrix = np.asarray([doc["embedding"] for doc in candidates], dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(norms > 0, matrix @ query / norms, 0.0)

        if query_text and keyword_weight > 0:
            terms = {t.lower() for t in _TOKEN.findall(query_text)}
            keyword = np.asarray(
                [_term_overlap(terms, doc["content"]) for doc in candidates]
            )
            scores = (1 - keyword_weight) * scores + keyword_weight * keyword

        order = np.argsort(-scores, kind="stable")[:k]
        return [_hit(candidates[i], scores[i]) for i in order]


def _same_content(existing: dict[str, Any], incoming: dict[str, Any]) -> bool:
    def strip(meta: Optional[dict[str, Any]]) -> dict[str, Any]:
        return {key: v for key, v in (meta or {}).items() if key != "timestamp"}

    return (
        existing["documentId"] == incoming["documentId"]
        and existing["content"] == incoming["content"]
        and list(existing["embedding"]) == list(incoming["embedding"])
        and strip(existing.get("metadata")) == strip(incoming.get("metadata"))
    )


def _term_overlap(terms: set[str], content: str) -> float:
    if not terms:
        return 0.0
    words = {t.lower() for t in _TOKEN.findall(content)}
    return len(terms & words) / len(terms)
