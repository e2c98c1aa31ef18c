"""Storage layer for docintel.

Provides the metadata store (SQLAlchemy), the vector index backends
(pgvector or in-memory) and object storage for archived OCR output.
"""

from .database import (
    Base,
    create_db_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from .object_store import LocalObjectStore, ObjectStore, S3ObjectStore
from .orm_models import DocumentORM, ProcessingJobORM
from .repositories import DocumentRepository, JobRepository
from .vector_backend import (
    InMemoryVectorBackend,
    ItemOutcome,
    PgVectorBackend,
    VectorBackend,
)

__all__ = [
    # Database
    "Base",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
    # ORM Models
    "DocumentORM",
    "ProcessingJobORM",
    # Repositories
    "DocumentRepository",
    "JobRepository",
    # Vector index
    "InMemoryVectorBackend",
    "ItemOutcome",
    "PgVectorBackend",
    "VectorBackend",
    # Object storage
    "LocalObjectStore",
    "ObjectStore",
    "S3ObjectStore",
]
