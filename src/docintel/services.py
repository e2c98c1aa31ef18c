"""Wiring of capability clients and pipeline components from settings.

Clients (httpx, boto3, SQLAlchemy engine) are built here once and injected
into the components that use them.
"""

from functools import lru_cache
from typing import Optional

import httpx
from sqlalchemy import Engine

from docintel.config import Settings, settings
from docintel.pipeline.ingest import IngestionService
from docintel.pipeline.stage_chunk import Chunker
from docintel.pipeline.stage_embed import OllamaEmbeddingGateway
from docintel.pipeline.stage_index import IndexWriter
from docintel.pipeline.stage_ocr import TextractJobClient
from docintel.pipeline.stage_parse import BlockGraphParser
from docintel.retrieval.answer import AnswerComposer
from docintel.retrieval.generation import OllamaGenerator
from docintel.retrieval.search import RetrievalEngine
from docintel.storage.database import create_db_engine, create_session_factory, init_db
from docintel.storage.object_store import LocalObjectStore, ObjectStore, S3ObjectStore
from docintel.storage.vector_backend import (
    InMemoryVectorBackend,
    PgVectorBackend,
    VectorBackend,
)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine(settings.database_url)


@lru_cache(maxsize=1)
def get_http_client() -> httpx.Client:
    return httpx.Client(base_url=settings.ollama_host, timeout=settings.request_timeout)


def build_vector_backend(config: Settings = settings) -> VectorBackend:
    """Vector backend selected by ``vector_backend``."""
    if config.vector_backend == "memory":
        return InMemoryVectorBackend(
            index_name=config.index_name, dimension=config.embedding_dimension
        )
    return PgVectorBackend(
        get_engine(),
        index_name=config.index_name,
        dimension=config.embedding_dimension,
        hnsw_m=config.hnsw_m,
        hnsw_ef_construction=config.hnsw_ef_construction,
    )


def build_embedder(config: Settings = settings) -> OllamaEmbeddingGateway:
    return OllamaEmbeddingGateway(
        client=get_http_client(),
        model=config.embedding_model,
        dimension=config.embedding_dimension,
        batch_size=config.embedding_batch_size,
        cost_per_million_tokens=config.embedding_cost_per_million_tokens,
    )


def build_index_writer(
    backend: Optional[VectorBackend] = None, config: Settings = settings
) -> IndexWriter:
    return IndexWriter(backend or build_vector_backend(config), config.embedding_dimension)


def build_archive(config: Settings = settings) -> Optional[ObjectStore]:
    """Archive store for raw OCR payloads; None when S3 has no bucket configured."""
    if config.archive_backend == "s3":
        if not config.archive_bucket:
            return None
        return S3ObjectStore(bucket=config.archive_bucket)
    return LocalObjectStore(config.archive_dir)


def build_answer_composer(
    backend: Optional[VectorBackend] = None, config: Settings = settings
) -> AnswerComposer:
    """Query path wired to Ollama and the configured vector backend."""
    return AnswerComposer(
        embedder=build_embedder(config),
        retriever=RetrievalEngine(
            backend or build_vector_backend(config), keyword_weight=config.keyword_weight
        ),
        generator=OllamaGenerator(client=get_http_client(), model=config.generation_model),
        top_k=config.search_top_k,
        similarity_threshold=config.similarity_threshold,
        max_question_length=config.max_question_length,
        max_answer_words=config.max_answer_words,
        preview_chars=config.source_preview_chars,
        temperature=config.generation_temperature,
        max_tokens=config.generation_max_tokens,
    )


def build_ingestion_service(
    backend: Optional[VectorBackend] = None, config: Settings = settings
) -> IngestionService:
    """Ingestion path wired to Textract, Ollama and the metadata store."""
    engine = get_engine()
    init_db(engine)
    return IngestionService(
        ocr_client=TextractJobClient(
            sns_topic_arn=config.ocr_sns_topic_arn, role_arn=config.ocr_role_arn
        ),
        embedder=build_embedder(config),
        index_writer=build_index_writer(backend, config),
        session_factory=create_session_factory(engine),
        parser=BlockGraphParser(config.ocr_confidence_threshold, config.line_tolerance),
        chunker=Chunker(config.chunk_size, config.chunk_overlap),
        archive=build_archive(config),
        start_attempts=config.ocr_start_attempts,
        retry_base_delay=config.ocr_retry_base_delay,
        cost_per_page=config.ocr_cost_per_page,
        max_file_size=config.max_file_size_bytes,
    )
