"""Data models for the docintel pipeline.

Model Hierarchy:
- Block graph (OCR output) → ParsedDocument → Pages / Tables / Forms
- ParsedDocument pages → ChunkFragments → Chunks (vector index)
- Chunks → SearchResults → QueryResponse with Sources
- DocumentRecord / ProcessingJob rows in the metadata store
"""

from .answer import QueryResponse, Source
from .base import (
    BaseIRModel,
    BoundingBox,
    DocumentStatus,
    EntityRole,
    JobStatus,
    RelationType,
)
from .block import (
    Block,
    BlockBase,
    CellBlock,
    KeyValueSetBlock,
    LineBlock,
    PageBlock,
    Relationship,
    TableBlock,
    WordBlock,
    block_adapter,
    block_text,
)
from .chunk import (
    BulkIndexResult,
    Chunk,
    ChunkFragment,
    ChunkMetadata,
    EmbeddingBatch,
    IndexItemError,
    IngestionReport,
    SearchResult,
    TokenUsage,
    make_chunk_id,
)
from .document import (
    DocumentRecord,
    KeyValuePair,
    OcrNotification,
    ParsedDocument,
    ParsedForm,
    ParsedPage,
    ParsedTable,
    ProcessingJob,
)

__all__ = [
    # Base types
    "BaseIRModel",
    "BoundingBox",
    "DocumentStatus",
    "EntityRole",
    "JobStatus",
    "RelationType",
    # Blocks
    "Block",
    "BlockBase",
    "CellBlock",
    "KeyValueSetBlock",
    "LineBlock",
    "PageBlock",
    "Relationship",
    "TableBlock",
    "WordBlock",
    "block_adapter",
    "block_text",
    # Document
    "DocumentRecord",
    "KeyValuePair",
    "OcrNotification",
    "ParsedDocument",
    "ParsedForm",
    "ParsedPage",
    "ParsedTable",
    "ProcessingJob",
    # Chunk
    "BulkIndexResult",
    "Chunk",
    "ChunkFragment",
    "ChunkMetadata",
    "EmbeddingBatch",
    "IndexItemError",
    "IngestionReport",
    "SearchResult",
    "TokenUsage",
    "make_chunk_id",
    # Answer
    "QueryResponse",
    "Source",
]
