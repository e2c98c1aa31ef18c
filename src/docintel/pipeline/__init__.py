"""Pipeline stages for document ingestion.

Stages:
1. stage_ocr - Start OCR jobs and fetch their block graphs
2. stage_parse - Block graph to reading-ordered pages, tables and forms
3. stage_chunk - Page text to overlapping windows
4. stage_embed - Windows to vectors
5. stage_index - Vectors into the vector index

ingest.IngestionService orchestrates the stages per document. Each stage
takes its collaborators explicitly and can be run on its own.
"""

from .ingest import IngestionService, archive_key
from .stage_chunk import Chunker
from .stage_embed import EmbeddingGateway, OllamaEmbeddingGateway, estimate_tokens
from .stage_index import IndexWriter
from .stage_ocr import OcrJobClient, TextractJobClient, textract_block_to_record
from .stage_parse import BlockGraphParser, render_markdown_table

__all__ = [
    # OCR
    "OcrJobClient",
    "TextractJobClient",
    "textract_block_to_record",
    # Parse
    "BlockGraphParser",
    "render_markdown_table",
    # Chunk
    "Chunker",
    # Embed
    "EmbeddingGateway",
    "OllamaEmbeddingGateway",
    "estimate_tokens",
    # Index
    "IndexWriter",
    # Orchestration
    "IngestionService",
    "archive_key",
]
