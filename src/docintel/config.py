"""Configuration management for the docintel pipeline."""

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Database (metadata store + pgvector index)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "docintel"
    postgres_password: str = "localdev"
    postgres_db: str = "docintel"

    # Ollama (embedding + generation capabilities)
    ollama_host: str = "http://localhost:11434"
    embedding_model: str = "mxbai-embed-large"
    embedding_dimension: int = 1024
    embedding_batch_size: int = 16
    embedding_cost_per_million_tokens: float = 0.0
    generation_model: str = "llama3.1:8b"
    generation_temperature: float = 0.3
    generation_max_tokens: int = 500
    request_timeout: float = 30.0

    # Vector index
    vector_backend: Literal["pgvector", "memory"] = "pgvector"
    index_name: str = "docintel_chunks"
    hnsw_m: int = 24
    hnsw_ef_construction: int = 128
    keyword_weight: float = 0.0

    # Block graph parsing (confidence on the OCR engine's 0-100 scale)
    ocr_confidence_threshold: float = 80.0
    line_tolerance: float = 0.01

    # Chunking (characters)
    chunk_size: int = 1000
    chunk_overlap: int = 100

    # Query path
    search_top_k: int = 10
    similarity_threshold: float = 0.7
    max_question_length: int = 500
    max_answer_words: int = 500
    source_preview_chars: int = 200

    # OCR jobs
    aws_region: str = "us-east-1"
    ocr_sns_topic_arn: Optional[str] = None
    ocr_role_arn: Optional[str] = None
    ocr_start_attempts: int = 3
    ocr_retry_base_delay: float = 0.3
    ocr_cost_per_page: float = 0.0015
    max_file_size_bytes: int = 50 * 1024 * 1024

    # Raw OCR payload archive
    archive_backend: Literal["s3", "local"] = "local"
    archive_bucket: Optional[str] = None
    archive_dir: str = "./output/ocr"

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    @property
    def database_url(self) -> str:
        """Construct database URL for the psycopg driver."""
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


settings = Settings()
