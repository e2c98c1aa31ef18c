"""Document-level models: parsed OCR output and metadata records."""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import Field, ValidationError

from .base import BaseIRModel, DocumentStatus, JobStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ParsedPage(BaseIRModel):
    """Reading-ordered text of one page."""

    page_number: int = Field(..., ge=1)
    text: str
    confidence: float = Field(default=0.0, description="Mean confidence of included lines")


class ParsedTable(BaseIRModel):
    """Table rendered as a markdown pipe table."""

    page_number: int = Field(..., ge=1)
    markdown: str
    confidence: float = 0.0


class KeyValuePair(BaseIRModel):
    """One form field."""

    key: str
    value: str = ""
    confidence: float = 0.0


class ParsedForm(BaseIRModel):
    """Form fields detected on one page."""

    page_number: int = Field(..., ge=1)
    key_value_pairs: list[KeyValuePair] = Field(default_factory=list)


class ParsedDocument(BaseIRModel):
    """
    Structured document reconstructed from a block graph.

    Produced once per completed OCR job and consumed immediately by
    chunking; it is never persisted itself.
    """

    pages: list[ParsedPage] = Field(default_factory=list)
    tables: list[ParsedTable] = Field(default_factory=list)
    forms: list[ParsedForm] = Field(default_factory=list)
    plain_text: str = ""
    page_count: int = Field(default=0, ge=0, description="Pages seen in the block graph")
    average_confidence: float = 0.0

    @property
    def is_empty(self) -> bool:
        """Check if no page produced any text."""
        return not self.pages


class DocumentRecord(BaseIRModel):
    """Metadata store row for an uploaded document."""

    document_id: str
    filename: str
    bucket: str
    s3_key: str
    status: DocumentStatus = DocumentStatus.OCR_PENDING
    file_size: int = Field(default=0, ge=0)
    content_type: str = "application/pdf"
    page_count: int = 0
    ocr_cost: float = 0.0
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None


class ProcessingJob(BaseIRModel):
    """Metadata store row tracking one OCR job."""

    job_id: str
    document_id: str
    bucket: str
    s3_key: str
    ocr_job_id: str
    status: JobStatus = JobStatus.IN_PROGRESS
    page_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def filename(self) -> str:
        """Last path segment of the object key."""
        return self.s3_key.rsplit("/", 1)[-1] or "unknown.pdf"


class DocumentLocation(BaseIRModel):
    s3_object_name: str = Field(default="", alias="S3ObjectName")
    s3_bucket: str = Field(default="", alias="S3Bucket")


class OcrNotification(BaseIRModel):
    """Completion notification published by the OCR service."""

    job_id: str = Field(..., alias="JobId", min_length=1)
    status: str = Field(..., alias="Status", min_length=1)
    api: str = Field(default="", alias="API")
    job_tag: Optional[str] = Field(default=None, alias="JobTag")
    timestamp: Optional[int] = Field(default=None, alias="Timestamp")
    document_location: Optional[DocumentLocation] = Field(default=None, alias="DocumentLocation")

    @property
    def succeeded(self) -> bool:
        return self.status == "SUCCEEDED"

    @classmethod
    def from_message(cls, message: str) -> Optional["OcrNotification"]:
        """Parse a raw notification message; None if it is not a valid notification."""
        try:
            payload: Any = json.loads(message)
        except (TypeError, ValueError):
            return None
        if not isinstance(payload, dict):
            return None
        try:
            return cls.model_validate(payload)
        except ValidationError:
            return None
