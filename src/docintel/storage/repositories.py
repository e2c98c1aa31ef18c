"""Repository layer for metadata store CRUD operations."""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from docintel.errors import NotFoundError
from docintel.models import DocumentRecord, DocumentStatus, JobStatus, ProcessingJob

from .orm_models import DocumentORM, ProcessingJobORM


class DocumentRepository:
    """Repository for DocumentRecord operations."""

    def __init__(self, session: Session):
        self.session = session

    def put(self, record: DocumentRecord) -> DocumentRecord:
        """Insert or replace a document record."""
        orm_doc = DocumentORM(
            document_id=record.document_id,
            filename=record.filename,
            bucket=record.bucket,
            s3_key=record.s3_key,
            file_size=record.file_size,
            content_type=record.content_type,
            status=record.status.value,
            page_count=record.page_count,
            ocr_cost=record.ocr_cost,
            error_message=record.error_message,
            created_at=record.created_at,
            processed_at=record.processed_at,
        )
        self.session.merge(orm_doc)
        self.session.flush()
        return record

    def _get(self, document_id: str) -> Optional[DocumentORM]:
        return self.session.get(DocumentORM, document_id)

    def get_by_id(self, document_id: str) -> Optional[DocumentRecord]:
        """Get document by ID."""
        orm_doc = self._get(document_id)
        return DocumentRecord.model_validate(orm_doc) if orm_doc else None

    def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: Optional[str] = None,
        page_count: Optional[int] = None,
        ocr_cost: Optional[float] = None,
        processed_at: Optional[datetime] = None,
    ) -> DocumentRecord:
        """Update document processing status.

        Raises:
            NotFoundError: If no document has this id.
        """
        orm_doc = self._get(document_id)
        if orm_doc is None:
            raise NotFoundError("document", document_id)

        orm_doc.status = status.value
        orm_doc.error_message = error_message
        if page_count is not None:
            orm_doc.page_count = page_count
        if ocr_cost is not None:
            orm_doc.ocr_cost = ocr_cost
        if processed_at is not None:
            orm_doc.processed_at = processed_at
        self.session.flush()
        return DocumentRecord.model_validate(orm_doc)


class JobRepository:
    """Repository for ProcessingJob operations."""

    def __init__(self, session: Session):
        self.session = session

    def put(self, job: ProcessingJob) -> ProcessingJob:
        """Insert or replace a processing job."""
        orm_job = ProcessingJobORM(
            job_id=job.job_id,
            document_id=job.document_id,
            bucket=job.bucket,
            s3_key=job.s3_key,
            ocr_job_id=job.ocr_job_id,
            status=job.status.value,
            page_count=job.page_count,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )
        self.session.merge(orm_job)
        self.session.flush()
        return job

    def get_by_id(self, job_id: str) -> Optional[ProcessingJob]:
        orm_job = self.session.get(ProcessingJobORM, job_id)
        return ProcessingJob.model_validate(orm_job) if orm_job else None

    def get_by_ocr_job_id(self, ocr_job_id: str) -> Optional[ProcessingJob]:
        """Find the job a completion notification refers to."""
        result = self.session.execute(
            select(ProcessingJobORM).where(ProcessingJobORM.ocr_job_id == ocr_job_id)
        )
        orm_job = result.scalar_one_or_none()
        return ProcessingJob.model_validate(orm_job) if orm_job else None

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        page_count: Optional[int] = None,
        completed_at: Optional[datetime] = None,
    ) -> ProcessingJob:
        """Update job status.

        Raises:
            NotFoundError: If no job has this id.
        """
        orm_job = self.session.get(ProcessingJobORM, job_id)
        if orm_job is None:
            raise NotFoundError("job", job_id)

        orm_job.status = status.value
        if page_count is not None:
            orm_job.page_count = page_count
        if completed_at is not None:
            orm_job.completed_at = completed_at
        self.session.flush()
        return ProcessingJob.model_validate(orm_job)
