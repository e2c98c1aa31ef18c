"""Ingestion orchestration - from uploaded PDF to indexed chunks.

Two entry points drive a document through the pipeline:

- start_processing: a PDF landed in the bucket. Validate it, record it,
  and start an OCR job.
- handle_completion: the OCR service announced a finished job. Fetch the
  block graph, parse, archive the raw payload, chunk, embed and index.

Every write is keyed by document id or chunk id, so a redelivered
notification reproduces the same end state.
"""

import uuid
from typing import Any, Iterable, Optional, Union

from sqlalchemy.orm import Session, sessionmaker
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from docintel.config import settings
from docintel.errors import (
    NotFoundError,
    ObjectStoreError,
    UpstreamUnavailable,
    ValidationError,
)
from docintel.logging_config import get_logger
from docintel.models import (
    Chunk,
    ChunkMetadata,
    DocumentRecord,
    DocumentStatus,
    IngestionReport,
    JobStatus,
    OcrNotification,
    ParsedDocument,
    ProcessingJob,
    make_chunk_id,
)
from docintel.models.document import utcnow
from docintel.pipeline.stage_chunk import Chunker
from docintel.pipeline.stage_embed import EmbeddingGateway
from docintel.pipeline.stage_index import IndexWriter
from docintel.pipeline.stage_ocr import OcrJobClient, textract_block_to_record
from docintel.pipeline.stage_parse import BlockGraphParser
from docintel.storage.database import session_scope
from docintel.storage.object_store import ObjectStore
from docintel.storage.repositories import DocumentRepository, JobRepository

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def archive_key(s3_key: str) -> str:
    """Key of the archived OCR payload for a source object."""
    stem = s3_key[:-4] if s3_key.lower().endswith(".pdf") else s3_key
    return f"{stem}-ocr.json"


class IngestionService:
    """Drives documents from upload through OCR to the vector index."""

    def __init__(
        self,
        ocr_client: OcrJobClient,
        embedder: EmbeddingGateway,
        index_writer: IndexWriter,
        session_factory: sessionmaker[Session],
        parser: Optional[BlockGraphParser] = None,
        chunker: Optional[Chunker] = None,
        archive: Optional[ObjectStore] = None,
        start_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        cost_per_page: Optional[float] = None,
        max_file_size: Optional[int] = None,
    ):
        """Initialize service.

        Args:
            ocr_client: Starts OCR jobs and fetches their blocks.
            embedder: Embeds chunk text.
            index_writer: Writes chunks to the vector index.
            session_factory: Metadata store sessions.
            parser: Block graph parser (default settings if omitted).
            chunker: Chunker (default settings if omitted).
            archive: Where raw OCR payloads are kept; None disables archiving.
            start_attempts: Attempts to start an OCR job before giving up.
            retry_base_delay: First backoff delay in seconds.
            cost_per_page: OCR price used for the document's cost estimate.
            max_file_size: Largest accepted PDF in bytes.
        """
        self.ocr_client = ocr_client
        self.embedder = embedder
        self.index_writer = index_writer
        self.session_factory = session_factory
        self.parser = parser or BlockGraphParser()
        self.chunker = chunker or Chunker()
        self.archive = archive
        self.start_attempts = start_attempts or settings.ocr_start_attempts
        self.retry_base_delay = (
            settings.ocr_retry_base_delay if retry_base_delay is None else retry_base_delay
        )
        self.cost_per_page = (
            settings.ocr_cost_per_page if cost_per_page is None else cost_per_page
        )
        self.max_file_size = max_file_size or settings.max_file_size_bytes

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def validate_source(self, content_type: str, size: int) -> None:
        """Reject anything that is not a non-empty PDF within the size limit."""
        if (content_type or "").split(";")[0].strip().lower() != PDF_CONTENT_TYPE:
            raise ValidationError("content_type", "Only PDF files are supported")
        if size <= 0:
            raise ValidationError("file_size", "File is empty")
        if size > self.max_file_size:
            limit_mb = self.max_file_size // (1024 * 1024)
            raise ValidationError("file_size", f"File exceeds the {limit_mb} MB limit")

    def start_processing(self, bucket: str, key: str) -> ProcessingJob:
        """Register an uploaded PDF and start its OCR job.

        Raises:
            ValidationError: If the object is not an acceptable PDF.
            UpstreamUnavailable: If the OCR job could not be started after
                all retries. The document is left in FAILED_OCR_START.
        """
        head = self.ocr_client.head_object(bucket, key)
        self.validate_source(head.get("content_type", ""), head.get("size", 0))

        document_id = str(uuid.uuid4())
        log = logger.bind(document_id=document_id, bucket=bucket, key=key)

        record = DocumentRecord(
            document_id=document_id,
            filename=key.rsplit("/", 1)[-1],
            bucket=bucket,
            s3_key=key,
            file_size=head.get("size", 0),
            content_type=PDF_CONTENT_TYPE,
        )
        with session_scope(self.session_factory) as session:
            DocumentRepository(session).put(record)

        try:
            ocr_job_id = self._start_with_retry(bucket, key, document_id)
        except UpstreamUnavailable as e:
            log.error("ocr_start_failed", attempts=self.start_attempts, error=str(e))
            with session_scope(self.session_factory) as session:
                DocumentRepository(session).update_status(
                    document_id, DocumentStatus.FAILED_OCR_START, error_message=str(e)
                )
            raise

        job = ProcessingJob(
            job_id=str(uuid.uuid4()),
            document_id=document_id,
            bucket=bucket,
            s3_key=key,
            ocr_job_id=ocr_job_id,
        )
        with session_scope(self.session_factory) as session:
            JobRepository(session).put(job)
            DocumentRepository(session).update_status(
                document_id, DocumentStatus.OCR_IN_PROGRESS
            )

        log.info("processing_started", job_id=job.job_id, ocr_job_id=ocr_job_id)
        return job

    def _start_with_retry(self, bucket: str, key: str, document_id: str) -> str:
        retrying = Retrying(
            stop=stop_after_attempt(self.start_attempts),
            wait=wait_exponential(multiplier=self.retry_base_delay),
            retry=retry_if_exception_type(UpstreamUnavailable),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "ocr_start_retry",
                        document_id=document_id,
                        attempt=attempt.retry_state.attempt_number,
                    )
                return self.ocr_client.start_job(bucket, key, client_token=document_id)
        raise UpstreamUnavailable("ocr", "no start attempts were made")

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def handle_completion(self, message: str) -> Optional[IngestionReport]:
        """Process an OCR completion notification.

        Invalid notifications and unknown jobs are logged and ignored.

        Returns:
            The indexing report, or None if nothing was indexed.
        """
        notification = OcrNotification.from_message(message)
        if notification is None:
            logger.warning("invalid_ocr_notification")
            return None

        try:
            job = self._find_job(notification.job_id)
        except NotFoundError as e:
            logger.warning("ocr_job_not_found", ocr_job_id=notification.job_id, error=str(e))
            return None

        log = logger.bind(document_id=job.document_id, job_id=job.job_id)

        if not notification.succeeded:
            log.error("ocr_job_failed", status=notification.status)
            self._mark_failed(
                job,
                JobStatus.FAILED_OCR,
                DocumentStatus.FAILED_OCR,
                f"OCR job finished with status {notification.status}",
            )
            return None

        try:
            blocks = self.ocr_client.get_blocks(job.ocr_job_id)
            parsed = self.parser.parse(textract_block_to_record(b) for b in blocks)
            self.archive_payload(job, blocks)
            report = self.index_document(job.document_id, parsed, source=job.filename)

            now = utcnow()
            with session_scope(self.session_factory) as session:
                JobRepository(session).update_status(
                    job.job_id,
                    JobStatus.COMPLETED,
                    page_count=parsed.page_count,
                    completed_at=now,
                )
                DocumentRepository(session).update_status(
                    job.document_id,
                    DocumentStatus.PROCESSED,
                    page_count=parsed.page_count,
                    ocr_cost=parsed.page_count * self.cost_per_page,
                    processed_at=now,
                )
        except Exception as e:
            log.exception("ocr_processing_failed", error=str(e))
            self._mark_failed(
                job,
                JobStatus.FAILED_OCR_PROCESSING,
                DocumentStatus.FAILED_OCR_PROCESSING,
                str(e),
            )
            raise

        log.info(
            "document_processed",
            page_count=parsed.page_count,
            chunk_count=report.chunk_count,
            average_confidence=round(parsed.average_confidence, 2),
        )
        return report

    def handle_records(self, records: Iterable[Union[str, dict[str, Any]]]) -> dict[str, int]:
        """Process a batch of notification records.

        Records may be raw messages or SNS / SQS envelopes. A failing record
        is logged and counted; the rest of the batch still runs.

        Returns:
            Counts of processed, ignored and failed records.
        """
        counts = {"processed": 0, "ignored": 0, "failed": 0}
        for record in records:
            try:
                report = self.handle_completion(self._message_body(record))
            except Exception as e:
                logger.exception("record_failed", error=str(e))
                counts["failed"] += 1
                continue
            if report is None:
                counts["ignored"] += 1
            else:
                counts["processed"] += 1

        logger.info("records_handled", **counts)
        return counts

    @staticmethod
    def _message_body(record: Union[str, dict[str, Any]]) -> str:
        if isinstance(record, str):
            return record
        sns = record.get("Sns") or {}
        if "Message" in sns:
            return sns["Message"]
        return record.get("body") or record.get("Message") or ""

    def _find_job(self, ocr_job_id: str) -> ProcessingJob:
        with session_scope(self.session_factory) as session:
            job = JobRepository(session).get_by_ocr_job_id(ocr_job_id)
        if job is None:
            raise NotFoundError("job", ocr_job_id)
        return job

    def _mark_failed(
        self,
        job: ProcessingJob,
        job_status: JobStatus,
        document_status: DocumentStatus,
        error_message: str,
    ) -> None:
        with session_scope(self.session_factory) as session:
            JobRepository(session).update_status(
                job.job_id, job_status, completed_at=utcnow()
            )
            DocumentRepository(session).update_status(
                job.document_id, document_status, error_message=error_message
            )

    def archive_payload(self, job: ProcessingJob, blocks: list[dict[str, Any]]) -> Optional[str]:
        """Keep the raw OCR payload next to the source; failures are only logged."""
        if self.archive is None:
            return None

        key = archive_key(job.s3_key)
        payload = {"JobId": job.ocr_job_id, "DocumentId": job.document_id, "Blocks": blocks}
        try:
            location = self.archive.put_json(key, payload)
        except ObjectStoreError as e:
            logger.warning("ocr_archive_failed", document_id=job.document_id, key=key, error=str(e))
            return None

        logger.debug("ocr_payload_archived", document_id=job.document_id, location=location)
        return location

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index_document(
        self,
        document_id: str,
        parsed: ParsedDocument,
        source: Optional[str] = None,
    ) -> IngestionReport:
        """Replace a document's chunks in the vector index.

        Chunk ids are numbered across the whole document, so re-indexing
        the same parse overwrites rather than duplicates and unchanged
        chunks come back as no-ops. New chunks are written before anything
        is removed: chunks left over from a longer previous parse are
        deleted only once every new chunk landed, so a failed re-index
        keeps the previous version searchable.
        """
        log = logger.bind(document_id=document_id)

        self.index_writer.ensure_index()

        fragments = self.chunker.chunk_document(parsed)
        if not fragments:
            log.warning("no_text_to_index", page_count=parsed.page_count)
            deleted = self.index_writer.delete_by_document_id(document_id)
            return IngestionReport(document_id=document_id, deleted=deleted)

        batch = self.embedder.embed_batch([f.text for f in fragments])
        chunks = [
            Chunk(
                chunk_id=make_chunk_id(document_id, i),
                document_id=document_id,
                content=fragment.text,
                embedding=vector,
                metadata=ChunkMetadata(page=fragment.page_number, source=source),
            )
            for i, (fragment, vector) in enumerate(zip(fragments, batch.vectors))
        ]

        result = self.index_writer.bulk_upsert(chunks)
        deleted = 0
        if result.failed:
            log.warning("partial_index_failure", failed=result.failed, indexed=result.indexed)
            for item in result.errors:
                log.warning("chunk_index_failed", chunk_id=item.chunk_id, error=item.error)
        else:
            deleted = self.index_writer.delete_by_document_id(
                document_id, keep={chunk.chunk_id for chunk in chunks}
            )

        report = IngestionReport(
            document_id=document_id,
            chunk_count=len(chunks),
            deleted=deleted,
            indexed=result.indexed,
            skipped=result.skipped,
            failed=result.failed,
            usage=batch.usage,
        )
        log.info(
            "document_indexed",
            chunk_count=report.chunk_count,
            indexed=report.indexed,
            skipped=report.skipped,
            failed=report.failed,
            tokens=report.usage.tokens,
        )
        return report
