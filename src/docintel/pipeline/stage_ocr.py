"""OCR Stage - Run asynchronous OCR jobs and collect their block graphs.

Uses AWS Textract document analysis (tables and forms). A job is started
against a PDF already in S3; completion is announced through an SNS topic
and the full block list is then fetched page by page with continuation
tokens.

Textract blocks are mapped onto the block record shape consumed by
BlockGraphParser.
"""

from typing import Any, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from docintel.config import settings
from docintel.errors import UpstreamUnavailable
from docintel.logging_config import get_logger
from docintel.models import RelationType

logger = get_logger(__name__)

_KEPT_RELATIONS = {RelationType.CHILD.value, RelationType.VALUE.value}


def textract_block_to_record(block: dict[str, Any]) -> dict[str, Any]:
    """Map a Textract block onto a parser block record.

    Args:
        block: Block as returned by GetDocumentAnalysis.

    Returns:
        Record with id, type, page, text, confidence, boundingBox,
        relationships and the cell / form fields when present.
    """
    record: dict[str, Any] = {
        "id": block.get("Id"),
        "type": block.get("BlockType"),
        "page": block.get("Page"),
        "text": block.get("Text", ""),
        "confidence": block.get("Confidence", 0.0),
        "relationships": [
            {"type": rel.get("Type"), "ids": list(rel.get("Ids", []))}
            for rel in block.get("Relationships", [])
            if rel.get("Type") in _KEPT_RELATIONS
        ],
    }

    box = (block.get("Geometry") or {}).get("BoundingBox")
    if box:
        record["boundingBox"] = box
    if "RowIndex" in block:
        record["rowIndex"] = block["RowIndex"]
    if "ColumnIndex" in block:
        record["columnIndex"] = block["ColumnIndex"]
    entity_types = block.get("EntityTypes") or []
    if entity_types:
        record["entityRole"] = entity_types[0]

    return record


class OcrJobClient(Protocol):
    """Job-based OCR capability."""

    def head_object(self, bucket: str, key: str) -> dict[str, Any]:
        ...

    def start_job(self, bucket: str, key: str, client_token: str) -> str:
        ...

    def get_blocks(self, job_id: str) -> list[dict[str, Any]]:
        ...


class TextractJobClient:
    """OcrJobClient backed by Textract and S3."""

    def __init__(
        self,
        textract_client: Any = None,
        s3_client: Any = None,
        sns_topic_arn: Optional[str] = None,
        role_arn: Optional[str] = None,
    ):
        """Initialize client.

        Args:
            textract_client: boto3 Textract client (created if omitted).
            s3_client: boto3 S3 client used to stat source objects.
            sns_topic_arn: Topic that receives job completion notifications.
            role_arn: Role Textract assumes to publish to the topic.
        """
        self.textract = textract_client or boto3.client(
            "textract", region_name=settings.aws_region
        )
        self.s3 = s3_client or boto3.client("s3", region_name=settings.aws_region)
        self.sns_topic_arn = sns_topic_arn or settings.ocr_sns_topic_arn
        self.role_arn = role_arn or settings.ocr_role_arn

    def head_object(self, bucket: str, key: str) -> dict[str, Any]:
        """Size and content type of the source object."""
        try:
            response = self.s3.head_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise UpstreamUnavailable("storage", f"cannot stat s3://{bucket}/{key}: {e}") from e
        return {
            "size": int(response.get("ContentLength", 0)),
            "content_type": response.get("ContentType", ""),
        }

    def start_job(self, bucket: str, key: str, client_token: str) -> str:
        """Start document analysis; returns the OCR job id.

        The client token makes retried starts for the same document
        return the same job.
        """
        params: dict[str, Any] = {
            "DocumentLocation": {"S3Object": {"Bucket": bucket, "Name": key}},
            "FeatureTypes": ["TABLES", "FORMS"],
            "ClientRequestToken": client_token,
        }
        if self.sns_topic_arn and self.role_arn:
            params["NotificationChannel"] = {
                "SNSTopicArn": self.sns_topic_arn,
                "RoleArn": self.role_arn,
            }

        try:
            response = self.textract.start_document_analysis(**params)
        except (BotoCoreError, ClientError) as e:
            raise UpstreamUnavailable("ocr", f"failed to start job: {e}") from e

        job_id = response.get("JobId")
        if not job_id:
            raise UpstreamUnavailable("ocr", "start response carried no job id")
        logger.info("ocr_job_started", bucket=bucket, key=key, ocr_job_id=job_id)
        return job_id

    def get_blocks(self, job_id: str) -> list[dict[str, Any]]:
        """Fetch every block of a finished job, following NextToken."""
        blocks: list[dict[str, Any]] = []
        next_token: Optional[str] = None
        pages = 0

        while True:
            params: dict[str, Any] = {"JobId": job_id}
            if next_token:
                params["NextToken"] = next_token
            try:
                response = self.textract.get_document_analysis(**params)
            except (BotoCoreError, ClientError) as e:
                raise UpstreamUnavailable("ocr", f"failed to fetch results: {e}") from e

            blocks.extend(response.get("Blocks", []))
            pages += 1
            next_token = response.get("NextToken")
            if not next_token:
                break

        logger.info("ocr_results_fetched", ocr_job_id=job_id, blocks=len(blocks), responses=pages)
        return blocks
