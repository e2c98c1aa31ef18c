"""Tests for the OCR job client and Textract block mapping."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from docintel.errors import UpstreamUnavailable
from docintel.pipeline.stage_ocr import TextractJobClient, textract_block_to_record
from docintel.pipeline.stage_parse import BlockGraphParser


def client_error(operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
        operation,
    )


@pytest.fixture
def textract():
    return MagicMock()


@pytest.fixture
def s3():
    return MagicMock()


@pytest.fixture
def ocr_client(textract, s3):
    return TextractJobClient(
        textract_client=textract,
        s3_client=s3,
        sns_topic_arn="arn:aws:sns:us-east-1:123:ocr-done",
        role_arn="arn:aws:iam::123:role/textract",
    )


class TestBlockMapping:
    """Tests for textract_block_to_record."""

    def test_line_block(self):
        record = textract_block_to_record(
            {
                "Id": "l1",
                "BlockType": "LINE",
                "Page": 2,
                "Text": "Hello world",
                "Confidence": 99.1,
                "Geometry": {"BoundingBox": {"Top": 0.1, "Left": 0.2, "Width": 0.3, "Height": 0.02}},
                "Relationships": [
                    {"Type": "CHILD", "Ids": ["w1", "w2"]},
                    {"Type": "COMPLEX_FEATURES", "Ids": ["x"]},
                ],
            }
        )

        assert record["id"] == "l1"
        assert record["type"] == "LINE"
        assert record["page"] == 2
        assert record["relationships"] == [{"type": "CHILD", "ids": ["w1", "w2"]}]
        assert record["boundingBox"]["Top"] == 0.1

    def test_cell_and_key_fields(self):
        cell = textract_block_to_record(
            {"Id": "c1", "BlockType": "CELL", "Page": 1, "RowIndex": 2, "ColumnIndex": 3}
        )
        key = textract_block_to_record(
            {"Id": "k1", "BlockType": "KEY_VALUE_SET", "Page": 1, "EntityTypes": ["KEY"]}
        )

        assert (cell["rowIndex"], cell["columnIndex"]) == (2, 3)
        assert key["entityRole"] == "KEY"

    def test_mapped_records_parse(self):
        """Mapped Textract blocks feed the parser directly."""
        blocks = [
            {
                "Id": "l1",
                "BlockType": "LINE",
                "Page": 1,
                "Text": "Total due",
                "Confidence": 98.0,
                "Geometry": {"BoundingBox": {"Top": 0.1, "Left": 0.1, "Width": 0.3, "Height": 0.02}},
            }
        ]

        doc = BlockGraphParser(confidence_threshold=80.0).parse(
            textract_block_to_record(b) for b in blocks
        )

        assert doc.pages[0].text == "Total due"


class TestTextractJobClient:
    """Tests for TextractJobClient."""

    def test_start_job(self, ocr_client, textract):
        textract.start_document_analysis.return_value = {"JobId": "ocr-123"}

        job_id = ocr_client.start_job("uploads", "a/report.pdf", client_token="doc-1")

        assert job_id == "ocr-123"
        kwargs = textract.start_document_analysis.call_args.kwargs
        assert kwargs["DocumentLocation"] == {"S3Object": {"Bucket": "uploads", "Name": "a/report.pdf"}}
        assert kwargs["FeatureTypes"] == ["TABLES", "FORMS"]
        assert kwargs["ClientRequestToken"] == "doc-1"
        assert kwargs["NotificationChannel"]["SNSTopicArn"].endswith("ocr-done")

    def test_start_job_failure(self, ocr_client, textract):
        textract.start_document_analysis.side_effect = client_error("StartDocumentAnalysis")

        with pytest.raises(UpstreamUnavailable):
            ocr_client.start_job("uploads", "a/report.pdf", client_token="doc-1")

    def test_get_blocks_follows_pagination(self, ocr_client, textract):
        textract.get_document_analysis.side_effect = [
            {"Blocks": [{"Id": "1"}, {"Id": "2"}], "NextToken": "t1"},
            {"Blocks": [{"Id": "3"}], "NextToken": "t2"},
            {"Blocks": [{"Id": "4"}]},
        ]

        blocks = ocr_client.get_blocks("ocr-123")

        assert [b["Id"] for b in blocks] == ["1", "2", "3", "4"]
        calls = [c.kwargs for c in textract.get_document_analysis.call_args_list]
        assert calls == [
            {"JobId": "ocr-123"},
            {"JobId": "ocr-123", "NextToken": "t1"},
            {"JobId": "ocr-123", "NextToken": "t2"},
        ]

    def test_head_object(self, ocr_client, s3):
        s3.head_object.return_value = {"ContentLength": 1234, "ContentType": "application/pdf"}

        assert ocr_client.head_object("uploads", "a.pdf") == {
            "size": 1234,
            "content_type": "application/pdf",
        }
