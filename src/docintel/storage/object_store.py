"""Object storage for archived OCR payloads.

Two implementations share the ObjectStore interface: S3 via boto3 and a
local directory tree.
"""

import json
from pathlib import Path
from typing import Any, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from docintel.config import settings
from docintel.errors import ObjectStoreError


class ObjectStore(Protocol):
    def put_json(self, key: str, payload: Any) -> str:
        ...


class S3ObjectStore:
    """ObjectStore backed by an S3 bucket."""

    def __init__(self, bucket: Optional[str] = None, client: Any = None):
        self.bucket = bucket or settings.archive_bucket
        self.client = client or boto3.client("s3", region_name=settings.aws_region)

    def put_json(self, key: str, payload: Any) -> str:
        """Write a JSON payload; returns its s3:// URI."""
        if not self.bucket:
            raise ObjectStoreError("No archive bucket configured")
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=json.dumps(payload).encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"Failed to write s3://{self.bucket}/{key}: {e}") from e
        return f"s3://{self.bucket}/{key}"


class LocalObjectStore:
    """ObjectStore writing under a local directory."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or settings.archive_dir)

    def put_json(self, key: str, payload: Any) -> str:
        path = self.root / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f)
        except (OSError, TypeError) as e:
            raise ObjectStoreError(f"Failed to write {path}: {e}") from e
        return str(path)
