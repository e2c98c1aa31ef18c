"""Error taxonomy shared by the ingestion and query paths.

Capability-boundary failures are classified here so callers can tell
caller-retryable conditions from terminal ones. Each error carries the
message shown to end users and an HTTP status hint for whichever surface
presents it.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from docintel.models import BulkIndexResult


class DocIntelError(Exception):
    """Base class for all docintel errors."""

    http_status: int = 500
    user_message: str = "An error occurred processing your request. Please try again."


class ValidationError(DocIntelError):
    """Malformed, empty or over-length input, rejected before any capability call."""

    http_status = 400

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return self.message


class NotFoundError(DocIntelError):
    """Job or document lookup miss."""

    http_status = 404
    user_message = "The requested document could not be found."

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class UpstreamUnavailable(DocIntelError):
    """OCR, embedding or generation capability failed or returned unusable output."""

    http_status = 503
    user_message = "The AI service is temporarily unavailable. Please try again later."

    def __init__(self, capability: str, message: str):
        super().__init__(f"{capability} unavailable: {message}")
        self.capability = capability
        self.message = message


class PartialIndexFailure(DocIntelError):
    """A bulk upsert finished with some items failed."""

    def __init__(self, result: "BulkIndexResult"):
        super().__init__(
            f"{result.failed} of {result.total} chunks failed to index"
        )
        self.result = result


class StorageError(DocIntelError):
    """Transport or backend failure in a storage collaborator."""


class VectorStoreError(StorageError):
    """The vector store could not be reached or rejected the request."""


class IndexAlreadyExists(VectorStoreError):
    """A concurrent writer created the index first."""

    def __init__(self, index_name: str, cause: Optional[Exception] = None):
        super().__init__(f"Index already exists: {index_name}")
        self.index_name = index_name
        self.cause = cause


class ObjectStoreError(StorageError):
    """Object storage write failed."""
