"""Base models and common types for docintel."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RelationType(str, Enum):
    """Edge types between blocks."""

    CHILD = "CHILD"
    VALUE = "VALUE"


class EntityRole(str, Enum):
    """Role of a KEY_VALUE_SET block within a form field."""

    KEY = "KEY"
    VALUE = "VALUE"


class DocumentStatus(str, Enum):
    """Processing status of a document record."""

    OCR_PENDING = "OCR_PENDING"
    OCR_IN_PROGRESS = "OCR_IN_PROGRESS"
    PROCESSED = "PROCESSED"
    FAILED_OCR_START = "FAILED_OCR_START"
    FAILED_OCR = "FAILED_OCR"
    FAILED_OCR_PROCESSING = "FAILED_OCR_PROCESSING"


class JobStatus(str, Enum):
    """Status of an OCR processing job."""

    IN_PROGRESS = "OCR_IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED_OCR = "FAILED_OCR"
    FAILED_OCR_PROCESSING = "FAILED_OCR_PROCESSING"


class BoundingBox(BaseModel):
    """Normalized (0-1) box of a detected element, origin at the top left."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    top: float = Field(default=0.0, alias="Top")
    left: float = Field(default=0.0, alias="Left")
    width: float = Field(default=0.0, alias="Width")
    height: float = Field(default=0.0, alias="Height")


class BaseIRModel(BaseModel):
    """Base class for immutable pipeline data."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, from_attributes=True)
