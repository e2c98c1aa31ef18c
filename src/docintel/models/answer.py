"""Query path response models."""

from typing import Optional

from pydantic import Field

from .base import BaseIRModel


class Source(BaseIRModel):
    """Cited source as presented to the user."""

    id: str = Field(..., description="Label used in the answer, S1..Sn")
    similarity: float
    page_number: Optional[int] = None
    content: str = Field(default="", description="Content preview")


class QueryResponse(BaseIRModel):
    """Grounded answer with its sources."""

    answer: str
    sources: list[Source] = Field(default_factory=list)
    confidence: float = Field(default=0.0, le=1.0)
