"""Block graph models for OCR-detected elements.

A block graph arrives as a flat list of records that reference each other by
id. Each record is validated once into one of the closed set of block kinds
below, so the parser can dispatch on type instead of probing optional fields.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field, TypeAdapter, field_validator

from .base import BaseIRModel, BoundingBox, EntityRole, RelationType


class Relationship(BaseIRModel):
    """Ordered list of target block ids for one relation type."""

    type: str
    ids: list[str] = Field(default_factory=list)

    @field_validator("ids", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []


class BlockBase(BaseIRModel):
    """Fields shared by every block kind."""

    id: str
    page: Optional[int] = None
    confidence: float = Field(default=0.0, description="OCR confidence, 0-100")
    bounding_box: Optional[BoundingBox] = Field(default=None, alias="boundingBox")
    relationships: list[Relationship] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _missing_confidence(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("relationships", mode="before")
    @classmethod
    def _missing_relationships(cls, value: Any) -> Any:
        return value or []

    def related_ids(self, relation: RelationType = RelationType.CHILD) -> list[str]:
        """Ids of every target of the given relation type, in order."""
        ids: list[str] = []
        for rel in self.relationships:
            if rel.type == relation.value:
                ids.extend(rel.ids)
        return ids

    @property
    def top(self) -> float:
        return self.bounding_box.top if self.bounding_box else 0.0

    @property
    def left(self) -> float:
        return self.bounding_box.left if self.bounding_box else 0.0


class TextBlockBase(BlockBase):
    """Block carrying recognized text."""

    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def _missing_text(cls, value: Any) -> Any:
        return "" if value is None else value


class PageBlock(BlockBase):
    type: Literal["PAGE"] = "PAGE"


class LineBlock(TextBlockBase):
    type: Literal["LINE"] = "LINE"


class WordBlock(TextBlockBase):
    type: Literal["WORD"] = "WORD"


class TableBlock(BlockBase):
    type: Literal["TABLE"] = "TABLE"


class CellBlock(BlockBase):
    """Table cell; indices are 1-based as reported by the OCR engine."""

    type: Literal["CELL"] = "CELL"
    row_index: int = Field(default=0, alias="rowIndex")
    column_index: int = Field(default=0, alias="columnIndex")

    @field_validator("row_index", "column_index", mode="before")
    @classmethod
    def _missing_index(cls, value: Any) -> Any:
        return 0 if value is None else value


class KeyValueSetBlock(BlockBase):
    """One side (key or value) of a detected form field."""

    type: Literal["KEY_VALUE_SET"] = "KEY_VALUE_SET"
    entity_role: Optional[EntityRole] = Field(default=None, alias="entityRole")


Block = Annotated[
    Union[PageBlock, LineBlock, WordBlock, TableBlock, CellBlock, KeyValueSetBlock],
    Field(discriminator="type"),
]

block_adapter: TypeAdapter[Block] = TypeAdapter(Block)


def block_text(block: Optional[BlockBase]) -> str:
    """Text carried by a block, empty for kinds without text."""
    if isinstance(block, TextBlockBase):
        return block.text
    return ""
