"""Block Graph Parsing Stage - Rebuild a structured document from OCR output.

The OCR service returns a flat list of blocks (pages, lines, words, tables,
cells, key-value sets) linked by id. This stage turns that graph into:
- reading-ordered page text
- tables rendered as markdown
- key-value form fields

Parsing never raises. Unknown or malformed records are dropped at entry and
unresolved ids degrade to empty fragments, so one bad fragment cannot abort
a whole document.
"""

from collections import defaultdict
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError

from docintel.config import settings
from docintel.logging_config import get_logger
from docintel.models import (
    BlockBase,
    CellBlock,
    EntityRole,
    KeyValuePair,
    KeyValueSetBlock,
    LineBlock,
    ParsedDocument,
    ParsedForm,
    ParsedPage,
    ParsedTable,
    RelationType,
    TableBlock,
    block_adapter,
    block_text,
)

logger = get_logger(__name__)

BlockInput = Union[BlockBase, dict[str, Any]]


def escape_cell(text: str) -> str:
    """Make cell text safe inside a markdown pipe table."""
    return " ".join(text.replace("|", "\\|").split())


def render_markdown_table(rows: list[list[str]]) -> str:
    """Render rows of cell text as a markdown pipe table.

    The first row is treated as the header and followed by a separator line.
    """
    if not rows:
        return ""

    lines = []
    for i, row in enumerate(rows):
        lines.append("| " + " | ".join(row) + " |")
        if i == 0:
            lines.append("| " + " | ".join(["---"] * len(row)) + " |")
    return "\n".join(lines)


class BlockGraphParser:
    """Converts a flat OCR block graph into a ParsedDocument.

    An id→block index is built once per call so relationship lookups are
    constant time regardless of document size.
    """

    def __init__(
        self,
        confidence_threshold: Optional[float] = None,
        line_tolerance: Optional[float] = None,
    ):
        """Initialize parser.

        Args:
            confidence_threshold: Minimum line / key confidence (0-100 scale).
            line_tolerance: Vertical distance below which two lines share a row.
        """
        self.confidence_threshold = (
            settings.ocr_confidence_threshold
            if confidence_threshold is None
            else confidence_threshold
        )
        self.line_tolerance = (
            settings.line_tolerance if line_tolerance is None else line_tolerance
        )

    def parse(self, blocks: Iterable[BlockInput]) -> ParsedDocument:
        """Parse a block graph.

        Args:
            blocks: Block models or raw block records.

        Returns:
            ParsedDocument with pages, tables and forms.
        """
        validated = self._validate(blocks)
        index: dict[str, BlockBase] = {}
        page_map: dict[int, list[BlockBase]] = defaultdict(list)

        for block in validated:
            # First occurrence wins for duplicate ids
            index.setdefault(block.id, block)
            if block.page is not None:
                page_map[block.page].append(block)

        pages: list[ParsedPage] = []
        tables: list[ParsedTable] = []
        forms: list[ParsedForm] = []

        for page_number in sorted(page_map):
            page_blocks = page_map[page_number]

            page = self._parse_page_text(page_number, page_blocks)
            if page is not None:
                pages.append(page)

            for block in page_blocks:
                if isinstance(block, TableBlock):
                    markdown = self.table_to_markdown(block, index)
                    if markdown:
                        tables.append(
                            ParsedTable(
                                page_number=page_number,
                                markdown=markdown,
                                confidence=block.confidence,
                            )
                        )

            pairs = self.extract_key_values(page_blocks, index)
            if pairs:
                forms.append(ParsedForm(page_number=page_number, key_value_pairs=pairs))

        average_confidence = (
            sum(p.confidence for p in pages) / len(pages) if pages else 0.0
        )

        document = ParsedDocument(
            pages=pages,
            tables=tables,
            forms=forms,
            plain_text="\n\n".join(p.text for p in pages),
            page_count=len(page_map),
            average_confidence=average_confidence,
        )

        logger.debug(
            "block_graph_parsed",
            blocks=len(validated),
            page_count=document.page_count,
            pages_with_text=len(pages),
            tables=len(tables),
            forms=len(forms),
        )
        return document

    def _validate(self, blocks: Iterable[BlockInput]) -> list[BlockBase]:
        """Validate raw records into block models, dropping the ones that fail."""
        validated: list[BlockBase] = []
        dropped = 0

        for raw in blocks or []:
            if isinstance(raw, BlockBase):
                validated.append(raw)
                continue
            try:
                validated.append(block_adapter.validate_python(raw))
            except ValidationError:
                dropped += 1

        if dropped:
            logger.debug("blocks_dropped", dropped=dropped, kept=len(validated))
        return validated

    def _parse_page_text(
        self, page_number: int, page_blocks: list[BlockBase]
    ) -> Optional[ParsedPage]:
        """Build reading-ordered text for one page; None if nothing survives."""
        lines = [
            b
            for b in page_blocks
            if isinstance(b, LineBlock) and b.confidence >= self.confidence_threshold
        ]
        ordered = self.order_lines(lines)

        text = "\n".join(line.text for line in ordered)
        if not text.strip():
            return None

        confidence = sum(line.confidence for line in ordered) / len(ordered)
        return ParsedPage(page_number=page_number, text=text, confidence=confidence)

    def order_lines(self, lines: list[LineBlock]) -> list[LineBlock]:
        """Sort lines top to bottom, left to right within a row.

        Lines are sorted by their top edge, then consecutive lines whose tops
        differ by less than the tolerance are chained into one row. Chaining
        keeps any two lines within tolerance in the same row, so their order
        only depends on their left edges.
        """
        by_top = sorted(lines, key=lambda b: (b.top, b.left, b.id))

        rows: list[list[LineBlock]] = []
        previous_top: Optional[float] = None
        for line in by_top:
            if previous_top is None or line.top - previous_top >= self.line_tolerance:
                rows.append([])
            rows[-1].append(line)
            previous_top = line.top

        ordered: list[LineBlock] = []
        for row in rows:
            ordered.extend(sorted(row, key=lambda b: (b.left, b.top, b.id)))
        return ordered

    def table_to_markdown(self, table: TableBlock, index: dict[str, BlockBase]) -> str:
        """Render a TABLE block as markdown; empty string if it has no cells."""
        cells = [
            index[cell_id]
            for cell_id in table.related_ids(RelationType.CHILD)
            if isinstance(index.get(cell_id), CellBlock)
        ]
        if not cells:
            return ""

        rows: dict[int, dict[int, str]] = defaultdict(dict)
        for cell in cells:
            rows[cell.row_index][cell.column_index] = escape_cell(
                self._child_text(cell, index)
            )

        # Union of column indices so every row has the same width
        columns = sorted({col for row in rows.values() for col in row})
        grid = [
            [rows[row_index].get(col, "") for col in columns]
            for row_index in sorted(rows)
        ]
        return render_markdown_table(grid)

    def extract_key_values(
        self, page_blocks: list[BlockBase], index: dict[str, BlockBase]
    ) -> list[KeyValuePair]:
        """Pair KEY blocks with their VALUE blocks on one page."""
        pairs: list[KeyValuePair] = []

        for block in page_blocks:
            if not isinstance(block, KeyValueSetBlock):
                continue
            if block.entity_role != EntityRole.KEY:
                continue
            if block.confidence < self.confidence_threshold:
                continue

            key_text = self._child_text(block, index)
            if not key_text:
                continue

            value_block = self._value_block(block, index)
            value_text = self._child_text(value_block, index) if value_block else ""

            pairs.append(
                KeyValuePair(key=key_text, value=value_text, confidence=block.confidence)
            )

        return pairs

    def _value_block(
        self, key_block: KeyValueSetBlock, index: dict[str, BlockBase]
    ) -> Optional[KeyValueSetBlock]:
        value_ids = key_block.related_ids(RelationType.VALUE)
        if not value_ids:
            return None
        candidate = index.get(value_ids[0])
        if isinstance(candidate, KeyValueSetBlock) and candidate.entity_role == EntityRole.VALUE:
            return candidate
        return None

    @staticmethod
    def _child_text(block: BlockBase, index: dict[str, BlockBase]) -> str:
        """Join the text of a block's CHILD blocks with spaces."""
        texts = [block_text(index.get(child_id)) for child_id in block.related_ids()]
        return " ".join(t for t in texts if t).strip()
