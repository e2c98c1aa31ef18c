"""Tests for block graph parsing stage."""

import pytest

from builders import cell, key_block, line, table, value_block, word
from docintel.models import LineBlock
from docintel.pipeline.stage_parse import (
    BlockGraphParser,
    escape_cell,
    render_markdown_table,
)


@pytest.fixture
def parser():
    return BlockGraphParser(confidence_threshold=80.0, line_tolerance=0.01)


def two_by_two_table(page: int = 1) -> list:
    return [
        word("w1", "Name", page),
        word("w2", "Age", page),
        word("w3", "Alice", page),
        word("w4", "30", page),
        cell("c11", 1, 1, ["w1"], page),
        cell("c12", 1, 2, ["w2"], page),
        cell("c21", 2, 1, ["w3"], page),
        cell("c22", 2, 2, ["w4"], page),
        table("t1", ["c11", "c12", "c21", "c22"], page),
    ]


class TestReadingOrder:
    """Tests for line ordering within a page."""

    def test_top_to_bottom(self, parser):
        """Lines are emitted by ascending top edge."""
        blocks = [
            line("l3", "third", top=0.50),
            line("l1", "first", top=0.10),
            line("l2", "second", top=0.30),
        ]

        doc = parser.parse(blocks)

        assert doc.pages[0].text == "first\nsecond\nthird"

    def test_same_row_left_to_right(self, parser):
        """Lines within tolerance of each other are ordered by left edge."""
        blocks = [
            line("right", "right column", top=0.200, left=0.6),
            line("left", "left column", top=0.205, left=0.1),
            line("next", "next row", top=0.300, left=0.1),
        ]

        doc = parser.parse(blocks)

        assert doc.pages[0].text == "left column\nright column\nnext row"

    def test_chained_rows(self, parser):
        """A row is chained through consecutive lines within tolerance."""
        lines = [
            LineBlock.model_validate(line("a", "a", top=0.100, left=0.9)),
            LineBlock.model_validate(line("b", "b", top=0.108, left=0.5)),
            LineBlock.model_validate(line("c", "c", top=0.116, left=0.1)),
        ]

        ordered = parser.order_lines(lines)

        assert [b.id for b in ordered] == ["c", "b", "a"]

    def test_deterministic_for_any_input_order(self, parser):
        """Reordering the input never changes the output."""
        blocks = [
            line("l1", "alpha", top=0.10, left=0.5),
            line("l2", "beta", top=0.105, left=0.1),
            line("l3", "gamma", top=0.40, left=0.3),
            line("l4", "delta", top=0.40, left=0.3),
        ]

        first = parser.parse(blocks).pages[0].text
        second = parser.parse(list(reversed(blocks))).pages[0].text

        assert first == second

    def test_low_confidence_lines_dropped(self, parser):
        """Lines below the threshold are excluded from text and confidence."""
        blocks = [
            line("l1", "kept", top=0.1, confidence=90.0),
            line("l2", "noise", top=0.2, confidence=40.0),
            line("l3", "also kept", top=0.3, confidence=80.0),
        ]

        doc = parser.parse(blocks)

        assert doc.pages[0].text == "kept\nalso kept"
        assert doc.pages[0].confidence == pytest.approx(85.0)

    def test_page_without_surviving_lines_omitted(self, parser):
        """A page whose lines all fall below threshold yields no page."""
        blocks = [
            line("l1", "page one", top=0.1, page=1),
            line("l2", "blurry", top=0.1, page=2, confidence=10.0),
        ]

        doc = parser.parse(blocks)

        assert [p.page_number for p in doc.pages] == [1]
        assert doc.page_count == 2

    def test_pages_sorted_and_joined(self, parser):
        """Pages come out in page order and plain text joins them."""
        blocks = [
            line("p2", "page two", top=0.1, page=2),
            line("p1", "page one", top=0.1, page=1),
        ]

        doc = parser.parse(blocks)

        assert [p.page_number for p in doc.pages] == [1, 2]
        assert doc.plain_text == "page one\n\npage two"
        assert doc.average_confidence == pytest.approx(99.0)


class TestTables:
    """Tests for table reconstruction."""

    def test_two_by_two_table(self, parser):
        """A 2x2 table renders header, separator and one data row."""
        doc = parser.parse(two_by_two_table())

        assert len(doc.tables) == 1
        lines = doc.tables[0].markdown.split("\n")
        assert len(lines) == 3
        assert lines[0] == "| Name | Age |"
        assert lines[1] == "| --- | --- |"
        assert lines[2] == "| Alice | 30 |"
        assert doc.tables[0].confidence == 97.0

    def test_ragged_rows_padded(self, parser):
        """Missing cells become empty so every row has the same width."""
        blocks = [
            word("w1", "A", 1),
            word("w2", "B", 1),
            word("w3", "C", 1),
            cell("c11", 1, 1, ["w1"]),
            cell("c12", 1, 2, ["w2"]),
            cell("c21", 2, 1, ["w3"]),
            table("t1", ["c11", "c12", "c21"]),
        ]

        markdown = parser.parse(blocks).tables[0].markdown
        rows = markdown.split("\n")

        assert rows[2] == "| C |  |"
        assert len({row.count("|") for row in rows}) == 1

    def test_table_without_cells_skipped(self, parser):
        """A table whose children are missing produces nothing."""
        doc = parser.parse([table("t1", ["missing-1", "missing-2"])])

        assert doc.tables == []

    def test_pipe_in_cell_escaped(self):
        assert escape_cell("a|b\n c") == "a\\|b c"

    def test_render_empty(self):
        assert render_markdown_table([]) == ""


class TestForms:
    """Tests for key-value extraction."""

    def test_key_value_pair(self, parser):
        """A KEY block is paired with its VALUE block's text."""
        blocks = [
            word("k1", "Invoice"),
            word("k2", "Number:"),
            word("v1", "INV-42"),
            key_block("key", ["k1", "k2"], "val"),
            value_block("val", ["v1"]),
        ]

        doc = parser.parse(blocks)

        assert len(doc.forms) == 1
        pair = doc.forms[0].key_value_pairs[0]
        assert pair.key == "Invoice Number:"
        assert pair.value == "INV-42"
        assert pair.confidence == 90.0

    def test_missing_value_gives_empty_value(self, parser):
        blocks = [word("k1", "Date"), key_block("key", ["k1"], "nowhere")]

        pair = parser.parse(blocks).forms[0].key_value_pairs[0]

        assert pair.value == ""

    def test_unresolved_key_text_skipped(self, parser):
        """Keys whose children cannot be resolved are dropped."""
        blocks = [key_block("key", ["ghost"], None)]

        assert parser.parse(blocks).forms == []

    def test_low_confidence_key_skipped(self, parser):
        blocks = [word("k1", "Total"), key_block("key", ["k1"], None, confidence=50.0)]

        assert parser.parse(blocks).forms == []


class TestMalformedInput:
    """Parsing degrades instead of raising."""

    def test_empty_input(self, parser):
        doc = parser.parse([])

        assert doc.is_empty
        assert doc.page_count == 0
        assert doc.average_confidence == 0.0

    def test_unknown_and_broken_records_dropped(self, parser):
        """Unknown kinds and records without an id are ignored."""
        blocks = [
            {"id": "x", "type": "SIGNATURE", "page": 1},
            {"type": "LINE", "text": "no id"},
            "not a record",
            line("l1", "survivor", top=0.1),
        ]

        doc = parser.parse(blocks)

        assert doc.pages[0].text == "survivor"

    def test_line_without_geometry(self, parser):
        """Lines without a bounding box sort as if at the top left."""
        record = line("l1", "boxless", top=0.0)
        del record["boundingBox"]

        doc = parser.parse([record, line("l2", "boxed", top=0.5)])

        assert doc.pages[0].text == "boxless\nboxed"
