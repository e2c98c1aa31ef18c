"""Tests for chunking stage."""

import math

import pytest

from docintel.models import ParsedDocument, ParsedPage
from docintel.pipeline.stage_chunk import Chunker


def reconstruct(pieces: list, step: int) -> str:
    """Undo the overlap by keeping the first `step` characters of each window."""
    return "".join(p[:step] for p in pieces[:-1]) + pieces[-1]


class TestChunker:
    """Tests for Chunker class."""

    def test_invalid_overlap_rejected(self):
        with pytest.raises(ValueError):
            Chunker(size=100, overlap=100)
        with pytest.raises(ValueError):
            Chunker(size=100, overlap=-1)

    def test_empty_text(self):
        assert Chunker(size=10, overlap=2).chunk("", page_number=1) == []

    @pytest.mark.parametrize(
        "length,size,overlap",
        [(25, 10, 2), (1000, 1000, 100), (2500, 1000, 100), (101, 10, 0), (9, 10, 3)],
    )
    def test_chunk_count(self, length, size, overlap):
        """Window count is ceil((L - O) / (C - O)) for text longer than the overlap."""
        text = "x" * length

        fragments = Chunker(size=size, overlap=overlap).chunk(text, page_number=1)

        assert len(fragments) == math.ceil((length - overlap) / (size - overlap))

    def test_text_shorter_than_overlap(self):
        """Short text still yields a single window."""
        fragments = Chunker(size=10, overlap=5).chunk("abc", page_number=3)

        assert [f.text for f in fragments] == ["abc"]
        assert fragments[0].page_number == 3

    def test_reconstruction(self):
        """Overlapping windows rebuild the original text."""
        text = "".join(chr(ord("a") + i % 26) for i in range(137))
        size, overlap = 20, 5

        fragments = Chunker(size=size, overlap=overlap).chunk(text, page_number=1)

        assert all(len(f.text) <= size for f in fragments)
        assert reconstruct([f.text for f in fragments], size - overlap) == text

    def test_consecutive_windows_overlap(self):
        text = "".join(str(i % 10) for i in range(50))

        fragments = Chunker(size=10, overlap=3).chunk(text, page_number=1)

        for prev, nxt in zip(fragments, fragments[1:]):
            assert prev.text[-3:] == nxt.text[:3]

    def test_blank_windows_dropped(self):
        """Whitespace-only windows are not emitted."""
        text = "a" * 10 + " " * 30 + "b" * 10

        fragments = Chunker(size=10, overlap=0).chunk(text, page_number=1)

        assert [f.text for f in fragments] == ["a" * 10, "b" * 10]

    def test_override_per_call(self):
        chunker = Chunker(size=1000, overlap=100)

        fragments = chunker.chunk("y" * 30, page_number=1, size=10, overlap=0)

        assert len(fragments) == 3

    def test_chunk_document_keeps_pages(self):
        """Chunks never span pages and carry their page number."""
        doc = ParsedDocument(
            pages=[
                ParsedPage(page_number=1, text="a" * 15, confidence=99.0),
                ParsedPage(page_number=2, text="b" * 5, confidence=99.0),
            ],
            page_count=2,
        )

        fragments = Chunker(size=10, overlap=0).chunk_document(doc)

        assert [(f.page_number, f.text) for f in fragments] == [
            (1, "a" * 10),
            (1, "a" * 5),
            (2, "b" * 5),
        ]
