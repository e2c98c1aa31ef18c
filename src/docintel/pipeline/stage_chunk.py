"""Chunking Stage - Slice page text into overlapping windows.

Windows are fixed-size in characters and advance by ``size - overlap``.
Chunking is applied page by page so a chunk never spans a page boundary.
"""

from typing import Optional

from docintel.config import settings
from docintel.models import ChunkFragment, ParsedDocument


class Chunker:
    """Sliding-window chunker."""

    def __init__(self, size: Optional[int] = None, overlap: Optional[int] = None):
        """Initialize chunker.

        Args:
            size: Window width in characters (default from settings).
            overlap: Characters shared by consecutive windows (default from settings).
        """
        self.size = size if size is not None else settings.chunk_size
        self.overlap = overlap if overlap is not None else settings.chunk_overlap
        self._check(self.size, self.overlap)

    @staticmethod
    def _check(size: int, overlap: int) -> None:
        if size <= 0:
            raise ValueError(f"chunk size must be positive, got {size}")
        if not 0 <= overlap < size:
            raise ValueError(
                f"overlap must satisfy 0 <= overlap < size, got overlap={overlap}, size={size}"
            )

    def chunk(
        self,
        text: str,
        page_number: int,
        size: Optional[int] = None,
        overlap: Optional[int] = None,
    ) -> list[ChunkFragment]:
        """Split one page of text into fragments.

        For text of length L > overlap this yields
        ceil((L - overlap) / (size - overlap)) windows before blank ones are
        dropped; the last window may be shorter than ``size``.

        Args:
            text: Page text.
            page_number: Page the text came from.
            size: Override window width.
            overlap: Override overlap.

        Returns:
            Trimmed, non-blank fragments in order.
        """
        size = self.size if size is None else size
        overlap = self.overlap if overlap is None else overlap
        self._check(size, overlap)

        if not text:
            return []

        step = size - overlap
        # The final window must reach the end of the text: stop once the
        # remaining tail is covered by the previous window's overlap.
        last_start = max(len(text) - overlap, 1)

        fragments = []
        for start in range(0, last_start, step):
            window = text[start:start + size].strip()
            if window:
                fragments.append(ChunkFragment(text=window, page_number=page_number))
        return fragments

    def chunk_document(self, document: ParsedDocument) -> list[ChunkFragment]:
        """Chunk every page of a parsed document, in page order."""
        fragments: list[ChunkFragment] = []
        for page in document.pages:
            fragments.extend(self.chunk(page.text, page.page_number))
        return fragments
