"""Block record builders and capability fakes shared by the tests."""

import zlib
from typing import Optional

import numpy as np

from docintel.errors import UpstreamUnavailable
from docintel.models import EmbeddingBatch, TokenUsage

DIMENSION = 8


def line(
    block_id: str,
    text: str,
    top: float,
    left: float = 0.1,
    confidence: float = 99.0,
    page: int = 1,
) -> dict:
    return {
        "id": block_id,
        "type": "LINE",
        "page": page,
        "text": text,
        "confidence": confidence,
        "boundingBox": {"top": top, "left": left, "width": 0.3, "height": 0.02},
        "relationships": [],
    }


def word(block_id: str, text: str, page: int = 1, confidence: float = 99.0) -> dict:
    return {
        "id": block_id,
        "type": "WORD",
        "page": page,
        "text": text,
        "confidence": confidence,
        "relationships": [],
    }


def cell(block_id: str, row: int, column: int, child_ids: list, page: int = 1) -> dict:
    return {
        "id": block_id,
        "type": "CELL",
        "page": page,
        "confidence": 95.0,
        "rowIndex": row,
        "columnIndex": column,
        "relationships": [{"type": "CHILD", "ids": child_ids}],
    }


def table(block_id: str, cell_ids: list, page: int = 1, confidence: float = 97.0) -> dict:
    return {
        "id": block_id,
        "type": "TABLE",
        "page": page,
        "confidence": confidence,
        "relationships": [{"type": "CHILD", "ids": cell_ids}],
    }


def key_block(
    block_id: str,
    child_ids: list,
    value_id: Optional[str],
    page: int = 1,
    confidence: float = 90.0,
) -> dict:
    relationships = [{"type": "CHILD", "ids": child_ids}]
    if value_id:
        relationships.append({"type": "VALUE", "ids": [value_id]})
    return {
        "id": block_id,
        "type": "KEY_VALUE_SET",
        "page": page,
        "confidence": confidence,
        "entityRole": "KEY",
        "relationships": relationships,
    }


def value_block(block_id: str, child_ids: list, page: int = 1) -> dict:
    return {
        "id": block_id,
        "type": "KEY_VALUE_SET",
        "page": page,
        "confidence": 90.0,
        "entityRole": "VALUE",
        "relationships": [{"type": "CHILD", "ids": child_ids}],
    }


def text_vector(text: str, dimension: int) -> list[float]:
    """Deterministic unit vector for a text."""
    rng = np.random.default_rng(zlib.crc32(text.encode("utf-8")))
    vector = rng.normal(size=dimension)
    return (vector / np.linalg.norm(vector)).tolist()


class FakeEmbedder:
    """EmbeddingGateway returning deterministic vectors, with overrides per text."""

    def __init__(self, dimension: int = 8, vectors: Optional[dict] = None):
        self.dimension = dimension
        self.vectors = dict(vectors or {})
        self.calls: list = []
        self.fail = False

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        return text_vector(text, self.dimension)

    def embed(self, text: str) -> list[float]:
        self.calls.append([text])
        if self.fail:
            raise UpstreamUnavailable("embedding", "fake outage")
        return self._vector(text)

    def embed_batch(self, texts: list) -> EmbeddingBatch:
        self.calls.append(list(texts))
        if self.fail:
            raise UpstreamUnavailable("embedding", "fake outage")
        return EmbeddingBatch(
            vectors=[self._vector(t) for t in texts],
            usage=TokenUsage(tokens=sum(len(t) for t in texts)),
        )


class FakeGenerator:
    """GenerationCapability that records prompts."""

    def __init__(self, answer: str = "X", error: Optional[Exception] = None):
        self.answer = answer
        self.error = error
        self.prompts: list = []

    def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer
