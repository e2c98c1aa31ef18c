"""Pytest configuration and fixtures."""

import pytest

from builders import DIMENSION, FakeEmbedder, FakeGenerator
from docintel.pipeline.stage_index import IndexWriter
from docintel.storage.database import create_db_engine, create_session_factory, init_db
from docintel.storage.vector_backend import InMemoryVectorBackend



@pytest.fixture
def embedder():
    """Deterministic embedder with small vectors."""
    return FakeEmbedder(dimension=DIMENSION)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def backend():
    """Empty in-memory vector index."""
    memory = InMemoryVectorBackend(index_name="test_chunks", dimension=DIMENSION)
    memory.create_index()
    return memory


@pytest.fixture
def index_writer(backend):
    return IndexWriter(backend, dimension=DIMENSION)


@pytest.fixture
def session_factory():
    """Metadata store on in-memory SQLite."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def output_dir(tmp_path):
    """Create a temporary output directory."""
    out_dir = tmp_path / "output"
    out_dir.mkdir()
    return out_dir
