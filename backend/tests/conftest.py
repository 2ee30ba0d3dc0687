"""Test fixtures and fake provider adapters."""

from __future__ import annotations

import math
import re
import zlib
from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from qdrant_client import AsyncQdrantClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from report_explainer.config import Settings
from report_explainer.dependencies import Services, build_services, get_services
from report_explainer.main import app
from report_explainer.models.orm import Base
from report_explainer.models.rag import DocumentChunk, EmbeddingMode, RetrievedChunk
from report_explainer.models.schemas import DocumentIn
from report_explainer.services.knowledge_store import QdrantKnowledgeStore
from report_explainer.services.providers import ImageAttachment

EMBEDDING_DIM = 64

test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


# --- Fakes ---


def hashed_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Deterministic bag-of-words embedding: shared words => high cosine."""
    vector = [0.0] * dim
    for word in re.findall(r"\w+", text.lower()):
        vector[zlib.crc32(word.encode()) % dim] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        vector[0] = 1.0
        return vector
    return [v / norm for v in vector]


class FakeEmbedder:
    def __init__(self, dim: int = EMBEDDING_DIM) -> None:
        self.dim = dim
        self.available = True
        self.calls: list[tuple[str, EmbeddingMode]] = []

    async def embed(self, text: str, mode: EmbeddingMode) -> list[float] | None:
        self.calls.append((text, mode))
        if not self.available:
            return None
        return hashed_vector(text, self.dim)


class FakeModel:
    """Returns queued completions (or raises queued exceptions) in call order."""

    def __init__(self) -> None:
        self.responses: list[str | Exception] = []
        self.default: str | Exception = ""
        self.calls: list[dict] = []

    def queue(self, *items: str | Exception) -> None:
        self.responses.extend(items)

    async def generate(
        self,
        *,
        system_instruction: str,
        prompt: str,
        image: ImageAttachment | None = None,
        max_output_tokens: int = 1024,
    ) -> str:
        self.calls.append(
            {
                "system_instruction": system_instruction,
                "prompt": prompt,
                "image": image,
                "max_output_tokens": max_output_tokens,
            }
        )
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, Exception):
            raise item
        return item


class FakeStore:
    """KnowledgeStore with scripted search results keyed by report-type filter."""

    def __init__(self) -> None:
        self.documents: dict[str, DocumentIn] = {}
        self.chunks: list[tuple[DocumentChunk, list[float]]] = []
        self.search_results: dict[str | None, list[RetrievedChunk]] = {}
        self.search_calls: list[dict] = []
        self.fail_search = False
        self.fail_titles = False
        self.fail_chunk_indexes: set[int] = set()
        self.fail_documents = False

    async def insert_document(self, document: DocumentIn) -> str:
        if self.fail_documents:
            raise RuntimeError("database unavailable")
        document_id = f"doc-{len(self.documents) + 1}"
        self.documents[document_id] = document
        return document_id

    async def insert_chunk(self, chunk: DocumentChunk, embedding: list[float]) -> None:
        if chunk.chunk_index in self.fail_chunk_indexes:
            raise RuntimeError(f"write failed for chunk {chunk.chunk_index}")
        self.chunks.append((chunk, embedding))

    async def hybrid_search(self, **kwargs) -> list[RetrievedChunk]:
        self.search_calls.append(kwargs)
        if self.fail_search:
            raise ConnectionError("store connection refused")
        return list(self.search_results.get(kwargs["filter_report_type"], []))

    async def fetch_titles(self, document_ids: list[str]) -> dict[str, str]:
        if self.fail_titles:
            raise ConnectionError("title lookup failed")
        return {
            i: self.documents[i].title for i in document_ids if i in self.documents
        }


def make_retrieved(
    content: str = "Chest radiographs show the lungs, heart and ribs.",
    *,
    document_id: str = "doc-1",
    category: str = "anatomy",
    source: str = "RSNA",
    report_type: str = "xray",
    title: str | None = None,
    score: float = 0.8,
) -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id=f"{document_id}-0",
        document_id=document_id,
        content=content,
        chunk_index=0,
        source=source,
        report_type=report_type,
        content_category=category,
        similarity=score,
        text_rank=0.5,
        combined_score=0.7 * score + 0.15,
        document_title=title,
    )


def make_settings(**overrides) -> Settings:
    values = {
        "google_api_key": "test-key",
        "embedding_dimensions": EMBEDDING_DIM,
        "embedding_delay_seconds": 0,
        "qdrant_collection": "test_chunks",
        "database_url": "sqlite+aiosqlite://",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# --- Fixtures ---


@pytest.fixture(autouse=True)
async def setup_database() -> AsyncIterator[None]:
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_model() -> FakeModel:
    return FakeModel()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
async def qdrant_store(settings: Settings) -> AsyncIterator[QdrantKnowledgeStore]:
    """In-memory Qdrant for chunks, in-memory SQLite for documents."""
    client = AsyncQdrantClient(":memory:")
    store = QdrantKnowledgeStore(settings, client, test_session_factory)
    await store.ensure_collection()
    yield store
    await client.close()


@pytest.fixture
def services(
    settings: Settings,
    fake_model: FakeModel,
    fake_embedder: FakeEmbedder,
    qdrant_store: QdrantKnowledgeStore,
) -> Services:
    return build_services(
        settings, model=fake_model, embedder=fake_embedder, store=qdrant_store
    )


@pytest.fixture
async def client(services: Services) -> AsyncIterator[AsyncClient]:
    app.dependency_overrides[get_services] = lambda: services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_services, None)
