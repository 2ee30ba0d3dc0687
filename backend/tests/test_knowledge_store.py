"""Knowledge store tests: in-memory Qdrant for chunks, SQLite for documents."""

from __future__ import annotations

import pytest
from conftest import hashed_vector
from qdrant_client import AsyncQdrantClient

from report_explainer.models.rag import DocumentChunk
from report_explainer.models.schemas import DocumentIn
from report_explainer.services.knowledge_store import (
    QdrantKnowledgeStore,
    chunk_point_id,
    lexical_rank,
)


def _doc(title: str = "Chest X-Ray Basics", report_type: str = "xray") -> DocumentIn:
    return DocumentIn(
        title=title,
        content="unused here",
        source="RSNA",
        report_type=report_type,
        content_category="anatomy",
        metadata={"edition": 2},
    )


def _chunk(
    text: str,
    document_id: str,
    chunk_index: int = 0,
    report_type: str = "xray",
    category: str = "anatomy",
) -> DocumentChunk:
    return DocumentChunk(
        document_id=document_id,
        text=text,
        chunk_index=chunk_index,
        source="RSNA",
        report_type=report_type,
        content_category=category,
    )


async def _point_count(store: QdrantKnowledgeStore) -> int:
    return (await store._client.count(collection_name=store.collection)).count


class TestLexicalRank:
    def test_fraction_of_terms_present(self) -> None:
        assert lexical_rank("lungs | heart | liver", "The lungs and heart are clear.") == pytest.approx(2 / 3)

    def test_empty_query(self) -> None:
        assert lexical_rank("", "anything") == 0.0

    def test_whole_words_only(self) -> None:
        assert lexical_rank("art", "The heart is normal.") == 0.0


class TestEnsureCollection:
    async def test_idempotent(self, qdrant_store: QdrantKnowledgeStore) -> None:
        await qdrant_store.ensure_collection()  # already created by fixture
        collections = [
            c.name for c in (await qdrant_store._client.get_collections()).collections
        ]
        assert collections.count("test_chunks") == 1


class TestDocuments:
    async def test_insert_and_fetch_titles(self, qdrant_store: QdrantKnowledgeStore) -> None:
        first = await qdrant_store.insert_document(_doc("Chest X-Ray Basics"))
        second = await qdrant_store.insert_document(_doc("MRI Safety", "mri"))
        assert first != second

        titles = await qdrant_store.fetch_titles([first, second, "unknown-id"])
        assert titles == {first: "Chest X-Ray Basics", second: "MRI Safety"}

    async def test_fetch_titles_empty(self, qdrant_store: QdrantKnowledgeStore) -> None:
        assert await qdrant_store.fetch_titles([]) == {}


class TestChunks:
    async def test_upsert_idempotent(self, qdrant_store: QdrantKnowledgeStore) -> None:
        """Same document_id + chunk_index -> same UUID5 -> no duplicates."""
        chunk = _chunk("Lungs appear dark on a radiograph.", "doc-a")
        vector = hashed_vector(chunk.text)
        await qdrant_store.insert_chunk(chunk, vector)
        await qdrant_store.insert_chunk(chunk, vector)
        assert await _point_count(qdrant_store) == 1

    def test_point_id_deterministic(self) -> None:
        assert chunk_point_id("doc-a", 0) == chunk_point_id("doc-a", 0)
        assert chunk_point_id("doc-a", 0) != chunk_point_id("doc-a", 1)


class TestHybridSearch:
    async def _seed(self, store: QdrantKnowledgeStore) -> None:
        rows = [
            ("Lungs appear dark on a chest radiograph because they hold air.", "doc-x", "xray"),
            ("Bones such as ribs appear white on a chest radiograph.", "doc-x", "xray"),
            ("MRI uses strong magnets to image soft tissue like the brain.", "doc-m", "mri"),
        ]
        for i, (text, doc_id, report_type) in enumerate(rows):
            await store.insert_chunk(
                _chunk(text, doc_id, chunk_index=i, report_type=report_type),
                hashed_vector(text),
            )

    async def test_scores_combine_vector_and_text(
        self, qdrant_store: QdrantKnowledgeStore
    ) -> None:
        await self._seed(qdrant_store)
        query = "lungs dark chest radiograph"
        results = await qdrant_store.hybrid_search(
            query_embedding=hashed_vector(query),
            query_text="lungs | dark | chest | radiograph",
            match_count=10,
            vector_weight=0.7,
            text_weight=0.3,
        )
        assert results[0].content.startswith("Lungs appear dark")
        assert results[0].text_rank == pytest.approx(1.0)
        for r in results:
            assert r.combined_score == pytest.approx(0.7 * r.similarity + 0.3 * r.text_rank)
        scores = [r.combined_score for r in results]
        assert scores == sorted(scores, reverse=True)

    async def test_report_type_filter(self, qdrant_store: QdrantKnowledgeStore) -> None:
        await self._seed(qdrant_store)
        results = await qdrant_store.hybrid_search(
            query_embedding=hashed_vector("brain soft tissue"),
            query_text="brain | soft | tissue",
            filter_report_type="xray",
        )
        assert results
        assert {r.report_type for r in results} == {"xray"}

    async def test_category_filter(self, qdrant_store: QdrantKnowledgeStore) -> None:
        await qdrant_store.insert_chunk(
            _chunk("Dosing guidance text.", "doc-t", category="treatment"),
            hashed_vector("Dosing guidance text."),
        )
        await self._seed(qdrant_store)
        results = await qdrant_store.hybrid_search(
            query_embedding=hashed_vector("dosing"),
            query_text="dosing",
            filter_category="treatment",
        )
        assert [r.document_id for r in results] == ["doc-t"]

    async def test_match_count_caps_results(self, qdrant_store: QdrantKnowledgeStore) -> None:
        await self._seed(qdrant_store)
        results = await qdrant_store.hybrid_search(
            query_embedding=hashed_vector("chest"),
            query_text="chest",
            match_count=2,
        )
        assert len(results) == 2

    async def test_no_match_for_missing_type(self, qdrant_store: QdrantKnowledgeStore) -> None:
        await self._seed(qdrant_store)
        results = await qdrant_store.hybrid_search(
            query_embedding=hashed_vector("chest"),
            query_text="chest",
            filter_report_type="lab",
        )
        assert results == []


async def test_store_uses_configured_collection(settings) -> None:
    client = AsyncQdrantClient(":memory:")
    store = QdrantKnowledgeStore(settings.model_copy(update={"qdrant_collection": "other"}), client, None)
    await store.ensure_collection()
    names = [c.name for c in (await client.get_collections()).collections]
    assert names == ["other"]
    await client.close()
