"""Knowledge store: document rows in SQL, chunk vectors in Qdrant, hybrid ranking."""

from __future__ import annotations

import logging
import re
import uuid
from typing import Protocol

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from report_explainer.config import Settings
from report_explainer.models.orm import KnowledgeDocument
from report_explainer.models.rag import DocumentChunk, RetrievedChunk
from report_explainer.models.schemas import DocumentIn

logger = logging.getLogger(__name__)

# Vector candidates fetched per requested result before lexical re-scoring
CANDIDATE_MULTIPLIER = 4

_WORD = re.compile(r"\w+")


class KnowledgeStore(Protocol):
    async def insert_document(self, document: DocumentIn) -> str: ...

    async def insert_chunk(self, chunk: DocumentChunk, embedding: list[float]) -> None: ...

    async def hybrid_search(
        self,
        *,
        query_embedding: list[float],
        query_text: str,
        filter_report_type: str | None = None,
        filter_category: str | None = None,
        match_count: int = 10,
        vector_weight: float = 0.7,
        text_weight: float = 0.3,
    ) -> list[RetrievedChunk]: ...

    async def fetch_titles(self, document_ids: list[str]) -> dict[str, str]: ...


def lexical_rank(query_text: str, content: str) -> float:
    """Fraction of ``|``-separated query terms present in the content (0..1)."""
    terms = [t.strip().lower() for t in query_text.split("|") if t.strip()]
    if not terms:
        return 0.0
    words = set(_WORD.findall(content.lower()))
    return sum(1 for t in terms if t in words) / len(terms)


def chunk_point_id(document_id: str, chunk_index: int) -> str:
    """Same document_id + chunk_index always maps to the same point."""
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, f"{document_id}:{chunk_index}"))


class QdrantKnowledgeStore:
    """KnowledgeStore backed by Qdrant (chunks) and SQLAlchemy (documents)."""

    def __init__(
        self,
        settings: Settings,
        client: AsyncQdrantClient,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._settings = settings
        self._client = client
        self._session_factory = session_factory

    @property
    def collection(self) -> str:
        return self._settings.qdrant_collection

    # --- Collection management ---

    async def ensure_collection(self) -> None:
        """Create the chunk collection and payload indexes if missing."""
        collections = [c.name for c in (await self._client.get_collections()).collections]
        if self.collection in collections:
            logger.info("Qdrant collection '%s' already exists", self.collection)
            return

        await self._client.create_collection(
            collection_name=self.collection,
            vectors_config=VectorParams(
                size=self._settings.embedding_dimensions,
                distance=Distance.COSINE,
            ),
        )
        for field in ("document_id", "report_type", "content_category"):
            await self._client.create_payload_index(
                collection_name=self.collection,
                field_name=field,
                field_schema=PayloadSchemaType.KEYWORD,
            )
        logger.info("Created Qdrant collection '%s'", self.collection)

    # --- Writes ---

    async def insert_document(self, document: DocumentIn) -> str:
        async with self._session_factory() as session:
            row = KnowledgeDocument(
                id=str(uuid.uuid4()),
                title=document.title,
                content=document.content,
                source=document.source,
                report_type=document.report_type,
                content_category=document.content_category,
                doc_metadata=document.metadata,
            )
            session.add(row)
            await session.commit()
            logger.info("Document created with ID: %s", row.id)
            return row.id

    async def insert_chunk(self, chunk: DocumentChunk, embedding: list[float]) -> None:
        point = PointStruct(
            id=chunk_point_id(chunk.document_id, chunk.chunk_index),
            vector=embedding,
            payload={
                "document_id": chunk.document_id,
                "content": chunk.text,
                "chunk_index": chunk.chunk_index,
                "source": chunk.source,
                "report_type": chunk.report_type,
                "content_category": chunk.content_category,
            },
        )
        await self._client.upsert(collection_name=self.collection, points=[point])

    # --- Reads ---

    async def hybrid_search(
        self,
        *,
        query_embedding: list[float],
        query_text: str,
        filter_report_type: str | None = None,
        filter_category: str | None = None,
        match_count: int = 10,
        vector_weight: float = 0.7,
        text_weight: float = 0.3,
    ) -> list[RetrievedChunk]:
        """Rank chunks by ``vector_weight * cosine + text_weight * lexical``."""
        must_conditions = []
        if filter_report_type:
            must_conditions.append(
                FieldCondition(key="report_type", match=MatchValue(value=filter_report_type))
            )
        if filter_category:
            must_conditions.append(
                FieldCondition(key="content_category", match=MatchValue(value=filter_category))
            )
        query_filter = Filter(must=must_conditions) if must_conditions else None

        logger.debug(
            "Hybrid search collection=%r filter=%s match_count=%d",
            self.collection,
            query_filter,
            match_count,
        )
        results = await self._client.query_points(
            collection_name=self.collection,
            query=query_embedding,
            query_filter=query_filter,
            limit=match_count * CANDIDATE_MULTIPLIER,
            with_payload=True,
        )

        candidates = []
        for point in results.points:
            payload = point.payload or {}
            content = payload.get("content", "")
            text_rank = lexical_rank(query_text, content)
            candidates.append(
                RetrievedChunk(
                    chunk_id=str(point.id),
                    document_id=payload.get("document_id", ""),
                    content=content,
                    chunk_index=payload.get("chunk_index", 0),
                    source=payload.get("source", ""),
                    report_type=payload.get("report_type", ""),
                    content_category=payload.get("content_category", ""),
                    similarity=point.score,
                    text_rank=text_rank,
                    combined_score=vector_weight * point.score + text_weight * text_rank,
                )
            )

        candidates.sort(key=lambda c: c.combined_score, reverse=True)
        return candidates[:match_count]

    async def fetch_titles(self, document_ids: list[str]) -> dict[str, str]:
        if not document_ids:
            return {}
        async with self._session_factory() as session:
            rows = await session.execute(
                select(KnowledgeDocument.id, KnowledgeDocument.title).where(
                    KnowledgeDocument.id.in_(document_ids)
                )
            )
            return {doc_id: title for doc_id, title in rows.all()}


def build_qdrant_client(settings: Settings) -> AsyncQdrantClient:
    """Build the async Qdrant client, including api_key if set."""
    kwargs: dict = {
        "url": settings.qdrant_url,
        "timeout": int(settings.provider_timeout_seconds),
    }
    if settings.qdrant_api_key:
        kwargs["api_key"] = settings.qdrant_api_key
    return AsyncQdrantClient(**kwargs)
