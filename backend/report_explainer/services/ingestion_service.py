"""Document ingestion: persist, chunk, embed, and store with per-item results."""

from __future__ import annotations

import asyncio
import logging

from report_explainer.config import Settings
from report_explainer.models.rag import DocumentChunk
from report_explainer.models.schemas import DocumentIn, IngestResponse, IngestResult
from report_explainer.services.chunker import chunk_text
from report_explainer.services.embedding import Embedder
from report_explainer.services.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)


class IngestionCoordinator:
    def __init__(self, settings: Settings, *, embedder: Embedder, store: KnowledgeStore) -> None:
        self._settings = settings
        self._embedder = embedder
        self._store = store

    async def _store_chunks(self, document_id: str, doc: DocumentIn) -> int:
        """Embed and store each chunk in turn; returns how many were stored."""
        chunks = chunk_text(
            doc.content,
            chunk_size=self._settings.chunk_size,
            overlap=self._settings.chunk_overlap,
        )
        logger.info("Created %d chunks", len(chunks))

        created = 0
        for chunk in chunks:
            embedding = await self._embedder.embed(chunk.text, "document")
            if embedding is None:
                logger.error("Skipping chunk %d: no embedding", chunk.index)
            else:
                try:
                    await self._store.insert_chunk(
                        DocumentChunk(
                            document_id=document_id,
                            text=chunk.text,
                            chunk_index=chunk.index,
                            source=doc.source,
                            report_type=doc.report_type,
                            content_category=doc.content_category,
                        ),
                        embedding,
                    )
                    created += 1
                except Exception:
                    logger.exception("Error inserting chunk %d", chunk.index)

            # Self-imposed rate limit on the shared embedding service
            if self._settings.embedding_delay_seconds > 0:
                await asyncio.sleep(self._settings.embedding_delay_seconds)

        logger.info(
            "Successfully created %d/%d chunks for document %s",
            created,
            len(chunks),
            document_id,
        )
        return created

    async def ingest_one(self, doc: DocumentIn) -> IngestResult:
        missing = doc.missing_fields()
        if missing:
            logger.warning("Document %r missing fields: %s", doc.title, missing)
            return IngestResult(
                title=doc.title or "Unknown",
                document_id="",
                chunks_created=0,
                error="Missing required fields",
            )

        logger.info("Processing document: %s", doc.title)
        try:
            document_id = await self._store.insert_document(doc)
            chunks_created = await self._store_chunks(document_id, doc)
        except Exception as e:
            logger.exception("Error processing document %s", doc.title)
            return IngestResult(
                title=doc.title,
                document_id="",
                chunks_created=0,
                error=str(e) or "Processing failed",
            )
        return IngestResult(
            title=doc.title, document_id=document_id, chunks_created=chunks_created
        )

    async def ingest(self, documents: list[DocumentIn]) -> IngestResponse:
        """Ingest a batch sequentially; one bad document never aborts the rest."""
        logger.info("=== DOCUMENT INGESTION START (%d documents) ===", len(documents))
        results = [await self.ingest_one(doc) for doc in documents]

        success_count = sum(1 for r in results if r.error is None)
        total_chunks = sum(r.chunks_created for r in results)
        logger.info(
            "=== INGESTION COMPLETE: %d/%d documents, %d chunks ===",
            success_count,
            len(documents),
            total_chunks,
        )
        return IngestResponse(
            success=True,
            message=(
                f"Processed {success_count}/{len(documents)} documents "
                f"with {total_chunks} total chunks"
            ),
            results=results,
        )
