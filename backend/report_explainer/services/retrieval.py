"""Hybrid search over the knowledge store with filter fallback and title enrichment."""

from __future__ import annotations

import logging
import re

from report_explainer.models.rag import DEFAULT_DOCUMENT_TITLE, RetrievedChunk
from report_explainer.services.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)

MATCH_COUNT = 10
VECTOR_WEIGHT = 0.7
TEXT_WEIGHT = 0.3
MAX_KEYWORDS = 20

STOP_WORDS = frozenset(
    """
    the a an is are was were been be have has had do does did will would could
    should may might must shall can need dare ought used to of in for on with at
    by from as into through during before after above below between under again
    further then once here there when where why how all each few more most other
    some such no nor not only own same so than too very just and but if or
    because until while although though this that these those which who whom
    what whose
    """.split()
)

_NON_WORD = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> str:
    """Build the lexical query: distinct content words joined with `` | ``."""
    words = _NON_WORD.sub(" ", text.lower()).split()
    keywords = [w for w in words if len(w) > 2 and w not in STOP_WORDS]
    return " | ".join(list(dict.fromkeys(keywords))[:MAX_KEYWORDS])


class HybridSearchEngine:
    def __init__(self, store: KnowledgeStore) -> None:
        self._store = store

    async def _rank(
        self, query_embedding: list[float], keywords: str, report_type: str | None
    ) -> list[RetrievedChunk]:
        return await self._store.hybrid_search(
            query_embedding=query_embedding,
            query_text=keywords,
            filter_report_type=report_type,
            filter_category=None,
            match_count=MATCH_COUNT,
            vector_weight=VECTOR_WEIGHT,
            text_weight=TEXT_WEIGHT,
        )

    async def search(
        self,
        query_embedding: list[float],
        query_text: str,
        report_type: str | None = None,
    ) -> list[RetrievedChunk]:
        """Return top chunks with document titles, or [] on any store failure.

        When a report-type filter yields nothing, the same ranking request is
        repeated without the filter.
        """
        try:
            keywords = extract_keywords(query_text)
            logger.info("Hybrid search: report_type=%r keywords=%r", report_type, keywords)

            chunks = await self._rank(query_embedding, keywords, report_type)
            logger.info("Retrieved %d chunks with filter", len(chunks))

            if not chunks and report_type:
                logger.info("Retrying without report type filter...")
                chunks = await self._rank(query_embedding, keywords, None)
                logger.info("Retrieved %d chunks without filter", len(chunks))

            if not chunks:
                return []

            document_ids = list(dict.fromkeys(c.document_id for c in chunks))
            titles = await self._store.fetch_titles(document_ids)
        except Exception:
            logger.exception("Hybrid search failed; continuing without retrieval")
            return []

        for chunk in chunks:
            logger.debug(
                "  score=%.3f (vec=%.3f text=%.3f) doc=%s category=%s",
                chunk.combined_score,
                chunk.similarity,
                chunk.text_rank,
                chunk.document_id,
                chunk.content_category,
            )
        return [
            c.model_copy(
                update={"document_title": titles.get(c.document_id) or DEFAULT_DOCUMENT_TITLE}
            )
            for c in chunks
        ]
