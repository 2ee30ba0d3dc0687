"""Service wiring: one set of pipeline components per process, shared via app.state."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request
from qdrant_client import AsyncQdrantClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from report_explainer.config import Settings
from report_explainer.services.analysis_service import AnalysisPipeline
from report_explainer.services.classifier import ReportClassifier
from report_explainer.services.embedding import Embedder, EmbeddingClient
from report_explainer.services.ingestion_service import IngestionCoordinator
from report_explainer.services.knowledge_store import KnowledgeStore, QdrantKnowledgeStore
from report_explainer.services.providers import GeminiModel, GenerativeModel
from report_explainer.services.retrieval import HybridSearchEngine
from report_explainer.services.synthesizer import ResponseSynthesizer


@dataclass
class Services:
    settings: Settings
    pipeline: AnalysisPipeline
    ingestion: IngestionCoordinator


def build_services(
    settings: Settings,
    *,
    model: GenerativeModel,
    embedder: Embedder,
    store: KnowledgeStore,
) -> Services:
    """Compose the pipeline from capability adapters (real or fake)."""
    pipeline = AnalysisPipeline(
        settings,
        classifier=ReportClassifier(model),
        embedder=embedder,
        search_engine=HybridSearchEngine(store),
        synthesizer=ResponseSynthesizer(model),
    )
    ingestion = IngestionCoordinator(settings, embedder=embedder, store=store)
    return Services(settings=settings, pipeline=pipeline, ingestion=ingestion)


def build_production_services(
    settings: Settings,
    qdrant_client: AsyncQdrantClient,
    session_factory: async_sessionmaker[AsyncSession],
) -> tuple[Services, QdrantKnowledgeStore]:
    store = QdrantKnowledgeStore(settings, qdrant_client, session_factory)
    services = build_services(
        settings,
        model=GeminiModel(settings),
        embedder=EmbeddingClient(settings),
        store=store,
    )
    return services, store


def get_services(request: Request) -> Services:
    return request.app.state.services
