"""FastAPI application entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from rich.logging import RichHandler

from report_explainer.config import settings
from report_explainer.database import async_session, engine
from report_explainer.dependencies import build_production_services
from report_explainer.models.orm import Base
from report_explainer.routers.analyze import router as analyze_router
from report_explainer.routers.documents import router as documents_router
from report_explainer.services.knowledge_store import build_qdrant_client

logging.basicConfig(
    level=logging.INFO,
    format="%(name)s - %(message)s",
    datefmt="%H:%M:%S",
    handlers=[RichHandler(rich_tracebacks=True, markup=False)],
    force=True,
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
# Our app loggers: show DEBUG when debug=True, keep third-party libs at INFO
if settings.debug:
    for name in ("report_explainer.services", "report_explainer.routers"):
        logging.getLogger(name).setLevel(logging.DEBUG)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    qdrant_client = build_qdrant_client(settings)
    services, store = build_production_services(settings, qdrant_client, async_session)
    try:
        await store.ensure_collection()
    except Exception as e:
        # Analysis still works without retrieval; ingestion will report errors
        logger.warning("Qdrant unavailable at startup: %s", e)
    app.state.services = services

    yield

    await qdrant_client.close()
    await engine.dispose()


app = FastAPI(
    title="Report Explainer",
    description="Grounded, audience-appropriate explanations of medical images",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_credentials=True,
    allow_headers=["*"],
)

app.include_router(documents_router)
app.include_router(analyze_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
