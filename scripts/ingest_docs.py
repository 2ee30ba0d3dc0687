"""CLI script to ingest knowledge documents into the database and Qdrant.

Usage:
    python scripts/ingest_docs.py --file data/guidelines.json
    python scripts/ingest_docs.py --directory data/guidelines/
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from report_explainer.config import ConfigurationError, settings
from report_explainer.database import async_session, engine
from report_explainer.models.orm import Base
from report_explainer.models.schemas import DocumentIn
from report_explainer.services.embedding import EmbeddingClient
from report_explainer.services.ingestion_service import IngestionCoordinator
from report_explainer.services.knowledge_store import (
    QdrantKnowledgeStore,
    build_qdrant_client,
)

# Metadata mapping for markdown files: filename stem -> document fields
GUIDELINE_METADATA: dict[str, dict] = {
    "chest-xray-basics": {
        "source": "RSNA",
        "report_type": "xray",
        "content_category": "anatomy",
    },
    "ct-scan-overview": {
        "source": "RSNA",
        "report_type": "ct",
        "content_category": "guidelines",
    },
    "mri-safety-and-sequences": {
        "source": "ACR",
        "report_type": "mri",
        "content_category": "observations",
    },
    "lab-reference-ranges": {
        "source": "CDC",
        "report_type": "lab",
        "content_category": "interpretation",
    },
}


def load_json(path: Path) -> list[DocumentIn]:
    """Load a single document object or a {"documents": [...]} batch."""
    data = json.loads(path.read_text(encoding="utf-8"))
    raw = data["documents"] if isinstance(data.get("documents"), list) else [data]
    return [DocumentIn.model_validate(d) for d in raw]


def load_markdown(path: Path) -> DocumentIn:
    meta = GUIDELINE_METADATA.get(path.stem, {})
    return DocumentIn(
        title=path.stem.replace("-", " ").replace("_", " ").title(),
        content=path.read_text(encoding="utf-8"),
        source=meta.get("source", "Internal"),
        report_type=meta.get("report_type", "general"),
        content_category=meta.get("content_category", "guidelines"),
        metadata={"file": path.name},
    )


async def run(documents: list[DocumentIn]) -> int:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    client = build_qdrant_client(settings)
    try:
        store = QdrantKnowledgeStore(settings, client, async_session)
        print("Ensuring Qdrant collection exists...")
        await store.ensure_collection()

        coordinator = IngestionCoordinator(
            settings, embedder=EmbeddingClient(settings), store=store
        )
        response = await coordinator.ingest(documents)
    finally:
        await client.close()
        await engine.dispose()

    for r in response.results:
        status = f"error: {r.error}" if r.error else f"{r.chunks_created} chunks"
        print(f"  {r.title}: {status}")
    print(f"\n{response.message}")
    return sum(r.chunks_created for r in response.results)


def main() -> None:
    parser = argparse.ArgumentParser(description="Ingest knowledge documents")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--directory", type=Path, help="Directory of markdown files to ingest")
    group.add_argument("--file", type=Path, help="JSON file with one document or a batch")
    args = parser.parse_args()

    try:
        settings.require_embedding_key()
    except ConfigurationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if args.file:
        if not args.file.exists():
            print(f"Error: File not found: {args.file}")
            sys.exit(1)
        documents = load_json(args.file)
    else:
        if not args.directory.exists():
            print(f"Error: Directory not found: {args.directory}")
            sys.exit(1)
        md_files = sorted(args.directory.glob("*.md"))
        if not md_files:
            print(f"No .md files found in {args.directory}")
            sys.exit(1)
        print(f"Found {len(md_files)} markdown files")
        documents = [load_markdown(f) for f in md_files]

    print(f"Ingesting {len(documents)} document(s)...")
    total_chunks = asyncio.run(run(documents))
    print(f"\nDone! Ingested {total_chunks} total chunks.")


if __name__ == "__main__":
    main()
