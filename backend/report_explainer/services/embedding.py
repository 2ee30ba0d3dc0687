"""Embedding client: text -> fixed-length vector via the Gemini embedContent API."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from report_explainer.config import Settings
from report_explainer.models.rag import EmbeddingMode

logger = logging.getLogger(__name__)

# Indexing and query vectors use different intents so they share one space.
TASK_TYPES: dict[EmbeddingMode, str] = {
    "document": "RETRIEVAL_DOCUMENT",
    "query": "RETRIEVAL_QUERY",
}


class Embedder(Protocol):
    async def embed(self, text: str, mode: EmbeddingMode) -> list[float] | None:
        """Return a vector, or None when the capability is unavailable."""
        ...


class EmbeddingClient:
    """Embedder backed by the Gemini REST API.

    Failures (non-2xx, network error, timeout, malformed body) are logged and
    reported as ``None``; nothing is raised and nothing is retried.
    """

    def __init__(
        self, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> None:
        self._settings = settings
        self._http_client = http_client

    def _url(self) -> str:
        return (
            f"{self._settings.embedding_base_url}/models/"
            f"{self._settings.embedding_model}:embedContent"
        )

    def _body(self, text: str, mode: EmbeddingMode) -> dict:
        return {
            "model": f"models/{self._settings.embedding_model}",
            "content": {"parts": [{"text": text}]},
            "taskType": TASK_TYPES[mode],
            "outputDimensionality": self._settings.embedding_dimensions,
        }

    async def _post(self, client: httpx.AsyncClient, text: str, mode: EmbeddingMode) -> httpx.Response:
        return await client.post(
            self._url(),
            params={"key": self._settings.effective_embedding_key},
            json=self._body(text, mode),
            timeout=self._settings.provider_timeout_seconds,
        )

    async def embed(self, text: str, mode: EmbeddingMode) -> list[float] | None:
        logger.debug(
            "Embedding %s (%d chars): %r",
            mode,
            len(text),
            text[:100] + ("..." if len(text) > 100 else ""),
        )
        try:
            if self._http_client is not None:
                resp = await self._post(self._http_client, text, mode)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await self._post(client, text, mode)
        except httpx.HTTPError as e:
            logger.error("Embedding request failed: %s", e)
            return None

        if resp.is_error:
            logger.error("Embedding API error: %d %s", resp.status_code, resp.text[:200])
            return None

        try:
            values = resp.json()["embedding"]["values"]
            vector = [float(v) for v in values]
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Malformed embedding response: %s", e)
            return None

        if not vector:
            logger.error("Embedding response contained an empty vector")
            return None

        logger.debug("Embedded %s -> %d-dim vector", mode, len(vector))
        return vector
