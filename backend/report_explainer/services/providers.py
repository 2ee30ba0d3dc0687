"""Generative model capability and its Google GenAI adapter."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from report_explainer.config import Settings

logger = logging.getLogger(__name__)

# Provider statuses that mean rate limiting or exhausted credits
QUOTA_STATUSES = frozenset({402, 429})


class ProviderError(Exception):
    """A model provider call failed (non-2xx, network error, or timeout)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)

    @property
    def is_quota(self) -> bool:
        return self.status in QUOTA_STATUSES


@dataclass(frozen=True)
class ImageAttachment:
    data: bytes
    media_type: str


class GenerativeModel(Protocol):
    async def generate(
        self,
        *,
        system_instruction: str,
        prompt: str,
        image: ImageAttachment | None = None,
        max_output_tokens: int = 1024,
    ) -> str:
        """Return the model's free-text completion or raise ProviderError."""
        ...


class GeminiModel:
    """GenerativeModel backed by ``client.aio.models.generate_content``."""

    def __init__(self, settings: Settings, client: genai.Client | None = None) -> None:
        self._settings = settings
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(
                api_key=self._settings.google_api_key,
                http_options=types.HttpOptions(
                    timeout=int(self._settings.provider_timeout_seconds * 1000)
                ),
            )
        return self._client

    async def generate(
        self,
        *,
        system_instruction: str,
        prompt: str,
        image: ImageAttachment | None = None,
        max_output_tokens: int = 1024,
    ) -> str:
        contents: list[types.Part | str] = []
        if image is not None:
            contents.append(
                types.Part.from_bytes(data=image.data, mime_type=image.media_type)
            )
        contents.append(prompt)

        logger.debug(
            "Generating: model=%s image=%s max_tokens=%d system=%d chars",
            self._settings.generation_model,
            image.media_type if image else None,
            max_output_tokens,
            len(system_instruction),
        )
        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self._settings.generation_model,
                    contents=contents,
                    config=types.GenerateContentConfig(
                        system_instruction=system_instruction,
                        max_output_tokens=max_output_tokens,
                    ),
                ),
                timeout=self._settings.provider_timeout_seconds,
            )
        except genai_errors.APIError as e:
            error = ProviderError(f"Generation API error: {e.message}", status=e.code)
            if error.is_quota:
                logger.warning("Generation provider quota/rate limit (status=%s)", e.code)
            raise error from e
        except TimeoutError as e:
            raise ProviderError(
                f"Generation timed out after {self._settings.provider_timeout_seconds}s"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Generation transport error: {e}") from e

        text = response.text or ""
        logger.debug("Generation returned %d chars", len(text))
        return text
