"""Tests for the Gemini generative model adapter (SDK client mocked)."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from conftest import make_settings
from google.genai import errors as genai_errors

from report_explainer.services.providers import GeminiModel, ImageAttachment, ProviderError

IMAGE = ImageAttachment(data=b"\x89PNG fake", media_type="image/png")


def _model(generate, **settings) -> tuple[GeminiModel, MagicMock]:
    client = MagicMock()
    client.aio.models.generate_content = generate
    return GeminiModel(make_settings(**settings), client=client), client


class TestGenerate:
    async def test_returns_text_and_sends_image(self) -> None:
        generate = AsyncMock(return_value=SimpleNamespace(text='{"reportType": "ct"}'))
        model, _ = _model(generate, generation_model="gemini-test")

        text = await model.generate(
            system_instruction="Classify.",
            prompt="Classify this medical image.",
            image=IMAGE,
            max_output_tokens=1024,
        )

        assert text == '{"reportType": "ct"}'
        kwargs = generate.await_args.kwargs
        assert kwargs["model"] == "gemini-test"
        image_part, prompt = kwargs["contents"]
        assert image_part.inline_data.data == IMAGE.data
        assert image_part.inline_data.mime_type == "image/png"
        assert prompt == "Classify this medical image."
        assert "Classify." in str(kwargs["config"].system_instruction)
        assert kwargs["config"].max_output_tokens == 1024

    async def test_text_only(self) -> None:
        generate = AsyncMock(return_value=SimpleNamespace(text="ok"))
        model, _ = _model(generate)
        await model.generate(system_instruction="s", prompt="p")
        assert generate.await_args.kwargs["contents"] == ["p"]

    async def test_empty_response_text(self) -> None:
        model, _ = _model(AsyncMock(return_value=SimpleNamespace(text=None)))
        assert await model.generate(system_instruction="s", prompt="p", image=IMAGE) == ""


class TestErrors:
    @pytest.mark.parametrize(
        ("error", "status", "is_quota"),
        [
            (
                genai_errors.ClientError(
                    429,
                    {"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}},
                ),
                429,
                True,
            ),
            (
                genai_errors.ServerError(
                    503, {"error": {"code": 503, "message": "Unavailable", "status": "UNAVAILABLE"}}
                ),
                503,
                False,
            ),
        ],
    )
    async def test_api_error_maps_status(
        self, error: genai_errors.APIError, status: int, is_quota: bool
    ) -> None:
        model, _ = _model(AsyncMock(side_effect=error))
        with pytest.raises(ProviderError) as exc_info:
            await model.generate(system_instruction="s", prompt="p", image=IMAGE)
        assert exc_info.value.status == status
        assert exc_info.value.is_quota is is_quota

    async def test_timeout(self) -> None:
        async def slow(**kwargs):
            await asyncio.sleep(5)

        model, _ = _model(slow, provider_timeout_seconds=0.01)
        with pytest.raises(ProviderError, match="timed out") as exc_info:
            await model.generate(system_instruction="s", prompt="p")
        assert exc_info.value.status is None

    async def test_transport_error(self) -> None:
        model, _ = _model(AsyncMock(side_effect=httpx.ConnectError("connection refused")))
        with pytest.raises(ProviderError, match="transport error"):
            await model.generate(system_instruction="s", prompt="p")
