"""
PersonalPage Backend — Text Generation Provider Tests (Mocked)
================================================================

What:  The two TextGenerator adapters with their transports faked.
How:   httpx.MockTransport for the HTTP endpoint; the genai module is
       patched for Gemini, so no request leaves the process.
"""

import json
from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import httpx
import pytest
from google.api_core import exceptions as google_exceptions

from personalpage.config import Settings
from personalpage.exceptions import OracleBusyError, UpstreamUnavailableError
from personalpage.services.text_generation import (
    GeminiTextGenerator,
    HttpTextGenerator,
    build_text_generator,
)


def _http_generator(handler) -> HttpTextGenerator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpTextGenerator(
        endpoint="https://inference.example/models/oracle",
        api_key="hf-key",
        max_new_tokens=64,
        client=client,
    )


class TestHttpTextGenerator:

    @pytest.mark.asyncio
    async def test_sends_inputs_and_parameters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=[{"generated_text": " The answer."}])

        text = await _http_generator(handler).complete("User: hi\nAssistant:")

        assert text == " The answer."
        assert seen["auth"] == "Bearer hf-key"
        assert seen["body"]["inputs"] == "User: hi\nAssistant:"
        assert seen["body"]["parameters"] == {"max_new_tokens": 64, "return_full_text": False}

    @pytest.mark.asyncio
    async def test_accepts_object_body(self):
        generator = _http_generator(
            lambda request: httpx.Response(200, json={"generated_text": "ok"})
        )
        assert await generator.complete("p") == "ok"

    @pytest.mark.asyncio
    async def test_loading_model_is_busy(self):
        generator = _http_generator(
            lambda request: httpx.Response(
                503, json={"error": "Model is currently loading", "estimated_time": 20.5}
            )
        )
        with pytest.raises(OracleBusyError) as exc_info:
            await generator.complete("p")
        assert exc_info.value.retry_after == 20.5

    @pytest.mark.asyncio
    async def test_too_many_requests_is_busy(self):
        generator = _http_generator(lambda request: httpx.Response(429, text="slow down"))
        with pytest.raises(OracleBusyError):
            await generator.complete("p")

    @pytest.mark.asyncio
    async def test_error_status_is_upstream_failure(self):
        generator = _http_generator(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await generator.complete("p")
        assert not isinstance(exc_info.value, OracleBusyError)

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_upstream_failure(self):
        generator = _http_generator(lambda request: httpx.Response(200, json=[]))
        with pytest.raises(UpstreamUnavailableError):
            await generator.complete("p")

    @pytest.mark.asyncio
    async def test_non_json_body_is_upstream_failure(self):
        generator = _http_generator(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(UpstreamUnavailableError):
            await generator.complete("p")

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamUnavailableError):
            await _http_generator(handler).complete("p")


class TestGeminiTextGenerator:

    @pytest.mark.asyncio
    async def test_returns_response_text(self):
        with patch("personalpage.services.text_generation.genai") as mock_genai:
            mock_response = MagicMock()
            mock_response.text = "Assistant: Hello."
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(return_value=mock_response)
            mock_genai.GenerativeModel.return_value = mock_model

            generator = GeminiTextGenerator(api_key="k", model="gemini-test", timeout_seconds=5)
            text = await generator.complete("prompt")

        assert text == "Assistant: Hello."
        mock_genai.configure.assert_called_once_with(api_key="k")
        mock_model.generate_content_async.assert_awaited_once_with(
            "prompt", request_options={"timeout": 5}
        )

    @pytest.mark.asyncio
    async def test_blocked_candidate_returns_empty(self):
        with patch("personalpage.services.text_generation.genai") as mock_genai:
            mock_response = MagicMock()
            type(mock_response).text = PropertyMock(side_effect=ValueError("blocked"))
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(return_value=mock_response)
            mock_genai.GenerativeModel.return_value = mock_model

            generator = GeminiTextGenerator(api_key="k", model="gemini-test")
            assert await generator.complete("prompt") == ""

    @pytest.mark.asyncio
    async def test_quota_exhausted_is_busy(self):
        with patch("personalpage.services.text_generation.genai") as mock_genai:
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(
                side_effect=google_exceptions.ResourceExhausted("quota")
            )
            mock_genai.GenerativeModel.return_value = mock_model

            generator = GeminiTextGenerator(api_key="k", model="gemini-test")
            with pytest.raises(OracleBusyError):
                await generator.complete("prompt")

    @pytest.mark.asyncio
    async def test_other_errors_are_upstream_failures(self):
        with patch("personalpage.services.text_generation.genai") as mock_genai:
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(side_effect=ConnectionError("down"))
            mock_genai.GenerativeModel.return_value = mock_model

            generator = GeminiTextGenerator(api_key="k", model="gemini-test")
            with pytest.raises(UpstreamUnavailableError) as exc_info:
                await generator.complete("prompt")
            assert not isinstance(exc_info.value, OracleBusyError)


class TestBuildTextGenerator:

    def test_http_provider(self):
        settings = Settings(_env_file=None, oracle_provider="http", oracle_api_key="k")
        generator = build_text_generator(settings)
        assert isinstance(generator, HttpTextGenerator)
        assert generator.endpoint == settings.oracle_endpoint

    def test_gemini_provider(self):
        settings = Settings(_env_file=None, oracle_provider="gemini", gemini_api_key="k")
        with patch("personalpage.services.text_generation.genai"):
            assert isinstance(build_text_generator(settings), GeminiTextGenerator)
