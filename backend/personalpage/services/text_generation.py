"""
PersonalPage Backend — Text Generation Providers
==================================================

What:  Thin adapters that send one prompt to a hosted model and return its
       raw text.
How:   `TextGenerator` is the interface; `GeminiTextGenerator` uses the
       google-generativeai SDK, `HttpTextGenerator` talks to a hosted
       inference endpoint over httpx.
Who:   Selected once by `build_text_generator()` from ORACLE_PROVIDER; used
       only by OracleService, which owns retries, the circuit breaker,
       prompt templating and reply extraction.

Error Contract (every implementation):
    - OracleBusyError:           provider is loading / rate limiting / overloaded
    - UpstreamUnavailableError:  transport failure, error status, or a body
                                 that does not contain generated text
    - returns "" when the provider answered but produced no text
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import google.generativeai as genai
import httpx
from google.api_core import exceptions as google_exceptions

from personalpage.config import Settings
from personalpage.exceptions import OracleBusyError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


class TextGenerator(ABC):
    """
    Contract:
        - complete() accepts the fully templated prompt and returns raw text
        - implementations do not retry; OracleService decides that
    """

    name: str = "generator"

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        ...

    async def aclose(self) -> None:
        return None


# ══════════════════════════════════════════════════════════════════════════
# Google Gemini
# ══════════════════════════════════════════════════════════════════════════

class GeminiTextGenerator(TextGenerator):
    """Google Gemini via the google-generativeai SDK."""

    name = "gemini"

    def __init__(self, api_key: str, model: str, timeout_seconds: float = 30.0):
        # The SDK keeps the API key in module-level state
        if api_key:
            genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model)
        self.timeout_seconds = timeout_seconds
        logger.info("GeminiTextGenerator initialized with model=%s", model)

    async def complete(self, prompt: str) -> str:
        try:
            response = await self.model.generate_content_async(
                prompt,
                request_options={"timeout": self.timeout_seconds},
            )
        except (google_exceptions.ResourceExhausted, google_exceptions.ServiceUnavailable) as e:
            raise OracleBusyError(context={"provider": self.name, "error": str(e)})
        except Exception as e:
            # The SDK surfaces transport and API failures as assorted exception types
            raise UpstreamUnavailableError(
                message="Gemini request failed.",
                context={"provider": self.name, "error_type": type(e).__name__},
            )

        try:
            return response.text or ""
        except ValueError:
            # .text raises when the candidate was blocked or empty
            logger.info("Gemini returned no text candidate")
            return ""


# ══════════════════════════════════════════════════════════════════════════
# Hosted Inference Endpoint (HTTP)
# ══════════════════════════════════════════════════════════════════════════

def _generated_text(data: Any) -> str:
    """Pull generated_text out of `[{"generated_text": ...}]` or `{"generated_text": ...}`."""
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        text = data.get("generated_text")
        if isinstance(text, str):
            return text
    raise UpstreamUnavailableError(
        message="Text-generation response had an unexpected shape.",
        context={"body_type": type(data).__name__},
    )


class HttpTextGenerator(TextGenerator):
    """
    Hosted text-generation inference endpoint.

    Request:
        POST {endpoint}
        Authorization: Bearer {api_key}
        {"inputs": prompt, "parameters": {"max_new_tokens": N, "return_full_text": false}}

    Busy signals:
        HTTP 429/503, or a JSON body like {"error": "Model ... is currently loading",
        "estimated_time": 20.0}
    """

    name = "http"

    def __init__(
        self,
        endpoint: str,
        api_key: str = "",
        timeout_seconds: float = 30.0,
        max_new_tokens: int = 200,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.max_new_tokens = max_new_tokens
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def complete(self, prompt: str) -> str:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": self.max_new_tokens,
                "return_full_text": False,
            },
        }

        try:
            resp = await self._client.post(self.endpoint, json=payload, headers=headers)
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(
                message="Text-generation endpoint could not be reached.",
                context={"provider": self.name, "error_type": type(e).__name__},
            )

        try:
            data = resp.json()
        except ValueError:
            data = None

        error_text = data.get("error") if isinstance(data, dict) else None
        if resp.status_code in (429, 503) or (
            isinstance(error_text, str) and "loading" in error_text.lower()
        ):
            retry_after = data.get("estimated_time") if isinstance(data, dict) else None
            raise OracleBusyError(
                retry_after=retry_after if isinstance(retry_after, (int, float)) else None,
                context={"provider": self.name, "status_code": resp.status_code},
            )

        if resp.status_code >= 400 or error_text:
            logger.warning(
                "Text-generation endpoint returned %d: %s", resp.status_code, resp.text[:300]
            )
            raise UpstreamUnavailableError(
                message="Text-generation endpoint returned an error.",
                context={"provider": self.name, "status_code": resp.status_code},
            )

        if data is None:
            raise UpstreamUnavailableError(
                message="Text-generation endpoint returned a non-JSON body.",
                context={"provider": self.name},
            )

        return _generated_text(data)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_text_generator(settings: Settings) -> TextGenerator:
    """Pick the TextGenerator named by ORACLE_PROVIDER."""
    if settings.oracle_provider == "http":
        return HttpTextGenerator(
            endpoint=settings.oracle_endpoint,
            api_key=settings.oracle_api_key,
            timeout_seconds=settings.oracle_timeout_seconds,
            max_new_tokens=settings.oracle_max_new_tokens,
        )
    return GeminiTextGenerator(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout_seconds=settings.oracle_timeout_seconds,
    )
