"""Vision LLM service: one page image + instruction in, raw reply text out.

Async implementation using httpx so the FastAPI event loop is not blocked
while waiting on upstream LLM APIs. Every call carries a timeout and is
retried once via tenacity on transient network errors and 429/5xx responses.

Two providers are supported, selected by LLM_PROVIDER:
- "openai": any OpenAI-compatible chat-completions endpoint (OpenAI, OpenRouter, ...)
- "gemini": Google Gemini generateContent
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from ..config import Settings, get_settings
from ..exceptions import ExtractionFailedError
from .images import to_base64, to_data_uri

logger = logging.getLogger(__name__)


# Retry predicate: network errors, timeouts, and 429/5xx HTTP errors
def _is_retryable(exc: BaseException) -> bool:  # pragma: no cover - simple predicate
    if isinstance(exc, (httpx.RequestError, httpx.TimeoutException, asyncio.TimeoutError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or 500 <= status < 600
    return False


def _content_text(content: Any) -> str:
    """Flatten a chat message `content` into text.

    Some OpenAI-compatible providers return a list of parts
    ({"type": "text", "text": ...}) instead of a plain string.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            str(p.get("text") or "") if isinstance(p, dict) else str(p)
            for p in content
            if not isinstance(p, dict) or p.get("type", "text") == "text"
        )
    return str(content)


class LLMService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.provider = self.settings.LLM_PROVIDER
        self.max_output_tokens = self.settings.LLM_MAX_OUTPUT_TOKENS
        self._transport = transport

    def _openai_url(self) -> str:
        return f"{self.settings.OPENAI_BASE_URL}/chat/completions"

    def _gemini_url(self) -> str:
        model = self.settings.GEMINI_MODEL or "gemini-2.5-flash"
        return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    @retry(
        reraise=True,
        stop=stop_after_attempt(2),
        wait=wait_random_exponential(multiplier=0.2, max=2),
        retry=retry_if_exception(_is_retryable),
    )
    async def _post_json(self, url: str, *, headers: Optional[Dict[str, str]] = None, payload: Dict[str, Any]) -> Dict[str, Any]:
        """HTTP POST JSON with one retry. Raises httpx.HTTPStatusError on non-2xx.

        Each attempt is bounded by LLM_TIMEOUT_S of wall-clock time (asyncio.TimeoutError),
        on top of httpx's per-phase timeouts. Returns parsed JSON dict.
        """
        return await asyncio.wait_for(
            self._send_json(url, headers=headers, payload=payload),
            timeout=self.settings.LLM_TIMEOUT_S,
        )

    async def _send_json(self, url: str, *, headers: Optional[Dict[str, str]], payload: Dict[str, Any]) -> Dict[str, Any]:
        t = httpx.Timeout(self.settings.LLM_TIMEOUT_S, connect=5.0)
        async with httpx.AsyncClient(timeout=t, transport=self._transport) as client:
            resp = await client.post(url, headers=headers, json=payload)
            resp.raise_for_status()
            return resp.json()

    async def complete_with_openai(self, prompt: str, image: bytes, mime_type: str) -> str:
        if not self.settings.OPENAI_API_KEY:
            raise ExtractionFailedError("Missing OPENAI_API_KEY")
        headers = {
            "Authorization": f"Bearer {self.settings.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.settings.OPENAI_MODEL or "gpt-4o",
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": to_data_uri(image, mime_type)}},
                    ],
                }
            ],
            "max_tokens": self.max_output_tokens,
        }
        data = await self._post_json(self._openai_url(), headers=headers, payload=payload)
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            logger.warning("OpenAI-style response without choices: %s", str(data)[:500])
            return ""
        if message.get("refusal"):
            logger.warning("Model declined the page: %s", message["refusal"])
        return _content_text(message.get("content"))

    async def complete_with_gemini(self, prompt: str, image: bytes, mime_type: str) -> str:
        if not self.settings.GEMINI_API_KEY:
            raise ExtractionFailedError("Missing GEMINI_API_KEY")
        headers = {"x-goog-api-key": self.settings.GEMINI_API_KEY}
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": mime_type, "data": to_base64(image)}},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": 0.2,
                "maxOutputTokens": self.max_output_tokens,
            },
        }
        data = await self._post_json(self._gemini_url(), headers=headers, payload=payload)
        # Blocked prompts come back without candidates or without content parts
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            logger.warning("Gemini response without content: %s", str(data)[:500])
            return ""
        return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))

    async def complete_with_image(self, prompt: str, image: bytes, mime_type: str = "image/jpeg") -> str:
        """Send one instruction + inline image; return the reply text ("" when the model gives none).

        Raises ExtractionFailedError on network/API failures after retries.
        """
        try:
            if self.provider == "gemini":
                return await self.complete_with_gemini(prompt, image, mime_type)
            if self.provider == "openai":
                return await self.complete_with_openai(prompt, image, mime_type)
        except asyncio.TimeoutError as exc:
            raise ExtractionFailedError(
                f"{self.provider} timed out after {self.settings.LLM_TIMEOUT_S:g}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ExtractionFailedError(
                f"{self.provider} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionFailedError(f"{self.provider} request failed: {exc!r}") from exc
        except ValueError as exc:
            # resp.json() on a non-JSON body
            raise ExtractionFailedError(f"{self.provider} returned a non-JSON envelope") from exc
        raise ExtractionFailedError(f"Unsupported LLM_PROVIDER '{self.provider}'")
