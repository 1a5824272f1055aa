import asyncio
import logging
import time
from typing import Any

import httpx

from gemini_proxy.config import Settings
from gemini_proxy.errors import MalformedResponseError
from gemini_proxy.retry import RetryPolicy, call_with_retry
from gemini_proxy.schema import GenerationConfig


logger = logging.getLogger("gemini_proxy.provider")


def extract_text(envelope: Any) -> str:
    """Return ``candidates[0].content.parts[0].text`` or raise MalformedResponseError."""
    try:
        text = envelope["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise MalformedResponseError(
            "Invalid response format from Gemini API", envelope=envelope
        ) from exc
    if not isinstance(text, str):
        raise MalformedResponseError(
            "Invalid response format from Gemini API", envelope=envelope
        )
    return text


class GeminiClient:

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep=asyncio.sleep,
    ):
        self.settings = settings
        self.model = settings.model
        self.endpoint = f"{settings.base_url}/models/{settings.model}:generateContent"

        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.request_timeout_seconds
        )
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=settings.max_retries,
            delay_seconds=settings.retry_delay_seconds,
        )
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Outbound payload
    # ------------------------------------------------------------------
    def build_payload(self, prompt: str, generation_config: GenerationConfig) -> dict:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config.to_payload(),
        }

    # ------------------------------------------------------------------
    # Single attempt
    # ------------------------------------------------------------------
    async def _post_once(self, payload: dict) -> Any:
        response = await self.http_client.post(
            self.endpoint,
            params={"key": self.settings.api_key},
            json=payload,
            timeout=self.settings.request_timeout_seconds,
        )
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                "Gemini API returned a non-JSON body", envelope=response.text
            ) from exc

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    async def generate(self, prompt: str, generation_config: GenerationConfig) -> str:
        payload = self.build_payload(prompt, generation_config)

        start = time.perf_counter()
        envelope = await call_with_retry(
            lambda: self._post_once(payload),
            policy=self.retry_policy,
            sleep=self._sleep,
        )
        text = extract_text(envelope)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "Generation stats (model=%s, prompt_len=%d, response_len=%d, max_tokens=%d, elapsed_ms=%.2f)",
            self.model,
            len(prompt),
            len(text),
            generation_config.max_output_tokens,
            elapsed_ms,
        )
        return text

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    def __repr__(self):
        return f"GeminiClient(model={self.model}, endpoint={self.endpoint})"
