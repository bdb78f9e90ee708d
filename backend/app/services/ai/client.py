from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError

from app.core.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = {408, 409, 425, 429, 500, 502, 503, 504}


class AIDisabledError(RuntimeError):
    pass


class AIServiceError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OpenAIClient:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str | None,
        transcribe_model: str,
        chat_model: str,
        max_retries: int = 3,
        retry_base_s: float = 0.7,
    ) -> None:
        kwargs: dict[str, Any] = {"api_key": api_key, "max_retries": 0}
        if base_url:
            kwargs["base_url"] = base_url
        kwargs["http_client"] = httpx.AsyncClient(
            limits=httpx.Limits(max_connections=200, max_keepalive_connections=50),
            timeout=httpx.Timeout(120.0),
        )
        self._client = AsyncOpenAI(**kwargs)
        self._transcribe_model = transcribe_model
        self._chat_model = chat_model
        self._max_retries = max(1, int(max_retries))
        self._retry_base_s = float(retry_base_s)

    async def aclose(self) -> None:
        await self._client.close()

    async def _with_retries(self, purpose: str, call: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_retries + 1):
            try:
                return await call()
            except APIStatusError as e:
                status = getattr(e, "status_code", None)
                if status in RETRYABLE_STATUS and attempt < self._max_retries:
                    await self._backoff(purpose, attempt, status)
                    continue
                logger.warning("ai.request_failed purpose=%s status=%s attempt=%s", purpose, status, attempt)
                raise AIServiceError(f"AI {purpose} failed ({status})", status_code=status) from e
            except (APIConnectionError, APITimeoutError) as e:
                if attempt < self._max_retries:
                    await self._backoff(purpose, attempt, None)
                    continue
                logger.warning("ai.request_failed purpose=%s error=%s attempt=%s", purpose, type(e).__name__, attempt)
                raise AIServiceError(f"AI {purpose} failed: {type(e).__name__}") from e
        raise AIServiceError(f"AI {purpose} failed")

    async def _backoff(self, purpose: str, attempt: int, status: int | None) -> None:
        sleep_s = self._retry_base_s * (2 ** (attempt - 1)) + random.random() * 0.25
        logger.info("ai.retry purpose=%s attempt=%s status=%s sleep_s=%.2f", purpose, attempt, status, sleep_s)
        await asyncio.sleep(min(15.0, sleep_s))

    async def transcribe(self, *, filename: str, content: bytes, content_type: str | None = None) -> str:
        file_arg = (filename, content, content_type) if content_type else (filename, content)
        result = await self._with_retries(
            "transcribe",
            lambda: self._client.audio.transcriptions.create(
                file=file_arg,
                model=self._transcribe_model,
                response_format="json",
            ),
        )
        text = str(getattr(result, "text", "") or "")
        logger.info(
            "ai.transcribe_done model=%s bytes=%s chars=%s", self._transcribe_model, len(content), len(text)
        )
        return text

    async def stream_chat(self, prompt: str) -> AsyncIterator[str]:
        """Yield completion text deltas for a single user prompt."""
        stream = await self._with_retries(
            "chat",
            lambda: self._client.chat.completions.create(
                model=self._chat_model,
                stream=True,
                messages=[{"role": "user", "content": prompt}],
            ),
        )
        emitted = 0
        try:
            async for chunk in stream:
                choices = getattr(chunk, "choices", None) or []
                if not choices:
                    continue
                delta = getattr(choices[0], "delta", None)
                text = getattr(delta, "content", None) or ""
                if text:
                    emitted += len(text)
                    yield text
        except OpenAIError as e:
            raise AIServiceError(f"AI chat stream interrupted: {type(e).__name__}") from e
        logger.info("ai.chat_done model=%s chars=%s", self._chat_model, emitted)


def build_ai_client() -> OpenAIClient:
    if not settings.openai_api_key:
        raise AIDisabledError("OPENAI_API_KEY is not configured")
    return OpenAIClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        transcribe_model=settings.openai_transcribe_model,
        chat_model=settings.openai_chat_model,
        max_retries=settings.ai_max_retries,
        retry_base_s=settings.ai_retry_base_s,
    )
