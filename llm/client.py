"""Text-generation client used for category inference and semantic matching.

Wraps an OpenAI-compatible chat completion endpoint with retry and timeout
handling. Everything above this module only sees ``generate(prompt) -> str``
and ``GenerationError``.
"""
from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Protocol, runtime_checkable

import openai
from openai import AsyncOpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from market.config import settings

logger = logging.getLogger(__name__)

# Worth another attempt; everything else fails fast.
_TRANSIENT_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.InternalServerError,
)


class GenerationError(Exception):
    """Raised when the text-generation capability cannot produce output."""
    pass


@runtime_checkable
class TextGenerator(Protocol):
    """Single-shot, stateless prompt → text capability."""

    async def generate(self, prompt: str) -> str:
        ...


class OpenAITextGenerator:
    """``TextGenerator`` backed by the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self.model = model or settings.llm.model
        self.temperature = settings.llm.temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.llm.max_tokens
        self.timeout = timeout or settings.llm.timeout_seconds

        # Retries are handled by tenacity below
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=self.timeout,
            max_retries=0,
        )
        logger.info(f"Text generator initialized with model: {self.model}")

    @retry(
        stop=stop_after_attempt(settings.llm.max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _complete(self, prompt: str) -> str | None:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        if not response.choices:
            return None
        return response.choices[0].message.content

    async def generate(self, prompt: str) -> str:
        """Send one prompt and return the completion text.

        Raises:
            GenerationError: Provider error, non-2xx response or empty output
        """
        try:
            content = await self._complete(prompt)
        except openai.OpenAIError as e:
            logger.error(f"Text generation request failed: {e}")
            raise GenerationError(f"Text generation failed: {e}") from e

        if not content or not content.strip():
            raise GenerationError("Text generation returned an empty completion")
        return content.strip()


@lru_cache(maxsize=1)
def get_text_generator() -> TextGenerator | None:
    """Build and cache the configured generator.

    Returns:
        Generator instance, or None when no API key is configured
    """
    if not settings.llm.api_key:
        logger.warning("LLM_API_KEY not configured - category generation disabled")
        return None
    return OpenAITextGenerator(
        settings.llm.api_key,
        model=settings.llm.model,
        base_url=settings.llm.base_url,
    )


async def generate_with_timeout(
    generator: TextGenerator,
    prompt: str,
    timeout: float | None = None,
) -> str:
    """Run ``generator.generate`` bounded by a wall-clock timeout.

    Any failure, including the timeout itself, is reported as GenerationError.
    """
    limit = timeout or settings.llm.timeout_seconds
    try:
        return await asyncio.wait_for(generator.generate(prompt), timeout=limit)
    except asyncio.TimeoutError as e:
        raise GenerationError(f"Text generation timed out after {limit}s") from e
    except GenerationError:
        raise
    except Exception as e:
        raise GenerationError(f"Text generation failed: {e}") from e
