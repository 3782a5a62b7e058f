"""Anthropic API client abstraction."""
import asyncio
import json
import logging
import re
from typing import Any

from anthropic import AsyncAnthropic

from .config import Settings, get_settings
from .exceptions import ModelResponseError

logger = logging.getLogger(__name__)


class APIClient:
    """Wrapper around Anthropic API with retry and timeout handling.

    Satisfies the ``LanguageModel`` protocol through :meth:`complete`.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_retries: int | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        api_key = api_key or settings.anthropic_api_key
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model or settings.model
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self.timeout = timeout if timeout is not None else settings.timeout

    async def call(
        self,
        prompt: str,
        max_tokens: int = 1024,
        timeout: float | None = None,
        semaphore: asyncio.Semaphore | None = None
    ) -> str:
        """Call the API with automatic retry and timeout handling."""
        timeout = timeout or self.timeout
        for attempt in range(self.max_retries):
            try:
                if semaphore:
                    async with semaphore:
                        response = await self._create(prompt, max_tokens, timeout)
                else:
                    response = await self._create(prompt, max_tokens, timeout)

                return response.content[0].text.strip()

            except Exception as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        "Model call failed (%s), retry %d/%d", type(e).__name__, attempt + 1, self.max_retries
                    )
                    await asyncio.sleep(2 ** attempt)
                    continue
                raise
        raise RuntimeError("max_retries must be at least 1")

    async def _create(self, prompt: str, max_tokens: int, timeout: float):
        return await asyncio.wait_for(
            self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}]
            ),
            timeout=timeout
        )

    async def complete(self, prompt: str, max_tokens: int = 1024) -> str:
        return await self.call(prompt, max_tokens=max_tokens)


_CODE_FENCE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")


def _strip_code_fence(content: str) -> str:
    """Extract from code block if present."""
    match = _CODE_FENCE.search(content)
    return match.group(1) if match else content.strip()


def _first_json(content: str, opener: str) -> Any:
    decoder = json.JSONDecoder()
    content = _strip_code_fence(content or "")
    index = content.find(opener)
    while index != -1:
        try:
            value, _ = decoder.raw_decode(content, index)
            return value
        except json.JSONDecodeError:
            index = content.find(opener, index + 1)
    raise ModelResponseError(f"No JSON value starting with {opener!r}. Head: {content[:200]!r}")


def extract_json_array(content: str) -> list:
    """Return the first well-formed JSON array in an LLM response, prose and fences allowed."""
    return _first_json(content, "[")


def extract_json_object(content: str) -> dict:
    """Return the first well-formed JSON object in an LLM response."""
    return _first_json(content, "{")
