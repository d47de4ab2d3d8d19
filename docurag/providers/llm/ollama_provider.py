"""Ollama LLM provider adapter.

Talks to a local Ollama server through its OpenAI-compatible ``/v1`` API,
reusing the ``openai`` client.  ``httpx`` is only used to check that the
server is running.

Setup: install Ollama, ``ollama pull llama3.1``, and point
``OLLAMA_BASE_URL`` at the server (default ``http://localhost:11434``).
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import openai
import structlog

from docurag.config.settings import Settings
from docurag.interfaces.llm_provider import ILLMProvider
from docurag.models.chat import ChatMessage
from docurag.utils.errors import CompletionError

logger = structlog.get_logger(logger_name=__name__)


class OllamaLLMProvider(ILLMProvider):
    """LLM provider backed by a local Ollama server."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            # Ollama ignores the key, but the SDK requires a non-empty one.
            api_key="ollama",
        )
        self._text_model = settings.ollama_text_model or "llama3.1"

    async def complete(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[m.to_openai() for m in messages],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as exc:
            raise CompletionError(
                message=f"Ollama API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise CompletionError(
                message="Ollama returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info("ollama_completion", model=self._text_model)
        return content

    async def stream(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[m.to_openai() for m in messages],
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
        except openai.APIError as exc:
            raise CompletionError(
                message=f"Ollama stream could not start: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        try:
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.APIError as exc:
            raise CompletionError(
                message=f"Ollama stream interrupted: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            await response.close()

    def is_available(self) -> bool:
        return bool(self._base_url)

    async def validate_credentials(self) -> bool:
        """Ollama has no key; check that the server answers on /api/tags."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self._base_url}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    def get_provider_name(self) -> str:
        return "ollama"
