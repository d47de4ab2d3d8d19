"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.  When
``openai_base_url`` is configured the client talks to that host instead,
which covers Groq, TogetherAI, Fireworks and other providers exposing the
OpenAI chat-completions protocol.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import openai
import structlog

from docurag.config.settings import Settings
from docurag.interfaces.llm_provider import ILLMProvider
from docurag.models.chat import ChatMessage
from docurag.utils.errors import CompletionError

logger = structlog.get_logger(logger_name=__name__)

_TIMEOUT_SECONDS = 60.0


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat API.

    Defaults to ``gpt-4o-mini``; ``openai_text_model`` overrides it, e.g.
    ``llama-3.1-70b-versatile`` on Groq.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(_TIMEOUT_SECONDS, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._text_model = settings.openai_text_model or "gpt-4o-mini"
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

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
        except openai.APITimeoutError as exc:
            raise CompletionError(
                message=f"{self._provider_label} timed out after {_TIMEOUT_SECONDS:.0f}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise CompletionError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise CompletionError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=self._text_model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    async def stream(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        """Yield non-empty content deltas as they arrive."""
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
                message=f"{self._provider_label} stream could not start: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        fragments = 0
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    fragments += 1
                    yield delta
        except openai.APIError as exc:
            raise CompletionError(
                message=f"{self._provider_label} stream interrupted: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            await response.close()
            logger.info(
                "openai_stream_closed",
                model=self._text_model,
                provider=self._provider_label,
                fragments=fragments,
            )

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """List models to confirm the key is accepted without paying for inference."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        return self._provider_label
