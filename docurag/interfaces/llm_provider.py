"""Abstract base class for language-model completion providers.

Concrete adapters live in ``docurag/providers/llm/`` and wrap the
``openai`` SDK, pointed either at OpenAI-compatible hosts or at a local
Ollama server.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from docurag.models.chat import ChatMessage


class ILLMProvider(ABC):
    """Contract for chat-completion services used by the RAG pipeline."""

    @abstractmethod
    async def complete(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        """Return the full completion for *messages*.

        Parameters
        ----------
        messages:
            Ordered conversation: system message, prior turns, then the
            current user message.
        temperature:
            Sampling temperature.
        max_tokens:
            Upper bound on generated tokens.

        Raises
        ------
        docurag.utils.errors.CompletionError
            If the call fails or the model returns no content.
        """

    @abstractmethod
    def stream(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        """Yield completion fragments in arrival order.

        Implementations are async generators.  Closing the generator early
        (``aclose()``) must release the upstream connection.

        Raises
        ------
        docurag.utils.errors.CompletionError
            If the call fails before or during streaming.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the provider is configured (does not call the API)."""

    async def validate_credentials(self) -> bool:
        """Make a lightweight API call to confirm the provider answers."""
        return self.is_available()
