"""Retrieval-augmented answering over the ingested documents.

Pipeline: **embed query -> similarity search -> context -> prompt ->
completion -> history**.

:class:`RAGService` answers a user's question from the chunks closest to
it in the vector store, together with the tail of that user's
conversation.  Each answered question appends exactly two
:class:`~docurag.models.chat.ChatTurn` rows, the question and the answer, in
a single write.

Two modes share the same preparation:

* :meth:`RAGService.answer` waits for the whole completion.
* :meth:`RAGService.stream_answer` returns an :class:`AnswerStream` that
  forwards fragments as the model produces them.  The upstream is only
  advanced when the consumer asks for the next fragment.

Failures while embedding, searching or completing propagate and nothing is
written.  The one exception is a stream that already forwarded text: if it
fails or is cancelled, the partial exchange is stored before the stream
ends, so history matches what the user saw.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

import structlog

from docurag.interfaces.embedding_provider import IEmbeddingProvider
from docurag.interfaces.history_store import IHistoryStore
from docurag.interfaces.llm_provider import ILLMProvider
from docurag.interfaces.vector_store_provider import IVectorStoreProvider
from docurag.models.chat import (
    AnswerResult,
    ChatMessage,
    ChatRole,
    ChatTurn,
    NewChatTurn,
    Source,
)
from docurag.models.rag import RetrievedEntry
from docurag.utils.errors import CompletionError

logger = structlog.get_logger(logger_name=__name__)

END_OF_STREAM = "[DONE]"

SYSTEM_PROMPT_TEMPLATE = (
    "You are a helpful AI assistant. Use the following context to answer the "
    "user's question.\n"
    "If the answer cannot be found in the context, say so honestly.\n"
    "\n"
    "Context:\n"
    "{context}"
)


# ---------------------------------------------------------------------------
# Prompt assembly
# ---------------------------------------------------------------------------

def build_context(entries: list[RetrievedEntry]) -> str:
    """Label each retrieved text with its 1-based rank and join with blank lines."""
    return "\n\n".join(
        f"[Context {rank}]:\n{entry.text}" for rank, entry in enumerate(entries, start=1)
    )


def build_messages(context: str, history: list[ChatTurn], query: str) -> list[ChatMessage]:
    """Return system prompt, prior turns (oldest first), then the new question."""
    messages = [
        ChatMessage(role=ChatRole.SYSTEM, content=SYSTEM_PROMPT_TEMPLATE.format(context=context))
    ]
    messages.extend(ChatMessage(role=turn.role, content=turn.content) for turn in history)
    messages.append(ChatMessage(role=ChatRole.USER, content=query))
    return messages


def to_sources(entries: list[RetrievedEntry]) -> list[Source]:
    return [
        Source(
            document_id=e.document_id,
            chunk_index=e.chunk_index,
            text=e.text,
            score=e.similarity_score,
        )
        for e in entries
    ]


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

class CancellationToken:
    """Cooperative cancellation flag for an :class:`AnswerStream`.

    Cancelling takes effect at the next fragment boundary.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class _Prepared:
    user_id: str
    query: str
    retrieved: list[RetrievedEntry]
    messages: list[ChatMessage]


class AnswerStream:
    """A single-use, consumer-driven stream of answer fragments.

    ``sources`` is available as soon as the stream is returned.
    ``response_text`` holds everything forwarded so far and is final once
    iteration ends.  Iterating a second time raises :class:`RuntimeError`.
    """

    def __init__(
        self,
        sources: list[Source],
        open_upstream: Callable[[], AsyncIterator[str]],
        save: Callable[[str], Awaitable[None]],
        cancel_token: CancellationToken | None = None,
        provider_name: str | None = None,
    ) -> None:
        self._sources = sources
        self._open_upstream = open_upstream
        self._save = save
        self._token = cancel_token or CancellationToken()
        self._provider_name = provider_name
        self._parts: list[str] = []
        self._started = False
        self._finished = False

    @property
    def sources(self) -> list[Source]:
        return list(self._sources)

    @property
    def response_text(self) -> str:
        return "".join(self._parts)

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def cancel(self) -> None:
        self._token.cancel()

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("AnswerStream can only be consumed once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        if self._token.cancelled:
            self._finished = True
            return

        upstream: AsyncIterator[str] | None = None
        error: CompletionError | None = None
        ended = False
        saved = False
        try:
            upstream = self._open_upstream()
            async for fragment in upstream:
                if self._token.cancelled:
                    break
                if not fragment:
                    continue
                self._parts.append(fragment)
                yield fragment
                if self._token.cancelled:
                    break
            ended = True
        except CompletionError as exc:
            error = exc
        except Exception as exc:
            error = CompletionError(
                message=f"Completion stream failed: {exc}",
                provider_name=self._provider_name,
            )
            error.__cause__ = exc
        finally:
            await _close(upstream)
            self._finished = True
            # Covers normal completion, cancellation, upstream failure and
            # a consumer that stops iterating early.
            if self._parts and ended:
                await self._save(self.response_text)
                saved = True
            elif self._parts:
                # A failed history write must not replace the stream error.
                try:
                    await self._save(self.response_text)
                    saved = True
                except Exception as exc:
                    logger.error(
                        "rag_partial_save_failed",
                        fragments=len(self._parts),
                        error=str(exc),
                    )

        if error is not None:
            logger.warning(
                "rag_stream_failed",
                fragments=len(self._parts),
                partial_saved=saved,
                error=str(error),
            )
            raise error
        if not self._parts and not self._token.cancelled:
            raise CompletionError(
                message="Completion stream produced no content",
                provider_name=self._provider_name,
            )

    async def sse(self) -> AsyncIterator[str]:
        """Render the stream as server-sent events.

        Each fragment becomes ``data: {"content": ...}``; a clean finish
        (including cancellation) ends with ``data: [DONE]``.  A failure is
        reported as ``data: {"error": ...}`` with no end marker.
        """
        try:
            async for fragment in self:
                yield f"data: {json.dumps({'content': fragment})}\n\n"
        except CompletionError as exc:
            yield f"data: {json.dumps({'error': str(exc)})}\n\n"
            return
        yield f"data: {END_OF_STREAM}\n\n"


async def _close(upstream: AsyncIterator[str] | None) -> None:
    aclose = getattr(upstream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as exc:  # noqa: BLE001
        logger.warning("rag_stream_close_failed", error=str(exc))


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class RAGService:
    """Answers questions from retrieved document chunks and chat history.

    Parameters
    ----------
    embedding_provider:
        Embeds the question; must match the provider used at ingestion.
    vector_store:
        Searched for the chunks closest to the question.
    history_store:
        Supplies recent turns and records each exchange.
    llm_provider:
        Produces the answer.
    collection:
        Vector-store collection to search.
    temperature, max_tokens:
        Completion settings applied to every call.
    history_fetch_limit:
        Turns read from history per question.
    history_prompt_window:
        Most recent of those turns included in the prompt.
    default_top_k:
        Chunks retrieved when the caller does not say.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        history_store: IHistoryStore,
        llm_provider: ILLMProvider,
        collection: str = "rag_documents",
        temperature: float = 0.7,
        max_tokens: int = 1024,
        history_fetch_limit: int = 10,
        history_prompt_window: int = 5,
        default_top_k: int = 5,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._history_store = history_store
        self._llm = llm_provider
        self._collection = collection
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._history_fetch_limit = history_fetch_limit
        self._history_prompt_window = history_prompt_window
        self._default_top_k = default_top_k

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def answer(self, user_id: str, query: str, top_k: int | None = None) -> AnswerResult:
        """Answer *query* in one call and record the exchange."""
        prepared = await self._prepare(user_id, query, top_k)
        response_text = await self._llm.complete(
            prepared.messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        if not response_text:
            raise CompletionError(
                message="Completion returned no content",
                provider_name=self._llm.get_provider_name(),
            )

        await self._record(prepared, response_text)
        logger.info(
            "rag_answer",
            user_id=user_id,
            sources=len(prepared.retrieved),
            response_length=len(response_text),
        )
        return AnswerResult(response_text=response_text, sources=to_sources(prepared.retrieved))

    async def stream_answer(
        self,
        user_id: str,
        query: str,
        top_k: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AnswerStream:
        """Retrieve and build the prompt, then return a stream of the answer.

        Embedding and search errors are raised here, before any fragment.
        """
        prepared = await self._prepare(user_id, query, top_k)

        def open_upstream() -> AsyncIterator[str]:
            return self._llm.stream(
                prepared.messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )

        async def save(text: str) -> None:
            await self._record(prepared, text)
            logger.info(
                "rag_stream_answer",
                user_id=user_id,
                sources=len(prepared.retrieved),
                response_length=len(text),
            )

        return AnswerStream(
            sources=to_sources(prepared.retrieved),
            open_upstream=open_upstream,
            save=save,
            cancel_token=cancel_token,
            provider_name=self._llm.get_provider_name(),
        )

    async def get_history(self, user_id: str, limit: int = 50) -> list[ChatTurn]:
        """Return the user's last *limit* turns in chronological order."""
        return await self._history_store.recent(user_id, limit)

    async def clear_history(self, user_id: str) -> int:
        return await self._history_store.clear(user_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _prepare(self, user_id: str, query: str, top_k: int | None) -> _Prepared:
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        k = top_k if top_k is not None else self._default_top_k
        if k < 1:
            raise ValueError(f"top_k must be at least 1, got {k}")

        vector = await self._embedding_provider.embed(query)
        retrieved = await self._vector_store.query(self._collection, vector, k)

        history = await self._history_store.recent(user_id, self._history_fetch_limit)
        window = history[-self._history_prompt_window :] if self._history_prompt_window else []

        messages = build_messages(build_context(retrieved), window, query)
        logger.debug(
            "rag_prompt_built",
            user_id=user_id,
            retrieved=len(retrieved),
            history_turns=len(window),
        )
        return _Prepared(user_id=user_id, query=query, retrieved=retrieved, messages=messages)

    async def _record(self, prepared: _Prepared, response_text: str) -> None:
        await self._history_store.append(
            [
                NewChatTurn(
                    user_id=prepared.user_id,
                    role=ChatRole.USER,
                    content=prepared.query,
                    context_refs=[e.id for e in prepared.retrieved],
                ),
                NewChatTurn(
                    user_id=prepared.user_id,
                    role=ChatRole.ASSISTANT,
                    content=response_text,
                ),
            ]
        )
