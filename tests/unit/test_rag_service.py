"""Unit tests for RAGService, prompt assembly and AnswerStream.

Uses the in-memory embedding/vector doubles and the scripted LLM from
conftest, with a real SQLite history store under ``tmp_path``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from docurag.models.chat import ChatRole, ChatTurn
from docurag.models.rag import RetrievedEntry, VectorEntry
from docurag.providers.storage.sqlite_history_store import SQLiteHistoryStore
from docurag.services.rag_service import (
    SYSTEM_PROMPT_TEMPLATE,
    CancellationToken,
    RAGService,
    build_context,
    build_messages,
)
from docurag.utils.errors import CompletionError, IndexQueryError, StorageError

_COLLECTION = "rag_documents"

_CHUNKS = [
    "The Meridian Agreement was signed in Lisbon in 2021.",
    "Fishing grounds are managed by a joint commission.",
    "Disputes go to an arbitration panel of three members.",
]


def _retrieved(text: str, rank: int) -> RetrievedEntry:
    return RetrievedEntry(
        id=f"doc_chunk_{rank}",
        document_id="doc",
        chunk_index=rank,
        text=text,
        similarity_score=0.9 - rank * 0.1,
    )


@pytest_asyncio.fixture
async def seeded_store(mock_embedding_provider, mock_vector_store):
    vectors = await mock_embedding_provider.embed_batch(_CHUNKS)
    await mock_vector_store.upsert(
        _COLLECTION,
        [
            VectorEntry(
                id=f"doc_chunk_{i}",
                vector=vector,
                document_id="doc",
                chunk_index=i,
                text=text,
            )
            for i, (text, vector) in enumerate(zip(_CHUNKS, vectors, strict=True))
        ],
    )
    return mock_vector_store


@pytest.fixture()
def service(mock_embedding_provider, seeded_store, history_store, scripted_llm) -> RAGService:
    return RAGService(
        embedding_provider=mock_embedding_provider,
        vector_store=seeded_store,
        history_store=history_store,
        llm_provider=scripted_llm,
        collection=_COLLECTION,
        history_fetch_limit=10,
        history_prompt_window=5,
        default_top_k=2,
    )


# ======================================================================
# Prompt assembly
# ======================================================================


class TestPromptAssembly:
    def test_build_context_labels_by_rank(self) -> None:
        context = build_context([_retrieved("alpha", 0), _retrieved("beta", 1)])
        assert context == "[Context 1]:\nalpha\n\n[Context 2]:\nbeta"

    def test_build_context_empty(self) -> None:
        assert build_context([]) == ""

    def test_build_messages_order(self) -> None:
        now = datetime.now(timezone.utc)
        history = [
            ChatTurn(id=1, user_id="u", role=ChatRole.USER, content="earlier q", created_at=now),
            ChatTurn(id=2, user_id="u", role=ChatRole.ASSISTANT, content="earlier a", created_at=now),
        ]

        messages = build_messages("CTX", history, "new question")

        assert [m.role for m in messages] == [
            ChatRole.SYSTEM,
            ChatRole.USER,
            ChatRole.ASSISTANT,
            ChatRole.USER,
        ]
        assert messages[0].content == SYSTEM_PROMPT_TEMPLATE.format(context="CTX")
        assert "say so honestly" in messages[0].content
        assert messages[-1].content == "new question"


# ======================================================================
# Batch answers
# ======================================================================


@pytest.mark.asyncio
class TestAnswer:
    async def test_answer_returns_text_and_sources(self, service: RAGService) -> None:
        result = await service.answer("alice", "Where was the agreement signed?")

        assert result.response_text == "Hello, world."
        assert len(result.sources) == 2
        scores = [s.score for s in result.sources]
        assert scores == sorted(scores, reverse=True)
        assert all(s.document_id == "doc" for s in result.sources)

    async def test_prompt_contains_retrieved_context(
        self, service: RAGService, scripted_llm
    ) -> None:
        result = await service.answer("alice", "question", top_k=3)

        system = scripted_llm.calls[0][0]
        assert system.role is ChatRole.SYSTEM
        for rank, source in enumerate(result.sources, start=1):
            assert f"[Context {rank}]:\n{source.text}" in system.content

    async def test_answer_records_two_turns(
        self, service: RAGService, history_store: SQLiteHistoryStore
    ) -> None:
        result = await service.answer("alice", "What manages the fishing grounds?")

        turns = await history_store.recent("alice", 10)
        assert [(t.role, t.content) for t in turns] == [
            (ChatRole.USER, "What manages the fishing grounds?"),
            (ChatRole.ASSISTANT, result.response_text),
        ]
        assert len(turns[0].context_refs) == 2
        assert turns[1].context_refs == []

    async def test_history_window_in_prompt(self, service: RAGService, scripted_llm) -> None:
        for n in range(4):
            await service.answer("alice", f"question {n}")

        await service.answer("alice", "final question")

        # 8 stored turns, only the last 5 are sent, then the new question.
        messages = scripted_llm.calls[-1]
        assert len(messages) == 1 + 5 + 1
        assert [m.content for m in messages[1:6]] == [
            "Hello, world.",
            "question 2",
            "Hello, world.",
            "question 3",
            "Hello, world.",
        ]
        assert messages[-1].content == "final question"

    async def test_history_is_per_user(self, service: RAGService, scripted_llm) -> None:
        await service.answer("alice", "alice question")
        await service.answer("bob", "bob question")

        bob_messages = scripted_llm.calls[-1]
        assert all("alice" not in m.content for m in bob_messages[1:])

    async def test_empty_index_still_answers(
        self, mock_embedding_provider, mock_vector_store, history_store, scripted_llm
    ) -> None:
        service = RAGService(
            embedding_provider=mock_embedding_provider,
            vector_store=mock_vector_store,
            history_store=history_store,
            llm_provider=scripted_llm,
        )
        result = await service.answer("alice", "anything?")

        assert result.sources == []
        assert scripted_llm.calls[0][0].content == SYSTEM_PROMPT_TEMPLATE.format(context="")

    async def test_completion_failure_records_nothing(
        self, service: RAGService, scripted_llm, history_store: SQLiteHistoryStore
    ) -> None:
        scripted_llm.fail_after = 0

        with pytest.raises(CompletionError):
            await service.answer("alice", "question")

        assert await history_store.recent("alice", 10) == []

    async def test_search_failure_propagates(self, service: RAGService, seeded_store) -> None:
        async def broken_query(*args, **kwargs):
            raise IndexQueryError(message="index offline", provider_name="mock-vector-store")

        seeded_store.query = broken_query
        with pytest.raises(IndexQueryError):
            await service.answer("alice", "question")

    @pytest.mark.parametrize("query", ["", "   "])
    async def test_blank_query_rejected(self, service: RAGService, query: str) -> None:
        with pytest.raises(ValueError):
            await service.answer("alice", query)

    async def test_non_positive_top_k_rejected(self, service: RAGService) -> None:
        with pytest.raises(ValueError):
            await service.answer("alice", "question", top_k=0)

    async def test_clear_history(self, service: RAGService) -> None:
        await service.answer("alice", "question")
        assert await service.clear_history("alice") == 2
        assert await service.get_history("alice") == []


# ======================================================================
# Streaming answers
# ======================================================================


@pytest.mark.asyncio
class TestStreamAnswer:
    async def test_stream_forwards_fragments_in_order(
        self, service: RAGService, history_store: SQLiteHistoryStore
    ) -> None:
        stream = await service.stream_answer("alice", "question")
        assert len(stream.sources) == 2

        fragments = [f async for f in stream]

        assert fragments == ["Hello", ", ", "world."]
        assert stream.response_text == "Hello, world."
        assert stream.finished is True
        turns = await history_store.recent("alice", 10)
        assert [t.content for t in turns] == ["question", "Hello, world."]

    async def test_stream_matches_batch_answer(self, service: RAGService) -> None:
        batch = await service.answer("alice", "question")
        stream = await service.stream_answer("bob", "question")
        text = "".join([f async for f in stream])
        assert text == batch.response_text

    async def test_empty_fragments_skipped(self, service: RAGService, scripted_llm) -> None:
        scripted_llm.fragments = ["a", "", "b"]
        stream = await service.stream_answer("alice", "question")
        assert [f async for f in stream] == ["a", "b"]

    async def test_failure_after_fragments_saves_partial(
        self, service: RAGService, scripted_llm, history_store: SQLiteHistoryStore
    ) -> None:
        scripted_llm.fail_after = 2
        stream = await service.stream_answer("alice", "question")

        received: list[str] = []
        with pytest.raises(CompletionError):
            async for fragment in stream:
                received.append(fragment)

        assert received == ["Hello", ", "]
        turns = await history_store.recent("alice", 10)
        assert turns[-1].role is ChatRole.ASSISTANT
        assert turns[-1].content == "Hello, "

    async def test_failure_before_any_fragment_saves_nothing(
        self, service: RAGService, scripted_llm, history_store: SQLiteHistoryStore
    ) -> None:
        scripted_llm.fail_after = 0
        stream = await service.stream_answer("alice", "question")

        with pytest.raises(CompletionError):
            async for _ in stream:
                pass

        assert await history_store.recent("alice", 10) == []

    async def test_no_content_is_an_error(
        self, service: RAGService, scripted_llm, history_store: SQLiteHistoryStore
    ) -> None:
        scripted_llm.fragments = []
        stream = await service.stream_answer("alice", "question")

        with pytest.raises(CompletionError, match="no content"):
            async for _ in stream:
                pass
        assert await history_store.recent("alice", 10) == []

    async def test_cancel_mid_stream_saves_partial(
        self, service: RAGService, scripted_llm, history_store: SQLiteHistoryStore
    ) -> None:
        token = CancellationToken()
        stream = await service.stream_answer("alice", "question", cancel_token=token)

        received: list[str] = []
        async for fragment in stream:
            received.append(fragment)
            token.cancel()

        assert received == ["Hello"]
        assert stream.cancelled is True
        assert stream.finished is True
        assert scripted_llm.closed == 1
        turns = await history_store.recent("alice", 10)
        assert turns[-1].content == "Hello"

    async def test_cancel_before_start(
        self, service: RAGService, scripted_llm, history_store: SQLiteHistoryStore
    ) -> None:
        stream = await service.stream_answer("alice", "question")
        stream.cancel()

        assert [f async for f in stream] == []
        assert scripted_llm.calls == []
        assert await history_store.recent("alice", 10) == []

    async def test_consumer_abandoning_stream_saves_partial(
        self, service: RAGService, scripted_llm, history_store: SQLiteHistoryStore
    ) -> None:
        stream = await service.stream_answer("alice", "question")
        iterator = stream.__aiter__()
        assert await iterator.__anext__() == "Hello"
        await iterator.aclose()

        assert scripted_llm.closed == 1
        turns = await history_store.recent("alice", 10)
        assert turns[-1].content == "Hello"

    async def test_stream_single_use(self, service: RAGService) -> None:
        stream = await service.stream_answer("alice", "question")
        [f async for f in stream]
        with pytest.raises(RuntimeError):
            stream.__aiter__()

    async def test_search_errors_raised_before_streaming(
        self, service: RAGService, seeded_store
    ) -> None:
        async def broken_query(*args, **kwargs):
            raise IndexQueryError(message="index offline")

        seeded_store.query = broken_query
        with pytest.raises(IndexQueryError):
            await service.stream_answer("alice", "question")


@pytest.mark.asyncio
class TestServerSentEvents:
    async def test_sse_success(self, service: RAGService) -> None:
        stream = await service.stream_answer("alice", "question")
        events = [e async for e in stream.sse()]

        assert events[-1] == "data: [DONE]\n\n"
        payloads = [json.loads(e[len("data: ") :]) for e in events[:-1]]
        assert payloads == [{"content": "Hello"}, {"content": ", "}, {"content": "world."}]
        assert all(e.endswith("\n\n") for e in events)

    async def test_sse_failure_has_error_event_and_no_done(
        self, service: RAGService, scripted_llm
    ) -> None:
        scripted_llm.fail_after = 1
        stream = await service.stream_answer("alice", "question")

        events = [e async for e in stream.sse()]

        assert json.loads(events[0][len("data: ") :]) == {"content": "Hello"}
        last = json.loads(events[-1][len("data: ") :])
        assert "error" in last
        assert "data: [DONE]\n\n" not in events

    async def test_sse_reports_stream_error_when_history_write_fails(
        self, service: RAGService, scripted_llm, history_store
    ) -> None:
        async def refuse(turns):  # noqa: ANN001
            raise StorageError(message="database is locked")

        history_store.append = refuse
        scripted_llm.fail_after = 1
        stream = await service.stream_answer("alice", "question")

        events = [e async for e in stream.sse()]

        assert json.loads(events[0][len("data: ") :]) == {"content": "Hello"}
        assert json.loads(events[-1][len("data: ") :]) == {"error": "[scripted] stream dropped"}
        assert stream.finished is True
