# =============================================================================
# Unit Tests — Chatbot Service (train + ask)
# =============================================================================
#
# Exercises the ingestion and retrieval pipelines against in-memory fakes
# and AsyncMocks. No API keys, databases, or network calls needed.
# =============================================================================

from __future__ import annotations

import asyncio
import gzip
import io
import logging
import re
from collections import Counter
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatbot.errors import ProviderError, ReadError, StorageError
from chatbot.services.chatbot import ChatbotService, compose_prompt
from chatbot.services.chunker import chunk_documents
from chatbot.services.llm import ChatCompletion, Choice, EmbeddingResponse, Message
from chatbot.services.vectorstore import NearestNeighbor

COLLECTION_RE = re.compile(r"^coll-[0-9a-f-]{36}$")


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeProvider:
    """Embeds a chunk as [len(chunk)] and records concurrency."""

    def __init__(self, fail_on: str | None = None, delay: float = 0.0) -> None:
        self.fail_on = fail_on
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.peak = 0
        self.cancelled = 0

    async def create_embedding(self, model: str, text: str) -> EmbeddingResponse:
        self.calls.append((model, text))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if text == self.fail_on:
                raise RuntimeError("quota exceeded")
            return EmbeddingResponse(
                vector=[float(len(text))],
                total_tokens=len(text.split()),
            )
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.in_flight -= 1

    async def create_chat_completion(self, model, messages):
        raise AssertionError("train must not request completions")


class SlowUnlessBadProvider(FakeProvider):
    """Fails immediately on "bad ", blocks for a long time on anything else."""

    async def create_embedding(self, model: str, text: str) -> EmbeddingResponse:
        if text == "bad ":
            await asyncio.sleep(0.01)
            raise RuntimeError("model not found")
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return EmbeddingResponse(vector=[0.0], total_tokens=1)


class FakeStore:
    """Keeps records in a list; optionally fails on one chunk."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.records = []

    async def store_embedding(self, record) -> None:
        await asyncio.sleep(0)
        if record.text == self.fail_on:
            raise ConnectionError("connection reset")
        self.records.append(record)

    async def fetch_nearest_neighbor(self, user_id, collection_id, vector):
        return None

    async def fetch_model(self, user_id, collection_id):
        return None


class CountingIds:
    def __init__(self) -> None:
        self.collections = 0
        self.embeddings = 0

    def collection_id(self) -> str:
        self.collections += 1
        return f"coll-{self.collections}"

    def embedding_id(self) -> str:
        self.embeddings += 1
        return f"emb-{self.embeddings}"


DOCUMENTS = [
    "Neptune is the eighth planet from the Sun",
    "In Roman mythology Neptune was the god of freshwater and the sea",
    "Triton orbits in the opposite direction",
]


def _service(provider, store, **kwargs) -> ChatbotService:
    kwargs.setdefault("chunk_size", 3)
    return ChatbotService(provider, store, **kwargs)


# ---------------------------------------------------------------------------
# Test: train()
# ---------------------------------------------------------------------------


class TestTrain:
    """Tests for the ingestion pipeline."""

    def test_every_chunk_embedded_and_stored_once(self):
        provider, store = FakeProvider(), FakeStore()
        service = _service(provider, store)

        collection_id = _run(service.train("user-1", "ada", DOCUMENTS))

        expected = Counter(chunk_documents(DOCUMENTS, 3))
        assert COLLECTION_RE.match(collection_id)
        assert Counter(text for _, text in provider.calls) == expected
        assert Counter(r.text for r in store.records) == expected
        assert all(model == "ada" for model, _ in provider.calls)

    def test_records_carry_scope_and_matching_vector(self):
        provider, store = FakeProvider(), FakeStore()
        collection_id = _run(_service(provider, store).train("user-1", "ada", DOCUMENTS))

        for record in store.records:
            assert record.user_id == "user-1"
            assert record.collection_id == collection_id
            assert record.model == "ada"
            assert record.vector == [float(len(record.text))]
            assert record.tokens == len(record.text.split())
            assert record.id.startswith("emb-")
            assert record.created_at.tzinfo is not None
        assert len({r.id for r in store.records}) == len(store.records)

    def test_streams_are_accepted(self):
        provider, store = FakeProvider(), FakeStore()
        docs = [io.StringIO("a b c d"), io.BytesIO(b"e f")]
        _run(_service(provider, store, chunk_size=2).train("u", "m", docs))
        assert sorted(r.text for r in store.records) == ["a b ", "c d ", "e f "]

    def test_no_documents_returns_collection_without_calls(self):
        provider, store = FakeProvider(), FakeStore()
        collection_id = _run(_service(provider, store).train("u", "m", []))
        assert COLLECTION_RE.match(collection_id)
        assert provider.calls == []
        assert store.records == []

    def test_empty_document_is_skipped(self):
        provider, store = FakeProvider(), FakeStore()
        _run(_service(provider, store).train("u", "m", ["", "one two"]))
        assert [r.text for r in store.records] == ["one two "]

    def test_embedding_failure_raises_provider_error(self):
        provider = FakeProvider(fail_on="god of freshwater ")
        service = _service(provider, FakeStore())

        with pytest.raises(ProviderError, match="could not create embeddings"):
            _run(service.train("u", "m", DOCUMENTS))

    def test_store_failure_raises_storage_error(self):
        store = FakeStore(fail_on="Neptune is the ")
        service = _service(FakeProvider(), store)

        with pytest.raises(StorageError, match="could not store vector") as exc_info:
            _run(service.train("u", "m", DOCUMENTS))
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_unreadable_document_raises_read_error(self):
        bad = io.BytesIO(b"\xff\xfe\xfd")
        service = _service(FakeProvider(), FakeStore())

        with pytest.raises(ReadError, match="could not read document 1"):
            _run(service.train("u", "m", ["fine text", bad]))

    def test_truncated_stream_raises_read_error(self):
        data = gzip.compress(b"one two three four five six")
        truncated = gzip.GzipFile(fileobj=io.BytesIO(data[:-8]))
        service = _service(FakeProvider(), FakeStore())

        with pytest.raises(ReadError, match="could not read document 0"):
            _run(service.train("u", "m", [truncated]))

    def test_concurrency_is_bounded(self):
        provider = FakeProvider(delay=0.005)
        service = _service(provider, FakeStore(), chunk_size=1, embed_concurrency=3)

        _run(service.train("u", "m", ["w " * 20, "x " * 15]))

        assert len(provider.calls) == 35
        assert 1 <= provider.peak <= 3

    def test_first_failure_cancels_in_flight_work(self):
        provider = SlowUnlessBadProvider()
        store = FakeStore()
        service = _service(provider, store, chunk_size=1, embed_concurrency=10)

        async def scenario():
            return await asyncio.wait_for(
                service.train("u", "m", ["slow1 slow2 slow3 bad"]),
                timeout=5,
            )

        with pytest.raises(ProviderError, match="model not found"):
            _run(scenario())
        assert provider.cancelled == 3
        assert store.records == []

    def test_retraining_yields_new_collection_and_records(self):
        store = FakeStore()
        service = _service(FakeProvider(), store)

        first = _run(service.train("u", "m", DOCUMENTS))
        first_ids = {r.id for r in store.records}
        second = _run(service.train("u", "m", DOCUMENTS))
        second_ids = {r.id for r in store.records} - first_ids

        assert first != second
        assert len(second_ids) == len(first_ids)
        assert first_ids.isdisjoint(second_ids)

    def test_injected_ids_and_clock(self):
        fixed = datetime(2024, 1, 1, tzinfo=UTC)
        ids, store = CountingIds(), FakeStore()
        service = _service(FakeProvider(), store, ids=ids, clock=lambda: fixed)

        collection_id = _run(service.train("u", "m", ["a b c d"]))

        assert collection_id == "coll-1"
        assert sorted(r.id for r in store.records) == ["emb-1", "emb-2"]
        assert all(r.created_at == fixed for r in store.records)

    def test_invalid_limits_rejected(self):
        with pytest.raises(ValueError):
            ChatbotService(FakeProvider(), FakeStore(), embed_concurrency=-1)

    @pytest.mark.parametrize(
        "limit",
        ["chunk_size", "read_concurrency", "embed_concurrency", "chunk_queue_size"],
    )
    def test_zero_limits_rejected(self, limit):
        with pytest.raises(ValueError, match=limit):
            ChatbotService(FakeProvider(), FakeStore(), **{limit: 0})


# ---------------------------------------------------------------------------
# Test: ask()
# ---------------------------------------------------------------------------


def _ask_mocks(neighbor=NearestNeighbor(text="ctx", distance=0.5), answer="42"):
    provider = MagicMock()
    provider.create_embedding = AsyncMock(
        return_value=EmbeddingResponse(vector=[1.0, 2.0, 3.0], total_tokens=3),
    )
    provider.create_chat_completion = AsyncMock(
        return_value=ChatCompletion(choices=[Choice(content=answer)]),
    )
    store = MagicMock()
    store.fetch_nearest_neighbor = AsyncMock(return_value=neighbor)
    store.fetch_model = AsyncMock(return_value="ada")
    return provider, store


def _ask_service(provider, store, **kwargs) -> ChatbotService:
    return ChatbotService(
        provider, store,
        embedding_model="embed-model", chat_model="chat-model", **kwargs,
    )


class TestAsk:
    """Tests for the retrieval/answer pipeline."""

    def test_composes_context_and_question(self):
        provider, store = _ask_mocks()
        service = _ask_service(provider, store)

        answer = _run(service.ask("user-1", "coll-1", "What is Neptune?"))

        assert answer == "42"
        provider.create_embedding.assert_awaited_once_with(
            "embed-model", "What is Neptune?",
        )
        store.fetch_nearest_neighbor.assert_awaited_once_with(
            "user-1", "coll-1", [1.0, 2.0, 3.0],
        )
        provider.create_chat_completion.assert_awaited_once_with(
            "chat-model",
            [
                Message(role="system", content="ctx"),
                Message(role="user", content="What is Neptune?"),
            ],
        )

    def test_no_neighbor_sends_empty_context(self):
        provider, store = _ask_mocks(neighbor=None)
        answer = _run(_ask_service(provider, store).ask("u", "coll-1", "q?"))

        assert answer == "42"
        _, messages = provider.create_chat_completion.await_args.args
        assert messages[0] == Message(role="system", content="")

    def test_distant_neighbor_dropped_when_threshold_set(self):
        provider, store = _ask_mocks(neighbor=NearestNeighbor("far", 2.0))
        service = _ask_service(provider, store, max_distance=1.0)

        _run(service.ask("u", "coll-1", "q?"))

        _, messages = provider.create_chat_completion.await_args.args
        assert messages[0].content == ""

    def test_embedding_failure_stops_pipeline(self):
        provider, store = _ask_mocks()
        provider.create_embedding.side_effect = RuntimeError("timeout")

        with pytest.raises(ProviderError, match="could not create embeddings"):
            _run(_ask_service(provider, store).ask("u", "coll-1", "q?"))
        store.fetch_nearest_neighbor.assert_not_awaited()

    def test_store_failure_stops_pipeline(self):
        provider, store = _ask_mocks()
        store.fetch_nearest_neighbor.side_effect = StorageError("db down")

        with pytest.raises(StorageError, match="could not fetch nearest neighbor"):
            _run(_ask_service(provider, store).ask("u", "coll-1", "q?"))
        provider.create_chat_completion.assert_not_awaited()

    def test_completion_failure_raises_provider_error(self):
        provider, store = _ask_mocks()
        provider.create_chat_completion.side_effect = RuntimeError("rate limited")

        with pytest.raises(ProviderError, match="could not create completion"):
            _run(_ask_service(provider, store).ask("u", "coll-1", "q?"))

    def test_empty_choices_raise_provider_error(self):
        provider, store = _ask_mocks()
        provider.create_chat_completion.return_value = ChatCompletion(choices=[])

        with pytest.raises(ProviderError, match="no choices"):
            _run(_ask_service(provider, store).ask("u", "coll-1", "q?"))

    def test_question_text_not_logged_at_info(self, caplog):
        provider, store = _ask_mocks()
        question = "my salary is 123456, what should I do?"

        with caplog.at_level(logging.INFO, logger="chatbot.services.chatbot"):
            _run(_ask_service(provider, store).ask("u", "coll-1", question))

        info_text = " ".join(
            r.getMessage() for r in caplog.records if r.levelno >= logging.INFO
        )
        assert "question_length=" in info_text
        assert "123456" not in info_text

    def test_first_choice_is_returned(self):
        provider, store = _ask_mocks()
        provider.create_chat_completion.return_value = ChatCompletion(
            choices=[Choice("first"), Choice("second")],
        )
        assert _run(_ask_service(provider, store).ask("u", "coll-1", "q?")) == "first"


class TestComposePrompt:
    def test_system_then_user(self):
        assert compose_prompt("ctx", "why?") == [
            Message(role="system", content="ctx"),
            Message(role="user", content="why?"),
        ]


class TestCollectionModel:
    def test_returns_store_value(self):
        provider, store = _ask_mocks()
        model = _run(_ask_service(provider, store).collection_model("u", "coll-1"))
        assert model == "ada"
        store.fetch_model.assert_awaited_once_with("u", "coll-1")

    def test_store_failure_wrapped(self):
        provider, store = _ask_mocks()
        store.fetch_model.side_effect = OSError("refused")
        with pytest.raises(StorageError, match="could not fetch model"):
            _run(_ask_service(provider, store).collection_model("u", "coll-1"))
