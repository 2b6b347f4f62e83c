# =============================================================================
# Chatbot Service — Ingestion (train) and Retrieval/Answer (ask) Pipelines
# =============================================================================
#
# TRAIN (document → chunk → embed → store):
#
#   documents ──▶ Stage A: one task per document ──▶ bounded queue ──▶
#                 (chunk_document, read semaphore)     of chunk batches
#
#             ──▶ Stage B: one task per chunk ──▶ Provider.create_embedding
#                 (dispatch gated by embed           ──▶ build record
#                  semaphore)                        ──▶ VectorStore.store_embedding
#
#   Stage A enqueues a sentinel once every document task is done; Stage B
#   stops dispatching when it sees it. Both stages run inside TaskGroups:
#   the first failure cancels every other in-flight task, all tasks are
#   joined, and only then is that first error raised to the caller.
#   Records stored before the failure stay stored (no rollback).
#
# ASK (strictly sequential, each step aborts the rest on failure):
#   1. embed the question with the fixed query model
#   2. fetch the nearest stored chunk in (user, collection)
#   3. compose [system: chunk text, user: question]
#   4. request a chat completion, return the first choice
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from chatbot.config import settings
from chatbot.errors import ProviderError, ReadError, StorageError
from chatbot.services.chunker import Document, chunk_document
from chatbot.services.identifiers import IdGenerator, UUIDGenerator
from chatbot.services.llm import Message, Provider
from chatbot.services.records import build_embedding_record, utc_now
from chatbot.services.vectorstore import NearestNeighbor, VectorStore

logger = logging.getLogger(__name__)

# Closes the chunk queue once every document has been chunked
_DONE = object()


class ChatbotService:
    """
    Trains collections from documents and answers questions against them.

    Provider and store are external collaborators; both must tolerate
    concurrent calls. Limits default to the values in settings.
    """

    def __init__(
        self,
        provider: Provider,
        store: VectorStore,
        *,
        ids: IdGenerator | None = None,
        clock: Callable[[], datetime] = utc_now,
        chunk_size: int | None = None,
        read_concurrency: int | None = None,
        embed_concurrency: int | None = None,
        chunk_queue_size: int | None = None,
        embedding_model: str | None = None,
        chat_model: str | None = None,
        max_distance: float | None = None,
    ) -> None:
        self._provider = provider
        self._store = store
        self._ids = ids or UUIDGenerator()
        self._clock = clock
        self._chunk_size = (
            chunk_size if chunk_size is not None else settings.chunk_size
        )
        self._read_concurrency = (
            read_concurrency if read_concurrency is not None
            else settings.read_concurrency
        )
        self._embed_concurrency = (
            embed_concurrency if embed_concurrency is not None
            else settings.embed_concurrency
        )
        self._chunk_queue_size = (
            chunk_queue_size if chunk_queue_size is not None
            else settings.chunk_queue_size
        )
        self._embedding_model = embedding_model or settings.embedding_model
        self._chat_model = chat_model or settings.chat_model
        self._max_distance = (
            max_distance if max_distance is not None
            else settings.retrieval_max_distance
        )

        for name, value in (
            ("chunk_size", self._chunk_size),
            ("read_concurrency", self._read_concurrency),
            ("embed_concurrency", self._embed_concurrency),
            ("chunk_queue_size", self._chunk_queue_size),
        ):
            if value < 1:
                raise ValueError(f"{name} must be positive, got {value}")

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def train(
        self,
        user_id: str,
        model: str,
        documents: Sequence[Document],
    ) -> str:
        """
        Embed and store every chunk of `documents` under a new collection.

        Args:
            user_id: Owner of the collection.
            model: Embedding model used for every chunk, recorded on each record.
            documents: Texts, bytes or readable streams. Streams are consumed.

        Returns:
            The new collection id ("coll-<uuid4>").

        Raises:
            ReadError: A document could not be read.
            ProviderError: An embedding request failed.
            StorageError: A record could not be stored.
        """
        collection_id = self._ids.collection_id()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._chunk_queue_size)

        logger.info(
            "Training collection_id=%s: user_id=%s, model=%s, documents=%d",
            collection_id, user_id, model, len(documents),
        )

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._read_documents(documents, queue))
                stored = tg.create_task(
                    self._embed_chunks(user_id, model, collection_id, queue)
                )
        except ExceptionGroup as eg:
            error = _first_error(eg)
            logger.warning(
                "Training failed for collection_id=%s: %s", collection_id, error,
            )
            raise error from error.__cause__

        logger.info(
            "Training complete: collection_id=%s, chunks=%d",
            collection_id, stored.result(),
        )
        return collection_id

    async def _read_documents(
        self,
        documents: Sequence[Document],
        queue: asyncio.Queue,
    ) -> None:
        """Stage A: chunk every document concurrently, then close the queue."""
        semaphore = asyncio.Semaphore(self._read_concurrency)
        async with asyncio.TaskGroup() as tg:
            for index, document in enumerate(documents):
                tg.create_task(self._read_document(index, document, semaphore, queue))
        await queue.put(_DONE)

    async def _read_document(
        self,
        index: int,
        document: Document,
        semaphore: asyncio.Semaphore,
        queue: asyncio.Queue,
    ) -> None:
        # The slot is released before the put so a full queue never
        # holds up other readers.
        async with semaphore:
            try:
                chunks = await asyncio.to_thread(
                    chunk_document, document, self._chunk_size,
                )
            except ReadError as exc:
                raise ReadError(f"could not read document {index}: {exc}") from exc

        logger.debug("Document %d produced %d chunks", index, len(chunks))
        if chunks:
            await queue.put(chunks)

    async def _embed_chunks(
        self,
        user_id: str,
        model: str,
        collection_id: str,
        queue: asyncio.Queue,
    ) -> int:
        """Stage B: dispatch one bounded task per chunk until the queue closes."""
        semaphore = asyncio.Semaphore(self._embed_concurrency)
        dispatched = 0

        async with asyncio.TaskGroup() as tg:
            while True:
                batch = await queue.get()
                if batch is _DONE:
                    break
                for chunk in batch:
                    # Acquired here, released by the task: at most
                    # embed_concurrency chunks are in flight.
                    await semaphore.acquire()
                    tg.create_task(
                        self._process_chunk(
                            user_id, model, collection_id, chunk, semaphore,
                        )
                    )
                    dispatched += 1

        return dispatched

    async def _process_chunk(
        self,
        user_id: str,
        model: str,
        collection_id: str,
        chunk: str,
        semaphore: asyncio.Semaphore,
    ) -> None:
        try:
            try:
                embedding = await self._provider.create_embedding(model, chunk)
            except Exception as exc:
                raise ProviderError(f"could not create embeddings: {exc}") from exc

            record = build_embedding_record(
                self._ids,
                user_id=user_id,
                collection_id=collection_id,
                model=model,
                chunk=chunk,
                vector=embedding.vector,
                tokens=embedding.total_tokens,
                clock=self._clock,
            )

            try:
                await self._store.store_embedding(record)
            except Exception as exc:
                raise StorageError(f"could not store vector: {exc}") from exc
        finally:
            semaphore.release()

    # -------------------------------------------------------------------------
    # Retrieval / Answer
    # -------------------------------------------------------------------------

    async def ask(self, user_id: str, collection_id: str, question: str) -> str:
        """
        Answer `question` using the closest chunk of a trained collection.

        A collection with no stored chunks is not an error: the question
        is sent with an empty system message.

        Raises:
            ProviderError: Embedding or completion request failed.
            StorageError: Nearest-neighbour query failed.
        """
        logger.info(
            "Ask: user_id=%s, collection_id=%s, question_length=%d",
            user_id, collection_id, len(question),
        )
        logger.debug("Ask question: '%s'", question[:80])

        try:
            embedding = await self._provider.create_embedding(
                self._embedding_model, question,
            )
        except Exception as exc:
            raise ProviderError(f"could not create embeddings: {exc}") from exc

        try:
            neighbor = await self._store.fetch_nearest_neighbor(
                user_id, collection_id, embedding.vector,
            )
        except Exception as exc:
            raise StorageError(f"could not fetch nearest neighbor: {exc}") from exc

        messages = compose_prompt(self._context_from(neighbor), question)

        try:
            completion = await self._provider.create_chat_completion(
                self._chat_model, messages,
            )
        except Exception as exc:
            raise ProviderError(f"could not create completion: {exc}") from exc

        if not completion.choices:
            raise ProviderError("could not create completion: no choices returned")

        return completion.choices[0].content

    def _context_from(self, neighbor: NearestNeighbor | None) -> str:
        if neighbor is None:
            return ""
        if self._max_distance is not None and neighbor.distance > self._max_distance:
            logger.info(
                "Nearest neighbour dropped (distance=%.4f > max=%.4f)",
                neighbor.distance, self._max_distance,
            )
            return ""
        return neighbor.text

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    async def collection_model(self, user_id: str, collection_id: str) -> str | None:
        """Return the model a collection was trained with, or None if unknown."""
        try:
            return await self._store.fetch_model(user_id, collection_id)
        except Exception as exc:
            raise StorageError(f"could not fetch model: {exc}") from exc


def compose_prompt(context: str, question: str) -> list[Message]:
    """Two-message prompt: retrieved context as system, question as user."""
    return [
        Message(role="system", content=context),
        Message(role="user", content=question),
    ]


def _first_error(group: BaseExceptionGroup) -> BaseException:
    """Leftmost leaf of a (possibly nested) exception group."""
    error: BaseException = group
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error
