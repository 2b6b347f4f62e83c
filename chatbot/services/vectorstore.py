# =============================================================================
# Vector Store Abstraction — Pluggable Backend Protocol
# =============================================================================
#
# Stores EmbeddingRecords and answers top-1 nearest-neighbour queries scoped
# to a (user_id, collection_id) pair.
#
# ARCHITECTURE:
#   VectorStore (Protocol)
#   ├── PgVectorStore     — PostgreSQL + pgvector, L2 distance (`<->`)
#   └── ChromaVectorStore — ChromaDB (in-process or client/server), L2 space
#
# "No rows for this scope" is a normal empty result (None), not an error.
# Backend failures are surfaced as StorageError.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Protocol

import chromadb
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatbot.config import settings
from chatbot.db.engine import get_session
from chatbot.db.models import Embedding
from chatbot.errors import StorageError
from chatbot.services.records import EmbeddingRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class NearestNeighbor:
    """The stored chunk closest to a query vector."""

    text: str
    distance: float


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class VectorStore(Protocol):
    """
    Vector store interface.

    Implementations must be safe to call concurrently from many tasks.
    """

    async def store_embedding(self, record: EmbeddingRecord) -> None:
        """Persist one record. Raises StorageError on failure."""
        ...

    async def fetch_nearest_neighbor(
        self,
        user_id: str,
        collection_id: str,
        vector: list[float],
    ) -> NearestNeighbor | None:
        """
        Return the record in scope with minimum distance to `vector`.

        Ties are broken by the backend's natural ordering. Returns None
        when the scope holds no records.
        """
        ...

    async def fetch_model(self, user_id: str, collection_id: str) -> str | None:
        """Return the embedding model a collection was trained with."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: pgvector (PostgreSQL)
# ---------------------------------------------------------------------------


class PgVectorStore:
    """
    pgvector-backed store using the async SQLAlchemy engine.

    Each call opens its own short-lived session, so one instance can be
    shared by all concurrent chunk workers.
    """

    def __init__(
        self,
        session_scope: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session,
    ) -> None:
        self._session_scope = session_scope

    async def store_embedding(self, record: EmbeddingRecord) -> None:
        row = Embedding(
            id=record.id,
            user_id=record.user_id,
            collection_id=record.collection_id,
            model=record.model,
            text=record.text,
            tokens=record.tokens,
            vector=record.vector,
            created_at=record.created_at,
        )
        try:
            async with self._session_scope() as session:
                session.add(row)
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"could not insert embedding {record.id}: {exc}") from exc

        logger.debug(
            "Stored embedding %s (collection_id=%s, tokens=%d)",
            record.id, record.collection_id, record.tokens,
        )

    async def fetch_nearest_neighbor(
        self,
        user_id: str,
        collection_id: str,
        vector: list[float],
    ) -> NearestNeighbor | None:
        distance = Embedding.vector.l2_distance(vector).label("distance")
        stmt = (
            select(Embedding.text, distance)
            .where(
                Embedding.user_id == user_id,
                Embedding.collection_id == collection_id,
            )
            .order_by(distance)
            .limit(1)
        )

        try:
            async with self._session_scope() as session:
                result = await session.execute(stmt)
                row = result.first()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"nearest neighbour query failed: {exc}") from exc

        if row is None:
            logger.debug(
                "No embeddings for user_id=%s collection_id=%s",
                user_id, collection_id,
            )
            return None

        text, dist = row
        return NearestNeighbor(text=text, distance=float(dist))

    async def fetch_model(self, user_id: str, collection_id: str) -> str | None:
        stmt = (
            select(Embedding.model)
            .where(
                Embedding.user_id == user_id,
                Embedding.collection_id == collection_id,
            )
            .limit(1)
        )
        try:
            async with self._session_scope() as session:
                result = await session.execute(stmt)
                return result.scalars().first()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"model query failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Implementation 2: ChromaDB
# ---------------------------------------------------------------------------


class ChromaVectorStore:
    """
    ChromaDB-backed store.

    All records live in one collection; user and collection scoping is a
    metadata `where` filter. The Chroma client is synchronous, so every
    call runs in a worker thread via asyncio.to_thread().
    """

    def __init__(
        self,
        collection_name: str | None = None,
        client: Any | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif settings.chroma_url:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        else:
            self._client = chromadb.Client()

        # L2 space to match pgvector's `<->` operator
        self._collection = self._client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "l2"},
        )

    async def store_embedding(self, record: EmbeddingRecord) -> None:
        def _add() -> None:
            self._collection.add(
                ids=[record.id],
                documents=[record.text],
                embeddings=[record.vector],
                metadatas=[{
                    "user_id": record.user_id,
                    "collection_id": record.collection_id,
                    "model": record.model,
                    "tokens": record.tokens,
                    "created_at": record.created_at.isoformat(),
                }],
            )

        try:
            await asyncio.to_thread(_add)
        except Exception as exc:
            raise StorageError(f"could not insert embedding {record.id}: {exc}") from exc

    async def fetch_nearest_neighbor(
        self,
        user_id: str,
        collection_id: str,
        vector: list[float],
    ) -> NearestNeighbor | None:
        def _query() -> dict:
            return self._collection.query(
                query_embeddings=[vector],
                n_results=1,
                where=_scope_filter(user_id, collection_id),
                include=["documents", "distances"],
            )

        try:
            results = await asyncio.to_thread(_query)
        except Exception as exc:
            raise StorageError(f"nearest neighbour query failed: {exc}") from exc

        if not results or not results["ids"] or not results["ids"][0]:
            return None

        documents = results.get("documents") or [[""]]
        distances = results.get("distances") or [[0.0]]
        return NearestNeighbor(
            text=documents[0][0] or "",
            distance=float(distances[0][0]),
        )

    async def fetch_model(self, user_id: str, collection_id: str) -> str | None:
        def _get() -> dict:
            return self._collection.get(
                where=_scope_filter(user_id, collection_id),
                limit=1,
                include=["metadatas"],
            )

        try:
            results = await asyncio.to_thread(_get)
        except Exception as exc:
            raise StorageError(f"model query failed: {exc}") from exc

        metadatas = results.get("metadatas") or []
        if not metadatas:
            return None
        return metadatas[0].get("model")


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_vector_store(
    override_type: str | None = None,
) -> PgVectorStore | ChromaVectorStore:
    """
    Return the configured vector store backend.

    - "pgvector" → PgVectorStore (default)
    - "chroma" → ChromaVectorStore
    """
    store_type = override_type or settings.vectorstore_type

    if store_type == "chroma":
        logger.info("Using ChromaDB vector store")
        return ChromaVectorStore()

    logger.info("Using pgvector vector store")
    return PgVectorStore()


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _scope_filter(user_id: str, collection_id: str) -> dict:
    """Chroma `where` clause matching one user's collection."""
    return {
        "$and": [
            {"user_id": user_id},
            {"collection_id": collection_id},
        ]
    }
