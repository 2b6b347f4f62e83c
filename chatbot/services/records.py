# =============================================================================
# Embedding Records
# =============================================================================
#
# An EmbeddingRecord is the unit handed to the vector store: one chunk, the
# vector the provider returned for it, and the scope it belongs to.
# Records are frozen: a chunk worker builds one and passes it to the store
# without further changes.
# =============================================================================

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from chatbot.services.identifiers import IdGenerator


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class EmbeddingRecord:
    """A persisted (embedding, source text) pair scoped to a user/collection."""

    id: str
    user_id: str
    collection_id: str
    model: str
    text: str
    tokens: int
    vector: list[float] = field(repr=False)
    created_at: datetime


def build_embedding_record(
    ids: IdGenerator,
    *,
    user_id: str,
    collection_id: str,
    model: str,
    chunk: str,
    vector: list[float],
    tokens: int,
    clock: Callable[[], datetime] = utc_now,
) -> EmbeddingRecord:
    """
    Assemble the record for one embedded chunk.

    The record's ``text`` is the chunk verbatim (trailing space included),
    so the stored text always matches what produced ``vector``.
    """
    return EmbeddingRecord(
        id=ids.embedding_id(),
        user_id=user_id,
        collection_id=collection_id,
        model=model,
        text=chunk,
        tokens=int(tokens),
        vector=list(vector),
        created_at=clock(),
    )
