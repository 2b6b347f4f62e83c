"""Identifier generation for collections and embedding records.

The pipeline takes an ``IdGenerator`` instead of calling ``uuid4`` directly
so tests can supply deterministic identifiers.
"""

from __future__ import annotations

import uuid
from typing import Protocol

COLLECTION_PREFIX = "coll-"
EMBEDDING_PREFIX = "emb-"


class IdGenerator(Protocol):
    """Produces collection and embedding-record identifiers."""

    def collection_id(self) -> str:
        ...

    def embedding_id(self) -> str:
        ...


class UUIDGenerator:
    """Default generator: ``coll-<uuid4>`` and ``emb-<uuid4>``."""

    def collection_id(self) -> str:
        return COLLECTION_PREFIX + str(uuid.uuid4())

    def embedding_id(self) -> str:
        return EMBEDDING_PREFIX + str(uuid.uuid4())
