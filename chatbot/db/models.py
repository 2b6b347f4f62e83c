# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# A single table holds every embedded chunk:
#
# ┌──────────────────────────────────────┐
# │  embeddings                          │
# ├──────────────────────────────────────┤
# │ id (PK)            "emb-<uuid4>"     │
# │ user_id            owner             │
# │ collection_id      "coll-<uuid4>"    │
# │ model              embedding model   │
# │ text               chunk text        │
# │ tokens             tokens consumed   │
# │ vector             vector(N)         │
# │ created_at         UTC timestamp     │
# └──────────────────────────────────────┘
#
# Nearest-neighbour lookups are always scoped by (user_id, collection_id),
# hence the composite index.
# =============================================================================

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import BigInteger, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from chatbot.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class Embedding(Base):
    """One chunk of a trained collection together with its vector."""

    __tablename__ = "embeddings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    collection_id: Mapped[str] = mapped_column(String(64), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    vector: Mapped[list[float]] = mapped_column(
        Vector(settings.embedding_dimensions), nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    __table_args__ = (
        Index("ix_embeddings_user_collection", "user_id", "collection_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Embedding(id='{self.id}', user_id='{self.user_id}', "
            f"collection_id='{self.collection_id}')>"
        )
