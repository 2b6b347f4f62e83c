# =============================================================================
# Database Package
# =============================================================================
# Async SQLAlchemy engine, session management and the `embeddings` table
# backing PgVectorStore.
# =============================================================================
