# =============================================================================
# Services Package — Business Logic
# =============================================================================
#   - chunker.py: word-count chunking of documents
#   - identifiers.py: collection / record id generation
#   - records.py: EmbeddingRecord and its builder
#   - llm.py: embedding + chat provider protocol (OpenAI-compatible)
#   - vectorstore.py: vector store protocol (pgvector, Chroma)
#   - chatbot.py: train (ingestion) and ask (retrieval/answer) pipelines
# =============================================================================
