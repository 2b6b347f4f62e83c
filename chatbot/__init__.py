# =============================================================================
# RAG Chatbot
# =============================================================================
# Trains per-user collections of embedded text chunks and answers questions
# by retrieving the closest chunk and handing it to a chat model.
#
# Package structure:
#   chatbot/
#   ├── api/          → FastAPI route handlers (train, ask, collections)
#   ├── db/           → Async engine, session management, ORM model
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → Chunking, provider, vector store, pipelines
# =============================================================================
