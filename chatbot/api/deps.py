# =============================================================================
# API Dependencies — Service Wiring and Error Translation
# =============================================================================
#
# Route handlers receive the ChatbotService through FastAPI's dependency
# injection, so tests can swap it via `app.dependency_overrides`.
#
# Pipeline errors map to HTTP status codes:
#   ReadError     → 422  (a submitted document could not be read)
#   ProviderError → 502  (upstream embedding/chat API failed)
#   StorageError  → 503  (vector store unavailable)
#   ValueError    → 503  (missing configuration, e.g. no API key)
# =============================================================================

from __future__ import annotations

import logging

from fastapi import HTTPException

from chatbot.errors import ChatbotError, ProviderError, ReadError, StorageError
from chatbot.services.chatbot import ChatbotService
from chatbot.services.llm import get_provider
from chatbot.services.vectorstore import get_vector_store

logger = logging.getLogger(__name__)

_service: ChatbotService | None = None


def get_chatbot_service() -> ChatbotService:
    """
    FastAPI dependency returning the process-wide ChatbotService.

    Raises:
        HTTPException 503: Provider or store is not configured.
    """
    global _service
    if _service is None:
        try:
            _service = ChatbotService(get_provider(), get_vector_store())
        except ValueError as e:
            logger.error("Configuration error: %s", e)
            raise HTTPException(
                status_code=503,
                detail=f"Service configuration error: {e}",
            ) from e
    return _service


_STATUS_BY_ERROR: dict[type[ChatbotError], int] = {
    ReadError: 422,
    ProviderError: 502,
    StorageError: 503,
}


def to_http_exception(exc: ChatbotError) -> HTTPException:
    """Translate a pipeline error into the matching HTTPException."""
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
