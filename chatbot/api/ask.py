# =============================================================================
# Ask API — Question Answering over a Trained Collection
# =============================================================================
#
# FLOW:
#   1. Embed the question
#   2. Fetch the nearest chunk of the collection
#   3. Send [system: chunk, user: question] to the chat model
#   4. Return the first choice
#
# A collection with no chunks still produces an answer (empty context).
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from chatbot.api.deps import get_chatbot_service, to_http_exception
from chatbot.errors import ChatbotError
from chatbot.models.requests import AskRequest
from chatbot.models.responses import AskResponse
from chatbot.services.chatbot import ChatbotService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Question Answering"])


@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Ask a question about a trained collection",
)
async def ask_endpoint(
    request: AskRequest,
    service: ChatbotService = Depends(get_chatbot_service),
) -> AskResponse:
    try:
        answer = await service.ask(
            request.user_id, request.collection_id, request.question,
        )
    except ChatbotError as e:
        logger.error(
            "Ask failed for collection_id=%s: %s", request.collection_id, e,
        )
        raise to_http_exception(e) from e

    return AskResponse(
        answer=answer,
        question=request.question,
        collection_id=request.collection_id,
    )
