# =============================================================================
# Train API — Build a Collection from Documents
# =============================================================================
#
# POST /train runs the whole ingestion pipeline inside the request and
# returns the new collection id once every chunk is stored. A failure
# returns the first pipeline error; chunks stored before it stay stored.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from chatbot.api.deps import get_chatbot_service, to_http_exception
from chatbot.config import settings
from chatbot.errors import ChatbotError
from chatbot.models.requests import TrainRequest
from chatbot.models.responses import TrainResponse
from chatbot.services.chatbot import ChatbotService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Training"])


@router.post(
    "/train",
    response_model=TrainResponse,
    summary="Embed documents into a new collection",
)
async def train_endpoint(
    request: TrainRequest,
    service: ChatbotService = Depends(get_chatbot_service),
) -> TrainResponse:
    model = request.model or settings.default_train_model

    try:
        collection_id = await service.train(
            request.user_id, model, request.documents,
        )
    except ChatbotError as e:
        logger.error("Training failed for user_id=%s: %s", request.user_id, e)
        raise to_http_exception(e) from e

    return TrainResponse(
        collection_id=collection_id,
        document_count=len(request.documents),
    )
