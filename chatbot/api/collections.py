"""Collection metadata endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from chatbot.api.deps import get_chatbot_service, to_http_exception
from chatbot.errors import ChatbotError
from chatbot.models.responses import CollectionModelResponse
from chatbot.services.chatbot import ChatbotService

router = APIRouter(prefix="/collections", tags=["Collections"])


@router.get(
    "/{collection_id}/model",
    response_model=CollectionModelResponse,
    summary="Embedding model a collection was trained with",
)
async def collection_model_endpoint(
    collection_id: str,
    user_id: str = Query(..., min_length=1),
    service: ChatbotService = Depends(get_chatbot_service),
) -> CollectionModelResponse:
    try:
        model = await service.collection_model(user_id, collection_id)
    except ChatbotError as e:
        raise to_http_exception(e) from e

    if model is None:
        raise HTTPException(
            status_code=404,
            detail=f"Collection {collection_id} not found",
        )
    return CollectionModelResponse(collection_id=collection_id, model=model)
