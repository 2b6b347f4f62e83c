# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class TrainResponse(BaseModel):
    """Response for POST /train."""

    collection_id: str = Field(description="Identifier of the new collection")
    document_count: int


class AskResponse(BaseModel):
    """Response for POST /ask."""

    answer: str
    question: str
    collection_id: str


class CollectionModelResponse(BaseModel):
    """Response for GET /collections/{collection_id}/model."""

    collection_id: str
    model: str
