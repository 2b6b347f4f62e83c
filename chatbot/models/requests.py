# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class TrainRequest(BaseModel):
    """
    Request body for POST /train — embed documents into a new collection.

    Example:
        {
            "user_id": "user-1",
            "model": "text-embedding-ada-002",
            "documents": ["Neptune is the eighth planet...", "..."]
        }
    """

    user_id: str = Field(..., min_length=1, max_length=255)

    # Omitted → settings.default_train_model
    model: str | None = Field(
        default=None,
        description="Embedding model for every chunk of this collection.",
    )

    documents: list[str] = Field(
        ...,
        min_length=1,
        description="Free-text documents. Each is chunked independently.",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "user_id": "user-1",
                    "documents": [
                        "Neptune is the eighth and farthest known planet "
                        "from the Sun in our solar system.",
                    ],
                }
            ]
        }
    )


class AskRequest(BaseModel):
    """Request body for POST /ask — ask a question about a trained collection."""

    user_id: str = Field(..., min_length=1, max_length=255)
    collection_id: str = Field(
        ...,
        pattern=r"^coll-",
        examples=["coll-f59fa771-3c98-4c05-8ae4-3b069915f59e"],
    )
    question: str = Field(..., min_length=1, max_length=2000)
