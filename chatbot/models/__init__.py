# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API, separate from the ORM model in
# chatbot/db/models.py. Vectors never leave the service.
# =============================================================================
