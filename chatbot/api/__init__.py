# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - train.py: POST /train
#   - ask.py: POST /ask
#   - collections.py: GET /collections/{collection_id}/model
#   - deps.py: service dependency and error translation
# =============================================================================
