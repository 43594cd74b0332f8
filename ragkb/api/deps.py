"""Dependencies for API endpoints."""

import uuid

from fastapi import HTTPException, Request

from ragkb.services.ingestion import IngestionPipeline
from ragkb.services.search import SearchEngine


def get_current_user_id(request: Request) -> uuid.UUID:
    """
    Dependency to read the owner resolved by the owner middleware.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        # This should not happen if the middleware is configured correctly
        raise HTTPException(
            status_code=500, detail="User ID not found in request state."
        )
    return user_id


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def get_search_engine(request: Request) -> SearchEngine:
    return request.app.state.search_engine
