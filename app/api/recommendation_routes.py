"""Recommendation API routes."""

import logging
from typing import Annotated, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.schemas import (
    CompareRequest,
    CompareResponse,
    ExplainRequest,
    ExplainResponse,
    RecommendationListResponse,
)
from app.core.dependencies import (
    get_current_user_id,
    get_explanation_service,
    get_recommendation_service,
)
from app.domain.entities import RecommendationQuery
from app.domain.exceptions import BookNotFoundError, InvalidRequestError
from app.domain.services import IExplanationService, IRecommendationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.get("", response_model=RecommendationListResponse)
async def get_recommendations(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: int = Query(10, ge=1, le=50),
    debug: bool = False,
    format: Optional[Literal["paper", "ebook", "audiobook"]] = None,
    category_id: Optional[str] = None,
) -> RecommendationListResponse:
    """Personalised book suggestions for the caller.

    Each item carries its 0..1 score and up to four human-readable reasons.
    Users with too little history get popular books instead
    (``meta.fallback_used``).  ``debug=true`` adds the per-component scores.
    """
    query = RecommendationQuery(limit=limit, debug=debug, format=format, category_id=category_id)
    result = await recommendation_service.get_recommendations(user_id, query)
    return RecommendationListResponse.model_validate(result)


@router.post("/explain", response_model=ExplainResponse)
async def explain_recommendation(
    body: ExplainRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    explanation_service: Annotated[IExplanationService, Depends(get_explanation_service)],
) -> ExplainResponse:
    """Explain why a catalog book fits the caller, with up to 3 catalog alternatives."""
    try:
        result = await explanation_service.explain(user_id, body.book_id, body.context)
    except BookNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return ExplainResponse.model_validate(result)


@router.post("/compare", response_model=CompareResponse)
async def compare_books(
    body: CompareRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    explanation_service: Annotated[IExplanationService, Depends(get_explanation_service)],
) -> CompareResponse:
    """Compare 2-5 catalog books for the caller and name the best fit."""
    try:
        result = await explanation_service.compare(user_id, body.book_ids, body.question)
    except InvalidRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except BookNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return CompareResponse.model_validate(result)
