"""User Preference API routes.

Read-only views of the preference snapshot the recommendation engine uses:
  GET /preferences             - full snapshot
  GET /preferences/categories  - category affinities
  GET /preferences/authors     - author affinities
  GET /preferences/formats     - format affinities
  GET /preferences/stats       - reading statistics

Nothing here is stored; every call recomputes from the user's activity.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.schemas import (
    AuthorAffinityResponse,
    CategoryAffinityResponse,
    FormatAffinityResponse,
    ReadingStatsResponse,
    UserPreferencesResponse,
)
from app.core.dependencies import get_current_user_id, get_preference_service
from app.domain.services import IPreferenceService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.get("", response_model=UserPreferencesResponse)
async def get_preferences(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    pref_service: Annotated[IPreferenceService, Depends(get_preference_service)],
) -> UserPreferencesResponse:
    """Full preference snapshot: affinities, stats, negative signals, confidence."""
    preferences = await pref_service.get_user_preferences(user_id)
    return UserPreferencesResponse.model_validate(preferences)


@router.get("/categories", response_model=list[CategoryAffinityResponse])
async def get_category_affinities(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    pref_service: Annotated[IPreferenceService, Depends(get_preference_service)],
) -> list[CategoryAffinityResponse]:
    affinities = await pref_service.compute_category_affinity(user_id)
    return [CategoryAffinityResponse.model_validate(a) for a in affinities]


@router.get("/authors", response_model=list[AuthorAffinityResponse])
async def get_author_affinities(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    pref_service: Annotated[IPreferenceService, Depends(get_preference_service)],
) -> list[AuthorAffinityResponse]:
    affinities = await pref_service.compute_author_affinity(user_id)
    return [AuthorAffinityResponse.model_validate(a) for a in affinities]


@router.get("/formats", response_model=list[FormatAffinityResponse])
async def get_format_affinities(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    pref_service: Annotated[IPreferenceService, Depends(get_preference_service)],
) -> list[FormatAffinityResponse]:
    """Format affinities; purchases count double."""
    affinities = await pref_service.compute_format_affinity(user_id)
    return [FormatAffinityResponse.model_validate(a) for a in affinities]


@router.get("/stats", response_model=ReadingStatsResponse)
async def get_reading_stats(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    pref_service: Annotated[IPreferenceService, Depends(get_preference_service)],
) -> ReadingStatsResponse:
    stats = await pref_service.compute_reading_stats(user_id)
    return ReadingStatsResponse.model_validate(stats)
