"""Preference (onboarding) API routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from advisor.api.deps import get_user_id
from advisor.api.schemas import PreferencesEnvelope, PreferencesRequest, PreferencesResponse
from advisor.models.database import get_db
from advisor.services.preferences import preference_service, to_preferences

logger = logging.getLogger(__name__)

router = APIRouter(tags=["preferences"])


@router.get("/api/preferences", response_model=PreferencesEnvelope)
@router.get("/api/onboarding", response_model=PreferencesEnvelope)
async def get_preferences(user_id: str = Depends(get_user_id), db: AsyncSession = Depends(get_db)):
    try:
        prefs = await preference_service.get_preferences(db, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load preferences for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load preferences")
    if prefs is None:
        return PreferencesEnvelope(preferences=None)
    return PreferencesEnvelope(
        preferences=PreferencesResponse(
            assets=prefs.assets, investor_type=prefs.investor_type, content_types=prefs.content_types
        )
    )


@router.post("/api/preferences", response_model=PreferencesEnvelope)
@router.post("/api/onboarding", response_model=PreferencesEnvelope)
async def save_preferences(
    req: PreferencesRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    assets = [a.strip().lower() for a in req.assets if a.strip()]
    try:
        row = await preference_service.upsert_preferences(
            db, user_id, assets, req.investor_type.strip(), req.content_types
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to save preferences for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save preferences")
    prefs = to_preferences(row)
    return PreferencesEnvelope(
        preferences=PreferencesResponse(
            assets=prefs.assets, investor_type=prefs.investor_type, content_types=prefs.content_types
        )
    )
