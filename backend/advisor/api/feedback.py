"""Feedback (vote) API routes."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from advisor.api.deps import get_user_id
from advisor.api.schemas import (
    FeedbackClearRequest,
    FeedbackQueryResponse,
    FeedbackSetRequest,
    FeedbackVoteResponse,
)
from advisor.models.database import get_db
from advisor.services.feedback import feedback_service

router = APIRouter(prefix="/api/feedback", tags=["feedback"])

MAX_QUERY_IDS = 200


@router.get("/query", response_model=FeedbackQueryResponse)
async def query_votes(
    type: str = Query(..., min_length=1),
    ids: str = Query(default=""),
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    target_ids = [i.strip() for i in ids.split(",") if i.strip()][:MAX_QUERY_IDS]
    votes = await feedback_service.query_votes(db, user_id, type, target_ids)
    return FeedbackQueryResponse(votes=votes)


@router.post("/set", response_model=FeedbackVoteResponse)
async def set_vote(
    req: FeedbackSetRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        final = await feedback_service.set_vote(db, user_id, req.type, req.id, req.vote)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return FeedbackVoteResponse(type=req.type, id=req.id, vote=final)


@router.post("/clear", response_model=FeedbackVoteResponse)
async def clear_vote(
    req: FeedbackClearRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    await feedback_service.clear_vote(db, user_id, req.type, req.id)
    return FeedbackVoteResponse(type=req.type, id=req.id, vote=0)
