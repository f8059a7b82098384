from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from goodgrid.db import get_session
from goodgrid.deps import get_actor_id
from goodgrid.schemas.rewards import RewardDistributionPublic, UserStatsPublic
from goodgrid.services.rewards import get_user_stats, reward_history

router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("/stats", response_model=UserStatsPublic)
async def my_stats(
    actor_id: UUID = Depends(get_actor_id),
    session: AsyncSession = Depends(get_session),
):
    stats = await get_user_stats(session, actor_id)
    if not stats:
        raise HTTPException(status_code=404, detail="No rewards yet")
    return UserStatsPublic.model_validate(stats)


@router.get("/history", response_model=list[RewardDistributionPublic])
async def my_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor_id: UUID = Depends(get_actor_id),
    session: AsyncSession = Depends(get_session),
):
    rows = await reward_history(session, actor_id, limit=limit, offset=offset)
    return [RewardDistributionPublic.model_validate(r) for r in rows]
