# stableramp/api/v1/routes_activity_history.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stableramp.db.base import get_db
from stableramp.domain.activity_history.schemas import ActivityHistoryOut, ActivityHistoryPage, ActivityLogIn
from stableramp.domain.activity_history.service import list_activity_history, log_activity


router = APIRouter(prefix="/api/activity-history", tags=["activity-history"])


@router.post("/log", response_model=ActivityHistoryOut)
async def log_activity_endpoint(
    payload: ActivityLogIn,
    db: AsyncSession = Depends(get_db),
):
    return await log_activity(db, payload)


@router.get("", response_model=ActivityHistoryPage)
async def list_activity_history_endpoint(
    wallet_address: str = Query(""),
    limit: int = Query(50),
    offset: int = Query(0),
    db: AsyncSession = Depends(get_db),
):
    return await list_activity_history(db, wallet_address, limit=limit, offset=offset)
