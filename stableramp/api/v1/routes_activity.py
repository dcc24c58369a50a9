# stableramp/api/v1/routes_activity.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stableramp.db.base import get_db
from stableramp.domain.activity.schemas import ActivityFeed
from stableramp.domain.activity.service import DEFAULT_LIMIT, get_activity_for_address
from stableramp.ledger.client import LedgerClient, get_ledger


router = APIRouter(prefix="/api/activity", tags=["activity"])


@router.get("/{address}", response_model=ActivityFeed)
async def get_activity_endpoint(
    address: str,
    limit: int = Query(DEFAULT_LIMIT),
    sync: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
):
    return await get_activity_for_address(db, ledger, address, limit=limit, sync=sync)
