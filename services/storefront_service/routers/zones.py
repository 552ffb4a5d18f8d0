"""Read-only logistics zone tree."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.db.session import get_async_db
from services.storefront_service.models import LogisticsZone
from services.storefront_service.schemas import LogisticsZone as LogisticsZoneResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


@router.get("/zones", response_model=list[LogisticsZoneResponse])
async def list_zones(
    parent_id: Optional[str] = Query(None, description="Omit for root zones"),
    db: AsyncSession = Depends(get_async_db),
):
    """List the children of ``parent_id`` ordered by name."""
    query = select(LogisticsZone)
    if parent_id is None:
        query = query.where(LogisticsZone.parent_id.is_(None))
    else:
        query = query.where(LogisticsZone.parent_id == parent_id)
    result = await db.execute(query.order_by(LogisticsZone.name))
    return result.scalars().all()
