from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter

from app.schemas.treasury import BurnRecordResponse, BurnScheduleResponse, BurnStatsResponse
from app.workers.monthly_burn import (
    days_until_burn,
    get_burn_history,
    get_burn_stats,
    is_last_day_of_month,
    next_burn_date,
)

router = APIRouter(prefix="/burns")


@router.get(
    "/history",
    response_model=List[BurnRecordResponse],
    summary="Get burn history",
)
async def burn_history() -> List[BurnRecordResponse]:
    records = await get_burn_history()
    return [
        BurnRecordResponse(
            period=r.period,
            amount=r.amount,
            status=r.status.value,
            tx_signature=r.tx_signature,
            explorer_url=r.explorer_url,
            error=r.error,
            created_at=r.created_at,
        )
        for r in records
    ]


@router.get(
    "/stats",
    response_model=BurnStatsResponse,
    summary="Get burn statistics",
)
async def burn_stats() -> BurnStatsResponse:
    return BurnStatsResponse(**await get_burn_stats())


@router.get(
    "/schedule",
    response_model=BurnScheduleResponse,
    summary="Get next burn date",
)
async def burn_schedule() -> BurnScheduleResponse:
    """Burns run on the last day of each month (UTC)."""
    today = datetime.now(timezone.utc).date()
    return BurnScheduleResponse(
        today=today.isoformat(),
        next_burn_date=next_burn_date(today).isoformat(),
        days_until_burn=days_until_burn(today),
        is_burn_day=is_last_day_of_month(today),
    )
