import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.errors import ConfigurationError, InvalidAmountError, JobLockedError
from app.schemas.treasury import (
    BucketPayoutResponse,
    DistributionResponse,
    PendingFeesResponse,
    RecordCollectionRequest,
    RecordCollectionResponse,
)
from app.workers.fee_distribution import (
    distribute_pending_fees,
    export_fee_history,
    load_accountant,
    record_fee_collection,
)

from .common import require_admin

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/fees")


@router.get(
    "/pending",
    response_model=PendingFeesResponse,
    summary="Get pending fee ledger",
)
async def get_pending_fees() -> PendingFeesResponse:
    """Fees collected since the last completed distribution, split per bucket."""
    accountant = await load_accountant()
    pending = accountant.pending
    return PendingFeesResponse(
        total_collected=pending.total_collected,
        transaction_count=pending.transaction_count,
        first_collected_at=pending.first_collected_at,
        distribution=accountant.compute_distribution(),
        buckets={b.name: b.percentage_bps for b in accountant.config.buckets},
    )


@router.post(
    "/collections",
    response_model=RecordCollectionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record collected fees",
    dependencies=[Depends(require_admin)],
)
async def record_collection(request: RecordCollectionRequest) -> RecordCollectionResponse:
    try:
        shares = await record_fee_collection(request.amount, request.tx_count)
    except InvalidAmountError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except JobLockedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return RecordCollectionResponse(amount=request.amount, split=shares)


@router.post(
    "/distribute",
    response_model=DistributionResponse,
    summary="Distribute pending fees",
    dependencies=[Depends(require_admin)],
)
async def distribute(
    dry_run: bool = Query(False, description="Preview the split without sending"),
) -> DistributionResponse:
    """
    Send every bucket its share of the pending fees.

    A partially failed run leaves the ledger untouched; calling this again
    only resends the buckets that are still owed.
    """
    try:
        report = await distribute_pending_fees(dry_run=dry_run)
    except JobLockedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ConfigurationError as e:
        logger.error(f"Fee distribution misconfigured: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return DistributionResponse(
        dry_run=report.dry_run,
        completed=report.completed,
        cycle_id=report.cycle_id,
        total_collected=report.total_collected,
        transaction_count=report.transaction_count,
        distribution=report.distribution,
        payouts=[
            BucketPayoutResponse(
                bucket=p.bucket,
                destination=p.destination,
                amount=p.amount,
                status=p.status.value,
                tx_signature=p.tx_signature,
                error=p.error,
            )
            for p in report.payouts
        ],
        failed_buckets=report.failed_buckets,
    )


@router.get("/export", summary="Export fee history")
async def export_history() -> Dict[str, Any]:
    """Pending ledger, bucket config and every distribution cycle as JSON."""
    return await export_fee_history()
