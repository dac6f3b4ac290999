import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.config import settings
from app.core.errors import (
    ClaimPendingError,
    ExceedsClaimableError,
    InvalidAmountError,
    JobLockedError,
    ParticipantExistsError,
    ParticipantNotFoundError,
)
from app.models.treasury import Participant
from app.schemas.treasury import (
    ApproveParticipantRequest,
    ApproveParticipantResponse,
    ClaimRequest,
    ClaimResponse,
    UnlockStepResponse,
    VestingStatusResponse,
)
from app.services.ledger import LedgerSubmissionError, TransferUnconfirmedError
from app.workers.claims import approve_participant, claim_vested, get_vesting_status

from .common import require_admin, require_wallet

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/vesting")


@router.get(
    "/{wallet_address}",
    response_model=VestingStatusResponse,
    summary="Get vesting status",
)
async def get_vesting(wallet_address: str) -> VestingStatusResponse:
    """Allocation, vested and claimable amounts, and the unlock schedule for a wallet."""
    wallet_address = require_wallet(wallet_address)
    now = datetime.now(timezone.utc)
    try:
        participant, evaluation, table = await get_vesting_status(wallet_address, now)
    except ParticipantNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Participant not found",
        )

    return VestingStatusResponse(
        wallet_address=participant.wallet_address,
        total_allocation=participant.total_allocation,
        claimed_so_far=participant.claimed_so_far,
        total_vested=evaluation.total_vested,
        claimable_now=evaluation.claimable_now,
        remaining=participant.total_allocation - participant.claimed_so_far,
        next_unlock_at=evaluation.next_unlock_at,
        vesting_start=participant.vesting_start,
        schedule=[
            UnlockStepResponse(
                unlock_at=row.unlock_at,
                percentage_bps=row.percentage_bps,
                amount=row.amount,
                cumulative_amount=row.cumulative_amount,
                unlocked=row.unlock_at <= now,
            )
            for row in table
        ],
    )


@router.post(
    "/claim",
    response_model=ClaimResponse,
    summary="Claim vested tokens",
)
async def claim(request: ClaimRequest) -> ClaimResponse:
    """Transfer currently claimable tokens to the participant's wallet."""
    wallet_address = require_wallet(request.wallet_address)
    try:
        record = await claim_vested(wallet_address, amount=request.amount)
    except ParticipantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Participant not found")
    except ExceedsClaimableError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InvalidAmountError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (ClaimPendingError, JobLockedError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except TransferUnconfirmedError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Transfer sent but not yet confirmed: {e.signature}",
        )
    except LedgerSubmissionError as e:
        logger.error(f"Claim transfer failed for {wallet_address}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Transfer failed")

    participant = await Participant.get(wallet_address=wallet_address)
    return ClaimResponse(
        wallet_address=wallet_address,
        amount=record.amount,
        tx_signature=record.tx_signature,
        explorer_url=settings.explorer_url(record.tx_signature),
        claimed_so_far=participant.claimed_so_far,
    )


@router.post(
    "/participants",
    response_model=ApproveParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Approve a presale participant",
    dependencies=[Depends(require_admin)],
)
async def approve(request: ApproveParticipantRequest) -> ApproveParticipantResponse:
    wallet_address = require_wallet(request.wallet_address)
    try:
        participant = await approve_participant(
            wallet_address, request.total_allocation, request.vesting_start
        )
    except InvalidAmountError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ParticipantExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return ApproveParticipantResponse(
        wallet_address=participant.wallet_address,
        total_allocation=participant.total_allocation,
        vesting_start=participant.vesting_start,
    )
