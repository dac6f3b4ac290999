"""
Presale vesting claim handler.

A claim is validated against the vesting schedule, the transfer is prepared
and its signature persisted as a ClaimRecord, and only once the ledger has
confirmed the transfer does the participant's claimed_so_far move. Claims for
one wallet are serialized by a per-wallet job lock, so two concurrent requests
can never both spend the same claimable amount.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from tortoise.transactions import in_transaction

from app.accounting.loader import load_vesting_schedule
from app.accounting.vesting import (
    ParticipantAllocation,
    UnlockRow,
    VestingEvaluation,
    VestingScheduler,
)
from app.core.config import settings
from app.core.constants import CLAIM_LOCK_PREFIX
from app.core.errors import (
    ClaimPendingError,
    InvalidAmountError,
    ParticipantExistsError,
    ParticipantNotFoundError,
)
from app.models.treasury import ClaimRecord, Participant, TransferStatus
from app.services.ledger import (
    LedgerSubmissionError,
    LedgerSubmissionService,
    TransferUnconfirmedError,
)
from app.services.locks import job_lock
from app.services.solana import solana_ledger
from app.workers.reconcile import UNRESOLVED, resolve_transfer

logger = logging.getLogger(__name__)

_scheduler: Optional[VestingScheduler] = None


def get_vesting_scheduler() -> VestingScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = VestingScheduler(load_vesting_schedule(settings))
    return _scheduler


async def approve_participant(
    wallet_address: str,
    total_allocation: int,
    vesting_start: datetime,
) -> Participant:
    """Create the permanent allocation entry for an approved presale participant."""
    if vesting_start.tzinfo is None:
        vesting_start = vesting_start.replace(tzinfo=timezone.utc)
    # Validates amounts before touching the database
    ParticipantAllocation(total_allocation=total_allocation, vesting_start=vesting_start)

    if await Participant.filter(wallet_address=wallet_address).exists():
        raise ParticipantExistsError(f"participant {wallet_address} is already approved")

    participant = await Participant.create(
        wallet_address=wallet_address,
        total_allocation=total_allocation,
        vesting_start=vesting_start,
    )
    logger.info(
        f"claims: approved {wallet_address} allocation={total_allocation} "
        f"vesting_start={vesting_start.isoformat()}"
    )
    return participant


async def get_vesting_status(
    wallet_address: str,
    now: Optional[datetime] = None,
    scheduler: Optional[VestingScheduler] = None,
) -> tuple[Participant, VestingEvaluation, list[UnlockRow]]:
    scheduler = scheduler or get_vesting_scheduler()
    now = now or datetime.now(timezone.utc)

    participant = await Participant.get_or_none(wallet_address=wallet_address)
    if participant is None:
        raise ParticipantNotFoundError(f"no approved allocation for {wallet_address}")

    allocation = participant.to_allocation()
    return participant, scheduler.evaluate(allocation, now), scheduler.unlock_table(allocation)


async def _reconcile_claims(participant: Participant, ledger: LedgerSubmissionService) -> None:
    """
    Settle earlier claims whose transfer outcome was not observed.

    A transfer that landed is applied to claimed_so_far in the same
    transaction that marks its record confirmed, whatever the schedule now says.
    """
    unresolved = await ClaimRecord.filter(
        participant_id=participant.id, status__in=list(UNRESOLVED)
    ).order_by("created_at")

    for record in unresolved:
        status = await resolve_transfer(record, ledger, save=False)
        if status in UNRESOLVED:
            raise ClaimPendingError(
                f"claim {record.tx_signature} for {participant.wallet_address} is still unconfirmed"
            )

        async with in_transaction():
            await record.save()
            if status == TransferStatus.CONFIRMED:
                participant.claimed_so_far += record.amount
                await participant.save()

        if status == TransferStatus.CONFIRMED:
            logger.info(
                f"claims: applied late-confirmed claim {record.tx_signature} "
                f"for {participant.wallet_address}"
            )


async def claim_vested(
    wallet_address: str,
    amount: Optional[int] = None,
    now: Optional[datetime] = None,
    ledger: Optional[LedgerSubmissionService] = None,
    scheduler: Optional[VestingScheduler] = None,
) -> ClaimRecord:
    """
    Transfer vested tokens to the participant.

    `amount=None` claims everything currently claimable. Raises
    ExceedsClaimableError or InvalidAmountError before anything is sent, and
    re-raises ledger errors after recording the attempt.
    """
    ledger = ledger or solana_ledger
    scheduler = scheduler or get_vesting_scheduler()
    now = now or datetime.now(timezone.utc)

    async with job_lock(f"{CLAIM_LOCK_PREFIX}{wallet_address}"):
        participant = await Participant.get_or_none(wallet_address=wallet_address)
        if participant is None:
            raise ParticipantNotFoundError(f"no approved allocation for {wallet_address}")

        await _reconcile_claims(participant, ledger)

        allocation = participant.to_allocation()
        if amount is None:
            evaluation = scheduler.evaluate(allocation, now)
            if evaluation.claimable_now == 0:
                next_unlock = (
                    evaluation.next_unlock_at.isoformat() if evaluation.next_unlock_at else "never"
                )
                raise InvalidAmountError(
                    f"nothing to claim for {wallet_address}, next unlock: {next_unlock}"
                )
            amount = evaluation.claimable_now

        # Validation only; persisted after confirmation
        updated = scheduler.record_claim(allocation, amount, now)

        prepared = await ledger.prepare_transfer(wallet_address, amount, label="claim")
        record = await ClaimRecord.create(
            participant=participant,
            amount=amount,
            tx_signature=prepared.signature,
            status=TransferStatus.PENDING,
        )

        try:
            await ledger.submit(prepared)
        except TransferUnconfirmedError as e:
            record.status = TransferStatus.UNCONFIRMED
            record.error = str(e)
            await record.save()
            logger.warning(f"claims: {wallet_address} transfer unconfirmed: {e}")
            raise
        except LedgerSubmissionError as e:
            record.status = TransferStatus.FAILED
            record.error = str(e)
            await record.save()
            logger.error(f"claims: {wallet_address} transfer failed: {e}")
            raise

        async with in_transaction():
            record.status = TransferStatus.CONFIRMED
            record.confirmed_at = datetime.now(timezone.utc)
            await record.save()
            participant.claimed_so_far = updated.claimed_so_far
            await participant.save()

        logger.info(
            f"claims: {wallet_address} claimed {amount} "
            f"(total {updated.claimed_so_far}/{updated.total_allocation}) tx={record.tx_signature}"
        )
        return record
