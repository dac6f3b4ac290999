"""
Fee distribution job.

Pays the pending fee ledger out to each bucket's wallet:

  1. load the persisted FeeSplitAccountant and take compute_distribution()
  2. open (or resume) a DistributionCycle
  3. for each bucket send what is still owed in this cycle
     (distribution[bucket] minus confirmed transfers already in the cycle)
  4. only when every bucket owes nothing: flush(), persist, close the cycle

A failed or unconfirmed bucket leaves the ledger untouched, so re-running the
job resends only the buckets that are still owed. All of this runs under the
fee ledger job lock, as does recording new collections.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from tortoise.transactions import in_transaction

from app.accounting.fees import FeeBucketConfig, FeeSplitAccountant
from app.accounting.loader import load_fee_buckets
from app.core.config import settings
from app.core.constants import FEE_LEDGER_LOCK
from app.models.treasury import (
    CycleStatus,
    DistributionCycle,
    DistributionTransfer,
    FeeLedgerState,
    TransferStatus,
)
from app.services.ledger import (
    LedgerSubmissionError,
    LedgerSubmissionService,
    TransferUnconfirmedError,
)
from app.services.locks import job_lock
from app.services.solana import solana_ledger
from app.workers.reconcile import UNRESOLVED, resolve_transfer

logger = logging.getLogger(__name__)


@dataclass
class BucketPayout:
    bucket: str
    destination: str
    amount: int
    status: TransferStatus
    tx_signature: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DistributionReport:
    dry_run: bool
    distribution: Dict[str, int]
    total_collected: int
    transaction_count: int
    completed: bool = False
    cycle_id: Optional[str] = None
    payouts: List[BucketPayout] = field(default_factory=list)

    @property
    def signatures(self) -> List[str]:
        return [
            p.tx_signature
            for p in self.payouts
            if p.status == TransferStatus.CONFIRMED and p.tx_signature
        ]

    @property
    def failed_buckets(self) -> List[str]:
        """Buckets whose latest payout attempt is not confirmed."""
        latest: Dict[str, BucketPayout] = {}
        for payout in self.payouts:
            latest[payout.bucket] = payout
        return sorted(b for b, p in latest.items() if p.status != TransferStatus.CONFIRMED)

    def payout_for(self, bucket: str) -> Optional[BucketPayout]:
        """Latest confirmed payout for a bucket."""
        for payout in reversed(self.payouts):
            if payout.bucket == bucket and payout.status == TransferStatus.CONFIRMED:
                return payout
        return None


def _buckets(buckets: Optional[FeeBucketConfig]) -> FeeBucketConfig:
    return buckets if buckets is not None else load_fee_buckets(settings)


async def load_accountant(buckets: Optional[FeeBucketConfig] = None) -> FeeSplitAccountant:
    """Restore the persisted ledger under the live bucket config."""
    config = _buckets(buckets)
    row = await FeeLedgerState.get_or_none(name=settings.fee_ledger_name)
    if row is None:
        return FeeSplitAccountant(config)
    return FeeSplitAccountant.from_dict(row.state, buckets=config)


async def save_accountant(accountant: FeeSplitAccountant) -> None:
    await FeeLedgerState.update_or_create(
        name=settings.fee_ledger_name,
        defaults={"state": accountant.to_dict()},
    )


async def record_fee_collection(
    amount: int,
    tx_count: int = 1,
    collected_at: Optional[datetime] = None,
    buckets: Optional[FeeBucketConfig] = None,
) -> Dict[str, int]:
    """Add observed fees to the pending ledger. Returns this collection's split."""
    async with job_lock(FEE_LEDGER_LOCK):
        accountant = await load_accountant(buckets)
        shares = accountant.record_collection(amount, tx_count, collected_at)
        await save_accountant(accountant)

    logger.info(
        f"fee_distribution: recorded {amount} from {tx_count} txs -> "
        + ", ".join(f"{name}={share}" for name, share in shares.items())
    )
    return shares


def _log_report(report: DistributionReport, accountant: FeeSplitAccountant) -> None:
    logger.info(
        f"fee_distribution: pending total={report.total_collected} "
        f"transactions={report.transaction_count}"
    )
    for bucket in accountant.config.buckets:
        pct = bucket.percentage_bps / 100
        logger.info(
            f"fee_distribution:   {bucket.name} ({pct:g}%): "
            f"{report.distribution.get(bucket.name, 0)}"
        )


def _payout(row: DistributionTransfer) -> BucketPayout:
    return BucketPayout(
        bucket=row.bucket,
        destination=row.destination,
        amount=row.amount,
        status=row.status,
        tx_signature=row.tx_signature,
        error=row.error,
    )


async def _send_bucket(
    cycle: DistributionCycle,
    bucket: str,
    destination: str,
    amount: int,
    ledger: LedgerSubmissionService,
) -> BucketPayout:
    try:
        prepared = await ledger.prepare_transfer(destination, amount, label=bucket)
    except LedgerSubmissionError as e:
        logger.error(f"fee_distribution: could not prepare {bucket} transfer: {e}")
        return BucketPayout(bucket, destination, amount, TransferStatus.FAILED, error=str(e))

    row = await DistributionTransfer.create(
        cycle=cycle,
        bucket=bucket,
        destination=destination,
        amount=amount,
        tx_signature=prepared.signature,
        status=TransferStatus.PENDING,
    )

    try:
        await ledger.submit(prepared)
    except TransferUnconfirmedError as e:
        row.status = TransferStatus.UNCONFIRMED
        row.error = str(e)
        logger.warning(f"fee_distribution: {bucket} transfer unconfirmed: {e}")
    except LedgerSubmissionError as e:
        row.status = TransferStatus.FAILED
        row.error = str(e)
        logger.error(f"fee_distribution: {bucket} transfer failed: {e}")
    else:
        row.status = TransferStatus.CONFIRMED
        row.confirmed_at = datetime.now(timezone.utc)
        logger.info(f"fee_distribution: {bucket} {amount} -> {destination} tx={row.tx_signature}")
    await row.save()
    return _payout(row)


async def _distribute_locked(
    dry_run: bool,
    ledger: LedgerSubmissionService,
    buckets: Optional[FeeBucketConfig],
) -> DistributionReport:
    accountant = await load_accountant(buckets)
    pending = accountant.pending
    report = DistributionReport(
        dry_run=dry_run,
        distribution=accountant.compute_distribution(),
        total_collected=pending.total_collected,
        transaction_count=pending.transaction_count,
    )
    _log_report(report, accountant)

    if dry_run:
        logger.info("fee_distribution: dry run, no transactions sent")
        return report

    cycle = await DistributionCycle.filter(
        ledger_name=settings.fee_ledger_name, status=CycleStatus.OPEN
    ).first()
    if cycle is None:
        if pending.total_collected == 0:
            logger.info("fee_distribution: nothing pending")
            report.completed = True
            return report
        cycle = await DistributionCycle.create(ledger_name=settings.fee_ledger_name)
        logger.info(f"fee_distribution: opened cycle {cycle.id}")
    else:
        logger.info(f"fee_distribution: resuming cycle {cycle.id}")
    report.cycle_id = str(cycle.id)

    sent: Dict[str, int] = defaultdict(int)
    blocked = False
    for row in await DistributionTransfer.filter(cycle_id=cycle.id).order_by("created_at"):
        if row.status in UNRESOLVED:
            await resolve_transfer(row, ledger)
        if row.status in UNRESOLVED:
            blocked = True
        elif row.status == TransferStatus.CONFIRMED:
            sent[row.bucket] += row.amount
        report.payouts.append(_payout(row))

    if blocked:
        logger.warning(
            f"fee_distribution: cycle {cycle.id} has unconfirmed transfers, "
            "not sending until they resolve"
        )
        return report

    all_settled = True
    for bucket in accountant.config.buckets:
        owed = report.distribution.get(bucket.name, 0) - sent[bucket.name]
        if owed == 0:
            continue
        if owed < 0:
            logger.error(
                f"fee_distribution: {bucket.name} was sent {sent[bucket.name]}, "
                f"more than the pending {report.distribution.get(bucket.name, 0)}"
            )
            all_settled = False
            continue
        if not bucket.destination:
            logger.error(f"fee_distribution: no destination wallet for bucket {bucket.name}")
            report.payouts.append(
                BucketPayout(
                    bucket.name, "", owed, TransferStatus.FAILED,
                    error="no destination wallet configured",
                )
            )
            all_settled = False
            continue

        payout = await _send_bucket(cycle, bucket.name, bucket.destination, owed, ledger)
        report.payouts.append(payout)
        if payout.status != TransferStatus.CONFIRMED:
            all_settled = False

    if not all_settled:
        logger.warning(
            f"fee_distribution: cycle {cycle.id} incomplete, failed buckets: "
            f"{report.failed_buckets}; pending ledger left unchanged"
        )
        return report

    flushed = accountant.flush()
    async with in_transaction():
        await save_accountant(accountant)
        cycle.status = CycleStatus.COMPLETED
        cycle.total_distributed = flushed.total_collected
        cycle.transaction_count = flushed.transaction_count
        cycle.completed_at = datetime.now(timezone.utc)
        await cycle.save()

    report.completed = True
    logger.info(
        f"fee_distribution: cycle {cycle.id} complete, {len(report.signatures)} transfers"
    )
    return report


async def distribute_pending_fees(
    dry_run: bool = False,
    ledger: Optional[LedgerSubmissionService] = None,
    buckets: Optional[FeeBucketConfig] = None,
) -> DistributionReport:
    async with job_lock(FEE_LEDGER_LOCK):
        return await _distribute_locked(dry_run, ledger or solana_ledger, buckets)


async def export_fee_history(buckets: Optional[FeeBucketConfig] = None) -> Dict[str, Any]:
    accountant = await load_accountant(buckets)
    history = accountant.export_history()

    cycles = []
    for cycle in await DistributionCycle.filter(
        ledger_name=settings.fee_ledger_name
    ).order_by("started_at"):
        transfers = await DistributionTransfer.filter(cycle_id=cycle.id).order_by("created_at")
        cycles.append(
            {
                "id": str(cycle.id),
                "status": cycle.status.value,
                "total_distributed": cycle.total_distributed,
                "transaction_count": cycle.transaction_count,
                "started_at": cycle.started_at.isoformat() if cycle.started_at else None,
                "completed_at": cycle.completed_at.isoformat() if cycle.completed_at else None,
                "transfers": [
                    {
                        "bucket": t.bucket,
                        "destination": t.destination,
                        "amount": t.amount,
                        "status": t.status.value,
                        "tx_signature": t.tx_signature,
                    }
                    for t in transfers
                ],
            }
        )
    history["cycles"] = cycles
    return history
