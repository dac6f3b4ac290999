"""
Monthly auto-burn worker.

Runs every day at 00:00 UTC and acts only on the last day of the month: it
runs the fee distribution cycle, and the burn bucket's transfer to the burn
wallet is logged as that month's BurnRecord (with a Solscan link as public
proof). A month with a confirmed BurnRecord is never burned twice.

All calendar math is on UTC dates so the run day does not depend on the host
timezone.
"""

import asyncio
import calendar
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from app.accounting.fees import FeeBucketConfig
from app.core.config import settings
from app.models.treasury import BurnRecord, TransferStatus
from app.services.ledger import LedgerSubmissionService
from app.workers.fee_distribution import distribute_pending_fees

logger = logging.getLogger(__name__)

# Run at 00:00 UTC each day
DAILY_RUN_TIME = time(0, 0, tzinfo=timezone.utc)
RETRY_DELAY_SECONDS = 300


def last_day_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def is_last_day_of_month(day: date) -> bool:
    return day == last_day_of_month(day)


def next_burn_date(day: date) -> date:
    """The burn day of `day`'s month (today when today is the last day)."""
    return last_day_of_month(day)


def days_until_burn(day: date) -> int:
    return (next_burn_date(day) - day).days


def burn_period(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def _seconds_until(target: time, now: Optional[datetime] = None) -> float:
    """Return seconds from now until the next occurrence of `target` (UTC)."""
    now = now or datetime.now(timezone.utc)
    target_dt = datetime.combine(now.date(), target)
    if target_dt <= now:
        target_dt += timedelta(days=1)
    return (target_dt - now).total_seconds()


async def run_monthly_burn(
    now: Optional[datetime] = None,
    force: bool = False,
    ledger: Optional[LedgerSubmissionService] = None,
    buckets: Optional[FeeBucketConfig] = None,
) -> Optional[BurnRecord]:
    """
    Execute this month's burn if due.

    Returns the BurnRecord written, or None when nothing was due or there was
    nothing to burn. `force` skips the last-day-of-month check (manual run).
    """
    now = now or datetime.now(timezone.utc)
    today = now.date()

    if not force and not is_last_day_of_month(today):
        logger.info(f"monthly_burn: {days_until_burn(today)} days until next burn")
        return None

    period = burn_period(today)
    if await BurnRecord.filter(period=period, status=TransferStatus.CONFIRMED).exists():
        logger.info(f"monthly_burn: {period} already burned, skipping")
        return None

    logger.info(f"monthly_burn: executing burn for {period}")
    report = await distribute_pending_fees(ledger=ledger, buckets=buckets)

    burn_bucket = settings.burn_bucket
    if not report.completed:
        record = await BurnRecord.create(
            period=period,
            amount=0,
            status=TransferStatus.FAILED,
            error=f"distribution incomplete, failed buckets: {report.failed_buckets}",
        )
        logger.error(f"monthly_burn: {period} burn failed: {record.error}")
        return record

    burned = [
        p for p in report.payouts
        if p.bucket == burn_bucket and p.status == TransferStatus.CONFIRMED
    ]
    if not burned:
        logger.warning("monthly_burn: no funds to burn this month")
        return None

    signature = burned[-1].tx_signature
    record = await BurnRecord.create(
        period=period,
        amount=sum(p.amount for p in burned),
        status=TransferStatus.CONFIRMED,
        tx_signature=signature,
        explorer_url=settings.explorer_url(signature),
    )
    logger.info(
        f"monthly_burn: burned {record.amount} for {period} tx={signature} "
        f"view={record.explorer_url}"
    )
    return record


async def get_burn_history() -> List[BurnRecord]:
    return await BurnRecord.all().order_by("created_at")


async def get_burn_stats() -> Dict[str, Any]:
    records = await get_burn_history()
    confirmed = [r for r in records if r.status == TransferStatus.CONFIRMED]
    failed = [r for r in records if r.status == TransferStatus.FAILED]
    return {
        "total_burns": len(records),
        "successful_burns": len(confirmed),
        "failed_burns": len(failed),
        "total_burned": sum(r.amount for r in confirmed),
        "last_burn_date": records[-1].created_at if records else None,
    }


async def _do_monthly_burn() -> bool:
    try:
        record = await run_monthly_burn()
    except Exception as e:
        logger.error(f"monthly_burn: burn run failed: {e}")
        return False
    return record is None or record.status == TransferStatus.CONFIRMED


async def monthly_burn_loop() -> None:
    """Background loop that checks for the monthly burn once per day."""
    # Run once on startup in case the service was down at 00:00 on burn day
    logger.info("monthly_burn: checking if burn is due on startup...")
    await _do_monthly_burn()

    while True:
        wait = _seconds_until(DAILY_RUN_TIME)
        logger.info(f"monthly_burn: next check in {wait:.0f}s")
        await asyncio.sleep(wait)

        while True:
            logger.info(f"monthly_burn: daily burn check at {datetime.now(timezone.utc).isoformat()}")
            if await _do_monthly_burn():
                break
            logger.info(f"monthly_burn: retrying in {RETRY_DELAY_SECONDS // 60} minutes")
            await asyncio.sleep(RETRY_DELAY_SECONDS)

        # Avoid double-firing on the same second
        await asyncio.sleep(60)
