"""
Reconciliation of transfers whose outcome was not observed.

A record is persisted with its signature before the transfer is submitted, so
after a crash or a confirmation timeout the ledger can be asked what happened.
Unknown outcomes stay UNCONFIRMED until they expire, and nothing that depends
on them may proceed.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from app.core.config import settings
from app.models.treasury import ClaimRecord, DistributionTransfer, TransferStatus
from app.services.ledger import LedgerSubmissionService

logger = logging.getLogger(__name__)

TransferRecord = Union[ClaimRecord, DistributionTransfer]

UNRESOLVED = (TransferStatus.PENDING, TransferStatus.UNCONFIRMED)


def _is_expired(record: TransferRecord, now: datetime) -> bool:
    return now - record.created_at > timedelta(seconds=settings.unconfirmed_expiry_seconds)


async def resolve_transfer(
    record: TransferRecord,
    ledger: LedgerSubmissionService,
    now: Optional[datetime] = None,
    save: bool = True,
) -> TransferStatus:
    """
    Ask the ledger about an unresolved record and update it.

    With `save=False` the caller persists the record, together with whatever
    else depends on the outcome, in its own transaction.
    """
    if record.status not in UNRESOLVED:
        return record.status

    now = now or datetime.now(timezone.utc)
    confirmed = None
    if record.tx_signature:
        try:
            confirmed = await ledger.get_transfer_status(record.tx_signature)
        except Exception as e:
            logger.warning(f"reconcile: status lookup failed for {record.tx_signature}: {e}")
            return record.status

    if confirmed is True:
        record.status = TransferStatus.CONFIRMED
        record.confirmed_at = now
    elif confirmed is False:
        record.status = TransferStatus.FAILED
        record.error = "transaction failed on-chain"
    elif _is_expired(record, now):
        record.status = TransferStatus.FAILED
        record.error = "transaction not found before expiry"
    else:
        logger.info(f"reconcile: {record.tx_signature} still unresolved")
        return record.status

    if save:
        await record.save()
    logger.info(f"reconcile: {record.tx_signature} resolved as {record.status.value}")
    return record.status
