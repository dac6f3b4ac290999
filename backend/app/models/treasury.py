"""
Tortoise ORM models for the treasury.

These models track:
- Approved presale allocations and their claims
- The persisted pending fee ledger
- Fee distribution cycles and each bucket transfer
- Monthly burn records
"""

from tortoise import fields, models
from enum import Enum

from app.accounting.vesting import ParticipantAllocation


class TransferStatus(str, Enum):
    """Lifecycle of one outgoing transfer."""
    PENDING = "pending"          # about to be submitted
    UNCONFIRMED = "unconfirmed"  # sent, confirmation unknown
    CONFIRMED = "confirmed"
    FAILED = "failed"


class CycleStatus(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"


class Participant(models.Model):
    """
    An approved presale allocation.

    Permanent ledger entry: created on approval, only claimed_so_far changes,
    and only after a claim transfer is confirmed.
    """
    id = fields.UUIDField(pk=True)

    wallet_address = fields.CharField(max_length=128, unique=True)

    total_allocation = fields.BigIntField()  # In smallest units
    claimed_so_far = fields.BigIntField(default=0)
    vesting_start = fields.DatetimeField()

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "participants"

    def to_allocation(self) -> ParticipantAllocation:
        return ParticipantAllocation(
            total_allocation=self.total_allocation,
            vesting_start=self.vesting_start,
            claimed_so_far=self.claimed_so_far,
        )


class ClaimRecord(models.Model):
    """One claim transfer. Persisted before the allocation is updated."""
    id = fields.UUIDField(pk=True)

    participant = fields.ForeignKeyField(
        "models.Participant", related_name="claims", on_delete=fields.RESTRICT
    )
    amount = fields.BigIntField()

    status = fields.CharEnumField(TransferStatus, max_length=20, default=TransferStatus.PENDING)
    tx_signature = fields.CharField(max_length=128, null=True, index=True)
    error = fields.TextField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    confirmed_at = fields.DatetimeField(null=True)

    class Meta:
        table = "claim_records"


class FeeLedgerState(models.Model):
    """Serialized FeeSplitAccountant (see FeeSplitAccountant.to_dict)."""
    name = fields.CharField(max_length=64, pk=True)
    state = fields.JSONField()
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "fee_ledger_state"


class DistributionCycle(models.Model):
    """One attempt to pay out the pending fee ledger, possibly over several retries."""
    id = fields.UUIDField(pk=True)

    ledger_name = fields.CharField(max_length=64, index=True)
    status = fields.CharEnumField(CycleStatus, max_length=20, default=CycleStatus.OPEN)

    total_distributed = fields.BigIntField(default=0)
    transaction_count = fields.IntField(default=0)

    started_at = fields.DatetimeField(auto_now_add=True)
    completed_at = fields.DatetimeField(null=True)

    class Meta:
        table = "distribution_cycles"


class DistributionTransfer(models.Model):
    """A bucket payout inside a distribution cycle."""
    id = fields.UUIDField(pk=True)

    cycle = fields.ForeignKeyField(
        "models.DistributionCycle", related_name="transfers", on_delete=fields.CASCADE
    )
    bucket = fields.CharField(max_length=64)
    destination = fields.CharField(max_length=128)
    amount = fields.BigIntField()

    status = fields.CharEnumField(TransferStatus, max_length=20, default=TransferStatus.PENDING)
    tx_signature = fields.CharField(max_length=128, null=True, index=True)
    error = fields.TextField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    confirmed_at = fields.DatetimeField(null=True)

    class Meta:
        table = "distribution_transfers"


class BurnRecord(models.Model):
    """Monthly burn log entry, one confirmed entry per period at most."""
    id = fields.UUIDField(pk=True)

    period = fields.CharField(max_length=7, index=True)  # YYYY-MM
    amount = fields.BigIntField(default=0)
    status = fields.CharEnumField(TransferStatus, max_length=20)
    tx_signature = fields.CharField(max_length=128, null=True)
    explorer_url = fields.CharField(max_length=256, null=True)
    error = fields.TextField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "burn_records"
