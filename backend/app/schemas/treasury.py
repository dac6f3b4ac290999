from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional, Dict, List


class UnlockStepResponse(BaseModel):
    unlock_at: datetime
    percentage_bps: int
    amount: int = Field(..., description="Tokens released by this step (smallest units)")
    cumulative_amount: int
    unlocked: bool


class VestingStatusResponse(BaseModel):
    """Vesting status of one presale participant."""
    wallet_address: str
    total_allocation: int
    claimed_so_far: int
    total_vested: int
    claimable_now: int
    remaining: int = Field(..., description="Allocation not yet claimed")
    next_unlock_at: Optional[datetime] = None
    vesting_start: datetime
    schedule: List[UnlockStepResponse]


class ApproveParticipantRequest(BaseModel):
    wallet_address: str = Field(..., description="Participant's Solana wallet")
    total_allocation: int = Field(..., gt=0, description="Allocation in smallest token units")
    vesting_start: datetime


class ApproveParticipantResponse(BaseModel):
    wallet_address: str
    total_allocation: int
    vesting_start: datetime


class ClaimRequest(BaseModel):
    wallet_address: str
    amount: Optional[int] = Field(
        None, gt=0, description="Amount to claim; omit to claim everything claimable"
    )


class ClaimResponse(BaseModel):
    wallet_address: str
    amount: int
    tx_signature: str
    explorer_url: str
    claimed_so_far: int


class RecordCollectionRequest(BaseModel):
    amount: int = Field(..., ge=0, description="Collected fees in smallest token units")
    tx_count: int = Field(1, ge=0, description="Number of transactions the fees came from")


class RecordCollectionResponse(BaseModel):
    amount: int
    split: Dict[str, int]


class PendingFeesResponse(BaseModel):
    total_collected: int
    transaction_count: int
    first_collected_at: Optional[datetime] = None
    distribution: Dict[str, int]
    buckets: Dict[str, int] = Field(..., description="Bucket name to basis points")


class BucketPayoutResponse(BaseModel):
    bucket: str
    destination: str
    amount: int
    status: str
    tx_signature: Optional[str] = None
    error: Optional[str] = None


class DistributionResponse(BaseModel):
    dry_run: bool
    completed: bool
    cycle_id: Optional[str] = None
    total_collected: int
    transaction_count: int
    distribution: Dict[str, int]
    payouts: List[BucketPayoutResponse]
    failed_buckets: List[str]


class BurnRecordResponse(BaseModel):
    period: str
    amount: int
    status: str
    tx_signature: Optional[str] = None
    explorer_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime


class BurnStatsResponse(BaseModel):
    total_burns: int
    successful_burns: int
    failed_burns: int
    total_burned: int
    last_burn_date: Optional[datetime] = None


class BurnScheduleResponse(BaseModel):
    today: str
    next_burn_date: str
    days_until_burn: int
    is_burn_day: bool
