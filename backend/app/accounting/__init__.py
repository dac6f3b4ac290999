from app.accounting.fees import (
    FeeBucket,
    FeeBucketConfig,
    FeeSplitAccountant,
    PendingCollection,
    split,
)
from app.accounting.vesting import (
    ParticipantAllocation,
    UnlockStep,
    VestingEvaluation,
    VestingSchedule,
    VestingScheduler,
    evaluate,
    record_claim,
)

__all__ = [
    "FeeBucket",
    "FeeBucketConfig",
    "FeeSplitAccountant",
    "PendingCollection",
    "split",
    "ParticipantAllocation",
    "UnlockStep",
    "VestingEvaluation",
    "VestingSchedule",
    "VestingScheduler",
    "evaluate",
    "record_claim",
]
