"""
Day-granular step vesting for presale allocations.

A schedule is a list of unlock steps, each releasing `percentage_bps` of the
allocation once `offset_days` whole days have elapsed since `vesting_start`.
Day granularity keeps evaluation stable across clock skew and timezones:

    elapsed_days  = floor((now - vesting_start) / 1 day)
    vested_bps    = sum(step.percentage_bps for steps with offset_days <= elapsed_days)
    total_vested  = total_allocation * vested_bps // 10_000

Vested amounts always truncate, so the sum over all steps can never exceed the
allocation. Schedules may sum to less than 100%; the difference is a reserve.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Sequence

from app.core.constants import (
    BPS_DENOMINATOR,
    DEFAULT_DAILY_RELEASE_BPS,
    DEFAULT_VESTING_DAYS,
    ONE_DAY,
)
from app.core.errors import (
    ConfigurationError,
    ExceedsClaimableError,
    InvalidAmountError,
)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True, slots=True)
class UnlockStep:
    offset_days: int     # whole days after vesting_start
    percentage_bps: int  # share released at this step (0-10000)

    def __post_init__(self) -> None:
        if not _is_int(self.offset_days) or self.offset_days < 0:
            raise ConfigurationError(
                f"offset_days must be a non-negative integer, got {self.offset_days!r}"
            )
        if not _is_int(self.percentage_bps) or not 0 <= self.percentage_bps <= BPS_DENOMINATOR:
            raise ConfigurationError(
                f"percentage_bps must be an integer in [0, {BPS_DENOMINATOR}], "
                f"got {self.percentage_bps!r}"
            )


@dataclass(frozen=True, slots=True)
class VestingSchedule:
    """Validated, ascending unlock steps. Construct via the factories when loading config."""

    steps: tuple[UnlockStep, ...] = ()

    def __post_init__(self) -> None:
        steps = tuple(self.steps)
        object.__setattr__(self, "steps", steps)

        for step in steps:
            if not isinstance(step, UnlockStep):
                raise ConfigurationError(f"schedule step must be an UnlockStep, got {step!r}")

        offsets = [step.offset_days for step in steps]
        if len(set(offsets)) != len(offsets):
            raise ConfigurationError(f"duplicate offset_days in vesting schedule: {offsets}")
        if offsets != sorted(offsets):
            raise ConfigurationError(f"vesting steps must be sorted by offset_days: {offsets}")

        total = sum(step.percentage_bps for step in steps)
        if total > BPS_DENOMINATOR:
            raise ConfigurationError(
                f"vesting schedule releases {total} bps, more than {BPS_DENOMINATOR}"
            )

    @property
    def total_bps(self) -> int:
        return sum(step.percentage_bps for step in self.steps)

    @classmethod
    def from_config(cls, entries: Iterable[Any]) -> "VestingSchedule":
        """
        Build a schedule from JSON-style entries.

        Each entry is a mapping with `offset_days` and either `percentage_bps`
        or a whole-number `percentage` (converted to bps). Entries are sorted by
        offset; duplicate offsets are rejected rather than summed.
        """
        steps = []
        for entry in entries:
            if isinstance(entry, UnlockStep):
                steps.append(entry)
                continue
            if not isinstance(entry, dict):
                raise ConfigurationError(f"invalid vesting step entry: {entry!r}")
            if "offset_days" not in entry:
                raise ConfigurationError(f"vesting step is missing offset_days: {entry!r}")

            if "percentage_bps" in entry:
                bps = entry["percentage_bps"]
            elif "percentage" in entry:
                if not _is_int(entry["percentage"]):
                    raise ConfigurationError(
                        f"percentage must be a whole number, use percentage_bps: {entry!r}"
                    )
                bps = entry["percentage"] * 100
            else:
                raise ConfigurationError(f"vesting step is missing percentage_bps: {entry!r}")

            steps.append(UnlockStep(offset_days=entry["offset_days"], percentage_bps=bps))

        steps.sort(key=lambda s: s.offset_days)
        return cls(tuple(steps))

    @classmethod
    def linear(
        cls,
        daily_release_bps: int = DEFAULT_DAILY_RELEASE_BPS,
        total_days: int = DEFAULT_VESTING_DAYS,
        cliff_days: int = 0,
    ) -> "VestingSchedule":
        """
        Daily linear release as done by the presale program.

        After day `d` the cumulative unlock is min(10000, daily * d) bps, and
        the allocation is fully vested on `total_days`. Anything that would
        unlock before the cliff is released on the cliff day.
        """
        if not _is_int(daily_release_bps) or not 0 < daily_release_bps <= BPS_DENOMINATOR:
            raise ConfigurationError(
                f"daily_release_bps must be in (0, {BPS_DENOMINATOR}], got {daily_release_bps!r}"
            )
        if not _is_int(total_days) or total_days < 1:
            raise ConfigurationError(f"total_days must be a positive integer, got {total_days!r}")
        if not _is_int(cliff_days) or cliff_days < 0:
            raise ConfigurationError(f"cliff_days must be a non-negative integer, got {cliff_days!r}")

        def cumulative(day: int) -> int:
            if day < cliff_days:
                return 0
            if day >= total_days:
                return BPS_DENOMINATOR
            return min(BPS_DENOMINATOR, daily_release_bps * day)

        steps = []
        for day in range(1, max(total_days, cliff_days) + 1):
            bps = cumulative(day) - cumulative(day - 1)
            if bps > 0:
                steps.append(UnlockStep(offset_days=day, percentage_bps=bps))
        return cls(tuple(steps))


@dataclass(frozen=True, slots=True)
class ParticipantAllocation:
    total_allocation: int    # smallest token units
    vesting_start: datetime
    claimed_so_far: int = 0

    def __post_init__(self) -> None:
        if not _is_int(self.total_allocation) or self.total_allocation < 0:
            raise InvalidAmountError(
                f"total_allocation must be a non-negative integer, got {self.total_allocation!r}"
            )
        if not _is_int(self.claimed_so_far) or self.claimed_so_far < 0:
            raise InvalidAmountError(
                f"claimed_so_far must be a non-negative integer, got {self.claimed_so_far!r}"
            )
        if self.claimed_so_far > self.total_allocation:
            raise InvalidAmountError(
                f"claimed_so_far {self.claimed_so_far} exceeds total_allocation {self.total_allocation}"
            )


@dataclass(frozen=True, slots=True)
class VestingEvaluation:
    total_vested: int
    claimable_now: int
    next_unlock_at: Optional[datetime]


@dataclass(frozen=True, slots=True)
class UnlockRow:
    unlock_at: datetime
    percentage_bps: int
    amount: int             # released by this step alone
    cumulative_amount: int  # vested once this step has passed


def _ensure_schedule(schedule: Any) -> VestingSchedule:
    if isinstance(schedule, VestingSchedule):
        return schedule
    if schedule is None:
        raise ConfigurationError("vesting schedule is not configured")
    try:
        return VestingSchedule.from_config(schedule)
    except TypeError as e:
        raise ConfigurationError(f"invalid vesting schedule: {e}") from e


def elapsed_days(vesting_start: datetime, now: datetime) -> int:
    """Whole days since vesting_start, floored (negative before the start)."""
    return (now - vesting_start) // ONE_DAY


def evaluate(
    allocation: ParticipantAllocation,
    schedule: Sequence[Any] | VestingSchedule,
    now: datetime,
) -> VestingEvaluation:
    schedule = _ensure_schedule(schedule)
    days = elapsed_days(allocation.vesting_start, now)

    vested_bps = 0
    next_unlock_at = None
    for step in schedule.steps:
        if step.offset_days <= days:
            vested_bps += step.percentage_bps
        else:
            next_unlock_at = allocation.vesting_start + timedelta(days=step.offset_days)
            break

    total_vested = allocation.total_allocation * vested_bps // BPS_DENOMINATOR
    claimable_now = max(0, total_vested - allocation.claimed_so_far)
    return VestingEvaluation(
        total_vested=total_vested,
        claimable_now=claimable_now,
        next_unlock_at=next_unlock_at,
    )


def record_claim(
    allocation: ParticipantAllocation,
    amount: int,
    schedule: Sequence[Any] | VestingSchedule,
    now: datetime,
) -> ParticipantAllocation:
    """
    Return the allocation with `amount` added to claimed_so_far.

    Pure: the caller persists the result only once the transfer is confirmed.
    """
    if not _is_int(amount) or amount <= 0:
        raise InvalidAmountError(f"claim amount must be a positive integer, got {amount!r}")

    claimable = evaluate(allocation, schedule, now).claimable_now
    if amount > claimable:
        raise ExceedsClaimableError(amount, claimable)

    return replace(allocation, claimed_so_far=allocation.claimed_so_far + amount)


class VestingScheduler:
    """Binds a validated schedule to the vesting operations."""

    def __init__(self, schedule: Sequence[Any] | VestingSchedule):
        self._schedule = _ensure_schedule(schedule)

    @property
    def schedule(self) -> VestingSchedule:
        return self._schedule

    def evaluate(self, allocation: ParticipantAllocation, now: datetime) -> VestingEvaluation:
        return evaluate(allocation, self._schedule, now)

    def record_claim(
        self, allocation: ParticipantAllocation, amount: int, now: datetime
    ) -> ParticipantAllocation:
        return record_claim(allocation, amount, self._schedule, now)

    def unlock_table(self, allocation: ParticipantAllocation) -> list[UnlockRow]:
        """Every step's unlock date with the amount it releases."""
        rows = []
        cumulative_bps = 0
        released = 0
        for step in self._schedule.steps:
            cumulative_bps += step.percentage_bps
            cumulative = allocation.total_allocation * cumulative_bps // BPS_DENOMINATOR
            rows.append(
                UnlockRow(
                    unlock_at=allocation.vesting_start + timedelta(days=step.offset_days),
                    percentage_bps=step.percentage_bps,
                    amount=cumulative - released,
                    cumulative_amount=cumulative,
                )
            )
            released = cumulative
        return rows
