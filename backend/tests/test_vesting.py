from datetime import datetime, timedelta, timezone

import pytest

from app.accounting.vesting import (
    ParticipantAllocation,
    UnlockStep,
    VestingSchedule,
    VestingScheduler,
    elapsed_days,
    evaluate,
    record_claim,
)
from app.core.errors import ConfigurationError, ExceedsClaimableError, InvalidAmountError

T0 = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

THREE_STEP = [
    {"offset_days": 0, "percentage_bps": 2000},
    {"offset_days": 30, "percentage_bps": 3000},
    {"offset_days": 60, "percentage_bps": 5000},
]


def _allocation(total: int = 1000, claimed: int = 0) -> ParticipantAllocation:
    return ParticipantAllocation(total_allocation=total, vesting_start=T0, claimed_so_far=claimed)


@pytest.fixture
def schedule() -> VestingSchedule:
    return VestingSchedule.from_config(THREE_STEP)


def test_three_step_schedule_unlocks_on_offsets(schedule):
    a = _allocation()

    at_start = evaluate(a, schedule, T0)
    assert at_start.total_vested == 200
    assert at_start.claimable_now == 200
    assert at_start.next_unlock_at == T0 + timedelta(days=30)

    assert evaluate(a, schedule, T0 + timedelta(days=30)).total_vested == 500

    done = evaluate(a, schedule, T0 + timedelta(days=60))
    assert done.total_vested == 1000
    assert done.next_unlock_at is None


def test_partial_day_does_not_unlock_next_step(schedule):
    almost = T0 + timedelta(days=29, hours=23, minutes=59)
    assert evaluate(_allocation(), schedule, almost).total_vested == 200


def test_before_vesting_start_nothing_is_vested(schedule):
    result = evaluate(_allocation(), schedule, T0 - timedelta(hours=1))
    assert result.total_vested == 0
    assert result.claimable_now == 0
    assert result.next_unlock_at == T0


def test_elapsed_days_floors():
    assert elapsed_days(T0, T0) == 0
    assert elapsed_days(T0, T0 + timedelta(days=2, hours=23)) == 2
    assert elapsed_days(T0, T0 - timedelta(seconds=1)) == -1


def test_empty_schedule_never_vests():
    result = evaluate(_allocation(), VestingSchedule(), T0 + timedelta(days=365))
    assert result.total_vested == 0
    assert result.next_unlock_at is None


def test_vested_amount_truncates():
    schedule = VestingSchedule((UnlockStep(0, 3333),))
    assert evaluate(_allocation(total=999), schedule, T0).total_vested == 332


def test_fully_vested_never_exceeds_allocation():
    schedule = VestingSchedule.from_config(
        [{"offset_days": d, "percentage_bps": 3333} for d in range(3)]
        + [{"offset_days": 3, "percentage_bps": 1}]
    )
    for total in (1, 7, 999, 10**18 + 3):
        result = evaluate(_allocation(total=total), schedule, T0 + timedelta(days=3))
        assert result.total_vested == total


def test_vesting_is_monotonic(schedule):
    a = _allocation(total=123_456_789)
    previous = 0
    for hours in range(-48, 24 * 70, 7):
        vested = evaluate(a, schedule, T0 + timedelta(hours=hours)).total_vested
        assert vested >= previous
        previous = vested


def test_claimable_never_negative(schedule):
    # claimed more than currently vested, e.g. evaluated with an earlier clock
    a = _allocation(claimed=800)
    assert evaluate(a, schedule, T0).claimable_now == 0


def test_raw_schedule_is_validated_on_evaluate():
    assert evaluate(_allocation(), THREE_STEP, T0).total_vested == 200
    with pytest.raises(ConfigurationError):
        evaluate(_allocation(), None, T0)
    with pytest.raises(ConfigurationError):
        evaluate(_allocation(), [{"offset_days": 0}], T0)


class TestScheduleValidation:
    def test_duplicate_offsets_rejected(self):
        with pytest.raises(ConfigurationError):
            VestingSchedule.from_config(
                [{"offset_days": 10, "percentage_bps": 1000}, {"offset_days": 10, "percentage_bps": 500}]
            )

    def test_total_over_100_percent_rejected(self):
        with pytest.raises(ConfigurationError):
            VestingSchedule.from_config(
                [{"offset_days": 0, "percentage_bps": 6000}, {"offset_days": 1, "percentage_bps": 4001}]
            )

    def test_unsorted_steps_rejected_but_config_is_sorted(self):
        with pytest.raises(ConfigurationError):
            VestingSchedule((UnlockStep(30, 1000), UnlockStep(0, 1000)))

        schedule = VestingSchedule.from_config(
            [{"offset_days": 30, "percentage_bps": 1000}, {"offset_days": 0, "percentage_bps": 1000}]
        )
        assert [s.offset_days for s in schedule.steps] == [0, 30]

    def test_reserve_below_100_percent_allowed(self):
        schedule = VestingSchedule.from_config([{"offset_days": 0, "percentage_bps": 9000}])
        assert schedule.total_bps == 9000
        assert evaluate(_allocation(), schedule, T0).total_vested == 900

    def test_whole_percentage_converted_to_bps(self):
        schedule = VestingSchedule.from_config([{"offset_days": 0, "percentage": 25}])
        assert schedule.steps[0].percentage_bps == 2500

    @pytest.mark.parametrize(
        "offset, bps",
        [(-1, 100), (0, -1), (0, 10_001), (0, 12.5), (True, 100)],
    )
    def test_invalid_step(self, offset, bps):
        with pytest.raises(ConfigurationError):
            UnlockStep(offset, bps)


class TestLinearSchedule:
    def test_default_releases_five_percent_daily_over_twenty_days(self):
        schedule = VestingSchedule.linear()
        assert len(schedule.steps) == 20
        assert all(s.percentage_bps == 500 for s in schedule.steps)
        assert schedule.steps[0].offset_days == 1

        a = _allocation(total=10_000)
        assert evaluate(a, schedule, T0).total_vested == 0
        assert evaluate(a, schedule, T0 + timedelta(days=1)).total_vested == 500
        assert evaluate(a, schedule, T0 + timedelta(days=20)).total_vested == 10_000

    def test_cliff_releases_accrued_amount_on_cliff_day(self):
        schedule = VestingSchedule.linear(daily_release_bps=500, total_days=20, cliff_days=5)
        assert schedule.steps[0] == UnlockStep(5, 2500)
        assert schedule.total_bps == 10_000

        a = _allocation(total=10_000)
        assert evaluate(a, schedule, T0 + timedelta(days=4)).total_vested == 0
        assert evaluate(a, schedule, T0 + timedelta(days=5)).total_vested == 2500

    def test_last_day_releases_remainder(self):
        schedule = VestingSchedule.linear(daily_release_bps=300, total_days=20)
        assert schedule.steps[-1] == UnlockStep(20, 4300)
        assert schedule.total_bps == 10_000

    def test_invalid_parameters(self):
        with pytest.raises(ConfigurationError):
            VestingSchedule.linear(daily_release_bps=0)
        with pytest.raises(ConfigurationError):
            VestingSchedule.linear(total_days=0)


class TestRecordClaim:
    def test_claim_adds_to_claimed(self, schedule):
        a = _allocation(claimed=50)
        updated = record_claim(a, 150, schedule, T0)
        assert updated.claimed_so_far == 200
        assert a.claimed_so_far == 50

    def test_claims_accumulate(self, schedule):
        a = _allocation()
        a = record_claim(a, 100, schedule, T0)
        a = record_claim(a, 100, schedule, T0)
        a = record_claim(a, 300, schedule, T0 + timedelta(days=30))
        assert a.claimed_so_far == 500
        assert evaluate(a, schedule, T0 + timedelta(days=30)).claimable_now == 0

    def test_exceeding_claimable_rejected(self, schedule):
        a = _allocation()
        with pytest.raises(ExceedsClaimableError) as exc:
            record_claim(a, 201, schedule, T0)
        assert exc.value.requested == 201
        assert exc.value.claimable == 200
        assert a.claimed_so_far == 0

    @pytest.mark.parametrize("amount", [0, -5, 1.0, True])
    def test_invalid_amount_rejected(self, schedule, amount):
        with pytest.raises(InvalidAmountError):
            record_claim(_allocation(), amount, schedule, T0)


class TestScheduler:
    def test_unlock_table(self, schedule):
        rows = VestingScheduler(schedule).unlock_table(_allocation())
        assert [r.unlock_at for r in rows] == [
            T0, T0 + timedelta(days=30), T0 + timedelta(days=60)
        ]
        assert [r.amount for r in rows] == [200, 300, 500]
        assert [r.cumulative_amount for r in rows] == [200, 500, 1000]

    def test_unlock_table_amounts_sum_to_vested_total(self):
        scheduler = VestingScheduler(VestingSchedule.linear(daily_release_bps=700, total_days=15))
        a = _allocation(total=1_000_003)
        assert sum(r.amount for r in scheduler.unlock_table(a)) == 1_000_003

    def test_scheduler_delegates(self, schedule):
        scheduler = VestingScheduler(THREE_STEP)
        assert scheduler.schedule == schedule
        a = scheduler.record_claim(_allocation(), 200, T0)
        assert scheduler.evaluate(a, T0).claimable_now == 0


def test_allocation_rejects_claimed_over_total():
    with pytest.raises(InvalidAmountError):
        _allocation(total=100, claimed=101)
    with pytest.raises(InvalidAmountError):
        _allocation(total=-1)
