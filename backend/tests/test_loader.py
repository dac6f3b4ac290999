import json

import pytest

from app.accounting.loader import load_fee_buckets, load_vesting_schedule
from app.core.config import Settings
from app.core.errors import ConfigurationError


def test_linear_schedule_by_default():
    schedule = load_vesting_schedule(Settings(vesting_schedule=""))
    assert len(schedule.steps) == 20
    assert schedule.total_bps == 10_000


def test_explicit_schedule_json():
    raw = json.dumps([
        {"offset_days": 60, "percentage_bps": 5000},
        {"offset_days": 0, "percentage_bps": 5000},
    ])
    schedule = load_vesting_schedule(Settings(vesting_schedule=raw))
    assert [s.offset_days for s in schedule.steps] == [0, 60]


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"offset_days": 0}',
        '[{"offset_days": 0, "percentage_bps": 5000}, {"offset_days": 0, "percentage_bps": 5000}]',
    ],
)
def test_bad_schedule_fails_fast(raw):
    with pytest.raises(ConfigurationError):
        load_vesting_schedule(Settings(vesting_schedule=raw))


def test_default_buckets_pick_up_wallets():
    config = load_fee_buckets(Settings(fee_buckets="", burn_wallet="BurnWallet", charity_wallet=""))
    assert config.names == ["burn", "charity", "liquidity", "treasury"]
    assert config.get("burn").destination == "BurnWallet"
    assert config.get("charity").destination is None


def test_bucket_json():
    raw = json.dumps([
        {"name": "burn", "percentage_bps": 2500, "destination": "B"},
        {"name": "treasury", "percentage_bps": 7500, "destination": "T"},
    ])
    config = load_fee_buckets(Settings(fee_buckets=raw))
    assert config.names == ["burn", "treasury"]


def test_bucket_sum_must_be_exact():
    raw = json.dumps([{"name": "burn", "percentage_bps": 2500}])
    with pytest.raises(ConfigurationError):
        load_fee_buckets(Settings(fee_buckets=raw))


def test_burn_bucket_must_exist():
    raw = json.dumps([{"name": "treasury", "percentage_bps": 10_000}])
    with pytest.raises(ConfigurationError):
        load_fee_buckets(Settings(fee_buckets=raw))
