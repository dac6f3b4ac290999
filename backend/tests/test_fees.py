from datetime import datetime, timezone

import pytest

from app.accounting.fees import (
    FeeBucket,
    FeeBucketConfig,
    FeeSplitAccountant,
    PendingCollection,
    split,
)
from app.core.errors import ConfigurationError, InvalidAmountError

DEFAULT_BPS = {"burn": 1000, "charity": 3000, "liquidity": 2000, "treasury": 4000}


def test_default_split_last_bucket_absorbs_remainder():
    shares = split(100_000_000_007, DEFAULT_BPS)
    assert shares == {
        "burn": 10_000_000_000,
        "charity": 30_000_000_002,
        "liquidity": 20_000_000_001,
        "treasury": 40_000_000_004,
    }
    assert list(shares) == ["burn", "charity", "liquidity", "treasury"]


@pytest.mark.parametrize("amount", [0, 1, 3, 9, 10, 99, 10_001, 123_456_789, 2**63 - 1, 10**30 + 7])
@pytest.mark.parametrize(
    "bps",
    [
        DEFAULT_BPS,
        {"a": 3333, "b": 3333, "c": 3334},
        {"a": 1, "b": 9999},
        {"only": 10_000},
        {"a": 0, "b": 5000, "c": 5000},
    ],
)
def test_split_conserves_amount(amount, bps):
    shares = split(amount, bps)
    assert sum(shares.values()) == amount
    assert all(share >= 0 for share in shares.values())


def test_remainder_follows_declaration_order():
    shares = split(7, {"treasury": 5000, "burn": 5000})
    assert shares == {"treasury": 3, "burn": 4}


@pytest.mark.parametrize("amount", [-1, 1.5, True, "100"])
def test_split_rejects_invalid_amount(amount):
    with pytest.raises(InvalidAmountError):
        split(amount, DEFAULT_BPS)


class TestBucketConfig:
    @pytest.mark.parametrize(
        "entries",
        [
            [],
            [{"name": "a", "percentage_bps": 5000}, {"name": "b", "percentage_bps": 4999}],
            [{"name": "a", "percentage_bps": 5000}, {"name": "b", "percentage_bps": 5001}],
            [{"name": "a", "percentage_bps": 5000}, {"name": "a", "percentage_bps": 5000}],
            [{"name": "", "percentage_bps": 10_000}],
            [{"name": "a", "percentage_bps": -1}, {"name": "b", "percentage_bps": 10_001}],
            [{"name": "a", "percentage_bps": 10_000.0}],
            [{"name": "a"}],
            ["burn"],
        ],
    )
    def test_invalid_config_rejected(self, entries):
        with pytest.raises(ConfigurationError):
            FeeBucketConfig.from_config(entries)

    def test_default_config(self):
        config = FeeBucketConfig.default({"burn": "BurnWallet", "treasury": "TreasuryWallet"})
        assert config.names == ["burn", "charity", "liquidity", "treasury"]
        assert config.get("burn").destination == "BurnWallet"
        assert config.get("charity").destination is None

    def test_entry_destination_wins(self):
        config = FeeBucketConfig.from_config(
            [{"name": "burn", "percentage_bps": 10_000, "destination": "FromEntry"}],
            {"burn": "FromSettings"},
        )
        assert config.get("burn").destination == "FromEntry"

    def test_get_unknown_bucket(self):
        with pytest.raises(KeyError):
            FeeBucketConfig((FeeBucket("a", 10_000),)).get("b")


class TestAccountant:
    def test_collections_accumulate_until_flush(self):
        accountant = FeeSplitAccountant({"a": 5000, "b": 5000})
        accountant.record_collection(50, 1)
        accountant.record_collection(50, 1)
        assert accountant.compute_distribution() == {"a": 50, "b": 50}

        flushed = accountant.flush()
        assert flushed.total_collected == 100
        assert flushed.transaction_count == 2
        assert accountant.compute_distribution() == {"a": 0, "b": 0}
        assert accountant.pending.is_empty

    def test_preview_is_idempotent(self):
        accountant = FeeSplitAccountant(DEFAULT_BPS)
        accountant.record_collection(1_000_003, 4)
        first = accountant.compute_distribution()
        assert accountant.compute_distribution() == first
        assert accountant.compute_distribution() == first

    def test_preview_is_a_copy(self):
        accountant = FeeSplitAccountant(DEFAULT_BPS)
        accountant.record_collection(1000)
        accountant.compute_distribution()["burn"] = 0
        accountant.pending.per_bucket["burn"] = 0
        assert accountant.compute_distribution()["burn"] == 100

    def test_per_bucket_sums_to_total_collected(self):
        accountant = FeeSplitAccountant(DEFAULT_BPS)
        for amount in (7, 13, 1_000_001, 0, 99):
            accountant.record_collection(amount)
        pending = accountant.pending
        assert sum(pending.per_bucket.values()) == pending.total_collected == 1_000_120

    def test_record_collection_returns_split(self):
        accountant = FeeSplitAccountant(DEFAULT_BPS)
        assert accountant.record_collection(10) == {
            "burn": 1, "charity": 3, "liquidity": 2, "treasury": 4
        }

    def test_invalid_collection_leaves_state_unchanged(self):
        accountant = FeeSplitAccountant(DEFAULT_BPS)
        accountant.record_collection(100)
        with pytest.raises(InvalidAmountError):
            accountant.record_collection(-1)
        with pytest.raises(InvalidAmountError):
            accountant.record_collection(10, tx_count=-1)
        assert accountant.pending.total_collected == 100
        assert accountant.pending.transaction_count == 1

    def test_first_collected_at_kept(self):
        first = datetime(2026, 3, 1, tzinfo=timezone.utc)
        accountant = FeeSplitAccountant(DEFAULT_BPS)
        accountant.record_collection(1, collected_at=first)
        accountant.record_collection(1, collected_at=datetime(2026, 3, 2, tzinfo=timezone.utc))
        assert accountant.pending.first_collected_at == first

    def test_round_trip_through_dict(self):
        accountant = FeeSplitAccountant(DEFAULT_BPS)
        accountant.record_collection(5_000_000_007, 3, datetime(2026, 3, 1, tzinfo=timezone.utc))

        restored = FeeSplitAccountant.from_dict(accountant.to_dict())
        assert restored.compute_distribution() == accountant.compute_distribution()
        assert restored.pending == accountant.pending
        assert restored.config == accountant.config

    def test_restore_rejects_unknown_buckets(self):
        pending = PendingCollection(total_collected=10, per_bucket={"gone": 10}, transaction_count=1)
        with pytest.raises(ConfigurationError):
            FeeSplitAccountant(DEFAULT_BPS, pending=pending)

    def test_restore_rejects_inconsistent_totals(self):
        pending = PendingCollection(total_collected=11, per_bucket={"burn": 10}, transaction_count=1)
        with pytest.raises(ConfigurationError):
            FeeSplitAccountant(DEFAULT_BPS, pending=pending)

    def test_export_history(self):
        accountant = FeeSplitAccountant(DEFAULT_BPS)
        accountant.record_collection(10, 2)
        history = accountant.export_history()
        assert history["accumulated"] == {"burn": 1, "charity": 3, "liquidity": 2, "treasury": 4}
        assert history["pending"]["transaction_count"] == 2
        assert [b["name"] for b in history["buckets"]] == list(DEFAULT_BPS)
        assert "exported_at" in history
