"""
Fee split accounting.

Collected transaction fees are split across named buckets by basis points:

    burn       10%   sent to the burn wallet (monthly)
    charity    30%   MyXen Life Foundation
    liquidity  20%   LP pool
    treasury   40%   operations

Every bucket but the last gets floor(amount * bps / 10_000); the last bucket in
declaration order takes the remainder, so a split always sums to the input and
the resulting transfer set reconciles with the debited balance.

Splits accumulate in a PendingCollection until the distribution job has every
bucket transfer confirmed and calls flush().
"""

from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from app.core.constants import BPS_DENOMINATOR, DEFAULT_FEE_BUCKETS
from app.core.errors import ConfigurationError, InvalidAmountError


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True, slots=True)
class FeeBucket:
    name: str
    percentage_bps: int
    destination: Optional[str] = None  # wallet address receiving the transfer


@dataclass(frozen=True, slots=True)
class FeeBucketConfig:
    buckets: tuple[FeeBucket, ...]

    def __post_init__(self) -> None:
        buckets = tuple(self.buckets)
        object.__setattr__(self, "buckets", buckets)

        if not buckets:
            raise ConfigurationError("fee bucket config must define at least one bucket")

        seen = set()
        for bucket in buckets:
            if not isinstance(bucket, FeeBucket):
                raise ConfigurationError(f"fee bucket must be a FeeBucket, got {bucket!r}")
            if not isinstance(bucket.name, str) or not bucket.name.strip():
                raise ConfigurationError(f"fee bucket name must be a non-empty string: {bucket!r}")
            if bucket.name in seen:
                raise ConfigurationError(f"duplicate fee bucket name: {bucket.name}")
            seen.add(bucket.name)
            if not _is_int(bucket.percentage_bps) or not 0 <= bucket.percentage_bps <= BPS_DENOMINATOR:
                raise ConfigurationError(
                    f"bucket {bucket.name}: percentage_bps must be an integer in "
                    f"[0, {BPS_DENOMINATOR}], got {bucket.percentage_bps!r}"
                )

        total = sum(b.percentage_bps for b in buckets)
        if total != BPS_DENOMINATOR:
            raise ConfigurationError(
                f"fee buckets must sum to exactly {BPS_DENOMINATOR} bps, got {total}"
            )

    @property
    def names(self) -> list[str]:
        return [b.name for b in self.buckets]

    def get(self, name: str) -> FeeBucket:
        for bucket in self.buckets:
            if bucket.name == name:
                return bucket
        raise KeyError(name)

    @classmethod
    def from_config(
        cls,
        entries: Iterable[Any],
        destinations: Optional[Dict[str, str]] = None,
    ) -> "FeeBucketConfig":
        """
        Build from JSON-style entries `{"name", "percentage_bps", "destination"?}`.

        Declaration order is preserved. `destinations` fills in wallets for
        entries that don't carry one.
        """
        destinations = destinations or {}
        buckets = []
        for entry in entries:
            if isinstance(entry, FeeBucket):
                buckets.append(entry)
                continue
            if not isinstance(entry, dict) or "name" not in entry or "percentage_bps" not in entry:
                raise ConfigurationError(f"invalid fee bucket entry: {entry!r}")
            name = entry["name"]
            buckets.append(
                FeeBucket(
                    name=name,
                    percentage_bps=entry["percentage_bps"],
                    destination=entry.get("destination") or destinations.get(name) or None,
                )
            )
        return cls(tuple(buckets))

    @classmethod
    def default(cls, destinations: Optional[Dict[str, str]] = None) -> "FeeBucketConfig":
        return cls.from_config(
            [{"name": name, "percentage_bps": bps} for name, bps in DEFAULT_FEE_BUCKETS],
            destinations,
        )


def _ensure_buckets(buckets: Any) -> FeeBucketConfig:
    if isinstance(buckets, FeeBucketConfig):
        return buckets
    if isinstance(buckets, dict):
        # {"burn": 1000, ...} shorthand, insertion ordered
        buckets = [{"name": k, "percentage_bps": v} for k, v in buckets.items()]
    return FeeBucketConfig.from_config(buckets)


def split(amount: int, buckets: Any) -> Dict[str, int]:
    """Split `amount` across buckets; the last bucket absorbs the rounding remainder."""
    config = _ensure_buckets(buckets)
    if not _is_int(amount) or amount < 0:
        raise InvalidAmountError(f"amount must be a non-negative integer, got {amount!r}")

    shares: Dict[str, int] = {}
    allocated = 0
    for bucket in config.buckets[:-1]:
        share = amount * bucket.percentage_bps // BPS_DENOMINATOR
        shares[bucket.name] = share
        allocated += share
    shares[config.buckets[-1].name] = amount - allocated
    return shares


@dataclass
class PendingCollection:
    total_collected: int = 0
    per_bucket: Dict[str, int] = field(default_factory=dict)
    transaction_count: int = 0
    first_collected_at: Optional[datetime] = None

    @classmethod
    def empty(cls, config: FeeBucketConfig) -> "PendingCollection":
        return cls(per_bucket={name: 0 for name in config.names})

    @property
    def is_empty(self) -> bool:
        return self.total_collected == 0 and self.transaction_count == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_collected": self.total_collected,
            "per_bucket": dict(self.per_bucket),
            "transaction_count": self.transaction_count,
            "first_collected_at": (
                self.first_collected_at.isoformat() if self.first_collected_at else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingCollection":
        first = data.get("first_collected_at")
        return cls(
            total_collected=int(data.get("total_collected", 0)),
            per_bucket={k: int(v) for k, v in (data.get("per_bucket") or {}).items()},
            transaction_count=int(data.get("transaction_count", 0)),
            first_collected_at=datetime.fromisoformat(first) if first else None,
        )


class FeeSplitAccountant:
    """
    Accumulates fee splits until a distribution cycle completes.

    Not thread-safe: all mutating calls on one instance must be serialized by
    the caller (see app.services.locks).
    """

    def __init__(self, buckets: Any, pending: Optional[PendingCollection] = None):
        self._config = _ensure_buckets(buckets)
        self._pending = PendingCollection.empty(self._config)
        if pending is not None:
            self._restore(pending)

    def _restore(self, pending: PendingCollection) -> None:
        unknown = set(pending.per_bucket) - set(self._config.names)
        if unknown:
            raise ConfigurationError(
                f"pending collection has buckets missing from config: {sorted(unknown)}"
            )
        if sum(pending.per_bucket.values()) != pending.total_collected:
            raise ConfigurationError("pending collection per-bucket totals do not add up")
        self._pending.total_collected = pending.total_collected
        self._pending.transaction_count = pending.transaction_count
        self._pending.first_collected_at = pending.first_collected_at
        for name, amount in pending.per_bucket.items():
            self._pending.per_bucket[name] = amount

    @property
    def config(self) -> FeeBucketConfig:
        return self._config

    @property
    def pending(self) -> PendingCollection:
        """Copy of the current pending state."""
        return deepcopy(self._pending)

    def split(self, amount: int) -> Dict[str, int]:
        return split(amount, self._config)

    def record_collection(
        self,
        amount: int,
        tx_count: int = 1,
        collected_at: Optional[datetime] = None,
    ) -> Dict[str, int]:
        if not _is_int(tx_count) or tx_count < 0:
            raise InvalidAmountError(f"tx_count must be a non-negative integer, got {tx_count!r}")
        shares = self.split(amount)

        for name, share in shares.items():
            self._pending.per_bucket[name] += share
        self._pending.total_collected += amount
        self._pending.transaction_count += tx_count
        if self._pending.first_collected_at is None:
            self._pending.first_collected_at = collected_at or datetime.now(timezone.utc)
        return shares

    def compute_distribution(self) -> Dict[str, int]:
        return dict(self._pending.per_bucket)

    def flush(self) -> PendingCollection:
        """
        Return the accumulated state and reset it to empty.

        Only call once every non-zero bucket transfer has been confirmed.
        """
        flushed = self._pending
        self._pending = PendingCollection.empty(self._config)
        return flushed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buckets": [
                {"name": b.name, "percentage_bps": b.percentage_bps, "destination": b.destination}
                for b in self._config.buckets
            ],
            "pending": self._pending.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], buckets: Any = None) -> "FeeSplitAccountant":
        """
        Restore from `to_dict()` output.

        When `buckets` is given (the live config) it wins over the stored one.
        """
        config = buckets if buckets is not None else data.get("buckets")
        pending = PendingCollection.from_dict(data.get("pending") or {})
        return cls(config, pending=pending)

    def export_history(self) -> Dict[str, Any]:
        return {
            **self.to_dict(),
            "accumulated": self.compute_distribution(),
            "exported_at": datetime.now(timezone.utc).isoformat(),
        }
