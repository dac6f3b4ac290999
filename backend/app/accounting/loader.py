"""Build validated accounting config from application settings."""

import json
import logging

from app.accounting.fees import FeeBucketConfig
from app.accounting.vesting import VestingSchedule
from app.core.config import Settings
from app.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _parse_json(raw: str, name: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{name} is not valid JSON: {e}") from e


def load_vesting_schedule(settings: Settings) -> VestingSchedule:
    """Explicit VESTING_SCHEDULE wins; otherwise the linear daily release."""
    if settings.vesting_schedule.strip():
        entries = _parse_json(settings.vesting_schedule, "VESTING_SCHEDULE")
        if not isinstance(entries, list):
            raise ConfigurationError("VESTING_SCHEDULE must be a JSON list of steps")
        schedule = VestingSchedule.from_config(entries)
    else:
        schedule = VestingSchedule.linear(
            daily_release_bps=settings.vesting_daily_release_bps,
            total_days=settings.vesting_total_days,
            cliff_days=settings.vesting_cliff_days,
        )
    logger.info(
        f"vesting: loaded schedule with {len(schedule.steps)} steps "
        f"releasing {schedule.total_bps} bps"
    )
    return schedule


def load_fee_buckets(settings: Settings) -> FeeBucketConfig:
    destinations = settings.fee_destinations
    if settings.fee_buckets.strip():
        entries = _parse_json(settings.fee_buckets, "FEE_BUCKETS")
        if not isinstance(entries, list):
            raise ConfigurationError("FEE_BUCKETS must be a JSON list of buckets")
        config = FeeBucketConfig.from_config(entries, destinations)
    else:
        config = FeeBucketConfig.default(destinations)

    if settings.burn_bucket not in config.names:
        raise ConfigurationError(
            f"BURN_BUCKET {settings.burn_bucket!r} is not one of the fee buckets {config.names}"
        )
    logger.info(
        "fees: buckets "
        + ", ".join(f"{b.name}={b.percentage_bps}bps" for b in config.buckets)
    )
    return config
