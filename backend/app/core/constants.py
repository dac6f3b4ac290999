from datetime import timedelta

# Percentages are integer basis points: 10_000 bps == 100.00%
BPS_DENOMINATOR = 10_000

ONE_DAY = timedelta(days=1)

# Default fee split (declaration order matters: the last bucket absorbs rounding)
DEFAULT_FEE_BUCKETS = (
    ("burn", 1_000),
    ("charity", 3_000),
    ("liquidity", 2_000),
    ("treasury", 4_000),
)

# Default linear release used by the presale program: 5%/day over 20 days
DEFAULT_DAILY_RELEASE_BPS = 500
DEFAULT_VESTING_DAYS = 20

# Named job locks
FEE_LEDGER_LOCK = "fee-ledger"
CLAIM_LOCK_PREFIX = "claim:"
