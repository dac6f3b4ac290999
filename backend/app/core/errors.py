"""
Error taxonomy for the treasury backend.

Configuration and amount errors subclass ValueError so callers that only care
about "bad input" can catch them together.
"""


class TreasuryError(Exception):
    """Base class for all treasury errors."""


class ConfigurationError(TreasuryError, ValueError):
    """Malformed vesting schedule or fee bucket configuration. Never retried."""


class InvalidAmountError(TreasuryError, ValueError):
    """Negative, zero or non-integer amount where a valid amount is required."""


class ExceedsClaimableError(TreasuryError, ValueError):
    """Claim attempted beyond the currently unlocked amount."""

    def __init__(self, requested: int, claimable: int):
        self.requested = requested
        self.claimable = claimable
        super().__init__(
            f"requested {requested} exceeds claimable amount {claimable}"
        )


class ParticipantNotFoundError(TreasuryError, LookupError):
    """No approved allocation exists for the wallet."""


class ClaimPendingError(TreasuryError):
    """An earlier claim transfer is still unconfirmed for this wallet."""


class JobLockedError(TreasuryError):
    """Another job holds the lock for the same resource."""


class ParticipantExistsError(TreasuryError):
    """The wallet already has an approved allocation."""
