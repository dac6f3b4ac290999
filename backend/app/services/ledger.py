"""
Ledger Submission Service interface.

The accounting core never talks to the chain. Orchestration code hands it
already-computed amounts through this interface and gets back a transaction
signature or an error. To plug in another chain or a test double, implement
LedgerSubmissionService.

Transfers are two-step: `prepare_transfer` builds and signs without sending,
so the caller can persist the signature first; `submit` sends and confirms.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


class LedgerSubmissionError(Exception):
    """The transfer was not applied and may be resubmitted."""


class TransferUnconfirmedError(LedgerSubmissionError):
    """
    The transfer was sent but its confirmation is unknown.

    It must not be resubmitted until `get_transfer_status(signature)` says it
    failed.
    """

    def __init__(self, signature: str, message: str = ""):
        self.signature = signature
        super().__init__(message or f"transfer {signature} sent but not confirmed")


@dataclass
class PreparedTransfer:
    """A signed, not yet submitted transfer."""
    signature: str
    destination: str
    amount: int
    label: str = ""
    payload: Any = None  # chain-specific signed transaction


class LedgerSubmissionService(ABC):
    """Submits token transfers out of the treasury wallet."""

    @abstractmethod
    async def prepare_transfer(
        self, destination: str, amount: int, label: str = ""
    ) -> PreparedTransfer:
        """Build and sign a transfer of `amount` smallest units to `destination`."""
        pass

    @abstractmethod
    async def submit(self, prepared: PreparedTransfer) -> str:
        """
        Send a prepared transfer and wait for confirmation.

        Returns the confirmed signature. Raises LedgerSubmissionError when
        nothing was applied and TransferUnconfirmedError when the transaction
        was sent but not confirmed.
        """
        pass

    @abstractmethod
    async def get_transfer_status(self, signature: str) -> Optional[bool]:
        """True when confirmed, False when failed, None when unknown or not found."""
        pass

    @abstractmethod
    async def is_connected(self) -> bool:
        pass

    async def close(self) -> None:
        pass
