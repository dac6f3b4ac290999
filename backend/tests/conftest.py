from typing import Dict, List, Optional, Set

import pytest
from tortoise import Tortoise, connections

from app.accounting.fees import FeeBucketConfig
from app.services import locks
from app.services.ledger import (
    LedgerSubmissionError,
    LedgerSubmissionService,
    PreparedTransfer,
    TransferUnconfirmedError,
)
from app.workers import claims

BURN_WALLET = "BurnWa11etxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxx"
CHARITY_WALLET = "Charity111111111111111111111111111111111111"
LIQUIDITY_WALLET = "Liquidity11111111111111111111111111111111111"
TREASURY_WALLET = "Treasury1111111111111111111111111111111111111"

WALLETS = {
    "burn": BURN_WALLET,
    "charity": CHARITY_WALLET,
    "liquidity": LIQUIDITY_WALLET,
    "treasury": TREASURY_WALLET,
}

PARTICIPANT = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


class FakeLedger(LedgerSubmissionService):
    """In-memory ledger. Destinations can be set to fail or to time out."""

    def __init__(self):
        self.sent: List[PreparedTransfer] = []
        self.fail: Set[str] = set()
        self.unconfirmed: Set[str] = set()
        self.statuses: Dict[str, Optional[bool]] = {}
        self._counter = 0

    async def prepare_transfer(self, destination: str, amount: int, label: str = "") -> PreparedTransfer:
        self._counter += 1
        return PreparedTransfer(
            signature=f"sig-{self._counter}",
            destination=destination,
            amount=amount,
            label=label,
        )

    async def submit(self, prepared: PreparedTransfer) -> str:
        if prepared.destination in self.fail:
            raise LedgerSubmissionError(f"rpc rejected transfer to {prepared.destination}")
        if prepared.destination in self.unconfirmed:
            raise TransferUnconfirmedError(prepared.signature)
        self.sent.append(prepared)
        return prepared.signature

    async def get_transfer_status(self, signature: str) -> Optional[bool]:
        return self.statuses.get(signature)

    async def is_connected(self) -> bool:
        return True

    def sent_to(self, destination: str) -> List[int]:
        return [p.amount for p in self.sent if p.destination == destination]


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def buckets() -> FeeBucketConfig:
    return FeeBucketConfig.default(WALLETS)


@pytest.fixture(autouse=True)
def _reset_process_state():
    locks._local_locks.clear()
    claims._scheduler = None
    yield
    locks._local_locks.clear()
    claims._scheduler = None


@pytest.fixture
async def db():
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": ["app.models.treasury"]},
        use_tz=True,
        timezone="UTC",
    )
    await Tortoise.generate_schemas()
    yield
    await connections.close_all()
