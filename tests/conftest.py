"""
Pytest configuration and fixtures: an in-memory ledger and wallet standing in
for the JSON-RPC node, so no test touches the network.
"""
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from web3 import Web3

from paygate.actions import ActionDispatcher
from paygate.blockchain import TransactionRecord
from paygate.core.config import Settings
from paygate.database import init_db, make_engine, make_sessionmaker
from paygate.gate import PaymentGate
from paygate.main import Services, create_app
from paygate.replay import ReplayGuard

SERVICE_ADDRESS = Web3.to_checksum_address("0x" + "11" * 20)
PAYER_ADDRESS = Web3.to_checksum_address("0x" + "22" * 20)
OTHER_ADDRESS = Web3.to_checksum_address("0x" + "33" * 20)
BEEF_ADDRESS = "0x" + "be" * 20
CAFE_ADDRESS = "0x" + "ca" * 20

PAID_TX = "0xaaa"
NEW_TX = "0x" + "ab" * 32


def mined(ref: str, to: Optional[str] = SERVICE_ADDRESS, status: int = 1) -> TransactionRecord:
    return TransactionRecord(hash=ref, sender=PAYER_ADDRESS, recipient=to, block_number=100, status=status)


def pending(ref: str, to: Optional[str] = SERVICE_ADDRESS) -> TransactionRecord:
    return TransactionRecord(hash=ref, sender=PAYER_ADDRESS, recipient=to)


class FakeLedger:
    """Answers from canned records; successive polls walk through the list."""

    def __init__(self):
        self.transactions: Dict[str, List[Optional[TransactionRecord]]] = {}
        self.balances: Dict[str, int] = {}
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self.balance_error: Optional[Exception] = None

    def add(self, ref: str, *records: Optional[TransactionRecord]) -> None:
        self.transactions[ref] = list(records)

    async def get_transaction(self, ref: str) -> Optional[TransactionRecord]:
        self.calls.append(("get_transaction", ref))
        if self.error is not None:
            raise self.error
        seq = self.transactions.get(ref)
        if seq is None:
            return None
        if len(seq) > 1:
            return seq.pop(0)
        return seq[0]

    async def get_balance(self, address: str) -> int:
        self.calls.append(("get_balance", address))
        if self.balance_error is not None:
            raise self.balance_error
        return self.balances.get(address.lower(), 0)

    async def block_number(self) -> int:
        return 4242


class FakeSigner:
    def __init__(self, address: str = SERVICE_ADDRESS):
        self._address = address
        self.sent: List[tuple] = []
        self.error: Optional[Exception] = None
        self.error_after_send: Optional[Exception] = None
        self.next_hash = NEW_TX

    @property
    def address(self) -> str:
        return self._address

    async def send_transaction(self, to: str, value_wei: int) -> str:
        if self.error is not None:
            raise self.error
        self.sent.append((to, value_wei))
        if self.error_after_send is not None:
            raise self.error_after_send
        return self.next_hash


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def gate(ledger) -> PaymentGate:
    return PaymentGate(ledger, confirm_timeout=0.2, poll_interval=0.01)


@pytest.fixture
def replay_guard() -> ReplayGuard:
    engine = make_engine("sqlite:///:memory:")
    init_db(engine)
    return ReplayGuard(make_sessionmaker(engine))


def make_services(ledger, signer, *, replay_guard=None, confirm_timeout=0.2) -> Services:
    return Services(
        gate=PaymentGate(ledger, confirm_timeout=confirm_timeout, poll_interval=0.01),
        dispatcher=ActionDispatcher(ledger, signer, replay_guard=replay_guard),
        ledger=ledger,
        receiving_address=signer.address,
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, RPC_URL="http://rpc.test", CURRENCY_SYMBOL="ETH")


@pytest.fixture
def client(ledger, signer, test_settings) -> TestClient:
    ledger.add(PAID_TX, mined(PAID_TX))
    app = create_app(make_services(ledger, signer), config=test_settings)
    return TestClient(app, raise_server_exceptions=False)
