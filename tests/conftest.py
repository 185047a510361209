# tests/conftest.py
from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import pytest
from web3 import AsyncWeb3

from faucet.chain import ChainGateway
from faucet.config import FaucetConfig
from faucet.models import now_ms
from faucet.ratelimit import RateLimiter
from faucet.service import DisbursementService
from faucet.store import LedgerStore

# Well-known throwaway key from the web3.py documentation.
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
USER_ADDRESS = "0x" + "ab" * 20
OTHER_ADDRESS = "0x" + "cd" * 20
TX_HASH = bytes.fromhex("12" * 32)
ETH = 10**18


class Clock:
    def __init__(self, start: Optional[int] = None):
        self.now = start if start is not None else now_ms()

    def __call__(self) -> int:
        return self.now

    def advance_hours(self, hours: float) -> None:
        self.now += int(hours * 60 * 60 * 1000)


class FakeEth:
    """Stands in for ``AsyncWeb3.eth`` with in-memory balances."""

    def __init__(self) -> None:
        self.balances: Dict[str, int] = {}
        self.receipt: Dict[str, Any] = {"status": 1, "blockNumber": 7}
        self.send_error: Optional[Exception] = None
        self.wait_error: Optional[Exception] = None
        self.sent: list[bytes] = []

    async def get_balance(self, address: str) -> int:
        return self.balances.get(address.lower(), 0)

    @property
    def gas_price(self):
        async def _price() -> int:
            return 2_000_000_000

        return _price()

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return 21000

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        return 3

    async def send_raw_transaction(self, raw: bytes) -> bytes:
        if self.send_error:
            raise self.send_error
        self.sent.append(raw)
        return TX_HASH

    async def wait_for_transaction_receipt(self, tx_hash: bytes, timeout: float = 120) -> Dict[str, Any]:
        if self.wait_error:
            raise self.wait_error
        return self.receipt


class FakeWeb3:
    def __init__(self) -> None:
        self.eth = FakeEth()


@pytest.fixture()
def config(tmp_path: Path) -> FaucetConfig:
    return FaucetConfig(
        rpc_url="http://127.0.0.1:8545",
        master_private_key=TEST_PRIVATE_KEY,
        google_email="bot@example.com",
        google_password="secret",
        faucet_wallet_address=OTHER_ADDRESS,
        distribution_amount=Decimal("0.04"),
        min_master_balance=Decimal("0.1"),
        min_wallet_balance_threshold=Decimal("0.05"),
        data_dir=tmp_path / "data",
    )


@pytest.fixture()
def store(config: FaucetConfig) -> LedgerStore:
    ledger = LedgerStore(config.data_dir)
    ledger.initialize()
    return ledger


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def w3() -> FakeWeb3:
    return FakeWeb3()


@pytest.fixture()
def gateway(config: FaucetConfig, w3: FakeWeb3) -> ChainGateway:
    gw = ChainGateway(config, w3=w3)  # type: ignore[arg-type]
    w3.eth.balances[gw.master_address.lower()] = ETH
    return gw


@pytest.fixture()
def limiter(store: LedgerStore, clock: Clock) -> RateLimiter:
    return RateLimiter(store, max_per_wallet=1, max_per_ip=3, clock=clock)


@pytest.fixture()
def service(store: LedgerStore, limiter: RateLimiter, gateway: ChainGateway, clock: Clock) -> DisbursementService:
    return DisbursementService(store, limiter, gateway, clock=clock)


def checksum(address: str) -> str:
    return AsyncWeb3.to_checksum_address(address)
