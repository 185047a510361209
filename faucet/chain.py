"""Master wallet access on the Sepolia network."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from eth_account import Account
from web3 import AsyncWeb3

from .config import FaucetConfig
from .models import DistributionResult

log = logging.getLogger("faucet.chain")


def format_ether(wei: int) -> str:
    return str(AsyncWeb3.from_wei(wei, "ether"))


def to_wei(amount: Decimal) -> int:
    return int(AsyncWeb3.to_wei(amount, "ether"))


@dataclass
class EligibilityCheck:
    can_distribute: bool
    reason: Optional[str] = None


class ChainGateway:
    """Reads balances and sends distributions from the master wallet.

    The gateway owns the signing account for its lifetime. ``w3`` may be
    injected; otherwise an HTTP client for ``config.rpc_url`` is created.
    """

    def __init__(self, config: FaucetConfig, w3: Optional[AsyncWeb3] = None):
        self.config = config
        self.account = Account.from_key(config.master_private_key)
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))
        self.distribution_wei = to_wei(config.distribution_amount)
        self.reserve_wei = to_wei(config.min_master_balance)
        self.threshold_wei = to_wei(config.min_wallet_balance_threshold)
        log.info("ETH distributor initialized, master wallet %s", self.master_address)

    @property
    def master_address(self) -> str:
        return self.account.address

    async def get_master_balance(self) -> int:
        return await self.w3.eth.get_balance(self.master_address)

    async def get_user_balance(self, address: str) -> int:
        return await self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address))

    async def get_gas_price(self) -> int:
        return await self.w3.eth.gas_price

    async def estimate_gas(self, address: str) -> int:
        return await self.w3.eth.estimate_gas({
            "from": self.master_address,
            "to": AsyncWeb3.to_checksum_address(address),
            "value": self.distribution_wei,
        })

    async def check_can_distribute(self, address: str) -> EligibilityCheck:
        master_balance = await self.get_master_balance()
        needed = self.reserve_wei + self.distribution_wei
        if master_balance < needed:
            return EligibilityCheck(
                can_distribute=False,
                reason=(
                    f"Insufficient master balance. Current: {format_ether(master_balance)} ETH, "
                    f"Need: {format_ether(needed)} ETH"
                ),
            )

        user_balance = await self.get_user_balance(address)
        if user_balance >= self.threshold_wei:
            return EligibilityCheck(
                can_distribute=False,
                reason=(
                    f"User already has sufficient balance: {format_ether(user_balance)} ETH "
                    f"(threshold: {format_ether(self.threshold_wei)} ETH)"
                ),
            )
        return EligibilityCheck(can_distribute=True)

    async def distribute(self, address: str) -> DistributionResult:
        result = DistributionResult()
        log.info("Distributing %s ETH to %s", self.config.distribution_amount, address)
        try:
            check = await self.check_can_distribute(address)
            if not check.can_distribute:
                result.error = check.reason
                log.warning("Distribution to %s refused: %s", address, check.reason)
                return result

            result.amount = str(self.config.distribution_amount)
            to = AsyncWeb3.to_checksum_address(address)
            tx = {
                "to": to,
                "value": self.distribution_wei,
                "nonce": await self.w3.eth.get_transaction_count(self.master_address, "pending"),
                "gas": await self.estimate_gas(to),
                "gasPrice": await self.get_gas_price(),
                "chainId": self.config.chain_id,
            }
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            hash_hex = AsyncWeb3.to_hex(tx_hash)
            log.info("Transaction %s sent, waiting for confirmation", hash_hex)

            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.config.tx_confirmation_timeout
            )
            if receipt["status"] == 1:
                result.success = True
                result.tx_hash = hash_hex
                log.info("Distribution to %s confirmed in block %s", address, receipt.get("blockNumber"))
            else:
                result.error = "Transaction reverted"
                log.warning("Transaction %s reverted", hash_hex)
        except Exception as exc:
            result.error = str(exc) or exc.__class__.__name__
            log.error("Distribution to %s failed: %s", address, result.error)
        return result

    async def describe(self) -> Dict[str, Any]:
        balance = await self.get_master_balance()
        gas_price = await self.get_gas_price()
        available = max(balance - self.reserve_wei, 0)
        max_distributions = available // self.distribution_wei if self.distribution_wei else 0
        return {
            "masterWallet": self.master_address,
            "balance": str(balance),
            "gasPrice": str(gas_price),
            "distributionAmount": str(self.config.distribution_amount),
            "minBalance": str(self.config.min_master_balance),
            "threshold": str(self.config.min_wallet_balance_threshold),
            "maxDistributions": max_distributions,
        }

    async def log_status(self) -> None:
        try:
            status = await self.describe()
        except Exception as exc:
            log.warning("Could not read distributor status: %s", exc)
            return
        log.info(
            "Master %s holds %s ETH (gas price %s wei); %s ETH per request, reserve %s ETH, "
            "threshold %s ETH, %s distributions available",
            status["masterWallet"],
            format_ether(int(status["balance"])),
            status["gasPrice"],
            status["distributionAmount"],
            status["minBalance"],
            status["threshold"],
            status["maxDistributions"],
        )
