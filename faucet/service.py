"""Request handling for the faucet API."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from fastapi import HTTPException

from .chain import ChainGateway, format_ether
from .models import (
    STATUS_APPROVED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_REJECTED,
    FaucetRequest,
    is_valid_address,
    now_ms,
)
from .ratelimit import RateLimiter
from .store import REQUESTS, LedgerStore

log = logging.getLogger("faucet.service")


class DisbursementService:
    def __init__(
        self,
        store: LedgerStore,
        limiter: RateLimiter,
        gateway: ChainGateway,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.limiter = limiter
        self.gateway = gateway
        self.clock = clock
        self._wallet_locks: Dict[str, asyncio.Lock] = {}
        self._wallet_waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def _wallet_guard(self, wallet: str) -> AsyncIterator[None]:
        lock = self._wallet_locks.setdefault(wallet, asyncio.Lock())
        self._wallet_waiters[wallet] = self._wallet_waiters.get(wallet, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._wallet_waiters[wallet] -= 1
            if not self._wallet_waiters[wallet]:
                del self._wallet_waiters[wallet]
                del self._wallet_locks[wallet]

    async def request_funds(self, wallet_address: Optional[str], ip_address: Optional[str] = None) -> Dict[str, Any]:
        if not wallet_address or not is_valid_address(wallet_address):
            raise HTTPException(status_code=400, detail="Invalid wallet address")
        wallet = wallet_address.lower()

        # Held until the rate limit is granted so two requests for one wallet cannot both pass.
        async with self._wallet_guard(wallet):
            decision = self.limiter.check_limit(wallet, ip_address)
            if not decision.allowed:
                log.warning("Rate limited %s (ip=%s): %s", wallet, ip_address, decision.reason)
                raise HTTPException(status_code=429, detail=decision.reason)

            existing = self.store.get_request_by_wallet(wallet)
            if existing and existing.status == STATUS_PENDING:
                raise HTTPException(
                    status_code=409,
                    detail={"error": "You already have a pending request", "request": existing.to_dict()},
                )

            user_balance = await self.gateway.get_user_balance(wallet)
            if user_balance >= self.gateway.threshold_wei:
                raise HTTPException(
                    status_code=400,
                    detail=(
                        f"Your wallet already has sufficient balance ({format_ether(user_balance)} ETH). "
                        f"Threshold: {self.gateway.config.min_wallet_balance_threshold} ETH"
                    ),
                )

            request = FaucetRequest(
                wallet_address=wallet,
                ip_address=ip_address,
                timestamp=self.clock(),
                status=STATUS_APPROVED,
            )
            self.store.add_request(request)
            self.limiter.grant(wallet, ip_address, decision_id=f"{wallet}:{request.timestamp}")
            log.info("Approved request from %s (ip=%s)", wallet, ip_address)

        result = await self.gateway.distribute(wallet)
        if result.success:
            self.store.update_request(
                wallet, request.timestamp,
                status=STATUS_COMPLETED, tx_hash=result.tx_hash, amount=result.amount,
            )
            return {
                "success": True,
                "message": "ETH sent successfully!",
                "txHash": result.tx_hash,
                "amount": result.amount,
            }

        self.store.update_request(wallet, request.timestamp, status=STATUS_REJECTED)
        raise HTTPException(status_code=500, detail=result.error or "Distribution failed")

    def list_requests(self) -> List[Dict[str, Any]]:
        return self.store.load_all(REQUESTS)

    def get_request(self, address: str) -> Dict[str, Any]:
        request = self.store.get_request_by_wallet(address)
        if not request:
            raise HTTPException(status_code=404, detail="No request found for this address")
        return request.to_dict()

    async def health(self) -> Dict[str, Any]:
        balance = await self.gateway.get_master_balance()
        return {
            "status": "ok",
            "masterWallet": self.gateway.master_address,
            "balance": str(balance),
        }

    async def status(self) -> Dict[str, Any]:
        return await self.gateway.describe()
