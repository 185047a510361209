"""Per-wallet and per-IP daily request limits."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from .models import DAY_MS, HOUR_MS, RateLimitEntry, now_ms
from .store import LedgerStore

log = logging.getLogger("faucet.ratelimit")


@dataclass
class RateLimitDecision:
    allowed: bool
    reason: Optional[str] = None


def hours_left(entry: RateLimitEntry, now: int) -> int:
    return math.ceil((DAY_MS - (now - entry.last_request_time)) / HOUR_MS)


class RateLimiter:
    def __init__(
        self,
        store: LedgerStore,
        max_per_wallet: int,
        max_per_ip: int,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.max_per_wallet = max_per_wallet
        self.max_per_ip = max_per_ip
        self.clock = clock

    def check_limit(self, wallet_address: str, ip_address: Optional[str] = None) -> RateLimitDecision:
        now = self.clock()
        wallet_limit = self.store.get_rate_limit(wallet_address=wallet_address, now=now)
        if wallet_limit and wallet_limit.request_count >= self.max_per_wallet:
            return RateLimitDecision(
                allowed=False,
                reason=f"Rate limit exceeded for wallet. Try again in {hours_left(wallet_limit, now)} hours.",
            )
        if ip_address:
            ip_limit = self.store.get_rate_limit(ip_address=ip_address, now=now)
            if ip_limit and ip_limit.request_count >= self.max_per_ip:
                return RateLimitDecision(
                    allowed=False,
                    reason=f"Rate limit exceeded for IP address. Try again in {hours_left(ip_limit, now)} hours.",
                )
        return RateLimitDecision(allowed=True)

    def grant(
        self,
        wallet_address: str,
        ip_address: Optional[str] = None,
        decision_id: Optional[str] = None,
    ) -> None:
        """Count one granted request against the wallet and the IP.

        Without ``decision_id`` every call counts. With one, a call repeating
        the id already applied to an entry leaves that entry untouched.
        """
        now = self.clock()
        self._bump(self.store.get_rate_limit(wallet_address=wallet_address, now=now),
                   now, decision_id, wallet_address=wallet_address.lower())
        if ip_address:
            self._bump(self.store.get_rate_limit(ip_address=ip_address, now=now),
                       now, decision_id, ip_address=ip_address)

    def _bump(
        self,
        current: Optional[RateLimitEntry],
        now: int,
        decision_id: Optional[str],
        wallet_address: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        if current and decision_id is not None and current.decision_id == decision_id:
            log.debug("Grant %s already applied to %s", decision_id, current.key)
            return
        entry = RateLimitEntry(
            last_request_time=now,
            request_count=current.request_count + 1 if current else 1,
            wallet_address=wallet_address,
            ip_address=ip_address,
            decision_id=decision_id,
        )
        self.store.update_rate_limit(entry, now=now)
