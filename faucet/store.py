"""JSON-document ledger for faucet requests, claim history and rate limits."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import ClaimRecord, FaucetRequest, RateLimitEntry, now_ms

log = logging.getLogger("faucet.store")

REQUESTS = "requests"
CLAIMS = "claims"
RATE_LIMITS = "rate-limits"
KINDS = (REQUESTS, CLAIMS, RATE_LIMITS)

MAX_CLAIM_HISTORY = 100


class LedgerStore:
    """Three independent collections, each kept as one JSON array on disk.

    Saves replace the whole document atomically. Read-modify-write helpers hold
    the collection's lock, so writers in this process never lose updates.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.screenshots_dir = self.data_dir / "screenshots"
        self._locks: Dict[str, threading.RLock] = {kind: threading.RLock() for kind in KINDS}

    def path_for(self, kind: str) -> Path:
        if kind not in KINDS:
            raise ValueError(f"Unknown collection '{kind}'")
        return self.data_dir / f"{kind}.json"

    def initialize(self) -> None:
        self.screenshots_dir.mkdir(parents=True, exist_ok=True)
        for kind in KINDS:
            path = self.path_for(kind)
            if not path.exists():
                self.save_all(kind, [])
        log.info("Ledger initialized at %s", self.data_dir.resolve())

    # Generic collection access ---------------------------------------------

    def load_all(self, kind: str) -> List[Dict[str, Any]]:
        path = self.path_for(kind)
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.error("Error loading %s: %s", kind, exc)
            return []
        if not isinstance(data, list):
            log.error("Error loading %s: expected a JSON array", kind)
            return []
        return data

    def save_all(self, kind: str, records: List[Dict[str, Any]]) -> None:
        path = self.path_for(kind)
        with self._locks[kind]:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(records, indent=2), encoding="utf-8")
            tmp.replace(path)

    def append(self, kind: str, record: Dict[str, Any]) -> None:
        with self._locks[kind]:
            records = self.load_all(kind)
            records.append(record)
            self.save_all(kind, records)

    def find_by_key(self, kind: str, key: str) -> Optional[Dict[str, Any]]:
        """Most recent record of ``kind`` whose natural key equals ``key``.

        Requests are keyed by wallet, rate limits by wallet or IP and claims by
        transaction hash. Wallet addresses compare case-insensitively.
        """
        needle = key.lower()
        for record in reversed(self.load_all(kind)):
            if kind == REQUESTS:
                candidates = [record.get("walletAddress")]
            elif kind == RATE_LIMITS:
                candidates = [record.get("walletAddress"), record.get("ipAddress")]
            else:
                candidates = [record.get("txHash")]
            if any(c is not None and c.lower() == needle for c in candidates):
                return record
        return None

    # Requests ----------------------------------------------------------------

    def load_requests(self) -> List[FaucetRequest]:
        return [FaucetRequest.from_dict(r) for r in self.load_all(REQUESTS)]

    def add_request(self, request: FaucetRequest) -> None:
        self.append(REQUESTS, request.to_dict())

    def get_request_by_wallet(self, wallet_address: str) -> Optional[FaucetRequest]:
        record = self.find_by_key(REQUESTS, wallet_address)
        return FaucetRequest.from_dict(record) if record else None

    def update_request(
        self, wallet_address: str, timestamp: Optional[int] = None, **updates: Any
    ) -> Optional[FaucetRequest]:
        """Apply ``updates`` to the wallet's request created at ``timestamp``.

        Without a timestamp the most recent request for the wallet is updated.
        """
        needle = wallet_address.lower()
        with self._locks[REQUESTS]:
            requests = self.load_requests()
            for request in reversed(requests):
                if request.wallet_address.lower() != needle:
                    continue
                if timestamp is None or request.timestamp == timestamp:
                    for field_name, value in updates.items():
                        setattr(request, field_name, value)
                    self.save_all(REQUESTS, [r.to_dict() for r in requests])
                    return request
        log.warning("No request to update for %s", wallet_address)
        return None

    # Claim history -------------------------------------------------------------

    def load_claim_history(self) -> List[ClaimRecord]:
        return [ClaimRecord.from_dict(c) for c in self.load_all(CLAIMS)]

    def save_claim(self, claim: ClaimRecord) -> None:
        with self._locks[CLAIMS]:
            claims = self.load_all(CLAIMS)
            claims.append(claim.to_dict())
            self.save_all(CLAIMS, claims[-MAX_CLAIM_HISTORY:])

    def get_last_successful_claim(self) -> Optional[ClaimRecord]:
        successes = [c for c in self.load_claim_history() if c.success]
        if not successes:
            return None
        return max(successes, key=lambda c: c.timestamp)

    # Rate limits ---------------------------------------------------------------

    def load_rate_limits(self) -> List[RateLimitEntry]:
        return [RateLimitEntry.from_dict(e) for e in self.load_all(RATE_LIMITS)]

    def get_rate_limit(
        self,
        wallet_address: Optional[str] = None,
        ip_address: Optional[str] = None,
        now: Optional[int] = None,
    ) -> Optional[RateLimitEntry]:
        """Active entry for the wallet, or for the IP when no wallet is given."""
        now = now_ms() if now is None else now
        for entry in self.load_rate_limits():
            if not entry.is_active(now):
                continue
            if wallet_address:
                if entry.wallet_address and entry.wallet_address.lower() == wallet_address.lower():
                    return entry
            elif ip_address and entry.ip_address == ip_address:
                return entry
        return None

    def update_rate_limit(self, entry: RateLimitEntry, now: Optional[int] = None) -> None:
        now = now_ms() if now is None else now
        with self._locks[RATE_LIMITS]:
            limits = [e for e in self.load_rate_limits() if e.is_active(now)]
            for index, existing in enumerate(limits):
                if entry.wallet_address:
                    same = bool(existing.wallet_address) and existing.wallet_address.lower() == entry.wallet_address.lower()
                else:
                    same = existing.ip_address == entry.ip_address
                if same:
                    limits[index] = entry
                    break
            else:
                limits.append(entry)
            self.save_all(RATE_LIMITS, [e.to_dict() for e in limits])
