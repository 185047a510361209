"""Records persisted by the faucet and small shared helpers."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_COMPLETED = "completed"
STATUS_REJECTED = "rejected"


def now_ms() -> int:
    return int(time.time() * 1000)


def is_valid_address(address: Optional[str]) -> bool:
    return bool(address) and ADDRESS_RE.match(address) is not None


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


@dataclass
class FaucetRequest:
    wallet_address: str
    timestamp: int
    status: str
    ip_address: Optional[str] = None
    tx_hash: Optional[str] = None
    amount: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "walletAddress": self.wallet_address,
            "ipAddress": self.ip_address,
            "timestamp": self.timestamp,
            "status": self.status,
            "txHash": self.tx_hash,
            "amount": self.amount,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FaucetRequest":
        return cls(
            wallet_address=data["walletAddress"],
            timestamp=int(data["timestamp"]),
            status=data["status"],
            ip_address=data.get("ipAddress"),
            tx_hash=data.get("txHash"),
            amount=data.get("amount"),
        )


@dataclass
class ClaimRecord:
    timestamp: int
    amount: str
    success: bool = False
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "timestamp": self.timestamp,
            "amount": self.amount,
            "txHash": self.tx_hash,
            "success": self.success,
            "error": self.error,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaimRecord":
        return cls(
            timestamp=int(data["timestamp"]),
            amount=str(data.get("amount", "0")),
            success=bool(data.get("success", False)),
            tx_hash=data.get("txHash"),
            error=data.get("error"),
        )


@dataclass
class RateLimitEntry:
    """Request counter for one wallet or one IP address.

    Exactly one of ``wallet_address`` / ``ip_address`` is set. ``decision_id``
    remembers the last grant applied so a repeated grant can be ignored.
    """

    last_request_time: int
    request_count: int
    wallet_address: Optional[str] = None
    ip_address: Optional[str] = None
    decision_id: Optional[str] = None

    def __post_init__(self) -> None:
        if bool(self.wallet_address) == bool(self.ip_address):
            raise ValueError("Rate limit entry needs exactly one of wallet_address or ip_address")

    @property
    def key(self) -> str:
        return self.wallet_address or self.ip_address  # type: ignore[return-value]

    def is_active(self, now: int) -> bool:
        return self.last_request_time > now - DAY_MS

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "walletAddress": self.wallet_address,
            "ipAddress": self.ip_address,
            "lastRequestTime": self.last_request_time,
            "requestCount": self.request_count,
            "decisionId": self.decision_id,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateLimitEntry":
        return cls(
            last_request_time=int(data["lastRequestTime"]),
            request_count=int(data["requestCount"]),
            wallet_address=data.get("walletAddress"),
            ip_address=data.get("ipAddress"),
            decision_id=data.get("decisionId"),
        )


@dataclass
class DistributionResult:
    success: bool = False
    tx_hash: Optional[str] = None
    amount: Optional[str] = None
    error: Optional[str] = None
