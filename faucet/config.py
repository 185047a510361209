"""Runtime configuration for the faucet bot.

Environment variables (a ``.env`` file in the working directory is honoured):
  SEPOLIA_RPC_URL                   JSON-RPC endpoint of the Sepolia node (required)
  MASTER_WALLET_PRIVATE_KEY         Signing key of the master wallet (required)
  GOOGLE_EMAIL / GOOGLE_PASSWORD    Credentials used by the claim automation (required)
  FAUCET_WALLET_ADDRESS             Address the external faucet pays into (required)
  HOST / PORT                       API listen address (default: 0.0.0.0:3001)
  CLAIM_INTERVAL_HOURS              Hours between faucet claims (default: 24)
  DISTRIBUTION_AMOUNT               ETH sent per request (default: 0.04)
  MIN_MASTER_BALANCE                ETH reserve kept in the master wallet (default: 0.1)
  MAX_REQUESTS_PER_WALLET_PER_DAY   (default: 1)
  MAX_REQUESTS_PER_IP_PER_DAY       (default: 3)
  MIN_WALLET_BALANCE_THRESHOLD      Only fund wallets holding less than this (default: 0.05)
  HEADLESS                          Run the claim browser headless (default: true)
  DATA_DIR                          Directory for JSON documents (default: ./data)
  CHAIN_ID                          (default: 11155111, Sepolia)
  TX_CONFIRMATION_TIMEOUT_S         Receipt wait bound (default: 120)
  CLAIM_STARTUP_DELAY_S             Delay before the catch-up claim (default: 30)
  AUTO_CLAIM                        Run the claim scheduler (default: true)
  FAUCET_URL                        Faucet page opened by the claim automation
  PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH  Use a system Chromium instead of Playwright's
  ALLOW_ORIGINS                     CORS comma list (default: *)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

GOOGLE_FAUCET_URL = "https://cloud.google.com/application/web3/faucet/ethereum/sepolia"
SEPOLIA_CHAIN_ID = 11155111


@dataclass
class FaucetConfig:
    rpc_url: str
    master_private_key: str
    google_email: str
    google_password: str
    faucet_wallet_address: str
    host: str = "0.0.0.0"
    port: int = 3001
    claim_interval_hours: float = 24.0
    distribution_amount: Decimal = Decimal("0.04")
    min_master_balance: Decimal = Decimal("0.1")
    max_requests_per_wallet_per_day: int = 1
    max_requests_per_ip_per_day: int = 3
    min_wallet_balance_threshold: Decimal = Decimal("0.05")
    headless: bool = True
    data_dir: Path = Path("data")
    chain_id: int = SEPOLIA_CHAIN_ID
    tx_confirmation_timeout: float = 120.0
    claim_startup_delay: float = 30.0
    auto_claim: bool = True
    faucet_url: str = GOOGLE_FAUCET_URL
    chromium_executable_path: Optional[str] = None
    allow_origins: tuple[str, ...] = ("*",)

    @property
    def screenshots_dir(self) -> Path:
        return self.data_dir / "screenshots"


def _required(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {key}")
    return value


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key) or str(default)
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{key} must be an integer, got {raw!r}") from exc


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key) or str(default)
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{key} must be a number, got {raw!r}") from exc


def _ether(env: Mapping[str, str], key: str, default: str) -> Decimal:
    raw = env.get(key) or default
    try:
        amount = Decimal(raw)
    except InvalidOperation as exc:
        raise RuntimeError(f"{key} must be an ETH amount, got {raw!r}") from exc
    if amount < 0:
        raise RuntimeError(f"{key} must not be negative")
    return amount


def _flag(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() == "true"


def load_config(env: Optional[Mapping[str, str]] = None) -> FaucetConfig:
    if env is None:
        load_dotenv()
        env = os.environ
    allow_origins = tuple(o.strip() for o in (env.get("ALLOW_ORIGINS") or "*").split(",") if o.strip())
    return FaucetConfig(
        rpc_url=_required(env, "SEPOLIA_RPC_URL"),
        master_private_key=_required(env, "MASTER_WALLET_PRIVATE_KEY"),
        google_email=_required(env, "GOOGLE_EMAIL"),
        google_password=_required(env, "GOOGLE_PASSWORD"),
        faucet_wallet_address=_required(env, "FAUCET_WALLET_ADDRESS"),
        host=env.get("HOST") or "0.0.0.0",
        port=_int(env, "PORT", 3001),
        claim_interval_hours=_float(env, "CLAIM_INTERVAL_HOURS", 24),
        distribution_amount=_ether(env, "DISTRIBUTION_AMOUNT", "0.04"),
        min_master_balance=_ether(env, "MIN_MASTER_BALANCE", "0.1"),
        max_requests_per_wallet_per_day=_int(env, "MAX_REQUESTS_PER_WALLET_PER_DAY", 1),
        max_requests_per_ip_per_day=_int(env, "MAX_REQUESTS_PER_IP_PER_DAY", 3),
        min_wallet_balance_threshold=_ether(env, "MIN_WALLET_BALANCE_THRESHOLD", "0.05"),
        headless=_flag(env, "HEADLESS", True),
        data_dir=Path(env.get("DATA_DIR") or "data").expanduser(),
        chain_id=_int(env, "CHAIN_ID", SEPOLIA_CHAIN_ID),
        tx_confirmation_timeout=_float(env, "TX_CONFIRMATION_TIMEOUT_S", 120),
        claim_startup_delay=_float(env, "CLAIM_STARTUP_DELAY_S", 30),
        auto_claim=_flag(env, "AUTO_CLAIM", True),
        faucet_url=env.get("FAUCET_URL") or GOOGLE_FAUCET_URL,
        chromium_executable_path=env.get("PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH") or None,
        allow_origins=allow_origins or ("*",),
    )
