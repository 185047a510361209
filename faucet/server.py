"""Sepolia Faucet Bot API

A small FastAPI service in front of the master wallet. It:
- Hands out a fixed amount of Sepolia ETH per request
- Enforces per-wallet and per-IP daily limits and a funded-wallet threshold
- Keeps the master wallet topped up by claiming from the Google Cloud faucet

Run:
  python -m faucet serve
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from .chain import ChainGateway
from .claimer import FaucetClaimer
from .config import FaucetConfig, load_config
from .ratelimit import RateLimiter
from .scheduler import ClaimScheduler
from .service import DisbursementService
from .store import LedgerStore

log = logging.getLogger("faucet.server")


class FundingRequest(BaseModel):
    walletAddress: Optional[str] = None


def client_ip(raw: Request) -> Optional[str]:
    if raw.client and raw.client.host:
        return raw.client.host
    forwarded = raw.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return None


def create_app(
    service: DisbursementService,
    scheduler: Optional[ClaimScheduler] = None,
    allow_origins: Sequence[str] = ("*",),
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.gateway.log_status()
        if scheduler:
            scheduler.start()
        log.info("Faucet API ready (GET /health, GET /status, POST /request, GET /requests, GET /claims)")
        try:
            yield
        finally:
            if scheduler:
                await scheduler.stop()

    app = FastAPI(title="Sepolia Faucet Bot", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(allow_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        log.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/health")
    async def health():
        return await service.health()

    @app.get("/status")
    async def status():
        return await service.status()

    @app.post("/request")
    async def request_funds(body: FundingRequest, raw: Request):
        return await service.request_funds(body.walletAddress, client_ip(raw))

    @app.get("/requests")
    def list_requests():
        return service.list_requests()

    @app.get("/requests/{address}")
    def get_request(address: str):
        return service.get_request(address)

    @app.get("/claims")
    def claims() -> Dict[str, Any]:
        last = service.store.get_last_successful_claim()
        return {
            "claims": [c.to_dict() for c in service.store.load_claim_history()],
            "lastSuccessfulClaim": last.to_dict() if last else None,
            "claimDue": scheduler.is_due() if scheduler else None,
        }

    app.state.service = service
    app.state.scheduler = scheduler
    return app


def build_app(config: Optional[FaucetConfig] = None) -> FastAPI:
    """Wire every component from ``config`` (environment when omitted)."""
    cfg = config or load_config()
    store = LedgerStore(cfg.data_dir)
    store.initialize()
    limiter = RateLimiter(store, cfg.max_requests_per_wallet_per_day, cfg.max_requests_per_ip_per_day)
    gateway = ChainGateway(cfg)
    service = DisbursementService(store, limiter, gateway)
    scheduler = None
    if cfg.auto_claim:
        scheduler = ClaimScheduler(
            store,
            FaucetClaimer(cfg, store),
            interval_hours=cfg.claim_interval_hours,
            startup_delay=cfg.claim_startup_delay,
        )
    else:
        log.info("Automatic faucet claiming disabled; fund the master wallet manually")
    return create_app(service, scheduler, allow_origins=cfg.allow_origins)
