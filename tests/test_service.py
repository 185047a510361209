import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException

from faucet.models import DistributionResult, FaucetRequest
from faucet.ratelimit import RateLimiter
from faucet.service import DisbursementService
from faucet.store import RATE_LIMITS, REQUESTS

from .conftest import ETH, USER_ADDRESS, Clock


@pytest.mark.asyncio
@pytest.mark.parametrize("address", [None, "", "0x123", "ab" * 21, "0x" + "g" * 40, "0x" + "ab" * 20 + "00"])
async def test_invalid_address_rejected_without_writes(service, store, address):
    with pytest.raises(HTTPException) as exc:
        await service.request_funds(address, "10.0.0.1")

    assert exc.value.status_code == 400
    assert exc.value.detail == "Invalid wallet address"
    assert store.load_all(REQUESTS) == []
    assert store.load_all(RATE_LIMITS) == []


@pytest.mark.asyncio
async def test_successful_request_completes_record(service, store):
    response = await service.request_funds(USER_ADDRESS.upper().replace("0X", "0x"), "10.0.0.1")

    assert response == {
        "success": True,
        "message": "ETH sent successfully!",
        "txHash": "0x" + "12" * 32,
        "amount": "0.04",
    }
    request = store.get_request_by_wallet(USER_ADDRESS)
    assert request.wallet_address == USER_ADDRESS
    assert request.status == "completed"
    assert request.tx_hash == response["txHash"]
    assert request.ip_address == "10.0.0.1"


@pytest.mark.asyncio
async def test_second_request_same_day_is_rate_limited(service, store):
    await service.request_funds(USER_ADDRESS, "10.0.0.1")

    with pytest.raises(HTTPException) as exc:
        await service.request_funds(USER_ADDRESS, "10.0.0.2")
    assert exc.value.status_code == 429
    assert "for wallet" in exc.value.detail
    assert len(store.load_all(REQUESTS)) == 1


@pytest.mark.asyncio
async def test_request_allowed_again_after_window(service, clock):
    await service.request_funds(USER_ADDRESS, "10.0.0.1")
    clock.advance_hours(24)

    response = await service.request_funds(USER_ADDRESS, "10.0.0.1")
    assert response["success"]


@pytest.mark.asyncio
async def test_pending_request_conflicts(service, store):
    pending = FaucetRequest(wallet_address=USER_ADDRESS, timestamp=1, status="pending")
    store.add_request(pending)

    with pytest.raises(HTTPException) as exc:
        await service.request_funds(USER_ADDRESS, "10.0.0.1")
    assert exc.value.status_code == 409
    assert exc.value.detail == {"error": "You already have a pending request", "request": pending.to_dict()}
    assert len(store.load_all(REQUESTS)) == 1


@pytest.mark.asyncio
async def test_funded_wallet_refused_without_transfer(service, store, gateway, w3):
    w3.eth.balances[USER_ADDRESS] = ETH
    gateway.distribute = AsyncMock()

    with pytest.raises(HTTPException) as exc:
        await service.request_funds(USER_ADDRESS, "10.0.0.1")
    assert exc.value.status_code == 400
    assert "already has sufficient balance" in exc.value.detail
    gateway.distribute.assert_not_awaited()
    assert store.load_all(REQUESTS) == []
    assert store.load_all(RATE_LIMITS) == []


@pytest.mark.asyncio
async def test_failed_distribution_rejects_request(service, store, gateway, clock):
    gateway.distribute = AsyncMock(return_value=DistributionResult(success=False, error="Transaction reverted"))

    with pytest.raises(HTTPException) as exc:
        await service.request_funds(USER_ADDRESS, "10.0.0.1")
    assert exc.value.status_code == 500
    assert exc.value.detail == "Transaction reverted"

    request = store.get_request_by_wallet(USER_ADDRESS)
    assert request.status == "rejected"
    assert request.tx_hash is None
    # the grant stands even though the transfer failed
    assert store.get_rate_limit(wallet_address=USER_ADDRESS, now=clock.now).request_count == 1


@pytest.mark.asyncio
async def test_concurrent_requests_for_one_wallet_send_once(service, store, gateway):
    sent = DistributionResult(success=True, tx_hash="0xfeed", amount="0.04")
    gateway.distribute = AsyncMock(return_value=sent)

    results = await asyncio.gather(
        service.request_funds(USER_ADDRESS, "10.0.0.1"),
        service.request_funds(USER_ADDRESS, "10.0.0.2"),
        return_exceptions=True,
    )

    successes = [r for r in results if isinstance(r, dict)]
    denials = [r for r in results if isinstance(r, HTTPException)]
    assert len(successes) == 1
    assert len(denials) == 1 and denials[0].status_code == 429
    gateway.distribute.assert_awaited_once()
    assert len(store.load_all(REQUESTS)) == 1
    assert service._wallet_locks == {}


def test_get_request_missing_is_404(service):
    with pytest.raises(HTTPException) as exc:
        service.get_request(USER_ADDRESS)
    assert exc.value.status_code == 404


class TickingClock(Clock):
    def __call__(self) -> int:
        self.now += 1
        return self.now


@pytest.mark.asyncio
async def test_overlapping_transfers_complete_their_own_records(store, gateway):
    clock = TickingClock()
    limiter = RateLimiter(store, max_per_wallet=2, max_per_ip=5, clock=clock)
    service = DisbursementService(store, limiter, gateway, clock=clock)

    release = asyncio.Event()
    hashes = iter(["0x" + "aa" * 32, "0x" + "bb" * 32])
    started = []

    async def distribute(wallet):
        tx_hash = next(hashes)
        started.append(tx_hash)
        await release.wait()
        return DistributionResult(success=True, tx_hash=tx_hash, amount="0.04")

    async def release_when_both_sent():
        while len(started) < 2:
            await asyncio.sleep(0)
        release.set()

    gateway.distribute = distribute
    first, second, _ = await asyncio.gather(
        service.request_funds(USER_ADDRESS, "10.0.0.1"),
        service.request_funds(USER_ADDRESS, "10.0.0.2"),
        release_when_both_sent(),
    )

    requests = sorted(store.load_requests(), key=lambda r: r.timestamp)
    assert len(requests) == 2
    assert [r.status for r in requests] == ["completed", "completed"]
    assert {r.tx_hash for r in requests} == {first["txHash"], second["txHash"]}
    assert {r.ip_address: r.tx_hash for r in requests} == {
        "10.0.0.1": first["txHash"],
        "10.0.0.2": second["txHash"],
    }
