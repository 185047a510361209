"""Periodic faucet claims into the master wallet."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from .models import HOUR_MS, ClaimRecord, now_ms
from .store import LedgerStore

log = logging.getLogger("faucet.scheduler")

# Ticks arriving this early are treated as timer drift, not a due claim.
DRIFT_SLACK_HOURS = 0.5


def claim_due(
    last_success_ms: Optional[int],
    interval_hours: float,
    now: int,
    slack_hours: float = 0.0,
) -> bool:
    if last_success_ms is None:
        return True
    return now - last_success_ms >= (interval_hours - slack_hours) * HOUR_MS


class ClaimScheduler:
    """Runs ``claim_source.run()`` every ``interval_hours``.

    A tick only claims when the last successful claim is old enough, and a
    one-shot catch-up claim runs ``startup_delay`` seconds after ``start()``
    when the last success predates the interval.
    """

    def __init__(
        self,
        store: LedgerStore,
        claim_source,
        interval_hours: float,
        startup_delay: float = 30.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.claim_source = claim_source
        self.interval_hours = interval_hours
        self.startup_delay = startup_delay
        self.clock = clock
        self._tasks: List[asyncio.Task] = []
        self._claim_lock = asyncio.Lock()

    def _last_success_ms(self) -> Optional[int]:
        last = self.store.get_last_successful_claim()
        return last.timestamp if last else None

    def is_due(self, slack_hours: float = 0.0) -> bool:
        return claim_due(self._last_success_ms(), self.interval_hours, self.clock(), slack_hours)

    def log_startup_status(self) -> bool:
        last = self._last_success_ms()
        due = claim_due(last, self.interval_hours, self.clock())
        if last is None:
            log.info("No successful faucet claim on record; claim due")
        else:
            elapsed = (self.clock() - last) / HOUR_MS
            log.info(
                "Last successful claim %.1f hours ago (interval %sh); claim %s",
                elapsed,
                self.interval_hours,
                "due" if due else "not due",
            )
        return due

    async def claim(self, slack_hours: float = 0.0) -> Optional[ClaimRecord]:
        """Run one claim unless a success landed while waiting for the lock."""
        async with self._claim_lock:
            if not self.is_due(slack_hours):
                log.info("Skipping claim; last success is recent")
                return None
            try:
                record = await self.claim_source.run()
            except Exception as exc:
                log.error("Faucet claim raised: %s", exc)
                return None
        if record.success:
            log.info("Faucet claim succeeded (tx=%s)", record.tx_hash)
        else:
            log.warning("Faucet claim failed: %s", record.error)
        return record

    async def tick(self) -> Optional[ClaimRecord]:
        if not self.is_due(slack_hours=DRIFT_SLACK_HOURS):
            log.info("Skipping scheduled claim; last success is recent")
            return None
        return await self.claim(slack_hours=DRIFT_SLACK_HOURS)

    async def _recurring(self) -> None:
        interval_s = self.interval_hours * 3600
        while True:
            await asyncio.sleep(interval_s)
            await self.tick()

    async def _catch_up(self) -> None:
        await asyncio.sleep(self.startup_delay)
        if self.is_due():
            log.info("Running catch-up claim after startup")
            await self.claim()

    def start(self) -> None:
        if self._tasks:
            return
        self.log_startup_status()
        self._tasks = [
            asyncio.create_task(self._recurring(), name="claim-scheduler"),
            asyncio.create_task(self._catch_up(), name="claim-catch-up"),
        ]
        log.info("Claim scheduler started, interval %sh", self.interval_hours)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        log.info("Claim scheduler stopped")
