"""Browser automation that claims Sepolia ETH from the Google Cloud faucet.

The page structure is outside our control, so selectors are tried in order and
every attempt leaves a screenshot under ``<data dir>/screenshots``.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .config import FaucetConfig
from .models import ClaimRecord, now_ms
from .store import LedgerStore

log = logging.getLogger("faucet.claimer")

GOOGLE_SIGNIN_URL = "https://accounts.google.com/signin"
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
CLAIM_AMOUNT = "0.05"
ADDRESS_INPUT = 'input[type="text"], input[placeholder*="address"], input[name*="address"]'
CLAIM_BUTTONS = (
    'button:has-text("Send")',
    'button:has-text("Claim")',
    'button:has-text("Request")',
    'button[type="submit"]',
)
SUCCESS_MARKERS = (
    "text=/success/i",
    "text=/sent/i",
    "text=/claimed/i",
    "text=/transaction/i",
)
TX_HASH_RE = re.compile(r"0x[a-fA-F0-9]{64}")


class FaucetClaimer:
    def __init__(self, config: FaucetConfig, store: LedgerStore):
        self.config = config
        self.store = store
        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.page: Optional[Page] = None

    async def initialize(self) -> None:
        log.info("Launching browser for faucet claim (headless=%s)", self.config.headless)
        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            executable_path=self.config.chromium_executable_path,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        context = await self.browser.new_context(user_agent=USER_AGENT)
        self.page = await context.new_page()

    async def login_to_google(self) -> bool:
        if not self.page:
            raise RuntimeError("Browser not initialized")
        page = self.page
        log.info("Logging into Google account")
        try:
            await page.goto(GOOGLE_SIGNIN_URL, wait_until="networkidle")
            await page.fill('input[type="email"]', self.config.google_email)
            await page.click('button:has-text("Next")')
            await page.wait_for_timeout(3000)

            # The sign-in page keeps a hidden password field around; use the visible one.
            password = page.locator('input[type="password"]:not([aria-hidden="true"])').first
            await password.wait_for(state="visible", timeout=10000)
            await password.fill(self.config.google_password)
            await page.click('button:has-text("Next")')
            await page.wait_for_timeout(3000)
        except PlaywrightError as exc:
            log.error("Google login failed: %s", exc)
            return False
        log.info("Google login successful")
        return True

    async def _click_claim_button(self) -> None:
        for selector in CLAIM_BUTTONS:
            try:
                await self.page.click(selector, timeout=5000)
                return
            except PlaywrightError:
                continue
        raise RuntimeError("Could not find claim button")

    async def _wait_for_success(self) -> bool:
        for selector in SUCCESS_MARKERS:
            try:
                await self.page.wait_for_selector(selector, timeout=5000)
                return True
            except PlaywrightError:
                continue
        return False

    async def _screenshot(self, prefix: str) -> None:
        path = self.config.screenshots_dir / f"{prefix}-{now_ms()}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        await self.page.screenshot(path=str(path))
        log.info("Saved screenshot %s", path)

    async def claim_from_faucet(self) -> ClaimRecord:
        if not self.page:
            raise RuntimeError("Browser not initialized")
        claim = ClaimRecord(timestamp=now_ms(), amount=CLAIM_AMOUNT)
        try:
            log.info("Opening faucet %s", self.config.faucet_url)
            await self.page.goto(self.config.faucet_url, wait_until="networkidle", timeout=60000)
            await self.page.wait_for_timeout(3000)

            await self.page.wait_for_selector(ADDRESS_INPUT, timeout=10000)
            await self.page.fill(ADDRESS_INPUT, self.config.faucet_wallet_address)
            await self._click_claim_button()

            log.info("Waiting for faucet confirmation")
            await self.page.wait_for_timeout(5000)
            if await self._wait_for_success():
                claim.success = True
                match = TX_HASH_RE.search(await self.page.content())
                if match:
                    claim.tx_hash = match.group(0)
                log.info("Faucet claim successful (tx=%s)", claim.tx_hash)
            else:
                claim.error = "Success confirmation not found"
                log.warning("Could not confirm claim success")
        except (PlaywrightError, RuntimeError) as exc:
            claim.success = False
            claim.error = str(exc)
            log.error("Faucet claim failed: %s", exc)

        try:
            await self._screenshot("claim" if claim.success else "error")
        except PlaywrightError as exc:
            log.warning("Screenshot failed: %s", exc)

        self.store.save_claim(claim)
        return claim

    async def close(self) -> None:
        if self.browser:
            log.info("Closing browser")
            await self.browser.close()
        if self._playwright:
            await self._playwright.stop()
        self.browser = None
        self.page = None
        self._playwright = None

    async def run(self) -> ClaimRecord:
        """Perform one complete claim attempt and record it."""
        try:
            try:
                await self.initialize()
            except PlaywrightError as exc:
                log.error("Browser launch failed: %s", exc)
                return self._record_failure(f"Browser launch failed: {exc}")
            if not await self.login_to_google():
                return self._record_failure("Google login failed")
            return await self.claim_from_faucet()
        finally:
            await self.close()

    def _record_failure(self, error: str) -> ClaimRecord:
        claim = ClaimRecord(timestamp=now_ms(), amount=CLAIM_AMOUNT, error=error)
        self.store.save_claim(claim)
        return claim
