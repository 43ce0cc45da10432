"""Browser session acquisition with retry.

Owns everything about getting a usable page: launching chromium, loading the
URL, dismissing popups and recognizing bot-challenge pages. Blocked and
timed-out loads are retried here with exponential backoff; the discovery
core never retries.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol

from playwright.async_api import async_playwright

from ..config.settings import DiscoverySettings, get_settings
from ..domain.errors import NetworkTimeoutError, PageBlockedError
from ..observability.logger import get_logger
from ..utils.rate_limiter import DomainRateLimiter
from .page import PageHandle
from .playwright_page import PlaywrightPage

logger = get_logger(__name__)

CHALLENGE_SELECTORS = (
    ".cf-turnstile",
    ".g-recaptcha",
    "#px-captcha",
    ".challenge-form",
    '[data-testid="captcha"]',
    ".ddos-protection",
)

CHALLENGE_TITLES = (
    "just a moment",
    "please wait",
    "checking your browser",
    "access denied",
    "attention required",
)

POPUP_CLOSE_SELECTORS = (
    'button[aria-label*="close" i]',
    'button[aria-label*="dismiss" i]',
    "button.close",
    ".modal-close",
    "[data-dismiss='modal']",
    ".popup-close",
    "#onetrust-accept-btn-handler",
    "button[id*='accept' i]",
)


async def detect_block(page: PageHandle) -> str | None:
    """Return a reason string if the page is a bot challenge, else None."""
    title = (await page.title()).lower()
    for marker in CHALLENGE_TITLES:
        if marker in title:
            return f"challenge title: {marker}"
    for selector in CHALLENGE_SELECTORS:
        if any(el.visible for el in await page.query_elements(selector)):
            return f"challenge element: {selector}"
    return None


async def close_popups(page: PageHandle, *, settle_ms: int = 300) -> int:
    """Click visible close/accept buttons of overlays. Returns how many were clicked."""
    closed = 0
    for selector in POPUP_CLOSE_SELECTORS:
        for el in await page.query_elements(selector):
            if not el.visible:
                continue
            try:
                await page.click(el.locator)
            except Exception as e:
                logger.debug("popup_close_failed", selector=selector, error=str(e))
                continue
            closed += 1
            await page.wait(settle_ms)
    return closed


async def load_page(page: PageHandle, url: str, *, dismiss_popups: bool = True) -> None:
    """Navigate, dismiss overlays and fail fast on challenge pages."""
    await page.goto(url)
    if dismiss_popups:
        await close_popups(page)
    reason = await detect_block(page)
    if reason:
        raise PageBlockedError(f"Blocked while loading {url}", detail=reason)


class SessionProvider(Protocol):
    def open(self, url: str): ...


class BrowserSessionProvider:
    """Opens an isolated chromium session per call.

    Usage::

        async with provider.open(url) as page:
            ...
    """

    def __init__(
        self,
        settings: DiscoverySettings | None = None,
        *,
        rate_limiter: DomainRateLimiter | None = None,
    ):
        self._settings = settings or get_settings()
        self._rate_limiter = rate_limiter

    async def _load_with_retry(self, page: PageHandle, url: str) -> None:
        s = self._settings
        attempts = s.session_max_retries + 1
        for attempt in range(attempts):
            if self._rate_limiter is not None:
                await self._rate_limiter.wait_for_slot(url)
            try:
                await load_page(page, url, dismiss_popups=s.close_popups)
                return
            except (PageBlockedError, NetworkTimeoutError) as e:
                logger.warning(
                    "page_load_failed",
                    url=url,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    error_code=e.info.code,
                    detail=e.info.detail,
                )
                if attempt + 1 >= attempts:
                    raise
                await asyncio.sleep(s.session_retry_backoff_ms * (2**attempt) / 1000.0)

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[PlaywrightPage]:
        s = self._settings
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=s.browser_headless)
            try:
                context = await browser.new_context(
                    user_agent=s.browser_user_agent,
                    viewport={"width": s.browser_viewport_width, "height": s.browser_viewport_height},
                )
                page = PlaywrightPage(await context.new_page(), timeout_ms=s.page_timeout_ms)
                await self._load_with_retry(page, url)
                logger.info("session_opened", url=url)
                yield page
            finally:
                await browser.close()
