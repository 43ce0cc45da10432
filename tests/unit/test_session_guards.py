from __future__ import annotations

import asyncio

import pytest

from catalog_discovery.browser.session import BrowserSessionProvider, close_popups, detect_block, load_page
from catalog_discovery.browser.snapshot_page import SnapshotPage
from catalog_discovery.domain.errors import PageBlockedError

URL = "https://shop.example.com/"

NORMAL_HTML = "<html><head><title>Shop</title></head><body><nav><a href='/women'>Women</a></nav></body></html>"
CHALLENGE_HTML = "<html><head><title>Just a moment...</title></head><body></body></html>"
CAPTCHA_HTML = "<html><head><title>Shop</title></head><body><div class='g-recaptcha'></div></body></html>"
POPUP_HTML = """
<html><head><title>Shop</title></head><body>
  <div class="newsletter"><button class="close">x</button></div>
  <div style="display:none"><button class="popup-close">x</button></div>
</body></html>
"""


class ChallengeThenOkPage(SnapshotPage):
    """Serves a challenge title for the first ``blocked_loads`` navigations."""

    blocked_loads = 1

    async def title(self) -> str:
        navigations = len(self.history) - 1
        if navigations <= self.blocked_loads:
            return "Just a moment..."
        return await super().title()


def test_detect_block() -> None:
    assert asyncio.run(detect_block(SnapshotPage({URL: NORMAL_HTML}, URL))) is None
    assert "just a moment" in asyncio.run(detect_block(SnapshotPage({URL: CHALLENGE_HTML}, URL)))
    assert ".g-recaptcha" in asyncio.run(detect_block(SnapshotPage({URL: CAPTCHA_HTML}, URL)))


def test_load_page_raises_on_challenge() -> None:
    page = SnapshotPage({URL: CHALLENGE_HTML}, URL)
    with pytest.raises(PageBlockedError) as exc:
        asyncio.run(load_page(page, URL))
    assert exc.value.info.detail == "challenge title: just a moment"


def test_close_popups_clicks_only_visible_controls() -> None:
    page = SnapshotPage({URL: POPUP_HTML}, URL)
    assert asyncio.run(close_popups(page, settle_ms=1)) == 1
    assert page.waits == [1]


def test_blocked_load_is_retried(fast_settings) -> None:
    settings = fast_settings.model_copy(update={"session_max_retries": 2, "session_retry_backoff_ms": 0})
    page = ChallengeThenOkPage({URL: NORMAL_HTML}, URL)

    asyncio.run(BrowserSessionProvider(settings)._load_with_retry(page, URL))

    assert page.history == [URL, URL, URL]


def test_retries_are_bounded(fast_settings) -> None:
    settings = fast_settings.model_copy(update={"session_max_retries": 1, "session_retry_backoff_ms": 0})
    page = ChallengeThenOkPage({URL: NORMAL_HTML}, URL)
    page.blocked_loads = 10

    with pytest.raises(PageBlockedError):
        asyncio.run(BrowserSessionProvider(settings)._load_with_retry(page, URL))
    assert len(page.history) == 3
