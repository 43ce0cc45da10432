from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import pytest

from catalog_discovery.browser.session import load_page
from catalog_discovery.domain.errors import InvalidURLError
from catalog_discovery.domain.models import ErrorCode, FilterOutcomeState
from catalog_discovery.models.requests import CatalogCrawlRequest
from catalog_discovery.services.catalog_service import build_service
from catalog_discovery.storage.selector_repository import InMemorySelectorRepository

HOME = "https://shop.example.com/"
DRESSES = "https://shop.example.com/collections/dresses"
TOPS = "https://shop.example.com/collections/tops"

HOME_HTML = """
<html><head><title>Shop</title></head><body>
<header><nav><ul>
  <li class="dropdown-toggle">
    <p class="dropdown-title">Women</p>
    <div class="dropdown-content" data-reveal-on-hover>
      <a href="/collections/dresses">Dresses</a>
      <a href="/collections/tops">Tops</a>
    </div>
  </li>
  <li class="dropdown-toggle">
    <p class="dropdown-title">Men</p>
    <div class="dropdown-content" data-reveal-on-hover>
      <a href="/collections/shirts">Shirts</a>
    </div>
  </li>
</ul></nav></header>
</body></html>
"""

CHALLENGE_HTML = "<html><head><title>Access Denied</title></head><body></body></html>"


class SnapshotSessions:
    """Session provider that serves snapshot pages and applies the real load guards."""

    def __init__(self, pages, page_cls):
        self._pages = pages
        self._page_cls = page_cls
        self.opened: list[str] = []

    @asynccontextmanager
    async def open(self, url: str):
        self.opened.append(url)
        page = self._page_cls(self._pages, url)
        await load_page(page, url)
        yield page


def _service(fast_settings, pages, page_cls, repo=None):
    sessions = SnapshotSessions(pages, page_cls)
    return build_service(fast_settings, sessions=sessions, selector_repository=repo), sessions


def test_navigation_then_filters_for_top_categories(fast_settings, listing_page_cls, listing_html) -> None:
    pages = {HOME: HOME_HTML, DRESSES: listing_html, TOPS: listing_html}
    repo = InMemorySelectorRepository()
    service, sessions = _service(fast_settings, pages, listing_page_cls, repo)

    report = asyncio.run(service.discover_catalog(CatalogCrawlRequest(url=HOME, max_categories=2)))

    assert report.navigation.strategy_used == "PatternMatchStrategy"
    assert report.navigation.item_count == 5
    assert [e.category_url for e in report.explorations] == [DRESSES, TOPS]
    for exploration in report.explorations:
        assert len(exploration.filter_outcomes) == 5
        assert all(o.final_state is FilterOutcomeState.REVERTED for o in exploration.filter_outcomes)
        assert len(exploration.unique_products) == 4
    assert report.failures == ()
    assert sessions.opened == [HOME, DRESSES, TOPS]

    learned = asyncio.run(repo.load("shop.example.com"))
    assert set(learned) == {"navigation_pattern", "filter_containers"}


def test_category_failures_do_not_abort_siblings(fast_settings, listing_page_cls, listing_html) -> None:
    broken = listing_html.replace('type="checkbox"', 'type="checkbox" data-broken').replace(
        'type="button" data-value', 'type="button" data-broken data-value'
    )
    pages = {HOME: HOME_HTML, DRESSES: broken, TOPS: CHALLENGE_HTML}
    service, _ = _service(fast_settings, pages, listing_page_cls)

    report = asyncio.run(service.discover_catalog(CatalogCrawlRequest(url=HOME, max_categories=2)))

    assert report.explorations == ()
    failures = {f.category_url: f for f in report.failures}
    assert failures[DRESSES].error_code == ErrorCode.NO_FILTERS_EXPLORED
    assert failures[DRESSES].partial_result.stats.failed == 5
    assert failures[TOPS].error_code == ErrorCode.PAGE_BLOCKED
    assert failures[TOPS].partial_result is None


def test_navigation_only_request(fast_settings, listing_page_cls) -> None:
    service, sessions = _service(fast_settings, {HOME: HOME_HTML}, listing_page_cls)

    report = asyncio.run(service.discover_catalog(CatalogCrawlRequest(url=HOME, explore_filters=False)))

    assert report.explorations == ()
    assert sessions.opened == [HOME]
    reports = {r.strategy_name: r for r in report.navigation.strategy_reports}
    assert reports["PatternMatchStrategy"].won
    assert reports["MegaMenuStrategy"].error_code == ErrorCode.STRATEGY_EXTRACTION_EMPTY
    assert reports["FallbackLinkStrategy"].score < reports["PatternMatchStrategy"].score


def test_cancelled_crawl_skips_pending_categories(fast_settings, listing_page_cls, listing_html) -> None:
    pages = {HOME: HOME_HTML, DRESSES: listing_html, TOPS: listing_html}
    service, sessions = _service(fast_settings, pages, listing_page_cls)

    async def scenario():
        cancel = asyncio.Event()
        cancel.set()
        return await service.discover_catalog(CatalogCrawlRequest(url=HOME), cancel_event=cancel)

    report = asyncio.run(scenario())
    assert report.explorations == ()
    assert report.failures == ()
    assert sessions.opened == [HOME]


def test_invalid_url_is_rejected(fast_settings, listing_page_cls) -> None:
    service, _ = _service(fast_settings, {}, listing_page_cls)
    with pytest.raises(InvalidURLError):
        asyncio.run(service.discover_navigation("ftp://shop.example.com/"))


def test_unexpected_category_error_keeps_sibling_results(
    fast_settings, listing_page_cls, listing_html, captured_logs
) -> None:
    class ClosingPage(listing_page_cls):
        async def query_elements(self, selector: str, *, root: str | None = None):
            if self.url == TOPS:
                raise RuntimeError("Target page, context or browser has been closed")
            return await super().query_elements(selector, root=root)

    pages = {HOME: HOME_HTML, DRESSES: listing_html, TOPS: listing_html}
    service, _ = _service(fast_settings, pages, ClosingPage)

    report = asyncio.run(service.discover_catalog(CatalogCrawlRequest(url=HOME, max_categories=2)))

    assert [e.category_url for e in report.explorations] == [DRESSES]
    assert len(report.explorations[0].unique_products) == 4
    [failure] = report.failures
    assert failure.category_url == TOPS
    assert failure.error_code == ErrorCode.INTERNAL_ERROR
    assert "has been closed" in failure.message
    assert [e["category"] for e in captured_logs if e["event"] == "category_failed"] == ["Tops"]
