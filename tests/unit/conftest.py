from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from catalog_discovery.browser.snapshot_page import SnapshotPage
from catalog_discovery.config.settings import DiscoverySettings

CATEGORY_URL = "https://shop.example.com/collections/shirts"

LISTING_HTML = """
<html>
<head><title>Shirts</title></head>
<body>
<header>
  <nav>
    <a href="/collections/shirts?color=red">Red shirts</a>
    <a href="/account">Account</a>
  </nav>
</header>
<aside class="filters">
  <fieldset>
    <legend>Color</legend>
    <label><input type="checkbox" id="c-red" name="filter.color" value="red"> Red (2)</label>
    <label><input type="checkbox" id="c-blue" name="filter.color" value="blue"> Blue (2)</label>
  </fieldset>
  <fieldset>
    <legend>Brand</legend>
    <button type="button" data-value="acme" aria-pressed="false">Acme (2)</button>
    <button type="button" data-value="zen" aria-pressed="false">Zen (2)</button>
  </fieldset>
  <fieldset>
    <legend>Material</legend>
    <label><input type="checkbox" id="m-cotton" name="filter.material" value="cotton"> Cotton (4)</label>
  </fieldset>
  <button type="button" class="clear">Clear all</button>
</aside>
<main>
  <div class="product-grid">
    <div class="product-card" data-color="red" data-brand="acme"><a href="/products/p1?utm_source=grid">Shirt One</a></div>
    <div class="product-card" data-color="blue" data-brand="acme"><a href="/products/p2">Shirt Two</a></div>
    <div class="product-card" data-color="red" data-brand="zen"><a href="/products/p3">Shirt Three</a></div>
    <div class="product-card" data-color="blue" data-brand="zen"><a href="/products/p4">Shirt Four</a></div>
  </div>
  <nav class="pagination"><a href="?page=2">2</a><a href="?page=2">Next</a></nav>
</main>
</body>
</html>
"""


class ListingPage(SnapshotPage):
    """Re-renders the product grid from the checked color and pressed brand controls."""

    def _after_click(self, el) -> None:
        if el.has_attr("data-sticky"):
            el["aria-pressed"] = "true"
        colors = {i["value"] for i in self.soup.select("input[name='filter.color'][checked]") if i.get("value")}
        brands = {b["data-value"] for b in self.soup.select("button[aria-pressed='true']")}
        for card in self.soup.select(".product-card"):
            shown = (not colors or card["data-color"] in colors) and (not brands or card["data-brand"] in brands)
            if shown:
                card.attrs.pop("style", None)
            else:
                card["style"] = "display:none"

    async def click(self, locator: str) -> None:
        el = self._find(locator)
        if el is not None and el.has_attr("data-broken"):
            raise RuntimeError("Element is not clickable: another element would receive the click")
        await super().click(locator)


@pytest.fixture
def fast_settings() -> DiscoverySettings:
    return DiscoverySettings(
        hover_settle_delay_ms=5,
        reset_delay_ms=1,
        mega_menu_hover_delay_ms=5,
        mega_menu_dismiss_delay_ms=1,
        page_load_delay_ms=10,
        click_settle_delay_ms=10,
        processing_delay_ms=5,
        removal_delay_ms=5,
        strategy_timeout_seconds=5.0,
    )


@pytest.fixture
def listing_page():
    def make(html: str = LISTING_HTML, url: str = CATEGORY_URL) -> ListingPage:
        return ListingPage({url: html}, url)

    return make


@pytest.fixture
def listing_html() -> str:
    return LISTING_HTML


@pytest.fixture
def category_url() -> str:
    return CATEGORY_URL


@pytest.fixture
def listing_page_cls() -> type[ListingPage]:
    return ListingPage


@pytest.fixture(autouse=True)
def captured_logs():
    with capture_logs() as logs:
        yield logs
