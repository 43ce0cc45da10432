from __future__ import annotations

import asyncio

from catalog_discovery.browser.snapshot_page import SnapshotPage
from catalog_discovery.domain.models import FilterElementType, FilterState
from catalog_discovery.filters.discovery import LEARNED_FILTER_KEY, FilterDiscoveryEngine
from catalog_discovery.storage.selector_repository import InMemorySelectorRepository


def _with_filter_toggle(html: str) -> str:
    return html.replace(
        '<aside class="filters">',
        '<div class="toolbar"><button type="button" class="filter-toggle">Filters</button>'
        '<div data-reveal-on-click><aside class="filters">',
    ).replace("</aside>", "</aside></div></div>")


def test_candidates_are_scored_grouped_and_ranked(fast_settings, listing_page, category_url) -> None:
    engine = FilterDiscoveryEngine(fast_settings)
    result = asyncio.run(engine.discover_filter_candidates(listing_page(), category_url))

    labels = [c.label for c in result.candidates]
    assert labels == ["Red", "Blue", "Cotton", "Acme", "Zen"]
    assert [c.score for c in result.candidates] == [6, 6, 6, 5, 5]
    assert [c.container_hint for c in result.candidates] == ["Color", "Color", "Material", "Brand", "Brand"]
    assert all(c.current_state is FilterState.INACTIVE for c in result.candidates)
    assert result.stats.by_type == {FilterElementType.CHECKBOX.value: 3, FilterElementType.BUTTON.value: 2}
    assert result.stats.regions_found == 1
    assert not result.stats.used_body_fallback


def test_noise_and_header_links_are_not_candidates(fast_settings, listing_page, category_url) -> None:
    engine = FilterDiscoveryEngine(fast_settings)
    result = asyncio.run(engine.discover_filter_candidates(listing_page(), category_url))

    labels = {c.label for c in result.candidates}
    assert "Clear all" not in labels
    assert "Red shirts" not in labels
    assert "Next" not in labels
    assert not any(c.element_type is FilterElementType.LINK for c in result.candidates)
    assert result.stats.discarded_excluded == 1


def test_discovery_is_idempotent(fast_settings, listing_page, category_url) -> None:
    engine = FilterDiscoveryEngine(fast_settings)
    page = listing_page()

    async def scenario():
        first = await engine.discover_filter_candidates(page, category_url)
        second = await engine.discover_filter_candidates(page, category_url)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.candidates == second.candidates


def test_threshold_filters_weak_candidates(fast_settings, listing_page, category_url) -> None:
    strict = fast_settings.model_copy(update={"filter_score_threshold": 5.5})
    result = asyncio.run(FilterDiscoveryEngine(strict).discover_filter_candidates(listing_page(), category_url))

    assert [c.label for c in result.candidates] == ["Red", "Blue", "Cotton"]
    assert result.stats.discarded_below_threshold == 2


def test_candidate_cap(fast_settings, listing_page, category_url) -> None:
    capped = fast_settings.model_copy(update={"max_filters_per_category": 2})
    result = asyncio.run(FilterDiscoveryEngine(capped).discover_filter_candidates(listing_page(), category_url))
    assert [c.label for c in result.candidates] == ["Red", "Blue"]


def test_matched_region_selectors_are_learned(fast_settings, listing_page, category_url) -> None:
    repo = InMemorySelectorRepository()
    engine = FilterDiscoveryEngine(fast_settings, selector_repository=repo)

    asyncio.run(engine.discover_filter_candidates(listing_page(), category_url))
    stored = asyncio.run(repo.load("shop.example.com"))

    assert stored[LEARNED_FILTER_KEY] == [".filters"]


def test_learned_selector_is_tried_first(fast_settings, category_url) -> None:
    html = """
    <html><body><main>
      <div class="shop-refine">
        <label><input type="checkbox" name="opt" value="linen"> Linen (3)</label>
        <label><input type="checkbox" name="opt" value="wool"> Wool (1)</label>
      </div>
    </main></body></html>
    """
    repo = InMemorySelectorRepository({"shop.example.com": {LEARNED_FILTER_KEY: [".shop-refine"]}})
    engine = FilterDiscoveryEngine(fast_settings, selector_repository=repo)
    page = SnapshotPage({category_url: html}, category_url)

    result = asyncio.run(engine.discover_filter_candidates(page, category_url))

    assert result.stats.regions_found == 1
    assert [c.label for c in result.candidates] == ["Linen", "Wool"]


def test_hidden_filter_panel_is_activated_once(fast_settings, listing_page, listing_html, category_url) -> None:
    engine = FilterDiscoveryEngine(fast_settings)
    page = listing_page(_with_filter_toggle(listing_html))

    async def scenario():
        first = await engine.discover_filter_candidates(page, category_url)
        second = await engine.discover_filter_candidates(page, category_url)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.stats.activated_menu
    assert not second.stats.activated_menu
    assert len(first.candidates) == 5
    assert first.candidates == second.candidates


def test_body_fallback_accepts_filter_param_links(fast_settings, category_url) -> None:
    html = """
    <html><body><main>
      <a href="/collections/shirts?brand=acme">Acme</a>
      <a href="/collections/shirts?page=2">2</a>
      <a href="/about">About us</a>
    </main></body></html>
    """
    page = SnapshotPage({category_url: html}, category_url)
    result = asyncio.run(FilterDiscoveryEngine(fast_settings).discover_filter_candidates(page, category_url))

    assert result.stats.used_body_fallback
    assert [c.label for c in result.candidates] == ["Acme"]
    assert result.candidates[0].element_type is FilterElementType.LINK
    assert result.candidates[0].href == "https://shop.example.com/collections/shirts?brand=acme"


def test_signal_weights_are_read_from_settings(fast_settings, listing_page, category_url) -> None:
    tuned = fast_settings.model_copy(update={"filter_weight_button": 3.0})
    result = asyncio.run(FilterDiscoveryEngine(tuned).discover_filter_candidates(listing_page(), category_url))

    assert [c.label for c in result.candidates] == ["Acme", "Zen", "Red", "Blue", "Cotton"]
    assert [c.score for c in result.candidates] == [7, 7, 6, 6, 6]
