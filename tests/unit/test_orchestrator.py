from __future__ import annotations

import asyncio

import pytest

from catalog_discovery.browser.snapshot_page import SnapshotPage
from catalog_discovery.config.settings import DiscoverySettings
from catalog_discovery.domain.errors import NoNavigationFoundError
from catalog_discovery.domain.models import ErrorCode, NavigationNode, StrategyResult
from catalog_discovery.navigation.base import NavigationStrategy
from catalog_discovery.navigation.orchestrator import (
    ScoreWeights,
    StrategyOrchestrator,
    score_result,
    select_winner,
)
from catalog_discovery.storage.cache import InMemoryCatalogCache, NavigationCache

URL = "https://shop.example.com/"


def _settings(**overrides) -> DiscoverySettings:
    base = dict(reset_delay_ms=1, strategy_timeout_seconds=5.0)
    base.update(overrides)
    return DiscoverySettings(**base)


def _page() -> SnapshotPage:
    return SnapshotPage({URL: "<html><body><nav></nav></body></html>"}, URL)


def _tree(n: int, prefix: str) -> list[NavigationNode]:
    return [NavigationNode(name=f"{prefix}{i}", url=f"{URL}{prefix}/{i}") for i in range(n)]


class FakeStrategy(NavigationStrategy):
    def __init__(self, name, items=0, confidence=0.5, delay=0.0, error=None, metadata=None, settings=None):
        super().__init__(settings or _settings())
        self.name = name
        self._items = items
        self._confidence = confidence
        self._delay = delay
        self._error = error
        self._metadata = metadata or {}

    async def extract(self, page, url):
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return _tree(self._items, self.name), self._confidence, self._metadata


def _result(name, items, confidence, duration_ms, metadata=None, completion_index=0) -> StrategyResult:
    return StrategyResult(
        strategy_name=name,
        navigation_tree=tuple(_tree(items, name)),
        item_count=items,
        confidence=confidence,
        duration_ms=duration_ms,
        metadata=metadata or {},
        completion_index=completion_index,
    )


def test_score_formula_components() -> None:
    w = ScoreWeights()
    assert score_result(_result("Other", 10, 0.5, 2000), w) == 20 + 25
    # item component capped at 100
    assert score_result(_result("Other", 80, 0.0, 1000), w) == 100
    # reliable bonus, slow penalty and provenance bonus
    r = _result("PatternMatchStrategy", 10, 0.5, 61_000, metadata={"pattern_used": "simple-nav-ul"})
    assert score_result(r, w) == 20 + 25 + 25 - 10 + 10


def test_scenario_larger_confident_strategy_wins() -> None:
    a = FakeStrategy("StrategyA", items=50, confidence=0.9)
    b = FakeStrategy("StrategyB", items=10, confidence=0.5)
    c = FakeStrategy("StrategyC", error=RuntimeError("boom"))
    orch = StrategyOrchestrator([a, b, c], settings=_settings())

    result = asyncio.run(orch.execute(_page(), URL))

    assert result.strategy_used == "StrategyA"
    assert result.item_count == 50
    assert result.confidence == pytest.approx(0.9)
    reports = {r.strategy_name: r for r in result.strategy_reports}
    assert reports["StrategyC"].error_code == ErrorCode.STRATEGY_THREW
    assert reports["StrategyC"].score is None
    assert reports["StrategyA"].won


def test_reliable_bonus_can_beat_larger_result() -> None:
    # 30 items at 0.6 -> 60 + 30 = 90; reliable 20 items at 0.6 -> 40 + 30 + 25 + 10 = 105
    fallback = _result("FallbackLinkStrategy", 30, 0.6, 1000, completion_index=0)
    pattern = _result(
        "PatternMatchStrategy", 20, 0.6, 1000, metadata={"pattern_used": "bootstrap-dropdown"}, completion_index=1
    )
    assert select_winner([fallback, pattern]).strategy_name == "PatternMatchStrategy"


def test_without_bonus_winner_has_most_items() -> None:
    results = [
        _result("MegaMenuStrategy", 12, 0.7, 1000, completion_index=1),
        _result("FallbackLinkStrategy", 40, 0.4, 1000, completion_index=0),
    ]
    winner = select_winner(results)
    assert winner.item_count == max(r.item_count for r in results)


def test_ties_break_by_completion_order() -> None:
    first = _result("One", 10, 0.5, 1000, completion_index=1)
    second = _result("Two", 10, 0.5, 1000, completion_index=0)
    assert select_winner([first, second]).strategy_name == "Two"


def test_no_navigation_found_is_terminal() -> None:
    empty = FakeStrategy("Empty", items=0)
    broken = FakeStrategy("Broken", error=ValueError("bad selector"))
    orch = StrategyOrchestrator([empty, broken], settings=_settings())

    with pytest.raises(NoNavigationFoundError) as exc:
        asyncio.run(orch.execute(_page(), URL))

    codes = {r.strategy_name: r.error_code for r in exc.value.reports}
    assert codes == {"Empty": ErrorCode.STRATEGY_EXTRACTION_EMPTY, "Broken": ErrorCode.STRATEGY_THREW}


def test_strategy_timeout_is_reported_not_raised() -> None:
    settings = _settings(strategy_timeout_seconds=0.05)
    slow = FakeStrategy("Slow", items=30, delay=1.0, settings=settings)
    quick = FakeStrategy("Quick", items=3, settings=settings)
    orch = StrategyOrchestrator([slow, quick], settings=settings)

    result = asyncio.run(orch.execute(_page(), URL))

    assert result.strategy_used == "Quick"
    slow_report = next(r for r in result.strategy_reports if r.strategy_name == "Slow")
    assert slow_report.error_code == ErrorCode.STRATEGY_TIMEOUT


def test_winner_is_cached_and_reused() -> None:
    settings = _settings(nav_cache_min_items=10)
    cache = NavigationCache(InMemoryCatalogCache(), ttl_seconds=60, min_items=10)
    orch = StrategyOrchestrator([FakeStrategy("Big", items=15, settings=settings)], cache=cache, settings=settings)

    first = asyncio.run(orch.execute(_page(), URL))
    second = asyncio.run(orch.execute(_page(), URL))

    assert not first.from_cache
    assert second.from_cache
    assert second.tree == first.tree


def test_small_results_are_not_cached() -> None:
    settings = _settings()
    cache = NavigationCache(InMemoryCatalogCache(), ttl_seconds=60, min_items=10)
    orch = StrategyOrchestrator([FakeStrategy("Small", items=3, settings=settings)], cache=cache, settings=settings)

    asyncio.run(orch.execute(_page(), URL))
    again = asyncio.run(orch.execute(_page(), URL))
    assert not again.from_cache
