"""Concurrent navigation strategy orchestration and result selection."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Sequence

from ..browser.page import PageHandle
from ..config.settings import DiscoverySettings, get_settings
from ..domain.errors import NoNavigationFoundError
from ..domain.models import (
    ErrorCode,
    NavigationResult,
    StrategyError,
    StrategyReport,
    StrategyResult,
)
from ..observability.logger import get_logger
from ..storage.cache import NavigationCache
from ..storage.selector_repository import LearnedSelectorRepository
from ..utils.time import current_time_ms, monotonic_ms
from ..utils.validators import domain_of
from .base import NavigationStrategy
from .fallback_links import FallbackLinkStrategy
from .mega_menu import MegaMenuStrategy
from .pattern_match import PatternMatchStrategy

logger = get_logger(__name__)

PROVENANCE_KEYS = ("pattern_used",)


@dataclass(frozen=True)
class ScoreWeights:
    item_weight: float = 2.0
    item_cap: float = 100.0
    confidence_weight: float = 50.0
    reliable_bonus: float = 25.0
    reliable_strategy: str = "PatternMatchStrategy"
    slow_penalty: float = 10.0
    slow_threshold_ms: int = 60_000
    provenance_bonus: float = 10.0

    @classmethod
    def from_settings(cls, settings: DiscoverySettings) -> ScoreWeights:
        return cls(
            item_weight=settings.score_item_weight,
            item_cap=settings.score_item_cap,
            confidence_weight=settings.score_confidence_weight,
            reliable_bonus=settings.score_reliable_bonus,
            reliable_strategy=settings.reliable_strategy_name,
            slow_penalty=settings.score_slow_penalty,
            slow_threshold_ms=int(settings.slow_strategy_threshold_seconds * 1000),
            provenance_bonus=settings.score_provenance_bonus,
        )


def score_result(result: StrategyResult, weights: ScoreWeights = ScoreWeights()) -> float:
    score = min(result.item_count * weights.item_weight, weights.item_cap)
    score += result.confidence * weights.confidence_weight
    if result.strategy_name == weights.reliable_strategy:
        score += weights.reliable_bonus
    if result.duration_ms > weights.slow_threshold_ms:
        score -= weights.slow_penalty
    if any(result.metadata.get(k) for k in PROVENANCE_KEYS):
        score += weights.provenance_bonus
    return score


def select_winner(
    results: Sequence[StrategyResult], weights: ScoreWeights = ScoreWeights()
) -> StrategyResult | None:
    """Highest score among successful results.

    ``results`` must be in registration order. Ties go to the result that
    completed first, then to the earlier-registered strategy.
    """
    best: StrategyResult | None = None
    best_key: tuple[float, int, int] | None = None
    for position, result in enumerate(results):
        if not result.succeeded:
            continue
        key = (-score_result(result, weights), result.completion_index, position)
        if best_key is None or key < best_key:
            best, best_key = result, key
    return best


def build_default_strategies(
    settings: DiscoverySettings | None = None,
    selector_repository: LearnedSelectorRepository | None = None,
) -> list[NavigationStrategy]:
    settings = settings or get_settings()
    return [
        PatternMatchStrategy(settings, selector_repository=selector_repository),
        MegaMenuStrategy(settings),
        FallbackLinkStrategy(settings),
    ]


class StrategyOrchestrator:
    """Races every registered strategy against one loaded page."""

    def __init__(
        self,
        strategies: Sequence[NavigationStrategy],
        *,
        cache: NavigationCache | None = None,
        settings: DiscoverySettings | None = None,
    ):
        if not strategies:
            raise ValueError("at least one navigation strategy is required")
        self._strategies = list(strategies)
        self._cache = cache
        self._settings = settings or get_settings()
        self._weights = ScoreWeights.from_settings(self._settings)

    @property
    def strategies(self) -> list[NavigationStrategy]:
        return list(self._strategies)

    async def _run_one(self, strategy: NavigationStrategy, page: PageHandle, url: str) -> StrategyResult:
        started = monotonic_ms()
        timeout = self._settings.strategy_timeout_seconds
        try:
            result = await asyncio.wait_for(strategy.execute(page, url), timeout=timeout)
        except asyncio.TimeoutError:
            return StrategyResult(
                strategy_name=strategy.name,
                duration_ms=monotonic_ms() - started,
                error=StrategyError(ErrorCode.STRATEGY_TIMEOUT, f"timed out after {timeout}s"),
            )
        except Exception as e:
            return StrategyResult(
                strategy_name=strategy.name,
                duration_ms=monotonic_ms() - started,
                error=StrategyError(ErrorCode.STRATEGY_THREW, f"{type(e).__name__}: {e}"),
            )
        if not result.navigation_tree and result.error is None:
            result = replace(
                result,
                error=StrategyError(ErrorCode.STRATEGY_EXTRACTION_EMPTY, "No navigation items extracted"),
            )
        return result

    async def _run_all(self, page: PageHandle, url: str) -> list[StrategyResult]:
        completed = 0

        async def tracked(strategy: NavigationStrategy) -> StrategyResult:
            nonlocal completed
            result = await self._run_one(strategy, page, url)
            index = completed
            completed += 1
            return replace(result, completion_index=index)

        return list(await asyncio.gather(*(tracked(s) for s in self._strategies)))

    def _reports(self, results: Sequence[StrategyResult], winner: StrategyResult | None) -> tuple[StrategyReport, ...]:
        reports = []
        for r in results:
            reports.append(
                StrategyReport(
                    strategy_name=r.strategy_name,
                    item_count=r.item_count,
                    confidence=r.confidence,
                    duration_ms=r.duration_ms,
                    score=score_result(r, self._weights) if r.succeeded else None,
                    error_code=r.error.code if r.error else None,
                    error_message=r.error.message if r.error else "",
                    won=r is winner,
                )
            )
        return tuple(reports)

    async def execute(self, page: PageHandle, url: str, *, bypass_cache: bool = False) -> NavigationResult:
        domain = domain_of(url or page.url)

        if self._cache is not None:
            cached = await self._cache.get(domain, bypass=bypass_cache)
            if cached is not None:
                logger.info("navigation_cache_hit", domain=domain, strategy=cached.strategy_used)
                return cached

        logger.info("navigation_discovery_started", domain=domain, strategies=[s.name for s in self._strategies])
        results = await self._run_all(page, url)
        winner = select_winner(results, self._weights)
        reports = self._reports(results, winner)

        for report in reports:
            logger.info(
                "strategy_completed",
                domain=domain,
                strategy=report.strategy_name,
                items=report.item_count,
                confidence=report.confidence,
                duration_ms=report.duration_ms,
                score=report.score,
                error_code=report.error_code.value if report.error_code else None,
                won=report.won,
            )

        if winner is None:
            logger.error("no_navigation_found", domain=domain)
            raise NoNavigationFoundError(
                f"No navigation strategy produced a tree for {domain}",
                detail="; ".join(f"{r.strategy_name}: {r.error_message}" for r in reports),
                reports=reports,
            )

        result = NavigationResult(
            domain=domain,
            tree=winner.navigation_tree,
            confidence=winner.confidence,
            strategy_used=winner.strategy_name,
            item_count=winner.item_count,
            from_cache=False,
            strategy_reports=reports,
            extracted_at_ms=current_time_ms(),
        )

        if self._cache is not None:
            await self._cache.set(domain, result)

        logger.info(
            "navigation_discovery_completed",
            domain=domain,
            strategy=result.strategy_used,
            items=result.item_count,
            confidence=result.confidence,
        )
        return result
