"""End-to-end catalog discovery: navigation, then filters per category."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from ..browser.session import SessionProvider
from ..config.settings import DiscoverySettings, get_settings
from ..dedup.canonicalizer import UrlCanonicalizer
from ..dedup.deduplicator import ProductDeduplicator
from ..domain.errors import (
    CatalogDomainError,
    ExplorationFailedError,
    InvalidURLError,
    NetworkTimeoutError,
    PageBlockedError,
)
from ..domain.models import ErrorCode, ExplorationResult, NavigationNode, NavigationResult
from ..filters.discovery import FilterDiscoveryEngine
from ..filters.exploration import FilterExplorationEngine
from ..models.requests import CatalogCrawlRequest
from ..navigation.orchestrator import StrategyOrchestrator, build_default_strategies
from ..navigation.taxonomy import TaxonomyClassifier
from ..observability.logger import bind_crawl_context, clear_crawl_context, get_logger
from ..storage.cache import CatalogCache, InMemoryCatalogCache, NavigationCache
from ..storage.selector_repository import InMemorySelectorRepository, LearnedSelectorRepository
from ..utils.time import current_time_ms, elapsed_ms
from ..utils.validators import domain_of, is_valid_http_url

logger = get_logger(__name__)


@dataclass(frozen=True)
class CategoryFailure:
    category_label: str
    category_url: str
    error_code: str
    message: str
    partial_result: Optional[ExplorationResult] = None


@dataclass(frozen=True)
class CatalogDiscoveryReport:
    navigation: NavigationResult
    explorations: tuple[ExplorationResult, ...] = ()
    failures: tuple[CategoryFailure, ...] = ()
    duration_ms: int = 0


class CatalogDiscoveryService:
    """Orchestration layer.

    Responsibilities:
    - Acquire browser sessions (one per page being analyzed)
    - Run navigation discovery against the entry page
    - Explore filters of the highest-priority categories, bounded concurrency
    - Collect per-category failures without aborting sibling categories
    """

    def __init__(
        self,
        *,
        sessions: SessionProvider,
        orchestrator: StrategyOrchestrator,
        exploration_factory: Callable[[], FilterExplorationEngine],
        classifier: TaxonomyClassifier | None = None,
        settings: DiscoverySettings | None = None,
    ):
        self._settings = settings or get_settings()
        self._sessions = sessions
        self._orchestrator = orchestrator
        self._exploration_factory = exploration_factory
        self._classifier = classifier or TaxonomyClassifier(self._settings.taxonomy_priority)

    async def discover_navigation(self, url: str, *, bypass_cache: bool = False) -> NavigationResult:
        if not is_valid_http_url(url):
            raise InvalidURLError("Invalid URL", detail=url)
        async with self._sessions.open(url) as page:
            return await self._orchestrator.execute(page, url, bypass_cache=bypass_cache)

    def select_categories(self, navigation: NavigationResult, limit: int) -> list[NavigationNode]:
        return self._classifier.explorable_categories(navigation.tree)[:limit]

    async def _explore_category(
        self,
        node: NavigationNode,
        semaphore: asyncio.Semaphore,
        cancel_event: asyncio.Event | None,
    ) -> ExplorationResult | CategoryFailure | None:
        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                return None
            bind_crawl_context(category=node.name)
            engine = self._exploration_factory()
            try:
                return await engine.explore_with_filters(node.url or "", node.name, cancel_event=cancel_event)
            except ExplorationFailedError as e:
                return CategoryFailure(node.name, node.url or "", e.info.code, e.info.message, e.partial_result)
            except (PageBlockedError, NetworkTimeoutError) as e:
                logger.warning("category_skipped", category=node.name, error_code=e.info.code, detail=e.info.detail)
                return CategoryFailure(node.name, node.url or "", e.info.code, e.info.message)
            except CatalogDomainError as e:
                logger.error("category_failed", category=node.name, error_code=e.info.code, detail=e.info.detail)
                return CategoryFailure(node.name, node.url or "", e.info.code, e.info.message)
            except Exception as e:
                code = ErrorCode.INTERNAL_ERROR.value
                logger.error("category_failed", category=node.name, error_code=code, exc_info=True)
                return CategoryFailure(node.name, node.url or "", code, str(e) or type(e).__name__)

    async def discover_catalog(
        self,
        request: CatalogCrawlRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> CatalogDiscoveryReport:
        started = current_time_ms()
        domain = domain_of(request.url)
        clear_crawl_context()
        bind_crawl_context(domain=domain)
        logger.info("catalog_discovery_started", url=request.url, bypass_cache=request.bypass_cache)

        navigation = await self.discover_navigation(request.url, bypass_cache=request.bypass_cache)
        if not request.explore_filters:
            return CatalogDiscoveryReport(navigation=navigation, duration_ms=elapsed_ms(started))

        limit = request.max_categories or self._settings.max_categories_per_crawl
        categories = self.select_categories(navigation, limit)
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_categories)
        outcomes = await asyncio.gather(*(self._explore_category(n, semaphore, cancel_event) for n in categories))

        explorations = tuple(o for o in outcomes if isinstance(o, ExplorationResult))
        failures = tuple(o for o in outcomes if isinstance(o, CategoryFailure))
        report = CatalogDiscoveryReport(
            navigation=navigation,
            explorations=explorations,
            failures=failures,
            duration_ms=elapsed_ms(started),
        )
        logger.info(
            "catalog_discovery_completed",
            domain=domain,
            categories=len(categories),
            explored=len(explorations),
            failed=len(failures),
            duration_ms=report.duration_ms,
        )
        return report


def build_service(
    settings: DiscoverySettings,
    *,
    sessions: SessionProvider,
    cache_store: CatalogCache | None = None,
    selector_repository: LearnedSelectorRepository | None = None,
) -> CatalogDiscoveryService:
    """Wire the default strategies, caches and engines around ``sessions``."""
    selectors = selector_repository or InMemorySelectorRepository()
    nav_cache = NavigationCache(
        cache_store or InMemoryCatalogCache(),
        ttl_seconds=settings.nav_cache_ttl_seconds,
        min_items=settings.nav_cache_min_items,
    )
    orchestrator = StrategyOrchestrator(
        build_default_strategies(settings, selectors),
        cache=nav_cache,
        settings=settings,
    )
    canonicalizer = UrlCanonicalizer(settings.preserve_query_params)

    def exploration_factory() -> FilterExplorationEngine:
        return FilterExplorationEngine(
            sessions,
            discovery=FilterDiscoveryEngine(settings, selector_repository=selectors),
            deduplicator=ProductDeduplicator(canonicalizer, enabled=settings.enable_deduplication),
            settings=settings,
        )

    return CatalogDiscoveryService(
        sessions=sessions,
        orchestrator=orchestrator,
        exploration_factory=exploration_factory,
        settings=settings,
    )

