"""Application lifespan management (startup/shutdown hooks)."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from .browser.session import BrowserSessionProvider
from .config.settings import get_settings
from .observability.logger import configure_logging, get_logger
from .services.catalog_service import CatalogDiscoveryService, build_service
from .storage.cache import InMemoryCatalogCache, SqlCatalogCache
from .storage.database import close_db, init_db, session_factory
from .storage.selector_repository import InMemorySelectorRepository, SqlSelectorRepository
from .utils.rate_limiter import DomainRateLimiter

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan_manager() -> AsyncIterator[CatalogDiscoveryService]:
    """Build the discovery service and release its resources on exit."""
    settings = get_settings()

    configure_logging()
    logger.info("starting_application", service_name=settings.service_name, cache_backend=settings.cache_backend)

    use_sql = settings.cache_backend == "sql"
    if use_sql:
        await init_db()
        logger.info("database_initialized")
        cache_store = SqlCatalogCache(session_factory=session_factory)
        selectors = SqlSelectorRepository(session_factory=session_factory)
    else:
        cache_store = InMemoryCatalogCache()
        selectors = InMemorySelectorRepository()

    rate_limiter = None
    if settings.rate_limit_per_domain_rps > 0:
        rate_limiter = DomainRateLimiter(requests_per_second=settings.rate_limit_per_domain_rps)
        logger.info("rate_limiter_enabled", rate_limit_per_domain_rps=settings.rate_limit_per_domain_rps)

    sessions = BrowserSessionProvider(settings, rate_limiter=rate_limiter)
    service = build_service(settings, sessions=sessions, cache_store=cache_store, selector_repository=selectors)

    logger.info("application_started")
    try:
        yield service
    finally:
        if use_sql:
            await close_db()
        logger.info("application_shutdown_complete")
