"""Domain-keyed result cache with TTL.

``CatalogCache`` stores JSON payloads per (domain, resource type).
``NavigationCache`` layers the navigation policy on top: reads honor the TTL
and an explicit bypass flag, writes are skipped for results too small to be
worth reusing.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from ..domain.errors import StorageError
from ..domain.models import NavigationResult
from ..domain.serialization import navigation_result_from_dict, navigation_result_to_dict
from ..models.database import CatalogCacheEntry
from ..observability.logger import get_logger

logger = get_logger(__name__)

NAVIGATION_RESOURCE = "navigation"


class CatalogCache(Protocol):
    async def get(self, domain: str, resource_type: str) -> dict[str, Any] | None: ...

    async def set(self, domain: str, resource_type: str, value: dict[str, Any], ttl_seconds: float) -> None: ...


@dataclass
class _Entry:
    value: dict[str, Any]
    expires_at: float


class InMemoryCatalogCache:
    """Process-local cache.

    Args:
        clock: Monotonic seconds source, injectable for expiry tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[tuple[str, str], _Entry] = {}
        self._lock = asyncio.Lock()
        self.reads = 0

    async def get(self, domain: str, resource_type: str) -> dict[str, Any] | None:
        async with self._lock:
            self.reads += 1
            entry = self._entries.get((domain, resource_type))
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[(domain, resource_type)]
                return None
            return entry.value

    async def set(self, domain: str, resource_type: str, value: dict[str, Any], ttl_seconds: float) -> None:
        async with self._lock:
            self._entries[(domain, resource_type)] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)


class SqlCatalogCache:
    """Cache rows in ``catalog_cache_entries`` (one per domain/resource)."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def get(self, domain: str, resource_type: str) -> dict[str, Any] | None:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(
                        select(CatalogCacheEntry).where(
                            CatalogCacheEntry.domain == domain,
                            CatalogCacheEntry.resource_type == resource_type,
                        )
                    )
                ).scalar_one_or_none()
                if row is None or row.expires_at <= datetime.utcnow():
                    return None
                return dict(row.payload)
        except SQLAlchemyError as e:
            raise StorageError("Failed to read cache entry", detail=str(e)) from e

    async def set(self, domain: str, resource_type: str, value: dict[str, Any], ttl_seconds: float) -> None:
        now = datetime.utcnow()
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(CatalogCacheEntry).where(
                        CatalogCacheEntry.domain == domain,
                        CatalogCacheEntry.resource_type == resource_type,
                    )
                )
                session.add(
                    CatalogCacheEntry(
                        domain=domain,
                        resource_type=resource_type,
                        payload=value,
                        created_at=now,
                        expires_at=now + timedelta(seconds=ttl_seconds),
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError("Failed to write cache entry", detail=str(e)) from e


class NavigationCache:
    def __init__(self, store: CatalogCache, *, ttl_seconds: float, min_items: int):
        self._store = store
        self._ttl = ttl_seconds
        self._min_items = min_items

    async def get(self, domain: str, *, bypass: bool = False) -> NavigationResult | None:
        if bypass:
            return None
        payload = await self._store.get(domain, NAVIGATION_RESOURCE)
        if payload is None:
            return None
        try:
            cached = navigation_result_from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("navigation_cache_payload_invalid", domain=domain, error=str(e))
            return None
        return replace(cached, from_cache=True)

    async def set(self, domain: str, result: NavigationResult) -> bool:
        if result.item_count < self._min_items:
            logger.info(
                "navigation_cache_skipped",
                domain=domain,
                item_count=result.item_count,
                min_items=self._min_items,
            )
            return False
        await self._store.set(domain, NAVIGATION_RESOURCE, navigation_result_to_dict(result), self._ttl)
        return True
