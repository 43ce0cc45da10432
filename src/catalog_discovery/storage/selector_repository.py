"""Learned selector persistence.

A domain's learned patterns are a small JSON object, e.g.
``{"navigation_pattern": {...}, "filter_containers": [".facets"]}``.
``save`` merges the given keys into what is already stored.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..domain.errors import StorageError
from ..models.database import LearnedSelectorRecord
from ..observability.logger import get_logger

logger = get_logger(__name__)


class LearnedSelectorRepository(Protocol):
    async def load(self, domain: str) -> dict[str, Any] | None: ...

    async def save(self, domain: str, pattern: dict[str, Any]) -> None: ...


class InMemorySelectorRepository:
    def __init__(self, initial: dict[str, dict[str, Any]] | None = None):
        self._data: dict[str, dict[str, Any]] = copy.deepcopy(initial or {})
        self._lock = asyncio.Lock()

    async def load(self, domain: str) -> dict[str, Any] | None:
        async with self._lock:
            stored = self._data.get(domain)
            return copy.deepcopy(stored) if stored is not None else None

    async def save(self, domain: str, pattern: dict[str, Any]) -> None:
        async with self._lock:
            self._data.setdefault(domain, {}).update(copy.deepcopy(pattern))


class SqlSelectorRepository:
    """Repository for learned selectors (one JSON row per domain)."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def load(self, domain: str) -> dict[str, Any] | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(LearnedSelectorRecord, domain)
                return dict(row.patterns) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError("Failed to load learned selectors", detail=str(e)) from e

    async def save(self, domain: str, pattern: dict[str, Any]) -> None:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(select(LearnedSelectorRecord).where(LearnedSelectorRecord.domain == domain))
                ).scalar_one_or_none()
                if row is None:
                    session.add(LearnedSelectorRecord(domain=domain, patterns=dict(pattern), updated_at=datetime.utcnow()))
                else:
                    row.patterns = {**(row.patterns or {}), **pattern}
                    row.updated_at = datetime.utcnow()
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError("Failed to save learned selectors", detail=str(e)) from e
        logger.info("learned_selectors_saved", domain=domain, keys=sorted(pattern))
