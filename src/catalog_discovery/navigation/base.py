"""Navigation strategy capability and shared helpers."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Iterable

from ..browser.page import ElementInfo, PageHandle
from ..config.settings import DiscoverySettings, get_settings
from ..domain.models import NavigationNode, StrategyResult, count_tree_items
from ..observability.logger import get_logger
from ..utils.time import monotonic_ms

logger = get_logger(__name__)

_NON_NAV_HREF = ("javascript:", "mailto:", "tel:")


def is_navigable_href(href: str | None) -> bool:
    if not href:
        return False
    h = href.strip().lower()
    return bool(h) and not h.startswith(_NON_NAV_HREF) and not h.startswith("#")


def clean_label(text: str, max_len: int = 80) -> str:
    return re.sub(r"\s+", " ", text or "").strip()[:max_len]


def links_to_nodes(
    links: Iterable[ElementInfo],
    *,
    source: str,
    confidence: float,
    seen: set[str] | None = None,
) -> list[NavigationNode]:
    """Visible, navigable, labelled links as leaf nodes, deduped by URL."""
    seen = seen if seen is not None else set()
    nodes: list[NavigationNode] = []
    for link in links:
        label = clean_label(link.text or link.attr("aria-label") or link.attr("title"))
        if not link.visible or not label or not is_navigable_href(link.href):
            continue
        if link.href in seen:
            continue
        seen.add(link.href)
        nodes.append(NavigationNode(name=label, url=link.href, source_strategy=source, confidence=confidence))
    return nodes


class NavigationStrategy(ABC):
    """One independent algorithm for extracting a navigation tree.

    Subclasses implement ``extract``; ``execute`` wraps it with timing,
    result packaging and the UI reset every strategy owes the others
    sharing the page.
    """

    name: str = "NavigationStrategy"
    priority: int = 100

    def __init__(self, settings: DiscoverySettings | None = None):
        self._settings = settings or get_settings()

    @abstractmethod
    async def extract(self, page: PageHandle, url: str) -> tuple[list[NavigationNode], float, dict[str, Any]]:
        """Return (tree, confidence, metadata)."""

    async def execute(self, page: PageHandle, url: str) -> StrategyResult:
        started = monotonic_ms()
        try:
            tree, confidence, metadata = await self.extract(page, url)
        finally:
            await self.reset_ui(page)
        tree = [n for n in tree if n.is_valid()]
        return StrategyResult(
            strategy_name=self.name,
            navigation_tree=tuple(tree),
            item_count=count_tree_items(tuple(tree)),
            confidence=confidence,
            duration_ms=monotonic_ms() - started,
            metadata=metadata,
        )

    async def reset_ui(self, page: PageHandle) -> None:
        """Close menus and drop focus so the next reader sees a settled page."""
        try:
            await page.reset_pointer()
            await page.press("Escape")
            await page.wait(self._settings.reset_delay_ms)
        except Exception as e:
            logger.warning("strategy_reset_failed", strategy=self.name, error=str(e))
