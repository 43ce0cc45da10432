"""Pattern-registry navigation extraction (high-precision strategy)."""

from __future__ import annotations

from typing import Any

from ..browser.page import ElementInfo, PageHandle
from ..config.settings import DiscoverySettings
from ..domain.models import NavigationNode, count_tree_items
from ..observability.logger import get_logger
from ..storage.selector_repository import LearnedSelectorRepository
from ..utils.validators import domain_of
from .base import NavigationStrategy, clean_label, is_navigable_href, links_to_nodes
from .patterns import NavigationPattern, patterns_for_site

logger = get_logger(__name__)

LEARNED_NAVIGATION_KEY = "navigation_pattern"


def pattern_confidence(total_items: int) -> float:
    if total_items > 50:
        return 0.95
    if total_items > 10:
        return 0.8
    return 0.6


class PatternMatchStrategy(NavigationStrategy):
    """Tries registry entries one at a time; the first with live triggers wins.

    For every trigger of the matching entry: hover (or click), settle, then
    harvest the now-visible dropdown links as that section's children.
    """

    name = "PatternMatchStrategy"
    priority = 1

    def __init__(
        self,
        settings: DiscoverySettings | None = None,
        *,
        selector_repository: LearnedSelectorRepository | None = None,
    ):
        super().__init__(settings)
        self._repo = selector_repository

    async def _learned_pattern(self, domain: str) -> NavigationPattern | None:
        if self._repo is None or not domain:
            return None
        stored = await self._repo.load(domain)
        raw = (stored or {}).get(LEARNED_NAVIGATION_KEY)
        if not raw:
            return None
        try:
            return NavigationPattern.from_dict(raw)
        except (KeyError, TypeError) as e:
            logger.warning("learned_pattern_invalid", domain=domain, error=str(e))
            return None

    async def _find_triggers(
        self, page: PageHandle, pattern: NavigationPattern
    ) -> list[tuple[ElementInfo, ElementInfo]]:
        pairs: list[tuple[ElementInfo, ElementInfo]] = []
        used: list[str] = []
        for container in await page.query_elements(pattern.container):
            if not container.visible:
                continue
            if any(container.locator.startswith(u + " > ") for u in used):
                continue
            for trigger in await page.query_elements(pattern.trigger, root=container.locator):
                if trigger.visible and clean_label(trigger.text):
                    pairs.append((container, trigger))
                    used.append(container.locator)
                    break
        return pairs

    async def _open_section(
        self, page: PageHandle, pattern: NavigationPattern, container: ElementInfo, trigger: ElementInfo
    ) -> NavigationNode:
        if pattern.interaction == "click":
            await page.click(trigger.locator)
        else:
            await page.hover(trigger.locator)
        await page.wait(self._settings.hover_settle_delay_ms)

        links: list[ElementInfo] = []
        for dropdown in await page.query_elements(pattern.dropdown, root=container.locator):
            if dropdown.visible:
                links.extend(await page.query_elements("a[href]", root=dropdown.locator))

        seen = {trigger.href} if trigger.href else set()
        children = links_to_nodes(links, source=self.name, confidence=0.9, seen=seen)
        return NavigationNode(
            name=clean_label(trigger.text),
            url=trigger.href if is_navigable_href(trigger.href) else None,
            children=tuple(children),
            source_strategy=self.name,
            confidence=0.9,
        )

    async def extract(self, page: PageHandle, url: str) -> tuple[list[NavigationNode], float, dict[str, Any]]:
        domain = domain_of(url)
        learned = await self._learned_pattern(domain)

        for pattern in patterns_for_site(url, learned):
            pairs = await self._find_triggers(page, pattern)
            if not pairs:
                continue

            logger.info("navigation_pattern_matched", pattern=pattern.name, triggers=len(pairs))
            sections: list[NavigationNode] = []
            for container, trigger in pairs[: self._settings.max_pattern_categories]:
                try:
                    node = await self._open_section(page, pattern, container, trigger)
                finally:
                    await self.reset_ui(page)
                if node.is_valid():
                    sections.append(node)

            if not sections:
                continue

            total = count_tree_items(tuple(sections))
            if self._repo is not None and domain and pattern != learned:
                await self._repo.save(domain, {LEARNED_NAVIGATION_KEY: pattern.to_dict()})
            return (
                sections,
                pattern_confidence(total),
                {"pattern_used": pattern.name, "sections": len(sections), "total_items": total},
            )

        return [], 0.0, {}
