"""Mega-menu navigation extraction with escalating interaction methods."""

from __future__ import annotations

import re
from typing import Any

from ..browser.page import ElementInfo, PageHandle
from ..domain.models import NavigationNode, count_tree_items
from ..observability.logger import get_logger
from .base import NavigationStrategy, clean_label, is_navigable_href, links_to_nodes
from .fallback_links import is_utility_link

logger = get_logger(__name__)

TRIGGER_SELECTOR = (
    "nav a, nav button, header a, header button, "
    "[role='navigation'] a, [role='navigation'] button, [role='menubar'] [role='menuitem']"
)

INTERACTION_METHODS = ("hover", "click", "focus")

_TRIGGER_TEXT = re.compile(r"^[A-Za-z][A-Za-z&' -]{2,24}$")


def is_trigger_label(label: str) -> bool:
    return bool(_TRIGGER_TEXT.match(label)) and not is_utility_link(label, "")


def mega_menu_confidence(opened: int, triggers: int, total_items: int) -> float:
    if triggers <= 0:
        return 0.0
    confidence = min(opened / triggers, 1.0) * 0.6
    if total_items > 50:
        confidence += 0.3
    elif total_items > 20:
        confidence += 0.2
    elif total_items > 10:
        confidence += 0.1
    return round(min(confidence, 1.0), 4)


class MegaMenuStrategy(NavigationStrategy):
    """For each top-level trigger, try hover, then click, then focus/dispatch.

    A method succeeds when at least one link that was not visible before the
    interaction becomes visible. A click that navigates away is undone and
    counted as a failure.
    """

    name = "MegaMenuStrategy"
    priority = 2

    async def _visible_hrefs(self, page: PageHandle) -> set[str]:
        return {a.href for a in await page.query_elements("a[href]") if a.visible and a.href}

    async def _find_triggers(self, page: PageHandle) -> list[ElementInfo]:
        triggers: list[ElementInfo] = []
        labels: set[str] = set()
        for el in await page.query_elements(TRIGGER_SELECTOR):
            label = clean_label(el.text)
            if not el.visible or not is_trigger_label(label) or label.lower() in labels:
                continue
            labels.add(label.lower())
            triggers.append(el)
            if len(triggers) >= self._settings.max_mega_menus:
                break
        return triggers

    async def _interact(self, page: PageHandle, trigger: ElementInfo, method: str) -> bool:
        """Perform ``method`` on the trigger. False when the page navigated away."""
        if method == "hover":
            await page.hover(trigger.locator)
        elif method == "click":
            before = page.url
            await page.click(trigger.locator)
            if page.url != before:
                await page.goto(before)
                return False
        else:
            await page.focus(trigger.locator)
            await page.dispatch(trigger.locator, "mouseenter")
        return True

    async def _open_menu(
        self, page: PageHandle, trigger: ElementInfo
    ) -> tuple[str | None, list[ElementInfo]]:
        baseline = await self._visible_hrefs(page)
        for method in INTERACTION_METHODS:
            try:
                stayed = await self._interact(page, trigger, method)
                if stayed:
                    await page.wait(self._settings.mega_menu_hover_delay_ms)
                    revealed = [
                        a
                        for a in await page.query_elements("a[href]")
                        if a.visible and a.href and a.href not in baseline
                    ]
                    if revealed:
                        return method, revealed
            except Exception as e:
                logger.debug("mega_menu_method_failed", trigger=trigger.text, method=method, error=str(e))
            await page.reset_pointer()
            await page.press("Escape")
            await page.wait(self._settings.mega_menu_dismiss_delay_ms)
        return None, []

    async def extract(self, page: PageHandle, url: str) -> tuple[list[NavigationNode], float, dict[str, Any]]:
        triggers = await self._find_triggers(page)
        sections: list[NavigationNode] = []
        methods: dict[str, str] = {}

        for trigger in triggers:
            label = clean_label(trigger.text)
            try:
                method, links = await self._open_menu(page, trigger)
            finally:
                await self.reset_ui(page)
            if method is None:
                continue
            methods[label] = method
            children = links_to_nodes(links, source=self.name, confidence=0.8)
            sections.append(
                NavigationNode(
                    name=label,
                    url=trigger.href if is_navigable_href(trigger.href) else None,
                    children=tuple(children),
                    source_strategy=self.name,
                    confidence=0.8,
                )
            )

        total = count_tree_items(tuple(sections))
        confidence = mega_menu_confidence(len(sections), len(triggers), total)
        return sections, confidence, {"interaction_methods": methods, "triggers_tried": len(triggers)}
