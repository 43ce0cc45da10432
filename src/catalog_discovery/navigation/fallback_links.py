"""Header-region link harvesting (safety-net strategy)."""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

from ..browser.page import ElementInfo, PageHandle
from ..domain.models import NavigationNode
from .base import NavigationStrategy, clean_label, is_navigable_href

_SKIP_TEXT = re.compile(
    r"\b("
    r"sign\s*in|sign\s*up|log\s*in|login|log\s*out|logout|register|my\s+account|account|profile|"
    r"cart|bag|basket|checkout|wish\s*list|wishlist|favou?rites|"
    r"search|help|support|contact|customer\s+service|faq|"
    r"store\s+locator|find\s+a\s+store|stores|track\s+order|gift\s+cards?|"
    r"facebook|instagram|twitter|pinterest|youtube|tiktok|"
    r"privacy|terms|cookies?|legal|copyright|accessibility|sitemap"
    r")\b",
    re.IGNORECASE,
)

_SKIP_PATH = re.compile(
    r"/(account|login|signin|sign-in|register|cart|bag|basket|checkout|search|wishlist|"
    r"help|support|contact|customer-service|privacy|terms|legal|sitemap|store-locator|stores)(/|$|\?)",
    re.IGNORECASE,
)

_DEPARTMENTS = re.compile(
    r"^(women|men|kids|girls|boys|baby|home|beauty|shoes|accessories|jewelry|handbags|"
    r"clothing|furniture|electronics|toys|sports|sale|new)\b",
    re.IGNORECASE,
)


def is_utility_link(label: str, href: str) -> bool:
    if _SKIP_TEXT.search(label):
        return True
    return bool(_SKIP_PATH.search(urlparse(href).path + "/"))


def is_department_label(label: str) -> bool:
    return bool(_DEPARTMENTS.match(label.strip()))


def fallback_confidence(total: int, department_links: int, mixed_visibility: bool) -> float:
    confidence = 0.3
    if total > 100:
        confidence += 0.3
    elif total > 50:
        confidence += 0.2
    elif total > 20:
        confidence += 0.1
    elif total < 5:
        confidence -= 0.1

    if department_links > 5:
        confidence += 0.2
    elif department_links > 2:
        confidence += 0.1

    if mixed_visibility:
        confidence += 0.1
    return round(max(0.1, min(0.8, confidence)), 4)


class FallbackLinkStrategy(NavigationStrategy):
    """Flat list of every category-looking link in the header region.

    An element counts as in the header region when its page offset is within
    ``header_region_max_y`` pixels, or, when no layout is available, when it
    sits inside header/nav markup.
    """

    name = "FallbackLinkStrategy"
    priority = 3

    def _in_header_region(self, link: ElementInfo) -> bool:
        if link.top is not None:
            return 0 <= link.top <= self._settings.header_region_max_y
        return link.in_header

    async def extract(self, page: PageHandle, url: str) -> tuple[list[NavigationNode], float, dict[str, Any]]:
        links = await page.query_elements("a[href]")

        seen: set[str] = set()
        nodes: list[NavigationNode] = []
        visible_count = 0
        hidden_count = 0
        for link in links:
            if not self._in_header_region(link) or not is_navigable_href(link.href):
                continue
            label = clean_label(link.text or link.attr("aria-label") or link.attr("title"))
            if not label or len(label) > 50 or is_utility_link(label, link.href or ""):
                continue
            if link.href in seen:
                continue
            seen.add(link.href)
            if link.visible:
                visible_count += 1
            else:
                hidden_count += 1
            nodes.append(NavigationNode(name=label, url=link.href, source_strategy=self.name, confidence=0.5))
            if len(nodes) >= self._settings.fallback_max_links:
                break

        # departments first, otherwise document order
        nodes.sort(key=lambda n: 0 if is_department_label(n.name) else 1)
        departments = sum(1 for n in nodes if is_department_label(n.name))
        confidence = fallback_confidence(len(nodes), departments, visible_count > 0 and hidden_count > 0)
        return nodes, confidence, {"department_links": departments, "hidden_links": hidden_count}
