"""Filter candidate discovery on a product listing page."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from ..browser.page import ElementInfo, PageHandle, is_element_active
from ..config.settings import DiscoverySettings, get_settings
from ..domain.models import FilterCandidate, FilterElementType, FilterSignals, FilterState
from ..observability.logger import get_logger
from ..storage.selector_repository import LearnedSelectorRepository
from ..utils.validators import domain_of
from .scoring import (
    FilterScoringWeights,
    has_count_suffix,
    has_filter_params,
    has_pagination_or_sort_params,
    is_excluded_label,
    label_length_ok,
    score_signals,
    strip_count_suffix,
)

logger = get_logger(__name__)

LEARNED_FILTER_KEY = "filter_containers"

FILTER_REGION_SELECTORS = (
    "[role='region'][aria-label*='filter' i]",
    "section[aria-label*='filter' i]",
    "div[aria-label*='filter' i]",
    "form[aria-label*='filter' i]",
    "[role='complementary']",
    ".filters",
    ".filter",
    ".facets",
    ".facet-list",
    ".refinements",
    ".collection-filters",
    ".sidebar",
    "aside",
    "[data-filter-group]",
    "[data-facet-group]",
)

GROUP_SELECTORS = "fieldset, details, [data-facet-group], [data-filter-group], .facet, .filter-group"
HEADING_SELECTORS = "legend, summary, h2, h3, h4, h5, [class*='title']"

ACTIVATION_SELECTORS = (
    "button.filter-toggle",
    "[data-filter-toggle]",
    "button[aria-controls*='filter' i]",
    "button[aria-label*='filter' i]",
)
_ACTIVATION_TEXT = re.compile(r"^(show\s+)?filters?(\s*(&|and)\s*sort)?$", re.I)

INPUT_SELECTOR = "input[type='checkbox'], input[type='radio']"
LINK_SELECTOR = "a[href]"
BUTTON_SELECTOR = (
    "button, [role='checkbox'], [role='option'], [role='switch'], [role='button'], "
    "[data-filter], [data-facet], [data-value], [aria-pressed]"
)

_SEMANTIC_ATTRS = ("data-filter", "data-facet", "data-value", "data-filter-value", "aria-pressed", "aria-checked")
_SEMANTIC_ROLES = ("checkbox", "option", "switch")
_SEMANTIC_NAME = re.compile(r"filter|facet|tag|category|brand|color|size|type", re.I)


@dataclass(frozen=True)
class FilterDiscoveryStats:
    elements_scanned: int = 0
    regions_found: int = 0
    used_body_fallback: bool = False
    activated_menu: bool = False
    discarded_excluded: int = 0
    discarded_below_threshold: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    by_container: dict[str, int] = field(default_factory=dict)
    score_distribution: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class FilterDiscoveryResult:
    url: str
    candidates: tuple[FilterCandidate, ...]
    stats: FilterDiscoveryStats


@dataclass(frozen=True)
class _Region:
    locator: str
    selector: str
    hint: Optional[str]


def _inside(el: ElementInfo, container_locator: str) -> bool:
    return el.locator.startswith(container_locator + " > ")


def _has_semantic_attribute(el: ElementInfo) -> bool:
    if any(a in el.attributes for a in _SEMANTIC_ATTRS):
        return True
    if el.attr("role").lower() in _SEMANTIC_ROLES:
        return True
    return bool(_SEMANTIC_NAME.search(el.attr("name")))


def _element_type(el: ElementInfo) -> FilterElementType:
    if el.tag == "input":
        return FilterElementType.RADIO if el.attr("type").lower() == "radio" else FilterElementType.CHECKBOX
    if el.tag == "a":
        return FilterElementType.LINK
    return FilterElementType.BUTTON


def _label_of(el: ElementInfo) -> str:
    if el.tag == "input":
        return el.label or el.attr("aria-label") or el.attr("value")
    return el.text or el.attr("aria-label") or el.attr("data-value") or el.attr("title")


class FilterDiscoveryEngine:
    """Finds and scores controls that narrow a product listing.

    Repeated calls against an unchanged page return the same candidate set.
    The filter menu toggle is only clicked while no filter region is
    visible, so a second call does not close a panel the first one opened.
    """

    def __init__(
        self,
        settings: DiscoverySettings | None = None,
        *,
        selector_repository: LearnedSelectorRepository | None = None,
        weights: FilterScoringWeights | None = None,
    ):
        self._settings = settings or get_settings()
        self._repo = selector_repository
        self._weights = weights or FilterScoringWeights.from_settings(self._settings)

    async def _heading_of(self, page: PageHandle, container: ElementInfo) -> Optional[str]:
        for el in await page.query_elements(HEADING_SELECTORS, root=container.locator):
            text = strip_count_suffix(el.text)
            if text:
                return text[:60]
        return container.attr("aria-label") or container.attr("data-title") or None

    async def _learned_selectors(self, domain: str) -> list[str]:
        if self._repo is None or not domain:
            return []
        stored = await self._repo.load(domain) or {}
        return [s for s in stored.get(LEARNED_FILTER_KEY) or [] if isinstance(s, str)]

    async def _find_regions(self, page: PageHandle, selectors: list[str]) -> list[_Region]:
        regions: list[_Region] = []
        for selector in selectors:
            try:
                matches = await page.query_elements(selector)
            except Exception as e:
                logger.warning("filter_region_selector_invalid", selector=selector, error=str(e))
                continue
            for el in matches:
                if not el.visible:
                    continue
                if any(el.locator == r.locator or _inside(el, r.locator) for r in regions):
                    continue
                # an outer match replaces regions nested inside it
                regions = [r for r in regions if not r.locator.startswith(el.locator + " > ")]
                regions.append(_Region(el.locator, selector, await self._heading_of(page, el)))
        return regions

    async def activate_filter_menu(self, page: PageHandle) -> bool:
        toggles: list[ElementInfo] = []
        for selector in ACTIVATION_SELECTORS:
            toggles.extend(await page.query_elements(selector))
        toggles.extend(b for b in await page.query_elements("button") if _ACTIVATION_TEXT.match(b.text.strip()))
        for toggle in toggles:
            if not toggle.visible:
                continue
            await page.click(toggle.locator)
            await page.wait(self._settings.click_settle_delay_ms)
            logger.info("filter_menu_activated", locator=toggle.locator)
            return True
        return False

    async def _groups(self, page: PageHandle) -> list[tuple[str, Optional[str]]]:
        groups = []
        for el in await page.query_elements(GROUP_SELECTORS):
            groups.append((el.locator, await self._heading_of(page, el)))
        return groups

    def _container_hint(
        self, el: ElementInfo, region: _Region | None, groups: list[tuple[str, Optional[str]]]
    ) -> Optional[str]:
        best: tuple[str, Optional[str]] | None = None
        for locator, hint in groups:
            if hint and _inside(el, locator) and (best is None or len(locator) > len(best[0])):
                best = (locator, hint)
        if best is not None:
            return best[1]
        return region.hint if region is not None else None

    async def discover_filter_candidates(self, page: PageHandle, url: str) -> FilterDiscoveryResult:
        domain = domain_of(url or page.url)
        learned = await self._learned_selectors(domain)
        selectors = learned + [s for s in FILTER_REGION_SELECTORS if s not in learned]

        regions = await self._find_regions(page, selectors)
        activated = False
        if not regions and self._settings.activate_filter_menus:
            activated = await self.activate_filter_menu(page)
            if activated:
                regions = await self._find_regions(page, selectors)
        body_fallback = not regions

        groups = await self._groups(page)
        elements: list[ElementInfo] = []
        for selector in (INPUT_SELECTOR, LINK_SELECTOR, BUTTON_SELECTOR):
            elements.extend(await page.query_elements(selector))

        threshold = self._settings.filter_score_threshold
        by_locator: dict[str, FilterCandidate] = {}
        excluded = 0
        below = 0
        for el in elements:
            if el.locator in by_locator or not el.visible:
                continue
            region = next((r for r in regions if _inside(el, r.locator)), None)
            etype = _element_type(el)
            label = _label_of(el).strip()
            filter_param = etype is FilterElementType.LINK and has_filter_params(el.href)
            semantic = _has_semantic_attribute(el)
            count_suffix = has_count_suffix(label)

            if region is None:
                # outside any filter region only unambiguous controls qualify
                if el.in_header:
                    continue
                if etype is FilterElementType.LINK and not filter_param:
                    continue
                if etype is FilterElementType.BUTTON and not (semantic or count_suffix):
                    continue
                if body_fallback and etype in (FilterElementType.CHECKBOX, FilterElementType.RADIO) and not label:
                    continue

            if is_excluded_label(label) or has_pagination_or_sort_params(el.href):
                excluded += 1
                continue

            active = is_element_active(el)
            signals = FilterSignals(
                element_type=etype,
                in_filter_region=region is not None,
                has_filter_param=filter_param,
                has_count_suffix=count_suffix,
                has_semantic_attribute=semantic,
                label_length_ok=label_length_ok(label, self._weights),
                is_active=active,
            )
            score = score_signals(signals, self._weights)
            if score < threshold:
                below += 1
                continue

            by_locator[el.locator] = FilterCandidate(
                label=strip_count_suffix(label) or label,
                element_type=etype,
                locator=el.locator,
                container_hint=self._container_hint(el, region, groups),
                score=score,
                current_state=FilterState.ACTIVE if active else FilterState.INACTIVE,
                href=el.href,
            )

        ranked = sorted(by_locator.values(), key=lambda c: (-c.score, c.locator))
        candidates = tuple(ranked[: self._settings.max_filters_per_category])

        if regions and self._repo is not None and domain:
            matched = sorted({r.selector for r in regions})
            if matched != sorted(learned):
                await self._repo.save(domain, {LEARNED_FILTER_KEY: matched})

        stats = FilterDiscoveryStats(
            elements_scanned=len(elements),
            regions_found=len(regions),
            used_body_fallback=body_fallback,
            activated_menu=activated,
            discarded_excluded=excluded,
            discarded_below_threshold=below,
            by_type=dict(Counter(c.element_type.value for c in candidates)),
            by_container=dict(Counter(c.container_hint or "ungrouped" for c in candidates)),
            score_distribution=dict(Counter(str(int(c.score)) for c in candidates)),
        )
        logger.info(
            "filter_discovery_completed",
            url=url,
            candidates=len(candidates),
            regions=len(regions),
            body_fallback=body_fallback,
            excluded=excluded,
            below_threshold=below,
        )
        return FilterDiscoveryResult(url=url, candidates=candidates, stats=stats)
