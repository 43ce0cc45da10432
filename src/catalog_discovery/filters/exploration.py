"""Sequential filter exploration with verify/revert discipline.

Each candidate is applied, verified active, captured, reverted and verified
inactive before the next one starts: every step mutates the page state the
following step reads, so candidates are never processed concurrently.
A failing candidate is recorded and skipped; it never aborts the category.
"""

from __future__ import annotations

import asyncio
import itertools
import re
from typing import Optional, Sequence

from ..browser.page import ElementInfo, PageHandle, is_element_active
from ..browser.session import SessionProvider
from ..config.settings import DiscoverySettings, get_settings
from ..dedup.canonicalizer import UrlCanonicalizer
from ..dedup.deduplicator import Capture, ProductDeduplicator
from ..domain.errors import (
    CatalogDomainError,
    ExplorationFailedError,
    FilterNotFoundError,
    FilterRevertError,
    FilterToggleError,
    InvalidInputError,
)
from ..domain.models import (
    ExplorationResult,
    ExplorationStats,
    FilterCandidate,
    FilterElementType,
    FilterOutcome,
    FilterOutcomeState,
    RawProductRef,
)
from ..observability.logger import get_logger
from ..utils.pacing import PacingProfile, human_delay
from ..utils.time import monotonic_ms
from .discovery import FilterDiscoveryEngine
from .state import FilterLifecycle

logger = get_logger(__name__)

S = FilterOutcomeState

PRODUCT_LINK_SELECTORS = (
    "a[href*='/products/']",
    "a[href*='/product/']",
    "a[href*='/item/']",
    "a[href*='/p/']",
    ".product-card a[href]",
    ".product-item a[href]",
    ".product-tile a[href]",
    "[data-product-id] a[href]",
)

_WS = re.compile(r"\s+")


async def capture_products(page: PageHandle) -> tuple[RawProductRef, ...]:
    """Visible product links currently listed, in page order, unique by raw URL."""
    seen: set[str] = set()
    products: list[RawProductRef] = []
    for selector in PRODUCT_LINK_SELECTORS:
        for el in await page.query_elements(selector):
            if not el.visible or not el.href or el.href in seen:
                continue
            seen.add(el.href)
            title = _WS.sub(" ", el.text or el.attr("aria-label") or el.attr("title")).strip()
            products.append(RawProductRef(raw_url=el.href, title=title or None))
    return tuple(products)


class FilterExplorationEngine:
    """Explores one category at a time.

    The engine remembers whether the filter panel had to be opened for the
    current page, so concurrent categories each need their own instance.
    """

    def __init__(
        self,
        session_provider: SessionProvider | None = None,
        *,
        discovery: FilterDiscoveryEngine | None = None,
        deduplicator: ProductDeduplicator | None = None,
        settings: DiscoverySettings | None = None,
        pacing: PacingProfile | None = None,
    ):
        self._settings = settings or get_settings()
        self._sessions = session_provider
        self._discovery = discovery or FilterDiscoveryEngine(self._settings)
        self._dedup = deduplicator or ProductDeduplicator(
            UrlCanonicalizer(self._settings.preserve_query_params),
            enabled=self._settings.enable_deduplication,
        )
        self._pacing = pacing or PacingProfile.from_settings(self._settings)
        self._reactivate_menu = False

    # ---------------------------
    # Entry points
    # ---------------------------

    async def explore_with_filters(
        self,
        category_url: str,
        category_label: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ExplorationResult:
        """Open a fresh session on the category and explore its filters."""
        if self._sessions is None:
            raise InvalidInputError("explore_with_filters requires a session provider")
        async with self._sessions.open(category_url) as page:
            return await self.explore_page(
                page, category_url, category_label, cancel_event=cancel_event, navigate=False
            )

    async def explore_page(
        self,
        page: PageHandle,
        category_url: str,
        category_label: str,
        *,
        cancel_event: asyncio.Event | None = None,
        navigate: bool = True,
    ) -> ExplorationResult:
        started = monotonic_ms()
        if navigate:
            await page.goto(category_url)
        await self._pause(page, self._pacing.page_load_ms)

        baseline = await capture_products(page)
        discovered = await self._discovery.discover_filter_candidates(page, category_url)
        self._reactivate_menu = discovered.stats.activated_menu
        candidates = discovered.candidates[: self._settings.max_filters_per_category]
        logger.info(
            "filter_exploration_started",
            category=category_label,
            url=category_url,
            baseline_products=len(baseline),
            candidates=len(candidates),
        )

        outcomes: list[FilterOutcome] = []
        cancelled = False
        for index, candidate in enumerate(candidates, start=1):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                logger.info("filter_exploration_cancelled", category=category_label, processed=index - 1)
                break
            outcome = await self._explore_single(page, candidate)
            outcomes.append(outcome)
            self._log_outcome(category_label, index, outcome)
            if outcome.final_state is S.STUCK_ACTIVE:
                await self._recover(page, category_url)

        singles = list(outcomes)
        combinations = 0
        if self._settings.enable_filter_combinations and not cancelled:
            combo_outcomes, cancelled = await self._explore_combinations(
                page, category_url, category_label, singles, cancel_event
            )
            combinations = len(combo_outcomes)
            outcomes.extend(combo_outcomes)

        result = self._build_result(
            category_label, category_url, baseline, outcomes, singles, combinations, cancelled, started, len(candidates)
        )

        succeeded = sum(1 for o in singles if o.succeeded)
        if singles and succeeded == 0 and not cancelled:
            logger.error("filter_exploration_failed", category=category_label, attempted=len(singles))
            raise ExplorationFailedError(
                f"No filter could be applied for category {category_label}",
                detail=f"{len(singles)} candidates failed",
                partial_result=result,
            )

        logger.info(
            "filter_exploration_completed",
            category=category_label,
            attempted=result.stats.filters_attempted,
            reverted=result.stats.reverted,
            failed=result.stats.failed,
            stuck_active=result.stats.stuck_active,
            unique_products=result.stats.unique_products,
            partially_unreliable=result.stats.partially_unreliable,
            cancelled=result.stats.cancelled,
            duration_ms=result.stats.duration_ms,
        )
        return result

    # ---------------------------
    # Steps
    # ---------------------------

    async def _pause(self, page: PageHandle, base_ms: int) -> None:
        await human_delay(page, base_ms, self._pacing.jitter_ratio)


    async def _return_to(self, page: PageHandle, url: str) -> None:
        """Reload ``url`` so the next step starts from an unfiltered page."""
        await page.goto(url)
        await self._pause(page, self._pacing.page_load_ms)
        if self._reactivate_menu:
            await self._discovery.activate_filter_menu(page)

    async def _recover(self, page: PageHandle, url: str) -> None:
        """``_return_to`` for failure paths: a failing reload is logged, never raised."""
        try:
            await self._return_to(page, url)
        except Exception as e:
            logger.warning("page_recovery_failed", url=url, error=str(e))

    async def _capture(self, page: PageHandle, label: str) -> tuple[RawProductRef, ...]:
        try:
            await self._pause(page, self._pacing.processing_ms)
            return await capture_products(page)
        except Exception as e:
            logger.warning("product_capture_failed", filter=label, error=str(e))
            return ()

    async def _read_state(self, page: PageHandle, candidate: FilterCandidate) -> ElementInfo | None:
        try:
            return await page.element_state(candidate.locator)
        except Exception as e:
            raise FilterToggleError(f"Filter state unreadable: {candidate.label}", detail=str(e)) from e

    async def _selected_radio(self, page: PageHandle, radio: ElementInfo) -> Optional[str]:
        """Locator of the radio already selected in ``radio``'s group, if any."""
        name = radio.attr("name")
        if not name:
            return None
        escaped = name.replace("\\", "\\\\").replace('"', '\\"')
        group = await page.query_elements(f'input[type="radio"][name="{escaped}"]')
        return next((el.locator for el in group if el.checked and el.locator != radio.locator), None)

    async def _apply(self, page: PageHandle, candidate: FilterCandidate, pre_url: str) -> Optional[str]:
        """Click the candidate and verify it reads as applied.

        Returns what ``_revert`` needs to undo a radio: the locator of the
        radio previously selected in the same group. Raises
        ``FilterNotFoundError`` or ``FilterToggleError``; a click that changed
        the page without applying the filter is undone before raising.
        """
        try:
            before = await page.element_state(candidate.locator)
        except Exception as e:
            raise FilterNotFoundError(f"Filter control not found: {candidate.label}", detail=str(e)) from e
        if before is None or not before.visible:
            raise FilterNotFoundError(f"Filter control not found: {candidate.label}", detail=candidate.locator)
        # preselected facets are part of the baseline listing
        if is_element_active(before):
            raise FilterToggleError(f"Filter already active on the unfiltered page: {candidate.label}")

        try:
            previous = None
            if candidate.element_type is FilterElementType.RADIO:
                previous = await self._selected_radio(page, before)
            await page.click(candidate.locator)
            await self._pause(page, self._pacing.click_settle_ms)
        except Exception as e:
            raise FilterToggleError(f"Click failed: {candidate.label}", detail=str(e)) from e

        if page.url != pre_url:
            return previous
        try:
            after = await self._read_state(page, candidate)
        except FilterToggleError:
            await self._recover(page, pre_url)
            raise
        if after is None or not is_element_active(after):
            if after != before:
                await self._recover(page, pre_url)
            raise FilterToggleError(f"Filter never became active: {candidate.label}", detail=candidate.locator)
        return previous

    async def _revert(
        self, page: PageHandle, candidate: FilterCandidate, pre_url: str, previous: Optional[str] = None
    ) -> None:
        """Undo the candidate and verify it reads as inactive. Raises FilterRevertError."""
        try:
            if page.url != pre_url:
                await self._return_to(page, pre_url)
            elif candidate.element_type is FilterElementType.RADIO:
                # a radio cannot be clicked off
                if previous:
                    await page.click(previous)
                    await self._pause(page, self._pacing.removal_ms)
                else:
                    await self._return_to(page, pre_url)
            else:
                await page.click(candidate.locator)
                await self._pause(page, self._pacing.removal_ms)
            state = await page.element_state(candidate.locator)
        except CatalogDomainError as e:
            raise FilterRevertError(f"Revert failed: {candidate.label}", detail=e.info.message) from e
        except Exception as e:
            raise FilterRevertError(f"Revert failed: {candidate.label}", detail=str(e)) from e

        if page.url != pre_url:
            raise FilterRevertError(f"URL did not return after revert: {candidate.label}", detail=page.url)
        if state is not None and is_element_active(state):
            raise FilterRevertError(f"Filter still active after revert: {candidate.label}", detail=candidate.locator)

    async def _explore_single(self, page: PageHandle, candidate: FilterCandidate) -> FilterOutcome:
        started = monotonic_ms()
        lifecycle = FilterLifecycle(candidate.label)
        pre_url = page.url

        lifecycle.advance(S.ATTEMPTING)
        try:
            previous = await self._apply(page, candidate, pre_url)
        except (FilterNotFoundError, FilterToggleError) as e:
            lifecycle.advance(S.FAILED)
            if page.url != pre_url:
                await self._recover(page, pre_url)
            return FilterOutcome(
                candidate=candidate,
                final_state=lifecycle.state,
                duration_ms=monotonic_ms() - started,
                error=f"{e.info.message} ({e.info.detail})" if e.info.detail else e.info.message,
                error_code=e.code,
                labels=(candidate.label,),
            )

        lifecycle.advance(S.ACTIVE)
        products = await self._capture(page, candidate.label)

        lifecycle.advance(S.REVERTING)
        error = None
        error_code = None
        try:
            await self._revert(page, candidate, pre_url, previous)
            lifecycle.advance(S.REVERTED)
        except FilterRevertError as e:
            lifecycle.advance(S.STUCK_ACTIVE)
            error, error_code = e.info.message, e.code

        return FilterOutcome(
            candidate=candidate,
            final_state=lifecycle.state,
            products_captured=products,
            duration_ms=monotonic_ms() - started,
            error=error,
            error_code=error_code,
            labels=(candidate.label,),
        )

    async def _explore_combination(self, page: PageHandle, pair: Sequence[FilterCandidate]) -> FilterOutcome:
        started = monotonic_ms()
        labels = tuple(c.label for c in pair)
        lifecycle = FilterLifecycle(" + ".join(labels))
        applied: list[tuple[FilterCandidate, str, Optional[str]]] = []

        lifecycle.advance(S.ATTEMPTING)
        try:
            for candidate in pair:
                pre_url = page.url
                previous = await self._apply(page, candidate, pre_url)
                applied.append((candidate, pre_url, previous))
            for candidate, _, _ in applied:
                state = await self._read_state(page, candidate)
                if state is None or not is_element_active(state):
                    raise FilterToggleError(f"Filter dropped out of combination: {candidate.label}")
        except (FilterNotFoundError, FilterToggleError) as e:
            lifecycle.advance(S.FAILED)
            await self._unwind(page, applied)
            return FilterOutcome(
                candidate=pair[0],
                final_state=lifecycle.state,
                duration_ms=monotonic_ms() - started,
                error=e.info.message,
                error_code=e.code,
                labels=labels,
            )

        lifecycle.advance(S.ACTIVE)
        products = await self._capture(page, lifecycle.label)

        lifecycle.advance(S.REVERTING)
        error = None
        error_code = None
        try:
            for candidate, pre_url, previous in reversed(applied):
                await self._revert(page, candidate, pre_url, previous)
            lifecycle.advance(S.REVERTED)
        except FilterRevertError as e:
            lifecycle.advance(S.STUCK_ACTIVE)
            error, error_code = e.info.message, e.code

        return FilterOutcome(
            candidate=pair[0],
            final_state=lifecycle.state,
            products_captured=products,
            duration_ms=monotonic_ms() - started,
            error=error,
            error_code=error_code,
            labels=labels,
        )

    async def _unwind(self, page: PageHandle, applied: list[tuple[FilterCandidate, str, Optional[str]]]) -> None:
        """Revert a partially applied combination, newest first."""
        for candidate, pre_url, previous in reversed(applied):
            try:
                await self._revert(page, candidate, pre_url, previous)
            except FilterRevertError as e:
                logger.warning("combination_unwind_failed", filter=candidate.label, error=e.info.message)
                raise

    async def _explore_combinations(
        self,
        page: PageHandle,
        category_url: str,
        category_label: str,
        singles: list[FilterOutcome],
        cancel_event: asyncio.Event | None,
    ) -> tuple[list[FilterOutcome], bool]:
        # link filters navigate away, so only in-page toggles are combined
        eligible = [
            o.candidate
            for o in singles
            if o.final_state is S.REVERTED and o.candidate.element_type is not FilterElementType.LINK
        ]
        pairs = list(itertools.combinations(eligible, 2))[: self._settings.max_filter_combinations]
        outcomes: list[FilterOutcome] = []
        for pair in pairs:
            if cancel_event is not None and cancel_event.is_set():
                return outcomes, True
            try:
                outcome = await self._explore_combination(page, pair)
            except FilterRevertError:
                outcome = FilterOutcome(
                    candidate=pair[0],
                    final_state=S.STUCK_ACTIVE,
                    error="partial combination could not be reverted",
                    labels=tuple(c.label for c in pair),
                )
            outcomes.append(outcome)
            self._log_outcome(category_label, len(singles) + len(outcomes), outcome)
            if outcome.final_state is S.STUCK_ACTIVE:
                await self._recover(page, category_url)
        return outcomes, False

    # ---------------------------
    # Result assembly
    # ---------------------------

    def _log_outcome(self, category_label: str, index: int, outcome: FilterOutcome) -> None:
        fields = dict(
            category=category_label,
            index=index,
            filter=outcome.label,
            state=outcome.final_state.value,
            products=len(outcome.products_captured),
            duration_ms=outcome.duration_ms,
        )
        if outcome.final_state is S.REVERTED:
            logger.info("filter_explored", **fields)
        else:
            logger.warning(
                "filter_not_reverted" if outcome.final_state is S.STUCK_ACTIVE else "filter_failed",
                error_code=outcome.error_code.value if outcome.error_code else None,
                error=outcome.error,
                **fields,
            )

    def _build_result(
        self,
        category_label: str,
        category_url: str,
        baseline: tuple[RawProductRef, ...],
        outcomes: list[FilterOutcome],
        singles: list[FilterOutcome],
        combinations: int,
        cancelled: bool,
        started: int,
        discovered: int,
    ) -> ExplorationResult:
        captures: list[Capture] = [(None, p) for p in baseline]
        for outcome in outcomes:
            if outcome.succeeded:
                captures.extend((outcome.label, p) for p in outcome.products_captured)
        deduped = self._dedup.deduplicate(captures)

        succeeded = [o for o in singles if o.succeeded]
        stuck = sum(1 for o in outcomes if o.final_state is S.STUCK_ACTIVE)
        raw_products = sum(len(o.products_captured) for o in outcomes)
        stats = ExplorationStats(
            candidates_discovered=discovered,
            filters_attempted=len(singles),
            active=len(succeeded),
            reverted=sum(1 for o in singles if o.final_state is S.REVERTED),
            failed=sum(1 for o in singles if o.final_state is S.FAILED),
            stuck_active=stuck,
            combinations_attempted=combinations,
            raw_products=len(baseline) + raw_products,
            unique_products=len(deduped.unique_products),
            avg_products_per_filter=(
                round(sum(len(o.products_captured) for o in succeeded) / len(succeeded), 2) if succeeded else 0.0
            ),
            partially_unreliable=stuck > 0,
            cancelled=cancelled,
            duration_ms=monotonic_ms() - started,
        )
        return ExplorationResult(
            category_label=category_label,
            category_url=category_url,
            baseline_products=baseline,
            filter_outcomes=tuple(outcomes),
            unique_products=deduped.unique_products,
            per_filter_coverage=deduped.per_filter_coverage,
            stats=stats,
        )
