"""Merge product captures from overlapping filter paths into a unique set."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..domain.models import ProductRef, RawProductRef
from .canonicalizer import UrlCanonicalizer

# A capture is (filter label, product). The label is None for the unfiltered
# baseline listing: those products belong to the unique set but no filter
# gets coverage credit for them.
Capture = tuple[Optional[str], RawProductRef]


@dataclass(frozen=True)
class DeduplicationResult:
    unique_products: tuple[ProductRef, ...] = ()
    per_filter_coverage: dict[str, int] = field(default_factory=dict)


class ProductDeduplicator:
    """Deduplicates captures keyed by canonical URL.

    With ``enabled=False`` the raw captures are passed through one-to-one
    (the comparison baseline): each capture becomes its own ProductRef
    keyed by the untouched raw URL, and coverage counts raw captures.
    Both modes sort their output, so the result does not depend on the
    order captures arrive in.
    """

    def __init__(self, canonicalizer: UrlCanonicalizer | None = None, *, enabled: bool = True):
        self._canonicalizer = canonicalizer or UrlCanonicalizer()
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def deduplicate(self, captures: Iterable[Capture]) -> DeduplicationResult:
        if self._enabled:
            return self._merge(captures)
        return self._passthrough(captures)

    def _merge(self, captures: Iterable[Capture]) -> DeduplicationResult:
        labels_by_key: dict[str, set[str]] = defaultdict(set)
        for label, ref in captures:
            key = self._canonicalizer.canonicalize(ref.raw_url)
            if not key:
                continue
            bucket = labels_by_key[key]
            if label:
                bucket.add(label)

        products = tuple(
            ProductRef(canonical_url=key, filters_applied=frozenset(labels))
            for key, labels in sorted(labels_by_key.items())
        )

        coverage: dict[str, int] = defaultdict(int)
        for product in products:
            for label in product.filters_applied:
                coverage[label] += 1
        return DeduplicationResult(unique_products=products, per_filter_coverage=dict(sorted(coverage.items())))

    def _passthrough(self, captures: Iterable[Capture]) -> DeduplicationResult:
        rows: list[tuple[str, str]] = []
        for label, ref in captures:
            raw = (ref.raw_url or "").strip()
            if raw:
                rows.append((raw, label or ""))
        rows.sort()

        products = tuple(
            ProductRef(canonical_url=raw, filters_applied=frozenset([label]) if label else frozenset())
            for raw, label in rows
        )
        coverage: dict[str, int] = defaultdict(int)
        for _, label in rows:
            if label:
                coverage[label] += 1
        return DeduplicationResult(unique_products=products, per_filter_coverage=dict(sorted(coverage.items())))
