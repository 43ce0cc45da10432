"""Filter candidate scoring: pure functions over signal vectors."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlparse

from ..config.settings import DiscoverySettings
from ..domain.models import FilterElementType, FilterSignals

FILTER_QUERY_PARAMS = frozenset(
    {
        "filter", "filters", "facet", "facets", "brand", "category", "tag", "tags", "type",
        "color", "colour", "size", "material", "collection", "style", "refine", "prefn1", "f",
    }
)
_FILTER_PARAM_PREFIXES = ("filter.", "filter[", "facet.", "facet[", "pf_", "prefn", "prefv", "refinement")

_COUNT_SUFFIX = re.compile(r"\(\s*\d[\d,]*\s*\)\s*$")

# Controls that resemble filters but are not
_EXCLUDED_LABELS = (
    re.compile(r"^\s*(next|prev|previous|first|last|more|less|show more|show less|load more|view all)\s*$", re.I),
    re.compile(r"^\s*[\d\s.,<>«»›‹…-]+\s*$"),
    re.compile(r"\b(sort|sort by|order by|view|grid|list|per page)\b", re.I),
    re.compile(r"^\s*(apply|reset|clear|clear all|remove|done|cancel|submit|close|search|go)\b", re.I),
    re.compile(r"\b(add to cart|add to bag|buy now|checkout|quick ?view)\b", re.I),
    re.compile(r"\b(in stock|out of stock|availability|pick ?up|delivery|shipping|same day)\b", re.I),
    re.compile(r"\b(price|under \$|over \$)\b|\$\s*\d", re.I),
    re.compile(r"\b(rating|reviews?|stars?)\b", re.I),
)

_EXCLUDED_QUERY_PARAMS = frozenset({"page", "p", "sort", "sort_by", "order", "orderby", "view", "limit", "per_page"})


@dataclass(frozen=True)
class FilterScoringWeights:
    input_base: float = 2.0
    button_base: float = 1.0
    filter_link_base: float = 2.0
    plain_link_base: float = 0.0
    filter_region: float = 1.0
    count_suffix: float = 1.0
    semantic_attribute: float = 1.0
    label_length: float = 1.0
    active_state: float = 0.5
    min_label_length: int = 2
    max_label_length: int = 40

    @classmethod
    def from_settings(cls, settings: DiscoverySettings) -> FilterScoringWeights:
        return cls(
            input_base=settings.filter_weight_input,
            button_base=settings.filter_weight_button,
            filter_link_base=settings.filter_weight_filter_link,
            plain_link_base=settings.filter_weight_plain_link,
            filter_region=settings.filter_weight_region,
            count_suffix=settings.filter_weight_count_suffix,
            semantic_attribute=settings.filter_weight_semantic,
            label_length=settings.filter_weight_label_length,
            active_state=settings.filter_weight_active,
            min_label_length=settings.filter_label_min_length,
            max_label_length=settings.filter_label_max_length,
        )


def has_count_suffix(label: str) -> bool:
    return bool(_COUNT_SUFFIX.search(label or ""))


def strip_count_suffix(label: str) -> str:
    return _COUNT_SUFFIX.sub("", label or "").strip()


def has_filter_params(href: str | None) -> bool:
    if not href:
        return False
    for key, _ in parse_qsl(urlparse(href).query, keep_blank_values=True):
        k = key.lower()
        if k in FILTER_QUERY_PARAMS or k.startswith(_FILTER_PARAM_PREFIXES):
            return True
    return False


def has_pagination_or_sort_params(href: str | None) -> bool:
    if not href:
        return False
    keys = {k.lower() for k, _ in parse_qsl(urlparse(href).query, keep_blank_values=True)}
    return bool(keys & _EXCLUDED_QUERY_PARAMS) and not has_filter_params(href)


def is_excluded_label(label: str) -> bool:
    text = strip_count_suffix(label)
    if not text:
        return True
    return any(p.search(text) for p in _EXCLUDED_LABELS)


def label_length_ok(label: str, weights: FilterScoringWeights = FilterScoringWeights()) -> bool:
    n = len(strip_count_suffix(label))
    return weights.min_label_length <= n <= weights.max_label_length


def score_signals(signals: FilterSignals, weights: FilterScoringWeights = FilterScoringWeights()) -> float:
    if signals.element_type in (FilterElementType.CHECKBOX, FilterElementType.RADIO):
        score = weights.input_base
    elif signals.element_type is FilterElementType.BUTTON:
        score = weights.button_base
    elif signals.has_filter_param:
        score = weights.filter_link_base
    else:
        score = weights.plain_link_base

    if signals.in_filter_region:
        score += weights.filter_region
    if signals.has_count_suffix:
        score += weights.count_suffix
    if signals.has_semantic_attribute:
        score += weights.semantic_attribute
    if signals.label_length_ok:
        score += weights.label_length
    if signals.is_active:
        score += weights.active_state
    return score
