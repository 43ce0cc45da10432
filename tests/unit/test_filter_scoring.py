from __future__ import annotations

from catalog_discovery.config.settings import DiscoverySettings
from catalog_discovery.domain.models import FilterElementType, FilterSignals
from catalog_discovery.filters.scoring import (
    FilterScoringWeights,
    has_count_suffix,
    has_filter_params,
    has_pagination_or_sort_params,
    is_excluded_label,
    label_length_ok,
    score_signals,
    strip_count_suffix,
)


def test_checkbox_in_region_with_count_scores_high() -> None:
    signals = FilterSignals(
        element_type=FilterElementType.CHECKBOX,
        in_filter_region=True,
        has_count_suffix=True,
        label_length_ok=True,
    )
    assert score_signals(signals) == 2 + 1 + 1 + 1


def test_plain_link_outside_region_scores_low() -> None:
    signals = FilterSignals(element_type=FilterElementType.LINK, label_length_ok=True)
    assert score_signals(signals) == 1
    assert score_signals(signals) < 2


def test_filter_param_link_gets_link_base() -> None:
    signals = FilterSignals(element_type=FilterElementType.LINK, has_filter_param=True)
    assert score_signals(signals) == 2


def test_custom_weights_are_respected() -> None:
    weights = FilterScoringWeights(button_base=3.0, semantic_attribute=0.0)
    signals = FilterSignals(element_type=FilterElementType.BUTTON, has_semantic_attribute=True)
    assert score_signals(signals, weights) == 3.0


def test_count_suffix_helpers() -> None:
    assert has_count_suffix("Red (12)")
    assert has_count_suffix("Nike (1,204)")
    assert not has_count_suffix("Size 12")
    assert strip_count_suffix("Red (12)") == "Red"


def test_filter_param_detection() -> None:
    assert has_filter_params("https://x.com/c?filter.v.color=red")
    assert has_filter_params("https://x.com/c?brand=acme")
    assert not has_filter_params("https://x.com/c?page=2")
    assert has_pagination_or_sort_params("https://x.com/c?page=2")
    assert has_pagination_or_sort_params("https://x.com/c?sort_by=price")
    assert not has_pagination_or_sort_params("https://x.com/c?page=2&brand=acme")


def test_noise_labels_are_excluded() -> None:
    for label in ("Next", "2", "Sort by", "Clear all", "Apply", "In stock (4)", "$25 - $50", "4 stars & up"):
        assert is_excluded_label(label), label
    for label in ("Red (12)", "Cotton", "Nike", "Size M"):
        assert not is_excluded_label(label), label


def test_label_length_bounds() -> None:
    assert label_length_ok("XL")
    assert not label_length_ok("X")
    assert not label_length_ok("x" * 41)


def test_weights_come_from_settings() -> None:
    settings = DiscoverySettings(filter_weight_button=4.0, filter_weight_semantic=0.0, filter_label_max_length=10)
    weights = FilterScoringWeights.from_settings(settings)

    signals = FilterSignals(element_type=FilterElementType.BUTTON, has_semantic_attribute=True)
    assert score_signals(signals, weights) == 4.0
    assert not label_length_ok("Extra long label", weights)
    assert FilterScoringWeights.from_settings(DiscoverySettings()) == FilterScoringWeights()
