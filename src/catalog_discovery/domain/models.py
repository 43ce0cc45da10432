"""Framework-agnostic domain models.

Every result type is an immutable value: strategies, engines and the
orchestrator hand these across task boundaries without copying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional


class ErrorCode(str, Enum):
    STRATEGY_TIMEOUT = "STRATEGY_TIMEOUT"
    STRATEGY_EXTRACTION_EMPTY = "STRATEGY_EXTRACTION_EMPTY"
    STRATEGY_THREW = "STRATEGY_THREW"
    FILTER_NOT_FOUND = "FILTER_NOT_FOUND"
    FILTER_TOGGLE_FAILED = "FILTER_TOGGLE_FAILED"
    FILTER_REVERT_FAILED = "FILTER_REVERT_FAILED"
    PAGE_BLOCKED = "PAGE_BLOCKED"
    NO_NAVIGATION_FOUND = "NO_NAVIGATION_FOUND"
    NO_FILTERS_EXPLORED = "NO_FILTERS_EXPLORED"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_URL = "INVALID_URL"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


# ---------------------------
# Navigation
# ---------------------------


@dataclass(frozen=True)
class NavigationNode:
    name: str
    url: Optional[str] = None
    children: tuple[NavigationNode, ...] = ()
    source_strategy: str = ""
    confidence: float = 0.5

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", _clamp_unit(self.confidence))
        object.__setattr__(self, "children", tuple(self.children))

    def is_valid(self) -> bool:
        """A node must either link somewhere or group other nodes."""
        return bool(self.url) or bool(self.children)

    def walk(self) -> Iterator[NavigationNode]:
        yield self
        for child in self.children:
            yield from child.walk()

    def count_items(self) -> int:
        return sum(1 for _ in self.walk())


def count_tree_items(tree: tuple[NavigationNode, ...]) -> int:
    return sum(node.count_items() for node in tree)


@dataclass(frozen=True)
class StrategyError:
    code: ErrorCode
    message: str


@dataclass(frozen=True)
class StrategyResult:
    strategy_name: str
    navigation_tree: tuple[NavigationNode, ...] = ()
    item_count: int = 0
    confidence: float = 0.5
    duration_ms: int = 0
    error: Optional[StrategyError] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    completion_index: int = -1

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", _clamp_unit(self.confidence))
        object.__setattr__(self, "navigation_tree", tuple(self.navigation_tree))

    @property
    def succeeded(self) -> bool:
        return self.error is None and len(self.navigation_tree) > 0


@dataclass(frozen=True)
class StrategyReport:
    strategy_name: str
    item_count: int
    confidence: float
    duration_ms: int
    score: Optional[float]
    error_code: Optional[ErrorCode] = None
    error_message: str = ""
    won: bool = False


@dataclass(frozen=True)
class NavigationResult:
    domain: str
    tree: tuple[NavigationNode, ...]
    confidence: float
    strategy_used: str
    item_count: int
    from_cache: bool = False
    strategy_reports: tuple[StrategyReport, ...] = ()
    extracted_at_ms: int = 0


class TaxonomyCategory(str, Enum):
    UTILITY = "utility"
    PROMOTION = "promotion"
    GENDER = "gender"
    PRODUCT_CATEGORY = "product_category"
    BRAND = "brand"
    UNCLASSIFIED = "unclassified"


# ---------------------------
# Filters
# ---------------------------


class FilterElementType(str, Enum):
    CHECKBOX = "checkbox"
    RADIO = "radio"
    LINK = "link"
    BUTTON = "button"


class FilterState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"


class FilterOutcomeState(str, Enum):
    DISCOVERED = "discovered"
    ATTEMPTING = "attempting"
    ACTIVE = "active"
    FAILED = "failed"
    REVERTING = "reverting"
    REVERTED = "reverted"
    STUCK_ACTIVE = "stuck_active"


@dataclass(frozen=True)
class FilterSignals:
    element_type: FilterElementType
    in_filter_region: bool = False
    has_filter_param: bool = False
    has_count_suffix: bool = False
    has_semantic_attribute: bool = False
    label_length_ok: bool = False
    is_active: bool = False


@dataclass(frozen=True)
class FilterCandidate:
    label: str
    element_type: FilterElementType
    locator: str
    container_hint: Optional[str] = None
    score: float = 0.0
    current_state: FilterState = FilterState.UNKNOWN
    href: Optional[str] = None


@dataclass(frozen=True)
class RawProductRef:
    raw_url: str
    title: Optional[str] = None


@dataclass(frozen=True)
class ProductRef:
    canonical_url: str
    filters_applied: frozenset[str] = frozenset()


@dataclass(frozen=True)
class FilterOutcome:
    candidate: FilterCandidate
    final_state: FilterOutcomeState
    products_captured: tuple[RawProductRef, ...] = ()
    duration_ms: int = 0
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    labels: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return " + ".join(self.labels) if self.labels else self.candidate.label

    @property
    def succeeded(self) -> bool:
        return self.final_state in (
            FilterOutcomeState.ACTIVE,
            FilterOutcomeState.REVERTED,
            FilterOutcomeState.STUCK_ACTIVE,
        )


@dataclass(frozen=True)
class ExplorationStats:
    candidates_discovered: int = 0
    filters_attempted: int = 0
    active: int = 0
    reverted: int = 0
    failed: int = 0
    stuck_active: int = 0
    combinations_attempted: int = 0
    raw_products: int = 0
    unique_products: int = 0
    avg_products_per_filter: float = 0.0
    partially_unreliable: bool = False
    cancelled: bool = False
    duration_ms: int = 0


@dataclass(frozen=True)
class ExplorationResult:
    category_label: str
    category_url: str
    baseline_products: tuple[RawProductRef, ...] = ()
    filter_outcomes: tuple[FilterOutcome, ...] = ()
    unique_products: tuple[ProductRef, ...] = ()
    per_filter_coverage: dict[str, int] = field(default_factory=dict)
    stats: ExplorationStats = field(default_factory=ExplorationStats)
