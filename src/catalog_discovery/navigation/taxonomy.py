"""Classification and prioritization of discovered navigation nodes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from ..domain.models import NavigationNode, TaxonomyCategory

UTILITY_KEYWORDS = (
    "account", "sign in", "login", "log in", "register", "cart", "bag", "checkout", "wishlist",
    "help", "contact", "customer service", "store locator", "find a store", "track order",
    "gift card", "returns", "shipping", "about us", "careers", "privacy", "terms",
)
PROMOTION_KEYWORDS = (
    "sale", "clearance", "new arrivals", "new in", "featured", "trending", "best sellers",
    "bestsellers", "limited", "exclusive", "gifts", "holiday", "seasonal", "deals", "outlet",
)
GENDER_KEYWORDS = ("women", "womens", "men", "mens", "kids", "boys", "girls", "baby", "unisex")
PRODUCT_KEYWORDS = (
    "clothing", "shoes", "accessories", "bags", "jewelry", "dresses", "tops", "pants", "jeans",
    "jackets", "coats", "sweaters", "shirts", "skirts", "shorts", "activewear", "swimwear",
    "lingerie", "beauty", "makeup", "skincare", "fragrance", "home", "furniture", "bedding",
    "kitchen", "electronics", "toys", "watches", "sunglasses", "boots", "sneakers", "sandals",
)
BRAND_INDICATORS = ("brand", "brands", "designer", "designers", "collection", "label")

DEFAULT_PRIORITY: tuple[TaxonomyCategory, ...] = (
    TaxonomyCategory.UTILITY,
    TaxonomyCategory.PROMOTION,
    TaxonomyCategory.GENDER,
    TaxonomyCategory.PRODUCT_CATEGORY,
    TaxonomyCategory.BRAND,
)

_CAPITALIZED_NAME = re.compile(r"^[A-Z][a-zA-Z0-9&.'-]+(?: [A-Z][a-zA-Z0-9&.'-]+){0,3}$")


def _has_word(text: str, keywords: Iterable[str]) -> bool:
    return any(re.search(rf"\b{re.escape(k)}\b", text) for k in keywords)


@dataclass(frozen=True)
class PriorityWeights:
    base: int = 5
    product_category: int = 3
    broad_listing: int = 2
    gender: int = 1
    promotion: int = 1
    cap: int = 10


class TaxonomyClassifier:
    """Assigns one category per node; the first match in ``priority`` wins.

    Overlaps ("Women's Sale", "Nike Shoes") resolve by the priority order,
    which defaults to utility, promotion, gender, product category, brand.
    """

    def __init__(
        self,
        priority: Sequence[TaxonomyCategory | str] = DEFAULT_PRIORITY,
        weights: PriorityWeights = PriorityWeights(),
    ):
        order = tuple(TaxonomyCategory(p) for p in priority)
        if TaxonomyCategory.UNCLASSIFIED in order or len(set(order)) != len(order):
            raise ValueError("taxonomy priority must list distinct classifiable categories")
        self._priority = order
        self._weights = weights

    def _matches(self, category: TaxonomyCategory, name: str) -> bool:
        text = name.lower()
        if category is TaxonomyCategory.UTILITY:
            return _has_word(text, UTILITY_KEYWORDS)
        if category is TaxonomyCategory.PROMOTION:
            return _has_word(text, PROMOTION_KEYWORDS)
        if category is TaxonomyCategory.GENDER:
            return _has_word(text.replace("'", ""), GENDER_KEYWORDS)
        if category is TaxonomyCategory.PRODUCT_CATEGORY:
            return _has_word(text, PRODUCT_KEYWORDS)
        if category is TaxonomyCategory.BRAND:
            return _has_word(text, BRAND_INDICATORS) or bool(_CAPITALIZED_NAME.match(name.strip()))
        return False

    def classify(self, node: NavigationNode) -> TaxonomyCategory:
        for category in self._priority:
            if self._matches(category, node.name):
                return category
        return TaxonomyCategory.UNCLASSIFIED

    def scraping_priority(self, node: NavigationNode) -> int:
        """1-10, higher means explore earlier. Utility nodes are 0."""
        category = self.classify(node)
        if category is TaxonomyCategory.UTILITY:
            return 0
        w = self._weights
        text = node.name.lower()
        score = w.base
        if category is TaxonomyCategory.PRODUCT_CATEGORY:
            score += w.product_category
        if _has_word(text, ("all", "shop")):
            score += w.broad_listing
        if _has_word(text.replace("'", ""), GENDER_KEYWORDS):
            score += w.gender
        if _has_word(text, ("sale",)):
            score += w.promotion
        return max(1, min(w.cap, score))

    def explorable_categories(self, tree: Iterable[NavigationNode]) -> list[NavigationNode]:
        """Nodes with a URL worth exploring, highest priority first, URL-unique."""
        seen: set[str] = set()
        ranked: list[tuple[int, int, NavigationNode]] = []
        order = 0
        for root in tree:
            for node in root.walk():
                if not node.url or node.url in seen:
                    continue
                seen.add(node.url)
                priority = self.scraping_priority(node)
                if priority > 0:
                    ranked.append((-priority, order, node))
                order += 1
        ranked.sort(key=lambda row: (row[0], row[1]))
        return [node for _, _, node in ranked]
