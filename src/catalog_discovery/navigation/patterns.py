"""Registry of known navigation menu structures."""

from __future__ import annotations

from dataclasses import dataclass

from ..utils.validators import domain_of


@dataclass(frozen=True)
class NavigationPattern:
    name: str
    container: str
    trigger: str
    dropdown: str
    interaction: str = "hover"  # "hover" | "click"

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "container": self.container,
            "trigger": self.trigger,
            "dropdown": self.dropdown,
            "interaction": self.interaction,
        }

    @classmethod
    def from_dict(cls, data: dict) -> NavigationPattern:
        return cls(
            name=str(data["name"]),
            container=str(data["container"]),
            trigger=str(data["trigger"]),
            dropdown=str(data["dropdown"]),
            interaction=str(data.get("interaction") or "hover"),
        )


NAVIGATION_PATTERNS: tuple[NavigationPattern, ...] = (
    NavigationPattern("shopify-dropdown", "li.dropdown-toggle", "p.dropdown-title", ".dropdown-content"),
    NavigationPattern("macys-megamenu", "li.fob-item", "a.menu-link-heavy", "#mega-menu, .flyout-container"),
    NavigationPattern("bootstrap-dropdown", ".dropdown", ".dropdown-toggle", ".dropdown-menu"),
    NavigationPattern("simple-nav-ul", "nav li", "a", "ul"),
    NavigationPattern("amazon-nav", "#nav-main .nav-item", "a", ".nav-panel"),
    NavigationPattern("material-nav", ".mdc-menu-surface--anchor", "button", ".mdc-menu", "click"),
    NavigationPattern("semantic-ui-dropdown", ".ui.dropdown", ".text", ".menu"),
    NavigationPattern(
        "foundation-dropdown", ".dropdown-pane", '[data-toggle="dropdown"]', ".dropdown-content", "click"
    ),
)

# Known sites -> preferred pattern names, most specific first
SITE_PATTERNS: dict[str, tuple[str, ...]] = {
    "glasswingshop.com": ("shopify-dropdown",),
    "macys.com": ("macys-megamenu", "bootstrap-dropdown"),
    "amazon.com": ("amazon-nav", "simple-nav-ul"),
    "nordstrom.com": ("bootstrap-dropdown", "simple-nav-ul"),
    "target.com": ("bootstrap-dropdown", "simple-nav-ul"),
    "homedepot.com": ("bootstrap-dropdown", "simple-nav-ul"),
    "lowes.com": ("bootstrap-dropdown", "simple-nav-ul"),
    "walmart.com": ("simple-nav-ul", "bootstrap-dropdown"),
}


def get_pattern(name: str) -> NavigationPattern | None:
    for p in NAVIGATION_PATTERNS:
        if p.name == name:
            return p
    return None


def patterns_for_site(url: str, learned: NavigationPattern | None = None) -> list[NavigationPattern]:
    """Patterns in the order they should be tried for ``url``.

    A learned pattern for the domain comes first, then the site's known
    patterns, then the rest of the registry in declaration order.
    """
    ordered: list[NavigationPattern] = []
    if learned is not None:
        ordered.append(learned)
    for name in SITE_PATTERNS.get(domain_of(url), ()):
        pattern = get_pattern(name)
        if pattern is not None and pattern not in ordered:
            ordered.append(pattern)
    for pattern in NAVIGATION_PATTERNS:
        if pattern not in ordered:
            ordered.append(pattern)
    return ordered
