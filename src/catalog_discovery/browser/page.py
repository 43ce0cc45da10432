"""Page handle abstraction shared by live (Playwright) and snapshot pages.

Strategies and engines only talk to a ``PageHandle``. Elements are addressed
by a structural CSS locator (``html > body > div:nth-of-type(2) > ...``)
that both implementations compute the same way, so a locator read from
``query_elements`` can be fed back into ``click``/``hover`` on the same page
state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol


@dataclass(frozen=True)
class ElementInfo:
    locator: str
    tag: str
    text: str = ""
    href: Optional[str] = None
    attributes: dict[str, str] = field(default_factory=dict)
    visible: bool = True
    top: Optional[float] = None
    in_header: bool = False
    checked: Optional[bool] = None
    label: str = ""

    @property
    def classes(self) -> tuple[str, ...]:
        return tuple(self.attributes.get("class", "").split())

    def attr(self, name: str, default: str = "") -> str:
        return self.attributes.get(name, default)


class PageHandle(Protocol):
    @property
    def url(self) -> str: ...

    async def goto(self, url: str) -> None: ...

    async def title(self) -> str: ...

    async def content(self) -> str: ...

    async def query_elements(self, selector: str, *, root: str | None = None) -> list[ElementInfo]: ...

    async def element_state(self, locator: str) -> ElementInfo | None: ...

    async def hover(self, locator: str) -> None: ...

    async def click(self, locator: str) -> None: ...

    async def focus(self, locator: str) -> None: ...

    async def dispatch(self, locator: str, event: str) -> None: ...

    async def press(self, key: str) -> None: ...

    async def reset_pointer(self) -> None: ...

    async def wait(self, ms: int) -> None: ...

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool: ...


def is_element_active(element: ElementInfo) -> bool:
    """Whether a filter control currently reads as applied."""
    if element.checked:
        return True
    for attr in ("aria-pressed", "aria-checked", "aria-selected"):
        if element.attr(attr).lower() == "true":
            return True
    active_classes = {"active", "selected", "checked", "is-active", "is-selected"}
    return any(c.lower() in active_classes for c in element.classes)
