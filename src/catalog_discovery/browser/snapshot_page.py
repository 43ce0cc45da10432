"""Offline page over captured HTML snapshots (BeautifulSoup + lxml).

Supports the subset of browser behavior the discovery core relies on:

- visibility from ``hidden``, inline ``display:none``/``visibility:hidden``
  and ``type=hidden``;
- regions marked ``data-reveal-on-hover`` are shown while their parent is
  hovered or focused (like ``li:hover > .dropdown``), and regions marked
  ``data-reveal-on-click`` while their parent contains a clicked element;
- checkbox/radio clicks toggle ``checked``, ``aria-checked`` and
  ``aria-pressed`` controls flip, disabled controls ignore clicks;
- link clicks navigate to the registered snapshot for the target URL.

Every ``goto`` re-parses the original HTML, so reloading a URL restores the
captured state. Operations never suspend, so each awaited call
observes and leaves a consistent page.
"""

from __future__ import annotations

import re
from typing import Mapping
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .page import ElementInfo

_WS = re.compile(r"\s+")
_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)
_HEADER_TAGS = {"header", "nav"}


def _clean(text: str) -> str:
    return _WS.sub(" ", text or "").strip()


def _strip_fragment(url: str) -> str:
    return url.split("#", 1)[0]


def element_locator(el: Tag) -> str:
    """Structural CSS path from <html> down to ``el``."""
    parts: list[str] = []
    node: Tag | None = el
    while node is not None and isinstance(node, Tag) and node.name != "[document]":
        index = 1
        for sib in node.previous_siblings:
            if isinstance(sib, Tag) and sib.name == node.name:
                index += 1
        parts.append(f"{node.name}:nth-of-type({index})")
        node = node.parent
    return " > ".join(reversed(parts))


def _ancestors(el: Tag):
    node = el
    while node is not None and isinstance(node, Tag) and node.name != "[document]":
        yield node
        node = node.parent


class SnapshotPage:
    """``PageHandle`` backed by static HTML.

    Args:
        pages: URL -> HTML for every page reachable in this session.
        start_url: URL loaded immediately.
    """

    def __init__(self, pages: Mapping[str, str], start_url: str):
        self._pages = {_strip_fragment(k): v for k, v in pages.items()}
        self._url = ""
        self._soup: BeautifulSoup | None = None
        self._hover_chain: set[int] = set()
        self._open_chain: set[int] = set()
        self._opened: list[Tag] = []
        self.waits: list[int] = []
        self.history: list[str] = []
        self._load(start_url)

    # ---------------------------
    # Navigation
    # ---------------------------

    def _load(self, url: str) -> None:
        key = _strip_fragment(url)
        html = self._pages.get(key)
        if html is None:
            raise LookupError(f"No snapshot registered for {url}")
        self._soup = BeautifulSoup(html, "lxml")
        self._url = url
        self._hover_chain = set()
        self._open_chain = set()
        self._opened = []
        self.history.append(url)

    @property
    def url(self) -> str:
        return self._url

    @property
    def soup(self) -> BeautifulSoup:
        assert self._soup is not None
        return self._soup

    async def goto(self, url: str) -> None:
        self._load(url)

    async def title(self) -> str:
        return _clean(self.soup.title.get_text()) if self.soup.title else ""

    async def content(self) -> str:
        return str(self.soup)

    # ---------------------------
    # Queries
    # ---------------------------

    def _find(self, locator: str) -> Tag | None:
        return self.soup.select_one(locator)

    def _is_visible(self, el: Tag) -> bool:
        if el.name == "input" and (el.get("type") or "").lower() == "hidden":
            return False
        for node in _ancestors(el):
            if node.has_attr("hidden"):
                return False
            if _HIDDEN_STYLE.search(node.get("style") or ""):
                return False
            parent_id = id(node.parent)
            if node.has_attr("data-reveal-on-hover") and parent_id not in self._hover_chain:
                return False
            if node.has_attr("data-reveal-on-click") and parent_id not in self._open_chain:
                return False
        return True

    def _label_for(self, el: Tag) -> str:
        if el.name not in ("input", "select"):
            return ""
        el_id = el.get("id")
        if el_id:
            label = self.soup.find("label", attrs={"for": el_id})
            if label is not None:
                return _clean(label.get_text(" "))
        enclosing = el.find_parent("label")
        if enclosing is not None:
            return _clean(enclosing.get_text(" "))
        if el.parent is not None:
            return _clean(el.parent.get_text(" "))
        return ""

    def _describe(self, el: Tag) -> ElementInfo:
        attributes: dict[str, str] = {}
        for key, value in el.attrs.items():
            attributes[key] = " ".join(value) if isinstance(value, list) else str(value)

        checked: bool | None = None
        if el.name == "input" and (el.get("type") or "").lower() in ("checkbox", "radio"):
            checked = el.has_attr("checked")

        href = el.get("href") if el.name == "a" else None
        return ElementInfo(
            locator=element_locator(el),
            tag=el.name,
            text=_clean(el.get_text(" ")),
            href=urljoin(self._url, href) if href else None,
            attributes=attributes,
            visible=self._is_visible(el),
            top=None,
            in_header=any(n.name in _HEADER_TAGS or n.get("role") == "navigation" for n in _ancestors(el)),
            checked=checked,
            label=self._label_for(el),
        )

    async def query_elements(self, selector: str, *, root: str | None = None) -> list[ElementInfo]:
        base = self.soup if root is None else self._find(root)
        if base is None:
            return []
        return [self._describe(el) for el in base.select(selector)]

    async def element_state(self, locator: str) -> ElementInfo | None:
        el = self._find(locator)
        return self._describe(el) if el is not None else None

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        return any(self._is_visible(el) for el in self.soup.select(selector))

    # ---------------------------
    # Interaction
    # ---------------------------

    def _require(self, locator: str) -> Tag:
        el = self._find(locator)
        if el is None:
            raise LookupError(f"No element matches {locator}")
        return el

    def _point_at(self, el: Tag | None) -> None:
        self._hover_chain = {id(n) for n in _ancestors(el)} if el is not None else set()

    async def hover(self, locator: str) -> None:
        self._point_at(self._require(locator))

    async def focus(self, locator: str) -> None:
        self._point_at(self._require(locator))

    async def dispatch(self, locator: str, event: str) -> None:
        if event in ("mouseenter", "mouseover", "focus", "focusin"):
            self._point_at(self._require(locator))
        elif event == "click":
            await self.click(locator)

    async def click(self, locator: str) -> None:
        el = self._require(locator)
        self._point_at(el)
        if el.has_attr("disabled"):
            return

        input_type = (el.get("type") or "").lower() if el.name == "input" else ""
        if input_type == "checkbox":
            self._toggle_attr_presence(el, "checked")
        elif input_type == "radio":
            for other in self.soup.find_all("input", attrs={"type": "radio", "name": el.get("name")}):
                if other is not el and other.has_attr("checked"):
                    del other["checked"]
            el["checked"] = "checked"
        elif el.has_attr("aria-checked"):
            el["aria-checked"] = "false" if el["aria-checked"] == "true" else "true"
        elif el.has_attr("aria-pressed"):
            el["aria-pressed"] = "false" if el["aria-pressed"] == "true" else "true"

        if el.has_attr("aria-expanded"):
            el["aria-expanded"] = "false" if el["aria-expanded"] == "true" else "true"
        self._toggle_open(el)

        self._after_click(el)

        href = el.get("href") if el.name == "a" else None
        if href and not href.startswith(("#", "javascript:")):
            self._load(urljoin(self._url, href))

    def _after_click(self, el: Tag) -> None:
        """Hook for replaying scripted DOM changes (e.g. re-rendered listings)."""

    @staticmethod
    def _toggle_attr_presence(el: Tag, attr: str) -> None:
        if el.has_attr(attr):
            del el[attr]
        else:
            el[attr] = attr

    def _toggle_open(self, el: Tag) -> None:
        if any(o is el for o in self._opened):
            self._opened = [o for o in self._opened if o is not el]
        else:
            self._opened.append(el)
        self._open_chain = {id(n) for o in self._opened for n in _ancestors(o)}

    async def press(self, key: str) -> None:
        if key == "Escape":
            self._opened = []
            self._open_chain = set()

    async def reset_pointer(self) -> None:
        self._point_at(None)

    async def wait(self, ms: int) -> None:
        self.waits.append(ms)
