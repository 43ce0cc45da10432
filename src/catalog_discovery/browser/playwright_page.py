"""Playwright-backed ``PageHandle``."""

from __future__ import annotations

import asyncio

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..domain.errors import NetworkTimeoutError
from .page import ElementInfo

# Same structural locator as snapshot_page.element_locator.
_DESCRIBE_JS = """
const locatorOf = (el) => {
  const parts = [];
  let node = el;
  while (node && node.nodeType === 1) {
    let index = 1;
    let sib = node.previousElementSibling;
    while (sib) {
      if (sib.tagName === node.tagName) index += 1;
      sib = sib.previousElementSibling;
    }
    parts.unshift(node.tagName.toLowerCase() + ':nth-of-type(' + index + ')');
    node = node.parentElement;
  }
  return parts.join(' > ');
};
const clean = (s) => (s || '').replace(/\\s+/g, ' ').trim();
const describe = (el) => {
  const attributes = {};
  for (const a of el.attributes) attributes[a.name] = a.value;
  const style = window.getComputedStyle(el);
  const rect = el.getBoundingClientRect();
  const tag = el.tagName.toLowerCase();
  const type = (el.getAttribute('type') || '').toLowerCase();
  const isToggle = tag === 'input' && (type === 'checkbox' || type === 'radio');
  let label = '';
  if (tag === 'input' || tag === 'select') {
    if (el.labels && el.labels.length) label = clean(el.labels[0].innerText);
    else if (el.parentElement) label = clean(el.parentElement.innerText);
  }
  return {
    locator: locatorOf(el),
    tag: tag,
    text: clean(el.innerText || el.textContent),
    href: tag === 'a' && el.getAttribute('href') ? el.href : null,
    attributes: attributes,
    visible: rect.width > 0 && rect.height > 0 && style.display !== 'none' && style.visibility !== 'hidden',
    top: rect.top + window.scrollY,
    in_header: !!el.closest('header, nav, [role="navigation"]'),
    checked: isToggle ? !!el.checked : null,
    label: label,
  };
};
"""

_QUERY_JS = (
    "([selector, root]) => {"
    + _DESCRIBE_JS
    + "const base = root ? document.querySelector(root) : document;"
    "if (!base) return [];"
    "return Array.from(base.querySelectorAll(selector)).map(describe);"
    "}"
)

_STATE_JS = (
    "(locator) => {"
    + _DESCRIBE_JS
    + "const el = document.querySelector(locator);"
    "return el ? describe(el) : null;"
    "}"
)

_BLUR_JS = "() => { if (document.activeElement && document.activeElement.blur) document.activeElement.blur(); }"


def _to_info(raw: dict) -> ElementInfo:
    return ElementInfo(
        locator=raw["locator"],
        tag=raw["tag"],
        text=raw.get("text") or "",
        href=raw.get("href"),
        attributes=dict(raw.get("attributes") or {}),
        visible=bool(raw.get("visible")),
        top=raw.get("top"),
        in_header=bool(raw.get("in_header")),
        checked=raw.get("checked"),
        label=raw.get("label") or "",
    )


class PlaywrightPage:
    """Adapts a live Playwright ``Page`` to the ``PageHandle`` protocol."""

    def __init__(self, page: Page, *, timeout_ms: int = 30000, action_timeout_ms: int = 5000):
        self._page = page
        self._timeout_ms = timeout_ms
        self._action_timeout_ms = action_timeout_ms

    @property
    def url(self) -> str:
        return self._page.url

    @property
    def raw(self) -> Page:
        return self._page

    async def goto(self, url: str) -> None:
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms)
        except (asyncio.TimeoutError, PlaywrightTimeoutError) as e:
            raise NetworkTimeoutError(f"Timeout while loading {url}", detail=str(e)) from e
        # networkidle is noisy on storefronts with background beacons
        try:
            await self._page.wait_for_load_state("networkidle", timeout=min(5000, self._timeout_ms))
        except PlaywrightTimeoutError:
            pass

    async def title(self) -> str:
        return await self._page.title()

    async def content(self) -> str:
        return await self._page.content()

    async def query_elements(self, selector: str, *, root: str | None = None) -> list[ElementInfo]:
        rows = await self._page.evaluate(_QUERY_JS, [selector, root])
        return [_to_info(r) for r in rows or []]

    async def element_state(self, locator: str) -> ElementInfo | None:
        raw = await self._page.evaluate(_STATE_JS, locator)
        return _to_info(raw) if raw else None

    async def hover(self, locator: str) -> None:
        await self._page.hover(locator, timeout=self._action_timeout_ms)

    async def click(self, locator: str) -> None:
        await self._page.click(locator, timeout=self._action_timeout_ms)

    async def focus(self, locator: str) -> None:
        await self._page.focus(locator, timeout=self._action_timeout_ms)

    async def dispatch(self, locator: str, event: str) -> None:
        await self._page.dispatch_event(locator, event, timeout=self._action_timeout_ms)

    async def press(self, key: str) -> None:
        await self._page.keyboard.press(key)

    async def reset_pointer(self) -> None:
        await self._page.mouse.move(0, 0)
        await self._page.evaluate(_BLUR_JS)

    async def wait(self, ms: int) -> None:
        await self._page.wait_for_timeout(ms)

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        try:
            await self._page.wait_for_selector(selector, state="visible", timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False
