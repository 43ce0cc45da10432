"""Product URL canonicalization (deduplication key)."""

from __future__ import annotations

from typing import Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _strip_fragment(url: str) -> str:
    return url.split("#", 1)[0]


class UrlCanonicalizer:
    """Normalizes product URLs so the same product always maps to one key.

    Everything in the query string is treated as session/tracking/filter
    noise except the parameters named in ``preserve_params`` (matched
    case-insensitively), which change the catalog content being shown,
    e.g. a variant selector.
    """

    def __init__(self, preserve_params: Iterable[str] = ("variant",), *, strip_all: bool = False):
        self._preserve = frozenset() if strip_all else frozenset(p.strip().lower() for p in preserve_params if p.strip())

    @property
    def preserve_params(self) -> frozenset[str]:
        return self._preserve

    def canonicalize(self, raw_url: str) -> str:
        url = (raw_url or "").strip()
        if not url:
            return ""

        try:
            parts = urlsplit(url)
            port = parts.port
        except ValueError:
            return _strip_fragment(url)

        scheme = parts.scheme.lower()
        if scheme not in _DEFAULT_PORTS or not parts.hostname:
            return _strip_fragment(url)

        host = parts.hostname.lower()
        if ":" in host:
            host = f"[{host}]"
        if port is not None and port != _DEFAULT_PORTS[scheme]:
            host = f"{host}:{port}"

        path = parts.path.rstrip("/") or "/"

        pairs = parse_qsl(parts.query, keep_blank_values=True)
        kept = [(k.lower(), v) for k, v in pairs if k.lower() in self._preserve]
        query = urlencode(sorted(kept))

        return urlunsplit((scheme, host, path, query, ""))

    def are_equivalent(self, a: str, b: str) -> bool:
        return self.canonicalize(a) == self.canonicalize(b)

    def unique(self, urls: Iterable[str]) -> list[str]:
        """Canonical URLs in first-seen order, without repeats."""
        seen: set[str] = set()
        out: list[str] = []
        for u in urls:
            c = self.canonicalize(u)
            if c and c not in seen:
                seen.add(c)
                out.append(c)
        return out


_default = UrlCanonicalizer()


def canonicalize_url(url: str) -> str:
    return _default.canonicalize(url)


def are_urls_equivalent(a: str, b: str) -> bool:
    return _default.are_equivalent(a, b)


def unique_urls(urls: Iterable[str]) -> list[str]:
    return _default.unique(urls)
