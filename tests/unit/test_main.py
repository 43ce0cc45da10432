from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager

from catalog_discovery import main as cli
from catalog_discovery.domain.errors import NoNavigationFoundError
from catalog_discovery.domain.models import NavigationNode, NavigationResult
from catalog_discovery.services.catalog_service import CatalogDiscoveryReport


class StubService:
    def __init__(self, report=None, error=None):
        self.report = report
        self.error = error
        self.requests = []

    async def discover_catalog(self, request, *, cancel_event=None):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.report


def _install(monkeypatch, service) -> None:
    @asynccontextmanager
    async def fake_lifespan():
        yield service

    monkeypatch.setattr(cli, "lifespan_manager", fake_lifespan)


def test_report_is_printed_as_json(monkeypatch, capsys) -> None:
    navigation = NavigationResult(
        domain="shop.example.com",
        tree=(NavigationNode(name="Dresses", url="https://shop.example.com/collections/dresses"),),
        confidence=0.6,
        strategy_used="FallbackLinkStrategy",
        item_count=1,
    )
    service = StubService(report=CatalogDiscoveryReport(navigation=navigation))
    _install(monkeypatch, service)

    code = asyncio.run(cli.main(["https://shop.example.com/", "--no-filters", "--bypass-cache"]))

    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out["navigation"]["tree"][0]["name"] == "Dresses"
    assert out["explorations"] == []
    request = service.requests[0]
    assert request.bypass_cache and not request.explore_filters


def test_domain_error_exits_with_code_two(monkeypatch, capsys) -> None:
    _install(monkeypatch, StubService(error=NoNavigationFoundError("No navigation found", detail="shop.example.com")))

    code = asyncio.run(cli.main(["https://shop.example.com/"]))

    assert code == 2
    out = json.loads(capsys.readouterr().out)
    assert out["error"] == "NO_NAVIGATION_FOUND"
