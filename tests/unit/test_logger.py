from __future__ import annotations

import io
import json

import structlog

from catalog_discovery.config.settings import reset_settings
from catalog_discovery.observability.logger import bind_crawl_context, clear_crawl_context, configure_logging


def test_json_lines_carry_service_and_crawl_context(monkeypatch) -> None:
    monkeypatch.setenv("SERVICE_NAME", "catalog-discovery-test")
    reset_settings()
    stream = io.StringIO()
    try:
        configure_logging(stream=stream)
        bind_crawl_context(domain="shop.example.com", category="Dresses")
        structlog.get_logger("test").info("filter_explored", filter="Red", products=2)
    finally:
        clear_crawl_context()
        structlog.reset_defaults()
        reset_settings()

    line = json.loads(stream.getvalue().strip())
    assert line["event"] == "filter_explored"
    assert line["level"] == "info"
    assert line["service"] == "catalog-discovery-test"
    assert line["domain"] == "shop.example.com"
    assert line["category"] == "Dresses"
    assert "timestamp" in line
