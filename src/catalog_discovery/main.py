"""Command-line entrypoint: crawl one storefront and print the result as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys

from .domain.errors import CatalogDomainError
from .domain.serialization import exploration_result_to_dict, navigation_result_to_dict
from .lifespan import lifespan_manager
from .models.requests import CatalogCrawlRequest
from .services.catalog_service import CatalogDiscoveryReport


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="catalog-discovery", description=__doc__)
    parser.add_argument("url", help="storefront entry URL")
    parser.add_argument("--bypass-cache", action="store_true", help="ignore cached navigation for the domain")
    parser.add_argument("--max-categories", type=int, default=None, help="categories to explore filters for")
    parser.add_argument("--no-filters", action="store_true", help="only discover navigation")
    return parser.parse_args(argv)


def _report_to_dict(report: CatalogDiscoveryReport) -> dict:
    return {
        "navigation": navigation_result_to_dict(report.navigation),
        "explorations": [exploration_result_to_dict(e) for e in report.explorations],
        "failures": [
            {
                "category_label": f.category_label,
                "category_url": f.category_url,
                "error_code": f.error_code,
                "message": f.message,
            }
            for f in report.failures
        ],
        "duration_ms": report.duration_ms,
    }


async def main(argv: list[str] | None = None) -> int:
    """Main application entrypoint."""
    args = _parse_args(argv)
    request = CatalogCrawlRequest(
        url=args.url,
        bypass_cache=args.bypass_cache,
        explore_filters=not args.no_filters,
        max_categories=args.max_categories,
    )

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, cancel_event.set)
    except NotImplementedError:
        pass

    async with lifespan_manager() as service:
        try:
            report = await service.discover_catalog(request, cancel_event=cancel_event)
        except CatalogDomainError as e:
            print(json.dumps({"error": e.info.code, "message": e.info.message, "detail": e.info.detail}))
            return 2
    print(json.dumps(_report_to_dict(report), indent=2))
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
