"""JSON-compatible conversion of result models (cache payloads, CLI output)."""

from __future__ import annotations

from typing import Any

from .models import (
    ErrorCode,
    ExplorationResult,
    FilterOutcome,
    NavigationNode,
    NavigationResult,
    StrategyReport,
)


def node_to_dict(node: NavigationNode) -> dict[str, Any]:
    return {
        "name": node.name,
        "url": node.url,
        "source_strategy": node.source_strategy,
        "confidence": node.confidence,
        "children": [node_to_dict(c) for c in node.children],
    }


def node_from_dict(data: dict[str, Any]) -> NavigationNode:
    return NavigationNode(
        name=str(data.get("name") or ""),
        url=data.get("url"),
        children=tuple(node_from_dict(c) for c in data.get("children") or ()),
        source_strategy=str(data.get("source_strategy") or ""),
        confidence=float(data.get("confidence", 0.5)),
    )


def _report_to_dict(report: StrategyReport) -> dict[str, Any]:
    return {
        "strategy_name": report.strategy_name,
        "item_count": report.item_count,
        "confidence": report.confidence,
        "duration_ms": report.duration_ms,
        "score": report.score,
        "error_code": report.error_code.value if report.error_code else None,
        "error_message": report.error_message,
        "won": report.won,
    }


def _report_from_dict(data: dict[str, Any]) -> StrategyReport:
    code = data.get("error_code")
    return StrategyReport(
        strategy_name=str(data["strategy_name"]),
        item_count=int(data.get("item_count", 0)),
        confidence=float(data.get("confidence", 0.0)),
        duration_ms=int(data.get("duration_ms", 0)),
        score=data.get("score"),
        error_code=ErrorCode(code) if code else None,
        error_message=str(data.get("error_message") or ""),
        won=bool(data.get("won", False)),
    )


def navigation_result_to_dict(result: NavigationResult) -> dict[str, Any]:
    return {
        "domain": result.domain,
        "tree": [node_to_dict(n) for n in result.tree],
        "confidence": result.confidence,
        "strategy_used": result.strategy_used,
        "item_count": result.item_count,
        "from_cache": result.from_cache,
        "strategy_reports": [_report_to_dict(r) for r in result.strategy_reports],
        "extracted_at_ms": result.extracted_at_ms,
    }


def navigation_result_from_dict(data: dict[str, Any]) -> NavigationResult:
    return NavigationResult(
        domain=str(data["domain"]),
        tree=tuple(node_from_dict(n) for n in data.get("tree") or ()),
        confidence=float(data.get("confidence", 0.0)),
        strategy_used=str(data.get("strategy_used") or ""),
        item_count=int(data.get("item_count", 0)),
        from_cache=bool(data.get("from_cache", False)),
        strategy_reports=tuple(_report_from_dict(r) for r in data.get("strategy_reports") or ()),
        extracted_at_ms=int(data.get("extracted_at_ms", 0)),
    )


def _outcome_to_dict(outcome: FilterOutcome) -> dict[str, Any]:
    return {
        "label": outcome.label,
        "element_type": outcome.candidate.element_type.value,
        "locator": outcome.candidate.locator,
        "container_hint": outcome.candidate.container_hint,
        "score": outcome.candidate.score,
        "final_state": outcome.final_state.value,
        "products_captured": len(outcome.products_captured),
        "duration_ms": outcome.duration_ms,
        "error_code": outcome.error_code.value if outcome.error_code else None,
        "error": outcome.error,
    }


def exploration_result_to_dict(result: ExplorationResult) -> dict[str, Any]:
    s = result.stats
    return {
        "category_label": result.category_label,
        "category_url": result.category_url,
        "baseline_products": len(result.baseline_products),
        "unique_products": [
            {"canonical_url": p.canonical_url, "filters_applied": sorted(p.filters_applied)}
            for p in result.unique_products
        ],
        "per_filter_coverage": dict(result.per_filter_coverage),
        "filter_outcomes": [_outcome_to_dict(o) for o in result.filter_outcomes],
        "stats": {
            "candidates_discovered": s.candidates_discovered,
            "filters_attempted": s.filters_attempted,
            "active": s.active,
            "reverted": s.reverted,
            "failed": s.failed,
            "stuck_active": s.stuck_active,
            "combinations_attempted": s.combinations_attempted,
            "raw_products": s.raw_products,
            "unique_products": s.unique_products,
            "avg_products_per_filter": s.avg_products_per_filter,
            "partially_unreliable": s.partially_unreliable,
            "cancelled": s.cancelled,
            "duration_ms": s.duration_ms,
        },
    }
