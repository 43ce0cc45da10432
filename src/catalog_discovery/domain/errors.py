"""Domain-specific errors.

Only the terminal failures (no navigation, no explorable filters) and the
session-level errors cross the engine boundary. Per-strategy and per-filter
failures are recorded in results; the filter errors below are raised and
caught inside the exploration engine only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .models import ErrorCode

if TYPE_CHECKING:
    from .models import ExplorationResult, StrategyReport


class CatalogDomainError(Exception):
    """Base class for all domain errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.info = DomainErrorInfo(code=self.code.value, message=message, detail=detail)


@dataclass(frozen=True)
class DomainErrorInfo:
    code: str
    message: str
    detail: Optional[str] = None


class InvalidInputError(CatalogDomainError):
    """Raised when request/config validation fails."""

    code = ErrorCode.INVALID_INPUT


class InvalidURLError(CatalogDomainError):
    code = ErrorCode.INVALID_URL


class NetworkTimeoutError(CatalogDomainError):
    code = ErrorCode.NETWORK_TIMEOUT


class StorageError(CatalogDomainError):
    code = ErrorCode.STORAGE_ERROR


class PageBlockedError(CatalogDomainError):
    """Raised by the session provider when a challenge/captcha page is served."""

    code = ErrorCode.PAGE_BLOCKED


class NoNavigationFoundError(CatalogDomainError):
    """Every navigation strategy failed or returned an empty tree."""

    code = ErrorCode.NO_NAVIGATION_FOUND

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        *,
        reports: tuple[StrategyReport, ...] = (),
    ):
        super().__init__(message, detail)
        self.reports = reports


class ExplorationFailedError(CatalogDomainError):
    """Filters were attempted for a category but none could be applied."""

    code = ErrorCode.NO_FILTERS_EXPLORED

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        *,
        partial_result: ExplorationResult | None = None,
    ):
        super().__init__(message, detail)
        self.partial_result = partial_result


class FilterNotFoundError(CatalogDomainError):
    code = ErrorCode.FILTER_NOT_FOUND


class FilterToggleError(CatalogDomainError):
    code = ErrorCode.FILTER_TOGGLE_FAILED


class FilterRevertError(CatalogDomainError):
    code = ErrorCode.FILTER_REVERT_FAILED
