"""
Error hierarchy for SLI/SLO derivation.

Errors local to one tile, series or indicator are captured by the dashboard
pass as failed SLI results. Errors that prevent choosing or fetching the
dashboard propagate to the caller. The ad-hoc resolver propagates everything.
"""

from __future__ import annotations

from typing import Any


class DynatraceSLIError(Exception):
    """Base exception carrying a message and structured details."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class QueryBuildError(DynatraceSLIError):
    """Raised when a query fragment cannot be parsed into a backend URL."""


class MetricLookupError(DynatraceSLIError):
    """Raised when a metric definition could not be fetched or decoded."""


class BackendError(DynatraceSLIError):
    """Base class for failures talking to the monitoring backend."""


class BackendAPIError(BackendError):
    """Raised when the backend answers with an error status or error payload."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
        self.code = code


class BackendUnreachable(BackendError):
    """Raised on transport-level failures (DNS, connect, TLS, timeout)."""


class InvalidResponseError(BackendError):
    """Raised when a 200 response body cannot be decoded."""


class InvalidDashboardIDError(DynatraceSLIError):
    """Raised when the dashboard reference is not a valid UUID."""


class DashboardLoadError(DynatraceSLIError):
    """Raised when the dashboard itself could not be fetched or parsed."""


class AmbiguousResultError(DynatraceSLIError):
    """Raised when a metrics query returns more than one value for one indicator."""


class NoDataError(DynatraceSLIError):
    """Raised when a query returns no rows where at least one was expected."""


class SLIConfigError(DynatraceSLIError):
    """Raised for unknown indicators or malformed stored query strings."""


class RowDecodeError(DynatraceSLIError):
    """Raised when a USQL row does not have the shape its visualization declares."""


def format_error_message(error: DynatraceSLIError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
