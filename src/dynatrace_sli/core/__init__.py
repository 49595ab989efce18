"""Core building blocks shared by all modules."""

from dynatrace_sli.core.errors import (
    AmbiguousResultError,
    BackendAPIError,
    BackendError,
    BackendUnreachable,
    DashboardLoadError,
    DynatraceSLIError,
    InvalidDashboardIDError,
    InvalidResponseError,
    MetricLookupError,
    NoDataError,
    QueryBuildError,
    RowDecodeError,
    SLIConfigError,
    format_error_message,
)

__all__ = [
    "AmbiguousResultError",
    "BackendAPIError",
    "BackendError",
    "BackendUnreachable",
    "DashboardLoadError",
    "DynatraceSLIError",
    "InvalidDashboardIDError",
    "InvalidResponseError",
    "MetricLookupError",
    "NoDataError",
    "QueryBuildError",
    "RowDecodeError",
    "SLIConfigError",
    "format_error_message",
]
