"""
Metrics API query building and value scaling.
"""

from dynatrace_sli.metrics.query import (
    MetricsQuery,
    QueryBuilder,
    is_matching_metric_id,
    timestamp_to_string,
)
from dynatrace_sli.metrics.scaling import scale_value

__all__ = [
    "MetricsQuery",
    "QueryBuilder",
    "is_matching_metric_id",
    "scale_value",
    "timestamp_to_string",
]
