"""
Ad-hoc SLI resolution.

Resolves exactly one indicator value by replaying its stored query string.
Unlike the dashboard pass there is no partial failure here: every error
surfaces to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Mapping

import structlog

from dynatrace_sli.clients.dynatrace import DynatraceClient
from dynatrace_sli.core.errors import AmbiguousResultError, NoDataError, SLIConfigError
from dynatrace_sli.dashboards.synthesizer import mean
from dynatrace_sli.metrics.query import QueryBuilder, is_matching_metric_id
from dynatrace_sli.metrics.scaling import scale_value
from dynatrace_sli.slos.queries import (
    LegacyMetricsQuery,
    MetricsV2Query,
    ProblemsQuery,
    SecurityProblemsQuery,
    SLIQuery,
    SLOQuery,
    USQLQuery,
    parse_sli_query,
)
from dynatrace_sli.usql import decode_usql_row

logger = structlog.get_logger()

THROUGHPUT = "throughput"
ERROR_RATE = "error_rate"
RESPONSE_TIME_P50 = "response_time_p50"
RESPONSE_TIME_P90 = "response_time_p90"
RESPONSE_TIME_P95 = "response_time_p95"

_SERVICE_ENTITY_SELECTOR = (
    "entitySelector=type(SERVICE),tag(keptn_project:$PROJECT),tag(keptn_stage:$STAGE),"
    "tag(keptn_service:$SERVICE),tag(keptn_deployment:$DEPLOYMENT)"
)

DEFAULT_QUERIES: dict[str, str] = {
    THROUGHPUT: f"metricSelector=builtin:service.requestCount.total:merge(0):sum&{_SERVICE_ENTITY_SELECTOR}",
    ERROR_RATE: f"metricSelector=builtin:service.errors.total.rate:merge(0):avg&{_SERVICE_ENTITY_SELECTOR}",
    RESPONSE_TIME_P50: (
        f"metricSelector=builtin:service.response.time:merge(0):percentile(50)&{_SERVICE_ENTITY_SELECTOR}"
    ),
    RESPONSE_TIME_P90: (
        f"metricSelector=builtin:service.response.time:merge(0):percentile(90)&{_SERVICE_ENTITY_SELECTOR}"
    ),
    RESPONSE_TIME_P95: (
        f"metricSelector=builtin:service.response.time:merge(0):percentile(95)&{_SERVICE_ENTITY_SELECTOR}"
    ),
}


class SLIResolver:
    """Resolves single indicator values from custom or default queries."""

    def __init__(
        self,
        client: DynatraceClient,
        query_builder: QueryBuilder,
        custom_queries: Mapping[str, str] | None = None,
    ) -> None:
        self.client = client
        self.query_builder = query_builder
        self.custom_queries = dict(custom_queries or {})

    def get_timeseries_config(self, name: str) -> str:
        """
        Look up the stored query string of an indicator.

        Raises:
            SLIConfigError: If there is neither a custom nor a default query
        """
        if name in self.custom_queries:
            return self.custom_queries[name]

        logger.debug("sli_default_query_lookup", indicator=name)
        try:
            return DEFAULT_QUERIES[name]
        except KeyError:
            raise SLIConfigError(f"Unsupported SLI metric {name}", details={"indicator": name}) from None

    def get_sli_value(self, name: str, start: datetime, end: datetime) -> float:
        """
        Resolve the value of one indicator for a time window.

        Raises:
            SLIConfigError: If the indicator is unknown or its query is malformed
            AmbiguousResultError: If a metrics query returns more than one value
            NoDataError: If no value could be found for the indicator
            BackendError: If the backend call failed
        """
        stored = self.get_timeseries_config(name)
        query = parse_sli_query(stored)
        logger.debug("sli_query_resolved", indicator=name, query=stored)
        return self.resolve(name, query, start, end)

    def resolve(self, name: str, query: SLIQuery, start: datetime, end: datetime) -> float:
        if isinstance(query, USQLQuery):
            return self._usql_value(name, query, start, end)
        if isinstance(query, SLOQuery):
            return self.client.get_slo(query.slo_id, start, end).evaluated_percentage
        if isinstance(query, ProblemsQuery):
            return float(self.client.get_problems(query.query, start, end).total_count)
        if isinstance(query, SecurityProblemsQuery):
            return float(self.client.get_security_problems(query.query, start, end).total_count)
        if isinstance(query, MetricsV2Query):
            return self._metrics_value(name, query.query, query.unit, start, end)
        if isinstance(query, LegacyMetricsQuery):
            return self._metrics_value(name, query.query, "", start, end)
        raise SLIConfigError(f"Unsupported query for SLI {name}", details={"indicator": name})

    def _usql_value(self, name: str, query: USQLQuery, start: datetime, end: datetime) -> float:
        url = self.query_builder.build_usql_query(query.query, start, end)
        result = self.client.query_usql(url)

        value: float | None = None
        for row in result.values:
            decoded = decode_usql_row(query.tile_type, row)
            if decoded is None:
                logger.debug("usql_visualization_unsupported", visualization=query.tile_type, indicator=name)
                continue
            if decoded.dimension == query.dimension:
                value = decoded.value

        if value is None:
            raise NoDataError(
                f"Not able to query identifier {name} from Dynatrace",
                details={"indicator": name, "dimension": query.dimension},
            )
        return value

    def _metrics_value(self, name: str, fragment: str, unit: str, start: datetime, end: datetime) -> float:
        built = self.query_builder.build_metrics_query(fragment, start, end)
        result = self.client.query_metrics(built.url)

        for series in result.result:
            if not is_matching_metric_id(series.metric_id, built.metric_id):
                continue

            if len(series.data) != 1:
                if not series.data:
                    raise NoDataError(
                        f"Dynatrace Metrics API returned no data for query: {built.url}",
                        details={"indicator": name},
                    )
                raise AmbiguousResultError(
                    f"Dynatrace Metrics API returned {len(series.data)} result values, expected 1 for query: "
                    f"{built.url}. Please ensure the response contains exactly one value "
                    "(e.g., by using :merge(0):avg for the metric).",
                    details={"indicator": name, "metric_id": series.metric_id},
                )

            value = mean(series.data[0].values)
            if value is None:
                raise NoDataError(
                    f"Dynatrace Metrics API returned no values for query: {built.url}",
                    details={"indicator": name},
                )
            return scale_value(value, unit, built.metric_id)

        raise NoDataError(f"Not able to query identifier {name} from Dynatrace", details={"indicator": name})
