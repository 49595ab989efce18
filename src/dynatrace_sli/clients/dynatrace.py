"""
Dynatrace REST API client.

Synchronous, one blocking call at a time. No retries and no caching: a
failed call surfaces immediately, and the caller decides whether to retry.
Timeouts, TLS verification and proxies are transport configuration.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from dynatrace_sli.clients.models import (
    ApiErrorEnvelope,
    DashboardList,
    DynatraceModel,
    MetricDefinition,
    MetricsQueryResult,
    Problem,
    ProblemQueryResult,
    SecurityProblemQueryResult,
    SLOResult,
    USQLResult,
)
from dynatrace_sli.config.settings import DynatraceConfig
from dynatrace_sli.core.errors import (
    BackendAPIError,
    BackendError,
    BackendUnreachable,
    InvalidResponseError,
    MetricLookupError,
    NoDataError,
)
from dynatrace_sli.metrics.query import encode_query_params, parse_query_params, timestamp_to_string

logger = structlog.get_logger()

DEFAULT_USER_AGENT = "dynatrace-sli/0.1.0"

# The SLO API always sends "error"; this value means the evaluation succeeded
SLO_NO_ERROR = "NONE"

ModelT = TypeVar("ModelT", bound=DynatraceModel)


class DynatraceClient:
    """Client for the Dynatrace config and environment APIs of one tenant."""

    def __init__(
        self,
        config: DynatraceConfig,
        *,
        http_client: httpx.Client | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.config = config
        headers = {"User-Agent": user_agent, **dict(config.headers)}
        self._client = http_client or httpx.Client(
            headers=headers,
            timeout=config.timeout,
            verify=config.verify_ssl,
            proxy=config.proxy,
        )

    @property
    def api_url(self) -> str:
        return self.config.api_url

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> DynatraceClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def list_dashboards(self) -> DashboardList:
        url = f"{self.api_url}/api/config/v1/dashboards"
        return self._decode(DashboardList, self._get_json(url, "Dashboards API request"), url)

    def get_dashboard(self, dashboard_id: str) -> dict[str, Any]:
        """Fetch one dashboard as raw JSON; decoding is left to the dashboard models."""
        url = f"{self.api_url}/api/config/v1/dashboards/{dashboard_id}"
        data = self._get_json(url, "Dashboard API request")
        if not isinstance(data, dict):
            raise InvalidResponseError(f"Dashboard API returned an unexpected payload for {dashboard_id}")
        return data

    def get_slo(self, slo_id: str, start: datetime, end: datetime) -> SLOResult:
        """
        Evaluate one SLO over the window.

        Raises:
            BackendAPIError: If the API fails, including a 200 response whose
                "error" field is anything other than NONE
        """
        params = encode_query_params(
            [("from", timestamp_to_string(start)), ("to", timestamp_to_string(end))]
        )
        url = f"{self.api_url}/api/v2/slo/{slo_id}?{params}"
        result = self._decode(SLOResult, self._get_json(url, "SLO API request"), url)

        if result.error != SLO_NO_ERROR:
            raise BackendAPIError(
                f"Dynatrace API returned an error: {result.error}",
                status_code=200,
                details={"slo_id": slo_id},
            )
        return result

    def get_problems(self, problem_query: str, start: datetime, end: datetime) -> ProblemQueryResult:
        url = self._windowed_url("/api/v2/problems", problem_query, start, end)
        return self._decode(ProblemQueryResult, self._get_json(url, "Problems API request"), url)

    def get_security_problems(
        self, problem_query: str, start: datetime, end: datetime
    ) -> SecurityProblemQueryResult:
        url = self._windowed_url("/api/v2/securityProblems", problem_query, start, end)
        return self._decode(
            SecurityProblemQueryResult,
            self._get_json(url, "Security Problems API request"),
            url,
        )

    def get_problem(self, problem_id: str) -> Problem:
        url = f"{self.api_url}/api/v2/problems/{problem_id}"
        return self._decode(Problem, self._get_json(url, "Problems API request"), url)

    def describe_metric(self, metric_id: str) -> MetricDefinition:
        """
        Fetch dimension, unit and aggregation metadata of a metric.

        Never cached: every call hits the API.

        Raises:
            MetricLookupError: If the metadata could not be fetched or decoded
        """
        url = f"{self.api_url}/api/v2/metrics/{quote(metric_id, safe=':')}"
        try:
            return self._decode(MetricDefinition, self._get_json(url, "Metrics API request"), url)
        except BackendError as exc:
            raise MetricLookupError(
                f"could not describe metric {metric_id}: {exc.message}",
                details={"metric": metric_id},
            ) from exc

    def query_metrics(self, url: str) -> MetricsQueryResult:
        """
        Execute a fully built metrics query.

        Raises:
            NoDataError: If the query returned no result series
        """
        data = self._get_json(url, "Metrics API request", headers={"Content-Type": "application/json"})
        result = self._decode(MetricsQueryResult, data, url)
        if not result.result:
            raise NoDataError("Dynatrace Metrics API returned no DataPoints", details={"query": url})
        return result

    def query_usql(self, url: str) -> USQLResult:
        """
        Execute a fully built USQL query.

        Raises:
            NoDataError: If the query returned no rows
        """
        data = self._get_json(url, "USQL API request", headers={"Content-Type": "application/json"})
        result = self._decode(USQLResult, data, url)
        if not result.values:
            raise NoDataError("Dynatrace USQL Query didn't return any DataPoints", details={"query": url})
        return result

    def _windowed_url(self, path: str, query: str, start: datetime, end: datetime) -> str:
        pairs = [("from", timestamp_to_string(start)), ("to", timestamp_to_string(end))]
        pairs.extend(parse_query_params(query))
        return f"{self.api_url}{path}?{encode_query_params(pairs)}"

    def _get_json(self, url: str, operation: str, *, headers: dict[str, str] | None = None) -> Any:
        try:
            response = self._client.get(url, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("dynatrace_unreachable", url=url, error=str(exc))
            raise BackendUnreachable(f"{operation} {url} failed: {exc}") from exc

        if response.status_code != 200:
            raise self._api_error(response, operation, url)

        try:
            return response.json()
        except ValueError as exc:
            raise InvalidResponseError(f"could not decode response payload of {url}: {exc}") from exc

    @staticmethod
    def _api_error(response: httpx.Response, operation: str, url: str) -> BackendAPIError:
        try:
            envelope = ApiErrorEnvelope.model_validate_json(response.content)
        except (ValidationError, ValueError):
            logger.error("dynatrace_api_error", url=url, status=response.status_code)
            return BackendAPIError(
                f"{operation} {url} was not successful: Dynatrace API returned status code {response.status_code}",
                status_code=response.status_code,
            )

        logger.error(
            "dynatrace_api_error",
            url=url,
            status=response.status_code,
            code=envelope.error.code,
            message=envelope.error.message,
        )
        return BackendAPIError(
            f"{operation} {url} was not successful: "
            f"Dynatrace API returned error {envelope.error.code}: {envelope.error.message}",
            status_code=response.status_code,
            code=envelope.error.code,
        )

    @staticmethod
    def _decode(model: type[ModelT], data: Any, url: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise InvalidResponseError(f"could not decode response payload of {url}: {exc}") from exc
