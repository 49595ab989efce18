"""
SLI retrieval.

Ties the two ways of computing SLIs together: a dashboard pass when a
dashboard is configured, and ad-hoc resolution of the requested
indicators otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

import structlog

from dynatrace_sli.clients.dynatrace import DynatraceClient
from dynatrace_sli.config.settings import DynatraceConfig, Settings
from dynatrace_sli.context import DeliveryContext, PlaceholderResolver, SLIFilter
from dynatrace_sli.core.errors import DynatraceSLIError
from dynatrace_sli.dashboards.processor import DashboardProcessor, DashboardSLIResult
from dynatrace_sli.logging import bind_context
from dynatrace_sli.metrics.query import QueryBuilder
from dynatrace_sli.resolver import SLIResolver
from dynatrace_sli.slos.models import SLIDefinitions, SLIResult

logger = structlog.get_logger()


@dataclass
class SLIRetrieval:
    """SLI results of one retrieval plus the dashboard pass behind them, if any."""

    results: list[SLIResult] = field(default_factory=list)
    dashboard: DashboardSLIResult | None = None

    @property
    def from_dashboard(self) -> bool:
        return self.dashboard is not None and bool(self.dashboard.results)


class SLIService:
    """Computes SLI values for one delivery context against one Dynatrace tenant."""

    def __init__(
        self,
        config: DynatraceConfig,
        context: DeliveryContext,
        *,
        filters: Iterable[SLIFilter] = (),
        custom_queries: Mapping[str, str] | None = None,
        client: DynatraceClient | None = None,
    ) -> None:
        self.config = config
        self.context = context
        self.custom_queries = dict(custom_queries or {})
        self.client = client or DynatraceClient(config)
        self.query_builder = QueryBuilder(config.api_url, PlaceholderResolver(context, filters))
        self.processor = DashboardProcessor(self.client, self.query_builder)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        context: DeliveryContext,
        **kwargs: Any,
    ) -> SLIService:
        return cls(settings.client_config(), context, **kwargs)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> SLIService:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def get_sli_values(
        self,
        indicators: Iterable[str],
        start: datetime,
        end: datetime,
        *,
        dashboard: str = "",
        stored_dashboard: str = "",
        stored_indicators: SLIDefinitions | None = None,
    ) -> SLIRetrieval:
        """
        Compute SLI values for a time window.

        When the dashboard pass yields results those are returned as they
        are. Otherwise every requested indicator is resolved on its own,
        preferring stored dashboard indicators over custom queries over
        the built-in defaults.

        Args:
            indicators: Indicator names to resolve when no dashboard results exist
            start: Window start
            end: Window end
            dashboard: Empty, "query" or a dashboard UUID
            stored_dashboard: Dashboard content persisted by a previous pass
            stored_indicators: SLI definitions persisted by a previous dashboard pass

        Raises:
            InvalidDashboardIDError: If the dashboard reference is not a valid UUID
            DashboardLoadError: If the dashboard could not be fetched or decoded
            BackendError: If searching the dashboard failed
        """
        log = bind_context(project=self.context.project, stage=self.context.stage, service=self.context.service)

        dashboard_result = self.processor.process(dashboard, self.context, start, end, stored_dashboard)
        if dashboard_result.results:
            log.info("sli_values_from_dashboard", dashboard=dashboard_result.dashboard_id)
            return SLIRetrieval(results=dashboard_result.results, dashboard=dashboard_result)

        queries = dict(self.custom_queries)
        if stored_indicators is not None:
            queries.update(stored_indicators.indicators)
        resolver = SLIResolver(self.client, self.query_builder, queries)

        results: list[SLIResult] = []
        for name in indicators:
            try:
                value = resolver.get_sli_value(name, start, end)
            except DynatraceSLIError as exc:
                log.error("sli_value_failed", indicator=name, error=exc.message)
                results.append(SLIResult.failed(name, exc.message))
                continue
            results.append(SLIResult(metric=name, value=value, success=True))

        log.info(
            "sli_values_resolved",
            indicators=len(results),
            failed=sum(1 for result in results if not result.success),
        )
        return SLIRetrieval(results=results, dashboard=dashboard_result)
