"""
Dashboard processing.

One pass loads the dashboard, walks its tiles in order and collects SLI
results, the SLI definitions that recompute them and the SLO document.
Failures inside a tile become failed SLI results; only failures to
choose or fetch the dashboard abort the pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from dynatrace_sli.clients.dynatrace import DynatraceClient
from dynatrace_sli.context import DeliveryContext
from dynatrace_sli.core.errors import DynatraceSLIError
from dynatrace_sli.dashboards.loader import DashboardLoader, DashboardLoadState
from dynatrace_sli.dashboards.models import (
    CustomChartingTile,
    Dashboard,
    DataExplorerTile,
    MarkdownTile,
    OpenProblemsTile,
    OpenSecurityProblemsTile,
    SLOTile,
    Tile,
    USQLTile,
)
from dynatrace_sli.dashboards.synthesizer import Indicator, MetricsSynthesizer
from dynatrace_sli.dashboards.tiles import (
    OPEN_PROBLEMS_SELECTOR,
    OPEN_SECURITY_PROBLEMS_SELECTOR,
    TileQueryCompiler,
    management_zone_filter,
    problem_selector,
)
from dynatrace_sli.metrics.query import QueryBuilder, timestamp_to_string
from dynatrace_sli.slos.models import SLIDefinitions, SLIResult, ServiceLevelObjectives
from dynatrace_sli.slos.parser import (
    MARKDOWN_MARKER,
    SLIDirectives,
    apply_markdown_configuration,
    clean_indicator_name,
    parse_sli_directives,
)
from dynatrace_sli.slos.queries import (
    LegacyMetricsQuery,
    ProblemsQuery,
    SecurityProblemsQuery,
    SLOQuery,
    USQLQuery,
)
from dynatrace_sli.usql import decode_usql_row

logger = structlog.get_logger()

PROBLEMS_INDICATOR = "problems"
SECURITY_PROBLEMS_INDICATOR = "security_problems"

# Any open problem fails the evaluation
PROBLEMS_OBJECTIVE = "pass=<=0;key=true"


@dataclass
class DashboardSLIResult:
    """Everything one dashboard pass produced."""

    state: DashboardLoadState
    dashboard_id: str = ""
    link: str = ""
    dashboard: Dashboard | None = None
    content: str = ""
    results: list[SLIResult] = field(default_factory=list)
    sli: SLIDefinitions = field(default_factory=SLIDefinitions)
    slo: ServiceLevelObjectives = field(default_factory=ServiceLevelObjectives)

    @property
    def processed(self) -> bool:
        return self.state == DashboardLoadState.LOADED

    def add(self, indicator: Indicator) -> None:
        self.results.append(indicator.result)
        self.sli.indicators[indicator.name] = indicator.query.encode()
        if indicator.objective is not None:
            self.slo.objectives.append(indicator.objective)


def dashboard_link(api_url: str, dashboard: Dashboard, start: datetime, end: datetime) -> str:
    """Deep link to the dashboard for the evaluated window and management zone."""
    link = (
        f"{api_url}#dashboard;id={dashboard.id};"
        f"gtf=c_{timestamp_to_string(start)}_{timestamp_to_string(end)}"
    )
    if dashboard.management_zone is not None:
        link = f"{link};gf={dashboard.management_zone.id}"
    return link


class DashboardProcessor:
    """Derives SLIs and SLOs from a Dynatrace dashboard."""

    def __init__(
        self,
        client: DynatraceClient,
        query_builder: QueryBuilder,
        loader: DashboardLoader | None = None,
    ) -> None:
        self.client = client
        self.query_builder = query_builder
        self.loader = loader or DashboardLoader(client)
        self.compiler = TileQueryCompiler(client, query_builder)
        self.synthesizer = MetricsSynthesizer(client)

    def process(
        self,
        reference: str,
        context: DeliveryContext,
        start: datetime,
        end: datetime,
        stored_content: str = "",
    ) -> DashboardSLIResult:
        """
        Run one dashboard pass for a time window.

        Args:
            reference: Empty, "query" or a dashboard UUID
            context: Delivery context the dashboard is searched for
            start: Window start
            end: Window end
            stored_content: Dashboard content persisted by a previous pass

        Returns:
            DashboardSLIResult; results are only filled when the state is LOADED

        Raises:
            InvalidDashboardIDError: If the reference is not a valid UUID
            DashboardLoadError: If the dashboard could not be fetched or decoded
        """
        loaded = self.loader.load(reference, context, stored_content)
        if loaded.dashboard is None:
            return DashboardSLIResult(state=loaded.state)

        result = DashboardSLIResult(
            state=loaded.state,
            dashboard_id=loaded.dashboard_id,
            link=dashboard_link(self.query_builder.api_url, loaded.dashboard, start, end),
            dashboard=loaded.dashboard,
            content=loaded.content,
        )
        if loaded.state == DashboardLoadState.UNCHANGED:
            return result

        self.process_tiles(loaded.dashboard, start, end, result)
        logger.info(
            "dashboard_processed",
            dashboard=loaded.dashboard_id,
            indicators=len(result.sli.indicators),
            failed=sum(1 for r in result.results if not r.success),
        )
        return result

    def process_tiles(
        self,
        dashboard: Dashboard,
        start: datetime,
        end: datetime,
        result: DashboardSLIResult,
    ) -> None:
        for tile in dashboard.tiles:
            if isinstance(tile, MarkdownTile):
                if MARKDOWN_MARKER in tile.markdown:
                    apply_markdown_configuration(tile.markdown, result.slo)
                continue

            for indicator in self._process_tile(dashboard, tile, start, end):
                result.add(indicator)

    def _process_tile(self, dashboard: Dashboard, tile: Tile, start: datetime, end: datetime) -> list[Indicator]:
        if isinstance(tile, SLOTile):
            return [self._slo_indicator(slo_id, start, end) for slo_id in tile.assigned_entities]

        if isinstance(tile, OpenProblemsTile):
            selector = problem_selector(OPEN_PROBLEMS_SELECTOR, dashboard, tile)
            return [self._problems_indicator(f"problemSelector={selector}", start, end)]

        if isinstance(tile, OpenSecurityProblemsTile):
            selector = problem_selector(OPEN_SECURITY_PROBLEMS_SELECTOR, dashboard, tile)
            return [self._security_problems_indicator(f"securityProblemSelector={selector}", start, end)]

        if not isinstance(tile, (DataExplorerTile, CustomChartingTile, USQLTile)):
            logger.debug("dashboard_tile_skipped", tile_type=tile.tile_type, tile=tile.title)
            return []

        directives = parse_sli_directives(tile.title)
        if not directives.is_sli:
            logger.debug("dashboard_tile_not_sli", tile_type=tile.tile_type, tile=tile.title)
            return []

        mz_filter = management_zone_filter(dashboard, tile)

        if isinstance(tile, DataExplorerTile):
            return self._data_explorer_indicators(tile, directives, mz_filter, start, end)
        if isinstance(tile, CustomChartingTile):
            return self._chart_indicators(tile, directives, mz_filter, start, end)
        return self._usql_indicators(tile, directives, start, end)

    def _data_explorer_indicators(
        self,
        tile: DataExplorerTile,
        directives: SLIDirectives,
        mz_filter: str,
        start: datetime,
        end: datetime,
    ) -> list[Indicator]:
        indicators: list[Indicator] = []
        for query in tile.queries:
            logger.debug("data_explorer_query", metric=query.metric, indicator=directives.sli_name)
            try:
                compiled = self.compiler.data_explorer_query(query, mz_filter, start, end)
            except DynatraceSLIError as exc:
                indicators.append(self._compile_failure(directives, query.metric, exc))
                continue
            indicators.extend(self.synthesizer.synthesize(compiled, directives.sli_name, directives))
        return indicators

    def _chart_indicators(
        self,
        tile: CustomChartingTile,
        directives: SLIDirectives,
        mz_filter: str,
        start: datetime,
        end: datetime,
    ) -> list[Indicator]:
        indicators: list[Indicator] = []
        filters = tile.filter_config.filters_per_entity_type
        for series in tile.filter_config.chart_config.series:
            logger.debug("chart_series", metric=series.metric, indicator=directives.sli_name)
            try:
                compiled = self.compiler.chart_series_query(series, mz_filter, filters, start, end)
            except DynatraceSLIError as exc:
                indicators.append(self._compile_failure(directives, series.metric, exc))
                continue
            indicators.extend(self.synthesizer.synthesize(compiled, directives.sli_name, directives))
        return indicators

    @staticmethod
    def _compile_failure(directives: SLIDirectives, metric: str, exc: DynatraceSLIError) -> Indicator:
        logger.error("tile_query_build_failed", indicator=directives.sli_name, metric=metric, error=exc.message)
        return Indicator(
            result=SLIResult.failed(directives.sli_name, exc.message),
            query=LegacyMetricsQuery(query=f"metricSelector={metric}"),
            objective=directives.objective(directives.sli_name),
        )

    def _usql_indicators(
        self,
        tile: USQLTile,
        directives: SLIDirectives,
        start: datetime,
        end: datetime,
    ) -> list[Indicator]:
        base_name = directives.sli_name
        url = self.query_builder.build_usql_query(tile.query, start, end)

        try:
            usql_result = self.client.query_usql(url)
            rows = [decode_usql_row(tile.type, row) for row in usql_result.values]
        except DynatraceSLIError as exc:
            logger.error("usql_tile_failed", indicator=base_name, error=exc.message)
            return [
                Indicator(
                    result=SLIResult.failed(base_name, exc.message),
                    query=USQLQuery(tile_type=tile.type, dimension="", query=tile.query),
                    objective=directives.objective(base_name),
                )
            ]

        indicators: list[Indicator] = []
        for row in rows:
            if row is None:
                logger.debug("usql_visualization_unsupported", visualization=tile.type, indicator=base_name)
                continue

            name = f"{base_name}_{row.dimension}" if row.dimension else base_name
            name = clean_indicator_name(name)
            logger.debug("indicator_value", indicator=name, value=row.value)
            indicators.append(
                Indicator(
                    result=SLIResult(metric=name, value=row.value, success=True),
                    query=USQLQuery(tile_type=tile.type, dimension=row.dimension, query=tile.query),
                    objective=directives.objective(name),
                )
            )
        return indicators

    def _slo_indicator(self, slo_id: str, start: datetime, end: datetime) -> Indicator:
        logger.debug("slo_tile_entity", slo=slo_id)
        try:
            slo = self.client.get_slo(slo_id, start, end)
        except DynatraceSLIError as exc:
            logger.error("slo_tile_failed", slo=slo_id, error=exc.message)
            return Indicator(
                result=SLIResult.failed(clean_indicator_name(slo_id), exc.message),
                query=SLOQuery(slo_id=slo_id),
            )

        name = clean_indicator_name(slo.name)
        directives = parse_sli_directives(
            f"sli={name};pass=>={slo.effective_target:f};warning=>={slo.effective_warning:f}"
        )
        return Indicator(
            result=SLIResult(metric=name, value=slo.evaluated_percentage, success=True),
            query=SLOQuery(slo_id=slo_id),
            objective=directives.objective(name),
        )

    def _problems_indicator(self, query: str, start: datetime, end: datetime) -> Indicator:
        directives = parse_sli_directives(f"sli={PROBLEMS_INDICATOR};{PROBLEMS_OBJECTIVE}")
        try:
            problems = self.client.get_problems(query, start, end)
        except DynatraceSLIError as exc:
            logger.error("problems_tile_failed", query=query, error=exc.message)
            result = SLIResult.failed(PROBLEMS_INDICATOR, exc.message)
        else:
            result = SLIResult(metric=PROBLEMS_INDICATOR, value=float(problems.total_count), success=True)

        return Indicator(
            result=result,
            query=ProblemsQuery(query=query),
            objective=directives.objective(PROBLEMS_INDICATOR),
        )

    def _security_problems_indicator(self, query: str, start: datetime, end: datetime) -> Indicator:
        directives = parse_sli_directives(f"sli={SECURITY_PROBLEMS_INDICATOR};{PROBLEMS_OBJECTIVE}")
        try:
            problems = self.client.get_security_problems(query, start, end)
        except DynatraceSLIError as exc:
            logger.error("security_problems_tile_failed", query=query, error=exc.message)
            result = SLIResult.failed(SECURITY_PROBLEMS_INDICATOR, exc.message)
        else:
            result = SLIResult(
                metric=SECURITY_PROBLEMS_INDICATOR,
                value=float(problems.total_count),
                success=True,
            )

        return Indicator(
            result=result,
            query=SecurityProblemsQuery(query=query),
            objective=directives.objective(SECURITY_PROBLEMS_INDICATOR),
        )
