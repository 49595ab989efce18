"""
SLI/SLO synthesis from metrics API results.

Runs a compiled tile query and turns every returned data entry into one
indicator: its value, the query string that recomputes it later and the
objective the tile title declares.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from dynatrace_sli.clients.dynatrace import DynatraceClient
from dynatrace_sli.clients.models import MetricSeriesData
from dynatrace_sli.core.errors import DynatraceSLIError
from dynatrace_sli.dashboards.tiles import FILTER_DIMENSION_VALUE, NAMES_TRANSFORMATION, TileMetricQuery
from dynatrace_sli.metrics.query import is_matching_metric_id
from dynatrace_sli.metrics.scaling import scale_value
from dynatrace_sli.slos.models import SLIResult, SLODefinition
from dynatrace_sli.slos.parser import SLIDirectives, clean_indicator_name
from dynatrace_sli.slos.queries import LegacyMetricsQuery, MetricsV2Query, SLIQuery

logger = structlog.get_logger()


@dataclass
class Indicator:
    """One synthesized indicator: result, replayable query and optional objective."""

    result: SLIResult
    query: SLIQuery
    objective: SLODefinition | None = None

    @property
    def name(self) -> str:
        return self.result.metric


def mean(values: list[float | None]) -> float | None:
    present = [value for value in values if value is not None]
    if not present:
        return None
    return sum(present) / len(present)


class MetricsSynthesizer:
    """Executes compiled tile queries and correlates their results to indicators."""

    def __init__(self, client: DynatraceClient) -> None:
        self.client = client

    def synthesize(
        self,
        compiled: TileMetricQuery,
        base_name: str,
        directives: SLIDirectives,
    ) -> list[Indicator]:
        """
        Execute a compiled query and build one indicator per data entry.

        A failing query yields a single failed indicator under the base name,
        so the rest of the dashboard is still processed.
        """
        try:
            query_result = self.client.query_metrics(compiled.url)
        except DynatraceSLIError as exc:
            logger.error("tile_query_failed", indicator=base_name, metric=compiled.metric, error=exc.message)
            return [
                Indicator(
                    result=SLIResult.failed(base_name, exc.message),
                    query=LegacyMetricsQuery(query=compiled.metric_query),
                    objective=directives.objective(base_name),
                )
            ]

        indicators: list[Indicator] = []
        for series in query_result.result:
            if not is_matching_metric_id(series.metric_id, compiled.metric_id):
                logger.debug(
                    "metric_result_skipped",
                    wanted_metric_id=compiled.metric_id,
                    got_metric_id=series.metric_id,
                )
                continue

            if not series.data:
                logger.debug("metric_result_empty", metric_id=series.metric_id)

            for entry in series.data:
                indicators.append(
                    self._indicator(compiled, base_name, directives, entry, expand=len(series.data) > 1)
                )
        return indicators

    @staticmethod
    def _indicator(
        compiled: TileMetricQuery,
        base_name: str,
        directives: SLIDirectives,
        entry: MetricSeriesData,
        *,
        expand: bool,
    ) -> Indicator:
        name = base_name
        metric_query = compiled.metric_query
        names_filter = NAMES_TRANSFORMATION

        if expand:
            dimensions = entry.dimensions
            # With ":names" every split dimension comes back as a name and ID pair
            stride = 2 if len(dimensions) == compiled.dimension_count * 2 else 1

            for index in range(0, len(dimensions), stride):
                dimension = dimensions[index]
                name = f"{name}_{dimension}"
                names_filter = NAMES_TRANSFORMATION + compiled.filter_template.replace(
                    FILTER_DIMENSION_VALUE, dimension, 1
                )
                if compiled.entity_selector_template and stride == 2:
                    metric_query += compiled.entity_selector_template.replace(
                        FILTER_DIMENSION_VALUE, dimensions[index + 1], 1
                    )

        name = clean_indicator_name(name)
        query = MetricsV2Query(
            unit=compiled.unit,
            query=metric_query.replace(NAMES_TRANSFORMATION, names_filter, 1),
        )
        objective = directives.objective(name)

        value = mean(entry.values)
        if value is None:
            logger.debug("metric_entry_no_values", indicator=name)
            return Indicator(
                result=SLIResult.failed(name, f"Dynatrace Metrics API returned no values for {name}"),
                query=query,
                objective=objective,
            )

        value = scale_value(value, compiled.unit, compiled.metric_id)
        logger.debug("indicator_value", indicator=name, value=value)
        return Indicator(
            result=SLIResult(metric=name, value=value, success=True),
            query=query,
            objective=objective,
        )
