"""
Query construction for dashboard tiles.

Chart and data explorer tiles are compiled into metrics API queries. Every
dimension of the metric that the tile does not show is merged away, from
the last index to the first, because each merge shifts the indexes of the
dimensions after it. Queries always request ":names" so dimensioned
results carry a display name next to every entity ID.

Besides the query itself each compiled tile carries two templates with a
FILTERDIMENSIONVALUE marker. The synthesizer fills them per result row so
the stored query of one indicator selects exactly that row again.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog

from dynatrace_sli.clients.dynatrace import DynatraceClient
from dynatrace_sli.clients.models import MetricDefinition
from dynatrace_sli.dashboards.models import (
    ChartSeries,
    Dashboard,
    DataExplorerQuery,
    Tile,
)
from dynatrace_sli.metrics.query import QueryBuilder

logger = structlog.get_logger()

FILTER_DIMENSION_VALUE = "FILTERDIMENSIONVALUE"
ENTITY_DIMENSION_PREFIX = "dt.entity."
NAMES_TRANSFORMATION = ":names"

# Chart aggregations without a metrics API equivalent
RATIO_AGGREGATIONS = ("OF_INTEREST_RATIO", "OTHER_RATIO")

OPEN_PROBLEMS_SELECTOR = "status(open)"
OPEN_SECURITY_PROBLEMS_SELECTOR = "status(OPEN)"


@dataclass(frozen=True)
class TileMetricQuery:
    """A compiled chart series or data explorer query."""

    metric: str
    metric_id: str
    unit: str
    # Query without window parameters; this is what gets stored per indicator
    metric_query: str
    url: str
    # Dimensions the tile splits by, used to detect name+ID dimension pairs
    dimension_count: int = 0
    entity_selector_template: str = ""
    filter_template: str = ""


def entity_type_of(dimension: str) -> str:
    """Entity type of an entity dimension, e.g. dt.entity.service_method -> SERVICE_METHOD."""
    return dimension[len(ENTITY_DIMENSION_PREFIX):].upper()


def management_zone_filter(dashboard: Dashboard, tile: Tile) -> str:
    """Entity selector clause for the management zone; a tile zone overrides the dashboard's."""
    zone = tile.management_zone or dashboard.management_zone
    if zone is None:
        return ""
    return f",mzId({zone.id})"


def problem_selector(base: str, dashboard: Dashboard, tile: Tile) -> str:
    """Open-state selector plus the dashboard and tile management zones, both applied."""
    selector = base
    if dashboard.management_zone is not None:
        selector = f"{selector},managementZoneIds({dashboard.management_zone.id})"
    if tile.management_zone is not None:
        selector = f"{selector},managementZoneIds({tile.management_zone.id})"
    return selector


def entity_selector_from_filters(
    filters_per_entity_type: dict[str, dict[str, list[str]]],
    entity_type: str,
) -> str:
    """
    Translate chart entity filters into entity selector clauses.

    Returns:
        Clauses each starting with ",", e.g. ,entityId("SERVICE-1"),tag("env")
    """
    filters = filters_per_entity_type.get(entity_type)
    if not filters:
        return ""

    clauses = [f',entityId("{entity_id}")' for entity_id in filters.get("SPECIFIC_ENTITIES", [])]
    clauses.extend(f',tag("{tag}")' for tag in filters.get("AUTO_TAGS", []))
    return "".join(clauses)


def chart_aggregation(series: ChartSeries, definition: MetricDefinition) -> str:
    aggregation = definition.default_aggregation.type
    if series.aggregation and series.aggregation != "NONE":
        aggregation = series.aggregation

    if aggregation == "PERCENTILE":
        aggregation = f"PERCENTILE({series.percentile or 0.0:f})"
    elif aggregation in RATIO_AGGREGATIONS:
        aggregation = "avg"
    return aggregation


class TileQueryCompiler:
    """Compiles chart series and data explorer queries into metrics API queries."""

    def __init__(self, client: DynatraceClient, query_builder: QueryBuilder) -> None:
        self.client = client
        self.query_builder = query_builder

    def data_explorer_query(
        self,
        query: DataExplorerQuery,
        mz_filter: str,
        start: datetime,
        end: datetime,
    ) -> TileMetricQuery:
        """
        Compile one data explorer query.

        Raises:
            MetricLookupError: If the metric definition could not be fetched
            QueryBuildError: If the resulting query is malformed
        """
        definition = self.client.describe_metric(query.metric)
        dimensions = definition.dimension_definitions

        merge = ""
        for index in range(len(dimensions) - 1, -1, -1):
            if dimensions[index].key not in query.split_by:
                logger.debug("dimension_merged", metric=query.metric, dimension=dimensions[index].key)
                merge += f":merge({index})"

        filter_aggregator = ""
        filter_template = ""
        entity_selector_template = ""
        entity_filter = ""

        if query.filter_by is not None and query.filter_by.nested_filters:
            nested_filters = query.filter_by.nested_filters
            if len(nested_filters) > 1:
                logger.debug(
                    "data_explorer_filter_unsupported",
                    metric=query.metric,
                    filters=len(nested_filters),
                    detail="only the first filter is applied",
                )
            nested = nested_filters[0]
            if len(nested.criteria) == 1:
                criterion = nested.criteria[0]
                if nested.filter.startswith(ENTITY_DIMENSION_PREFIX):
                    entity_selector_template = f",entityId({FILTER_DIMENSION_VALUE})"
                    entity_filter = f"&entitySelector=entityId({criterion.value})"
                else:
                    filter_template = f":filter(eq({nested.filter},{FILTER_DIMENSION_VALUE}))"
                    filter_aggregator = f":filter({criterion.evaluator}({nested.filter},{criterion.value}))"
            else:
                logger.debug("data_explorer_filter_unsupported", metric=query.metric, criteria=len(nested.criteria))

        if len(query.split_by) == 1:
            split = query.split_by[0]
            if split.startswith(ENTITY_DIMENSION_PREFIX):
                # Rows are re-selected by entity ID, which needs an entitySelector to extend
                entity_selector_template = f",entityId({FILTER_DIMENSION_VALUE})"
                if not entity_filter:
                    entity_filter = f"&entitySelector=type({entity_type_of(split)})"
            else:
                filter_template += f":filter(eq({split},{FILTER_DIMENSION_VALUE}))"
        elif len(query.split_by) > 1:
            logger.debug("data_explorer_split_unsupported", metric=query.metric, split_by=query.split_by)

        # A management zone alone still needs an entitySelector to attach to
        if mz_filter and not entity_filter:
            entity_filter = f"&entitySelector={mz_filter.lstrip(',')}"
        elif mz_filter:
            entity_filter += mz_filter

        aggregation = definition.default_aggregation.type.lower()
        metric_query = (
            f"metricSelector={query.metric}{merge}{filter_aggregator}:{aggregation}{NAMES_TRANSFORMATION}"
            f"{entity_filter}"
        )

        built = self.query_builder.build_metrics_query(metric_query, start, end)
        return TileMetricQuery(
            metric=query.metric,
            metric_id=built.metric_id,
            unit=definition.unit,
            metric_query=metric_query,
            url=built.url,
            dimension_count=len(query.split_by),
            entity_selector_template=entity_selector_template,
            filter_template=filter_template,
        )

    def chart_series_query(
        self,
        series: ChartSeries,
        mz_filter: str,
        filters_per_entity_type: dict[str, dict[str, list[str]]],
        start: datetime,
        end: datetime,
    ) -> TileMetricQuery:
        """
        Compile one custom chart series.

        Raises:
            MetricLookupError: If the metric definition could not be fetched
            QueryBuildError: If the resulting query is malformed
        """
        definition = self.client.describe_metric(series.metric)
        dimensions = definition.dimension_definitions

        merge = ""
        filter_aggregator = ""
        filter_template = ""
        entity_selector_template = ""

        for index in range(len(dimensions) - 1, -1, -1):
            shown = [dimension for dimension in series.dimensions if dimension.id == str(index)]
            if not shown:
                logger.debug("dimension_merged", metric=series.metric, dimension=dimensions[index].name)
                merge += f":merge({index})"
                continue

            for dimension in shown:
                if dimension.values:
                    filter_aggregator = f":filter(eq({dimension.name},{dimension.values[0]}))"
                elif dimension.name.startswith(ENTITY_DIMENSION_PREFIX):
                    entity_selector_template = f",entityId({FILTER_DIMENSION_VALUE})"
                else:
                    filter_template = f":filter(eq({dimension.name},{FILTER_DIMENSION_VALUE}))"

        aggregation = chart_aggregation(series, definition)

        # The stored entity type of a chart can be stale, e.g. IOT instead of CUSTOM_DEVICE
        entity_type = definition.entity_type[0] if definition.entity_type else series.entity_type
        entity_filter = entity_selector_from_filters(filters_per_entity_type, entity_type)

        metric_query = (
            f"metricSelector={series.metric}{merge}{filter_aggregator}:{aggregation.lower()}{NAMES_TRANSFORMATION}"
            f"&entitySelector=type({entity_type}){entity_filter}{mz_filter}"
        )

        built = self.query_builder.build_metrics_query(metric_query, start, end)
        return TileMetricQuery(
            metric=series.metric,
            metric_id=built.metric_id,
            unit=definition.unit,
            metric_query=metric_query,
            url=built.url,
            dimension_count=len(series.dimensions),
            entity_selector_template=entity_selector_template,
            filter_template=filter_template,
        )
