"""
Dashboard models.

A dashboard is decoded permissively: unknown fields are ignored, null
values fall back to field defaults, and every tile is decoded into the
variant for its tileType. Tile types without a variant decode into
UnsupportedTile and are skipped by the processor.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, ValidationInfo, field_validator

from dynatrace_sli.clients.models import DynatraceModel


class TileType(StrEnum):
    HEADER = "HEADER"
    MARKDOWN = "MARKDOWN"
    SLO = "SLO"
    OPEN_PROBLEMS = "OPEN_PROBLEMS"
    OPEN_SECURITY_PROBLEMS = "OPEN_SECURITY_PROBLEMS"
    DATA_EXPLORER = "DATA_EXPLORER"
    CUSTOM_CHARTING = "CUSTOM_CHARTING"
    USQL = "DTAQL"
    SYNTHETIC_TESTS = "SYNTHETIC_TESTS"


class DashboardModel(DynatraceModel):
    """Dashboard JSON base: explicit nulls decode as the field default."""

    @field_validator("*", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name is not None:
            field = cls.model_fields[info.field_name]
            if not field.is_required():
                return field.get_default(call_default_factory=True)
        return value


class ManagementZone(DashboardModel):
    id: str = ""
    name: str = ""


class DashboardFilter(DashboardModel):
    timeframe: str = ""
    management_zone: ManagementZone | None = None


class DashboardMetadata(DashboardModel):
    name: str = ""
    shared: bool = False
    owner: str = ""
    dashboard_filter: DashboardFilter | None = None
    tags: list[str] = Field(default_factory=list)


class TileFilter(DashboardModel):
    timeframe: str = ""
    management_zone: ManagementZone | None = None


class FilterCriterion(DashboardModel):
    value: str = ""
    evaluator: str = ""


class NestedFilter(DashboardModel):
    filter: str = ""
    filter_type: str = ""
    filter_operator: str = ""
    nested_filters: list[NestedFilter] = Field(default_factory=list)
    criteria: list[FilterCriterion] = Field(default_factory=list)


class QueryFilter(DashboardModel):
    filter_operator: str = ""
    nested_filters: list[NestedFilter] = Field(default_factory=list)
    criteria: list[FilterCriterion] = Field(default_factory=list)


class DataExplorerQuery(DashboardModel):
    """One metric query of a data explorer tile."""

    id: str = ""
    metric: str = ""
    space_aggregation: str = ""
    time_aggregation: str = ""
    split_by: list[str] = Field(default_factory=list)
    filter_by: QueryFilter | None = None


class ChartDimension(DashboardModel):
    id: str = ""
    name: str = ""
    values: list[str] = Field(default_factory=list)
    # The dashboard API misspells this field
    entity_dimension: bool = Field(False, alias="entitiyDimension")


class ChartSeries(DashboardModel):
    """One series of a custom chart tile."""

    metric: str = ""
    aggregation: str = ""
    percentile: float | None = None
    type: str = ""
    entity_type: str = ""
    dimensions: list[ChartDimension] = Field(default_factory=list)
    sort_ascending: bool = False
    sort_column: bool = False
    aggregation_rate: str = ""

    @field_validator("percentile", mode="before")
    @classmethod
    def _lenient_percentile(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                return None
        return value


class ChartConfig(DashboardModel):
    legend_shown: bool = False
    type: str = ""
    series: list[ChartSeries] = Field(default_factory=list)


class FilterConfig(DashboardModel):
    type: str = ""
    custom_name: str = ""
    default_name: str = ""
    chart_config: ChartConfig = Field(default_factory=ChartConfig)
    # entity type -> filter kind (SPECIFIC_ENTITIES, AUTO_TAGS, ...) -> values
    filters_per_entity_type: dict[str, dict[str, list[str]]] = Field(default_factory=dict)


class Tile(DashboardModel):
    """Fields shared by every tile type."""

    name: str = ""
    tile_type: str = ""
    configured: bool = True
    custom_name: str = ""
    tile_filter: TileFilter = Field(default_factory=TileFilter)

    @property
    def title(self) -> str:
        return self.custom_name or self.name

    @property
    def management_zone(self) -> ManagementZone | None:
        return self.tile_filter.management_zone


class HeaderTile(Tile):
    pass


class MarkdownTile(Tile):
    markdown: str = ""


class SLOTile(Tile):
    assigned_entities: list[str] = Field(default_factory=list)


class OpenProblemsTile(Tile):
    pass


class OpenSecurityProblemsTile(Tile):
    pass


class DataExplorerTile(Tile):
    queries: list[DataExplorerQuery] = Field(default_factory=list)

    @property
    def title(self) -> str:
        return self.name


class CustomChartingTile(Tile):
    filter_config: FilterConfig = Field(default_factory=FilterConfig)

    @property
    def title(self) -> str:
        return self.filter_config.custom_name or super().title


class USQLTile(Tile):
    query: str = ""
    # Visualization of the result: SINGLE_VALUE, PIE_CHART, COLUMN_CHART or TABLE
    type: str = ""


class UnsupportedTile(Tile):
    pass


TILE_VARIANTS: dict[str, type[Tile]] = {
    TileType.HEADER: HeaderTile,
    TileType.MARKDOWN: MarkdownTile,
    TileType.SLO: SLOTile,
    TileType.OPEN_PROBLEMS: OpenProblemsTile,
    TileType.OPEN_SECURITY_PROBLEMS: OpenSecurityProblemsTile,
    TileType.DATA_EXPLORER: DataExplorerTile,
    TileType.CUSTOM_CHARTING: CustomChartingTile,
    TileType.USQL: USQLTile,
}


def parse_tile(data: Any) -> Tile:
    """Decode one raw tile into the variant for its tileType."""
    if isinstance(data, Tile):
        return data
    tile_type = data.get("tileType", "") if isinstance(data, dict) else ""
    variant = TILE_VARIANTS.get(tile_type, UnsupportedTile)
    return variant.model_validate(data)


class Dashboard(DashboardModel):
    """Output of /api/config/v1/dashboards/{id}."""

    id: str = ""
    dashboard_metadata: DashboardMetadata = Field(default_factory=DashboardMetadata)
    tiles: list[Tile] = Field(default_factory=list)

    @field_validator("tiles", mode="before")
    @classmethod
    def _decode_tiles(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [parse_tile(tile) for tile in value]
        return value

    @property
    def name(self) -> str:
        return self.dashboard_metadata.name

    @property
    def management_zone(self) -> ManagementZone | None:
        dashboard_filter = self.dashboard_metadata.dashboard_filter
        if dashboard_filter is None:
            return None
        return dashboard_filter.management_zone
