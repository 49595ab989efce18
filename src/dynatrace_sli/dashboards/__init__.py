"""Dashboard-driven SLI/SLO derivation."""

from dynatrace_sli.dashboards.loader import (
    DashboardLoader,
    DashboardLoadResult,
    DashboardLoadState,
    find_dashboard,
    has_dashboard_changed,
    is_valid_uuid,
)
from dynatrace_sli.dashboards.models import Dashboard, TileType, parse_tile
from dynatrace_sli.dashboards.processor import DashboardProcessor, DashboardSLIResult, dashboard_link
from dynatrace_sli.dashboards.synthesizer import Indicator, MetricsSynthesizer
from dynatrace_sli.dashboards.tiles import TileMetricQuery, TileQueryCompiler

__all__ = [
    "Dashboard",
    "DashboardLoadResult",
    "DashboardLoadState",
    "DashboardLoader",
    "DashboardProcessor",
    "DashboardSLIResult",
    "Indicator",
    "MetricsSynthesizer",
    "TileMetricQuery",
    "TileQueryCompiler",
    "TileType",
    "dashboard_link",
    "find_dashboard",
    "has_dashboard_changed",
    "is_valid_uuid",
    "parse_tile",
]
