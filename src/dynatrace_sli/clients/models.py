"""
Data models for Dynatrace API responses.

Decoding is permissive: unknown fields are ignored and missing ones fall
back to defaults, since the API adds fields between releases.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DynatraceModel(BaseModel):
    """Base model mapping camelCase API fields onto snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ApiErrorDetail(DynatraceModel):
    code: int = 0
    message: str = ""
    constraint_violations: list[dict[str, Any]] = Field(default_factory=list)


class ApiErrorEnvelope(DynatraceModel):
    """Error body returned by the v2 environment API on non-200 responses."""

    error: ApiErrorDetail


class DimensionDefinition(DynatraceModel):
    key: str = ""
    name: str = ""
    type: str = ""
    display_name: str = ""


class Aggregation(DynatraceModel):
    type: str = ""


class MetricDefinition(DynatraceModel):
    """Output of /api/v2/metrics/{metricId}."""

    metric_id: str = ""
    display_name: str = ""
    description: str = ""
    unit: str = ""
    aggregation_types: list[str] = Field(default_factory=list)
    transformations: list[str] = Field(default_factory=list)
    default_aggregation: Aggregation = Field(default_factory=Aggregation)
    dimension_definitions: list[DimensionDefinition] = Field(default_factory=list)
    entity_type: list[str] = Field(default_factory=list)


class MetricSeriesData(DynatraceModel):
    dimensions: list[str] = Field(default_factory=list)
    dimension_map: dict[str, str] = Field(default_factory=dict)
    timestamps: list[int] = Field(default_factory=list)
    values: list[float | None] = Field(default_factory=list)


class MetricSeriesResult(DynatraceModel):
    metric_id: str = ""
    data: list[MetricSeriesData] = Field(default_factory=list)


class MetricsQueryResult(DynatraceModel):
    """Output of /api/v2/metrics/query."""

    total_count: int = 0
    next_page_key: str | None = None
    result: list[MetricSeriesResult] = Field(default_factory=list)


class SLOResult(DynatraceModel):
    """Output of /api/v2/slo/{id}."""

    id: str = ""
    enabled: bool = False
    name: str = ""
    description: str = ""
    evaluated_percentage: float = 0.0
    error_budget: float = 0.0
    status: str = ""
    error: str = ""
    use_rate_metric: bool = False
    metric_rate: str = ""
    metric_numerator: str = ""
    metric_denominator: str = ""
    # Fields of the SLO API before the target/warning rename
    target_success_old: float = Field(0.0, alias="targetSuccess")
    target_warning_old: float = Field(0.0, alias="targetWarning")
    target: float = 0.0
    warning: float = 0.0
    evaluation_type: str = ""
    time_window: str = ""
    filter: str = ""

    @property
    def effective_target(self) -> float:
        return self.target if self.target > 0.0 else self.target_success_old

    @property
    def effective_warning(self) -> float:
        return self.warning if self.warning > 0.0 else self.target_warning_old


class Problem(DynatraceModel):
    problem_id: str = ""
    display_id: str = ""
    title: str = ""
    impact_level: str = ""
    severity_level: str = ""
    status: str = ""
    affected_entities: list[dict[str, Any]] = Field(default_factory=list)
    impacted_entities: list[dict[str, Any]] = Field(default_factory=list)
    root_cause_entity: dict[str, Any] | None = None
    management_zones: list[Any] = Field(default_factory=list)
    entity_tags: list[dict[str, Any]] = Field(default_factory=list)
    start_time: int = 0
    end_time: int = 0


class ProblemQueryResult(DynatraceModel):
    """Output of /api/v2/problems."""

    total_count: int = 0
    page_size: int = 0
    next_page_key: str | None = None
    problems: list[Problem] = Field(default_factory=list)


class SecurityProblem(DynatraceModel):
    security_problem_id: str = ""
    display_id: int | str = 0
    state: str = ""
    vulnerability_id: str = ""
    vulnerability_type: str = ""
    first_seen_timestamp: int = 0
    last_updated_timestamp: int = 0
    risk_assessment: dict[str, Any] = Field(default_factory=dict)
    management_zones: list[Any] = Field(default_factory=list)


class SecurityProblemQueryResult(DynatraceModel):
    """Output of /api/v2/securityProblems."""

    total_count: int = 0
    page_size: int = 0
    next_page_key: str | None = None
    security_problems: list[SecurityProblem] = Field(default_factory=list)


class USQLResult(DynatraceModel):
    """Output of /api/v1/userSessionQueryLanguage/table."""

    extrapolation_level: int = 0
    column_names: list[str] = Field(default_factory=list)
    values: list[list[Any]] = Field(default_factory=list)


class DashboardStub(DynatraceModel):
    id: str = ""
    name: str = ""
    owner: str = ""


class DashboardList(DynatraceModel):
    """Output of /api/config/v1/dashboards."""

    dashboards: list[DashboardStub] = Field(default_factory=list)
