"""SLI/SLO documents, title directives and stored query strings."""

from dynatrace_sli.slos.models import (
    SLIDefinitions,
    SLIResult,
    SLOComparison,
    SLOCriteria,
    SLODefinition,
    SLOScore,
    ServiceLevelObjectives,
)
from dynatrace_sli.slos.parser import (
    SLIDirectives,
    apply_markdown_configuration,
    clean_indicator_name,
    parse_sli_directives,
)
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

__all__ = [
    "LegacyMetricsQuery",
    "MetricsV2Query",
    "ProblemsQuery",
    "SLIDefinitions",
    "SLIDirectives",
    "SLIQuery",
    "SLIResult",
    "SLOComparison",
    "SLOCriteria",
    "SLODefinition",
    "SLOQuery",
    "SLOScore",
    "SecurityProblemsQuery",
    "ServiceLevelObjectives",
    "USQLQuery",
    "apply_markdown_configuration",
    "clean_indicator_name",
    "parse_sli_directives",
    "parse_sli_query",
]
