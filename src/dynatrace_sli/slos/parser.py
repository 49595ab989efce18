"""
Parsers for SLI directives embedded in dashboard text.

Tile titles opt a tile into SLI extraction:

    Response Time;sli=resp_time;pass=<=500;warning=<=800;weight=2;key=true

Markdown tiles may tune the SLO document:

    KQG.Total.Pass=90%;KQG.Total.Warning=75%;KQG.Compare.Results=3
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from dynatrace_sli.slos.models import SLOCriteria, SLODefinition, ServiceLevelObjectives

logger = structlog.get_logger()

MARKDOWN_MARKER = "KQG."

_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}

_UNSAFE_NAME_CHARACTERS = (" ", "/", "%")


def clean_indicator_name(name: str) -> str:
    """Replace characters that break indicator identifiers downstream."""
    for character in _UNSAFE_NAME_CHARACTERS:
        name = name.replace(character, "_")
    return name


def _parse_bool(value: str) -> bool:
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return False


def _parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


@dataclass
class SLIDirectives:
    """Parsed sli=/pass=/warning=/weight=/key= directives of one title."""

    sli_name: str = ""
    pass_criteria: list[SLOCriteria] = field(default_factory=list)
    warning_criteria: list[SLOCriteria] = field(default_factory=list)
    weight: int = 1
    key_sli: bool = False

    @property
    def is_sli(self) -> bool:
        return bool(self.sli_name)

    def objective(self, indicator_name: str) -> SLODefinition:
        return SLODefinition(
            sli=indicator_name,
            weight=self.weight,
            key_sli=self.key_sli,
            pass_criteria=list(self.pass_criteria),
            warning_criteria=list(self.warning_criteria),
        )


def parse_sli_directives(
    title: str,
    default_pass: list[str] | None = None,
    default_warning: list[str] | None = None,
) -> SLIDirectives:
    """
    Parse the ;-separated name=value directives of a tile title.

    Segments without "=" (like the human readable title) are ignored.
    The value is everything after the first "=", so pass=<=500 works.
    """
    directives = SLIDirectives()

    for segment in title.split(";"):
        name, separator, value = segment.partition("=")
        if not separator:
            continue
        if name == "sli":
            directives.sli_name = value
        elif name == "pass":
            directives.pass_criteria.append(SLOCriteria(criteria=value.split(",")))
        elif name == "warning":
            directives.warning_criteria.append(SLOCriteria(criteria=value.split(",")))
        elif name == "key":
            directives.key_sli = _parse_bool(value)
        elif name == "weight":
            directives.weight = _parse_int(value)

    if not directives.pass_criteria and default_pass:
        directives.pass_criteria.append(SLOCriteria(criteria=list(default_pass)))
    if not directives.warning_criteria and default_warning:
        directives.warning_criteria.append(SLOCriteria(criteria=list(default_warning)))

    return directives


def apply_markdown_configuration(markdown: str, slo: ServiceLevelObjectives) -> None:
    """Update total-score and comparison policy from KQG.* markdown keys."""
    for segment in markdown.split(";"):
        parts = segment.split("=")
        if len(parts) != 2:
            continue

        name = parts[0].strip().lower()
        value = parts[1].strip()

        if name == "kqg.total.pass":
            slo.total_score.pass_threshold = value
        elif name == "kqg.total.warning":
            slo.total_score.warning_threshold = value
        elif name == "kqg.compare.withscore":
            if value in ("pass", "pass_or_warn", "all"):
                slo.comparison.include_result_with_score = value
            else:
                slo.comparison.include_result_with_score = "pass"
        elif name == "kqg.compare.results":
            try:
                results = int(value)
            except ValueError:
                results = 1
            slo.comparison.number_of_comparison_results = results
            slo.comparison.compare_with = "several_results" if results > 1 else "single_result"
        elif name == "kqg.compare.function":
            if value in ("avg", "p50", "p90", "p95"):
                slo.comparison.aggregate_function = value
            else:
                slo.comparison.aggregate_function = "avg"
        else:
            logger.debug("markdown_key_ignored", key=parts[0])
