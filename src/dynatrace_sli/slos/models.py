"""
SLI and SLO data models.

These mirror the documents the delivery platform consumes: an SLI file
mapping indicator names to replayable queries, and an SLO file listing
objectives with pass/warning criteria plus a total-score policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml

SLI_SPEC_VERSION = "0.1.4"
SLO_SPEC_VERSION = "1.0"


@dataclass
class SLIResult:
    """Value of one indicator for the evaluated window."""

    metric: str
    value: float
    success: bool
    message: str = ""

    @classmethod
    def failed(cls, metric: str, message: str) -> SLIResult:
        return cls(metric=metric, value=0.0, success=False, message=message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"metric": self.metric, "value": self.value, "success": self.success}
        if self.message:
            data["message"] = self.message
        return data


@dataclass
class SLOCriteria:
    """One criteria group; all criteria in a group must hold."""

    criteria: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"criteria": list(self.criteria)}


@dataclass
class SLODefinition:
    """Objective attached to one indicator."""

    sli: str
    weight: int = 1
    key_sli: bool = False
    pass_criteria: list[SLOCriteria] = field(default_factory=list)
    warning_criteria: list[SLOCriteria] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"sli": self.sli}
        if self.pass_criteria:
            data["pass"] = [c.to_dict() for c in self.pass_criteria]
        if self.warning_criteria:
            data["warning"] = [c.to_dict() for c in self.warning_criteria]
        data["weight"] = self.weight
        data["key_sli"] = self.key_sli
        return data


@dataclass
class SLOScore:
    pass_threshold: str = "90%"
    warning_threshold: str = "75%"

    def to_dict(self) -> dict[str, Any]:
        return {"pass": self.pass_threshold, "warning": self.warning_threshold}


@dataclass
class SLOComparison:
    compare_with: str = "single_result"
    include_result_with_score: str = "pass"
    number_of_comparison_results: int = 1
    aggregate_function: str = "avg"

    def to_dict(self) -> dict[str, Any]:
        return {
            "compare_with": self.compare_with,
            "include_result_with_score": self.include_result_with_score,
            "number_of_comparison_results": self.number_of_comparison_results,
            "aggregate_function": self.aggregate_function,
        }


@dataclass
class ServiceLevelObjectives:
    """SLO document: ordered objectives plus total-score and comparison policy."""

    objectives: list[SLODefinition] = field(default_factory=list)
    total_score: SLOScore = field(default_factory=SLOScore)
    comparison: SLOComparison = field(default_factory=SLOComparison)

    def to_dict(self) -> dict[str, Any]:
        return {
            "spec_version": SLO_SPEC_VERSION,
            "comparison": self.comparison.to_dict(),
            "objectives": [objective.to_dict() for objective in self.objectives],
            "total_score": self.total_score.to_dict(),
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


@dataclass
class SLIDefinitions:
    """SLI document: indicator name to stored query string."""

    indicators: dict[str, str] = field(default_factory=dict)
    spec_version: str = SLI_SPEC_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {"spec_version": self.spec_version, "indicators": dict(self.indicators)}

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, content: str) -> SLIDefinitions:
        data = yaml.safe_load(content) or {}
        indicators = data.get("indicators") or {}
        return cls(
            indicators={str(k): str(v) for k, v in indicators.items()},
            spec_version=str(data.get("spec_version", SLI_SPEC_VERSION)),
        )
