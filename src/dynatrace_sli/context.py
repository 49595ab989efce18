"""
Delivery context and query placeholder substitution.

Raw queries may reference $PROJECT, $STAGE, $SERVICE, $DEPLOYMENT,
$TESTSTRATEGY, $CONTEXT, $EVENT, $SOURCE, $LABEL.<key> and $ENV.<name>,
plus any caller-supplied filter key ($<key>, matched case-insensitively).
Unresolved placeholders stay in the query untouched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping


@dataclass(frozen=True)
class SLIFilter:
    """Caller-supplied placeholder value, e.g. key="handler", value="'/api'"."""

    key: str
    value: str

    @property
    def sanitized_value(self) -> str:
        return self.value.replace("'", "").replace('"', "")


@dataclass(frozen=True)
class DeliveryContext:
    """Delivery-side identity of the evaluation the SLIs are computed for."""

    project: str = ""
    stage: str = ""
    service: str = ""
    deployment: str = ""
    test_strategy: str = ""
    context: str = ""
    event: str = ""
    source: str = ""
    labels: Mapping[str, str] = field(default_factory=dict)
    # Explicit values for $ENV.<name>; never read from the process environment
    environment: Mapping[str, str] = field(default_factory=dict)

    def placeholders(self) -> list[tuple[str, str]]:
        values = [
            ("$CONTEXT", self.context),
            ("$EVENT", self.event),
            ("$SOURCE", self.source),
            ("$PROJECT", self.project),
            ("$STAGE", self.stage),
            ("$SERVICE", self.service),
            ("$DEPLOYMENT", self.deployment),
            ("$TESTSTRATEGY", self.test_strategy),
        ]
        values.extend((f"$LABEL.{key}", value) for key, value in self.labels.items())
        values.extend((f"$ENV.{key}", value) for key, value in self.environment.items())
        return values


class PlaceholderResolver:
    """Applies custom filters, then delivery context values, to raw query text."""

    def __init__(
        self,
        context: DeliveryContext | None = None,
        filters: Iterable[SLIFilter] = (),
    ) -> None:
        self.context = context or DeliveryContext()
        self.filters = list(filters)

    def replace(self, query: str) -> str:
        result = query
        for sli_filter in self.filters:
            value = sli_filter.sanitized_value
            result = re.sub(
                re.escape(f"${sli_filter.key}"),
                lambda _match, v=value: v,
                result,
                flags=re.IGNORECASE,
            )

        for placeholder, value in self.context.placeholders():
            result = result.replace(placeholder, value)

        return result
