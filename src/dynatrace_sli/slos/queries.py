"""
Stored SLI query strings.

Each indicator produced by a dashboard pass is stored as one string that
tells the resolver how to recompute it later:

    MV2;<unit>;<metrics query>
    USQL;<visualization>;<dimension>;<usql query>
    SLO;<slo id>
    PV2;<problem selector query>
    SECPV2;<security problem selector query>
    <metrics query>                      (legacy, no prefix)

In process these are separate variant types; the string form only exists
at the storage boundary and stays compatible with previously stored values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from dynatrace_sli.core.errors import SLIConfigError

METRICS_V2_PREFIX = "MV2"
USQL_PREFIX = "USQL"
SLO_PREFIX = "SLO"
PROBLEMS_PREFIX = "PV2"
SECURITY_PROBLEMS_PREFIX = "SECPV2"


@dataclass(frozen=True)
class MetricsV2Query:
    """Metrics API query with the unit its value is reported in."""

    unit: str
    query: str

    def encode(self) -> str:
        return f"{METRICS_V2_PREFIX};{self.unit};{self.query}"


@dataclass(frozen=True)
class LegacyMetricsQuery:
    """Metrics API query without a prefix; scaled by the metric ID heuristic."""

    query: str

    def encode(self) -> str:
        return self.query


@dataclass(frozen=True)
class USQLQuery:
    tile_type: str
    dimension: str
    query: str

    def encode(self) -> str:
        return f"{USQL_PREFIX};{self.tile_type};{self.dimension};{self.query}"


@dataclass(frozen=True)
class SLOQuery:
    slo_id: str

    def encode(self) -> str:
        return f"{SLO_PREFIX};{self.slo_id}"


@dataclass(frozen=True)
class ProblemsQuery:
    query: str

    def encode(self) -> str:
        return f"{PROBLEMS_PREFIX};{self.query}"


@dataclass(frozen=True)
class SecurityProblemsQuery:
    query: str

    def encode(self) -> str:
        return f"{SECURITY_PROBLEMS_PREFIX};{self.query}"


SLIQuery = Union[
    MetricsV2Query,
    LegacyMetricsQuery,
    USQLQuery,
    SLOQuery,
    ProblemsQuery,
    SecurityProblemsQuery,
]


def parse_sli_query(value: str) -> SLIQuery:
    """
    Decode a stored query string into its variant.

    The payload is everything after the prefix fields, so queries that
    contain ";" themselves survive the round trip.

    Raises:
        SLIConfigError: If a prefixed string lacks its required fields
    """
    prefix, separator, rest = value.partition(";")
    if not separator:
        return LegacyMetricsQuery(query=value)

    if prefix == METRICS_V2_PREFIX:
        unit, separator, query = rest.partition(";")
        if not separator:
            raise SLIConfigError(
                f"{METRICS_V2_PREFIX} query string is not in the format MV2;<unit>;<query>: {value}"
            )
        return MetricsV2Query(unit=unit, query=query)

    if prefix == USQL_PREFIX:
        parts = rest.split(";", 2)
        if len(parts) != 3:
            raise SLIConfigError(
                f"{USQL_PREFIX} query string is not in the format USQL;<type>;<dimension>;<query>: {value}"
            )
        return USQLQuery(tile_type=parts[0], dimension=parts[1], query=parts[2])

    if prefix == SLO_PREFIX:
        if not rest:
            raise SLIConfigError(f"{SLO_PREFIX} query string has no SLO ID: {value}")
        return SLOQuery(slo_id=rest)

    if prefix == PROBLEMS_PREFIX:
        return ProblemsQuery(query=rest)

    if prefix == SECURITY_PROBLEMS_PREFIX:
        return SecurityProblemsQuery(query=rest)

    return LegacyMetricsQuery(query=value)
