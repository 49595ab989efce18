"""
Query builder for the Dynatrace Metrics API v2 and the USQL endpoint.

Two generations of custom metric queries are accepted:

    legacy:  builtin:service.response.time:merge(0):avg?scope=tag(app)
    current: metricSelector=builtin:service.response.time:merge(0):avg&entitySelector=type(SERVICE)

Legacy queries are rewritten into the current form. A legacy scope= becomes
an entitySelector= restricted to services, which is what the old API did
implicitly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import unquote_plus, urlencode, urlsplit

import structlog

from dynatrace_sli.context import PlaceholderResolver
from dynatrace_sli.core.errors import QueryBuildError

logger = structlog.get_logger()

METRICS_API_MIGRATION_DOC = (
    "https://github.com/keptn-contrib/dynatrace-sli-service/blob/master/docs/CustomQueryFormatMigration.md"
)

METRICS_QUERY_PATH = "/api/v2/metrics/query/"
USQL_QUERY_PATH = "/api/v1/userSessionQueryLanguage/table"

_INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def timestamp_to_string(timestamp: datetime) -> str:
    """Render a timestamp the way the API expects it: Unix milliseconds."""
    return str(int(timestamp.timestamp()) * 1000)


@dataclass(frozen=True)
class MetricsQuery:
    """A fully qualified metrics query and the metric ID its results carry."""

    url: str
    metric_id: str


def parse_query_params(query: str) -> list[tuple[str, str]]:
    """
    Split a query string into ordered (key, value) pairs.

    Empty segments are skipped and a segment without "=" is a key with an
    empty value. Broken percent-escapes and ";" in keys are rejected.

    Raises:
        QueryBuildError: If the query string cannot be parsed
    """
    pairs: list[tuple[str, str]] = []
    for segment in query.split("&"):
        if not segment:
            continue
        key, _, value = segment.partition("=")
        if ";" in key:
            raise QueryBuildError(f"invalid semicolon separator in query: {query}")
        if _INVALID_ESCAPE.search(key) or _INVALID_ESCAPE.search(value):
            raise QueryBuildError(f"invalid URL escape in query: {query}")
        key = unquote_plus(key)
        if not key:
            continue
        pairs.append((key, unquote_plus(value)))
    return pairs


def encode_query_params(pairs: list[tuple[str, str]]) -> str:
    """Encode pairs sorted by key, keeping the order of repeated keys."""
    return urlencode(sorted(pairs, key=lambda pair: pair[0]))


def first_param(pairs: list[tuple[str, str]], key: str) -> str:
    for name, value in pairs:
        if name == key:
            return value
    return ""


def is_matching_metric_id(result_metric_id: str, query_metric_id: str) -> bool:
    """
    Check whether a result series belongs to the queried metric.

    Filter expressions come back with escaped dimension names, e.g.
    filter(dt.entity.browser,IE) turns into filter(dt~entity~browser,ie), so
    escaped IDs are compared on the part before the first ":" only.
    """
    if result_metric_id == query_metric_id:
        return True

    if "~" in result_metric_id and ":" in result_metric_id:
        logger.debug(
            "metric_id_fuzzy_match",
            result_metric_id=result_metric_id,
            query_metric_id=query_metric_id,
        )
        return result_metric_id.split(":")[0] == query_metric_id.split(":")[0]

    return False


class QueryBuilder:
    """Turns query fragments into backend-ready URLs for one tenant."""

    def __init__(self, api_url: str, placeholders: PlaceholderResolver | None = None) -> None:
        self.api_url = api_url.rstrip("/")
        self.placeholders = placeholders or PlaceholderResolver()

    def build_metrics_query(self, fragment: str, start: datetime, end: datetime) -> MetricsQuery:
        """
        Build the final metrics query for a time window.

        Args:
            fragment: Legacy or current form query fragment
            start: Window start
            end: Window end

        Returns:
            MetricsQuery with the final URL and the extracted metric ID

        Raises:
            QueryBuildError: If the fragment is malformed
        """
        query = self.placeholders.replace(fragment)

        if query.startswith("?metricSelector="):
            logger.warning(
                "metrics_query_compatibility",
                query=query,
                help_document=METRICS_API_MIGRATION_DOC,
                detail="removing leading ? from query",
            )
            query = query[1:]

        metric_selector = ""
        selector, separator, legacy_params = query.partition("?")
        if separator:
            logger.warning(
                "metrics_query_compatibility",
                query=query,
                help_document=METRICS_API_MIGRATION_DOC,
                detail="query uses the old format",
            )
            metric_selector = selector
            query = f"metricSelector={selector}&{legacy_params}"

        pairs = parse_query_params(query)

        scope = first_param(pairs, "scope")
        if scope:
            logger.warning(
                "metrics_query_compatibility",
                help_document=METRICS_API_MIGRATION_DOC,
                detail="converting scope to entitySelector",
            )
            existing = first_param(pairs, "entitySelector")
            if existing:
                scope = f"{existing},{scope}"
            if "type(SERVICE)" not in scope:
                scope = f"{scope},type(SERVICE)"
            pairs = [(key, value) for key, value in pairs if key not in ("scope", "entitySelector")]
            pairs.append(("entitySelector", scope))

        if not metric_selector:
            metric_selector = first_param(pairs, "metricSelector")
        if not metric_selector:
            raise QueryBuildError(f"query has no metricSelector: {fragment}")

        pairs.extend(
            [
                ("resolution", "Inf"),
                ("from", timestamp_to_string(start)),
                ("to", timestamp_to_string(end)),
            ]
        )

        url = f"{self.api_url}{METRICS_QUERY_PATH}?{encode_query_params(pairs)}"
        try:
            urlsplit(url)
        except ValueError as exc:
            raise QueryBuildError(f"could not parse metrics URL: {exc}") from exc

        logger.debug("metrics_query_built", url=url, metric_id=metric_selector)
        return MetricsQuery(url=url, metric_id=metric_selector)

    def build_usql_query(self, query: str, start: datetime, end: datetime) -> str:
        """Build the USQL table query URL for a time window."""
        usql = self.placeholders.replace(query)
        pairs = [
            ("query", usql),
            ("explain", "false"),
            ("addDeepLinkFields", "false"),
            ("startTimestamp", timestamp_to_string(start)),
            ("endTimestamp", timestamp_to_string(end)),
        ]
        url = f"{self.api_url}{USQL_QUERY_PATH}?{encode_query_params(pairs)}"
        logger.debug("usql_query_built", url=url)
        return url
