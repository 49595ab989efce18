"""
Tests for the metrics and USQL query builder.
"""

from datetime import datetime, timezone

import httpx
import pytest

from dynatrace_sli.context import DeliveryContext, PlaceholderResolver, SLIFilter
from dynatrace_sli.core.errors import QueryBuildError
from dynatrace_sli.metrics.query import (
    QueryBuilder,
    encode_query_params,
    is_matching_metric_id,
    parse_query_params,
    timestamp_to_string,
)

API_URL = "https://tenant.live.dynatrace.com"
START = datetime(2021, 1, 1, 12, 0, tzinfo=timezone.utc)
END = datetime(2021, 1, 1, 12, 5, tzinfo=timezone.utc)


def params_of(url):
    return httpx.URL(url).params


class TestTimestampToString:
    """Tests for timestamp rendering."""

    def test_renders_unix_milliseconds(self):
        """Test timestamps are rendered with second precision in milliseconds."""
        assert timestamp_to_string(START) == "1609502400000"

    def test_drops_sub_second_precision(self):
        """Test fractions of a second are truncated."""
        ts = datetime(2021, 1, 1, 12, 0, 0, 999000, tzinfo=timezone.utc)
        assert timestamp_to_string(ts) == "1609502400000"


class TestParseQueryParams:
    """Tests for query string parsing."""

    def test_keeps_order_and_decodes(self):
        pairs = parse_query_params("metricSelector=a:merge(0)&entitySelector=type(SERVICE)")
        assert pairs == [("metricSelector", "a:merge(0)"), ("entitySelector", "type(SERVICE)")]

    def test_skips_empty_segments(self):
        assert parse_query_params("&a=1&&b=2&") == [("a", "1"), ("b", "2")]

    def test_rejects_broken_escape(self):
        with pytest.raises(QueryBuildError):
            parse_query_params("metricSelector=a%zz")

    def test_rejects_semicolon_in_key(self):
        with pytest.raises(QueryBuildError):
            parse_query_params("a;b=1")

    def test_encode_sorts_by_key(self):
        assert encode_query_params([("to", "2"), ("from", "1")]) == "from=1&to=2"


class TestIsMatchingMetricId:
    """Tests for result correlation by metric ID."""

    def test_exact_match(self):
        assert is_matching_metric_id("builtin:service.response.time", "builtin:service.response.time")

    def test_escaped_result_matches_on_prefix(self):
        """Test escaped filter IDs compare the part before the first colon."""
        assert is_matching_metric_id(
            "builtin:apps.web.action.count~filter(dt~entity~browser,ie)",
            "builtin:apps.web.action.count:filter(dt.entity.browser,IE)",
        )

    def test_unescaped_mismatch(self):
        assert not is_matching_metric_id("builtin:host.cpu.usage", "builtin:service.response.time")


class TestBuildMetricsQuery:
    """Tests for QueryBuilder.build_metrics_query."""

    def test_current_format(self):
        """Test a current-format query gets resolution and window appended."""
        builder = QueryBuilder(API_URL)
        built = builder.build_metrics_query(
            "metricSelector=builtin:service.response.time:merge(0):avg&entitySelector=type(SERVICE)",
            START,
            END,
        )

        assert built.metric_id == "builtin:service.response.time:merge(0):avg"
        assert built.url.startswith(f"{API_URL}/api/v2/metrics/query/?")
        params = params_of(built.url)
        assert params["metricSelector"] == "builtin:service.response.time:merge(0):avg"
        assert params["entitySelector"] == "type(SERVICE)"
        assert params["resolution"] == "Inf"
        assert params["from"] == "1609502400000"
        assert params["to"] == "1609502700000"

    def test_leading_question_mark_removed(self):
        builder = QueryBuilder(API_URL)
        built = builder.build_metrics_query("?metricSelector=builtin:host.cpu.usage:avg", START, END)

        assert built.metric_id == "builtin:host.cpu.usage:avg"

    def test_legacy_format_scope_becomes_entity_selector(self):
        """Test a legacy scope is rewritten and restricted to services."""
        builder = QueryBuilder(API_URL)
        built = builder.build_metrics_query(
            "builtin:service.response.time:merge(0):percentile(90)?scope=tag(keptn_project:sockshop)",
            START,
            END,
        )

        params = params_of(built.url)
        assert built.metric_id == "builtin:service.response.time:merge(0):percentile(90)"
        assert params["metricSelector"] == "builtin:service.response.time:merge(0):percentile(90)"
        assert params["entitySelector"] == "tag(keptn_project:sockshop),type(SERVICE)"
        assert "scope" not in params

    def test_legacy_scope_with_service_type_kept(self):
        builder = QueryBuilder(API_URL)
        built = builder.build_metrics_query(
            "builtin:service.errors.total.rate:merge(0):avg?scope=type(SERVICE),tag(app)",
            START,
            END,
        )

        assert params_of(built.url)["entitySelector"] == "type(SERVICE),tag(app)"

    def test_scope_merged_into_entity_selector(self):
        """Test a scope next to an entitySelector extends it instead of adding a second one."""
        builder = QueryBuilder(API_URL)
        built = builder.build_metrics_query(
            "metricSelector=builtin:service.response.time:merge(0):avg&entitySelector=type(SERVICE)&scope=tag(app)",
            START,
            END,
        )

        params = params_of(built.url)
        assert params.get_list("entitySelector") == ["type(SERVICE),tag(app)"]
        assert "scope" not in params

    def test_scope_merged_into_non_service_selector(self):
        builder = QueryBuilder(API_URL)
        built = builder.build_metrics_query(
            "metricSelector=builtin:service.response.time:merge(0):avg&entitySelector=mzId(7)&scope=tag(app)",
            START,
            END,
        )

        assert params_of(built.url).get_list("entitySelector") == ["mzId(7),tag(app),type(SERVICE)"]

    def test_missing_metric_selector(self):
        builder = QueryBuilder(API_URL)
        with pytest.raises(QueryBuildError):
            builder.build_metrics_query("entitySelector=type(SERVICE)", START, END)

    def test_placeholders_applied_before_parsing(self):
        """Test delivery context placeholders are resolved in the final query."""
        context = DeliveryContext(project="sockshop", stage="staging", service="carts", deployment="primary")
        builder = QueryBuilder(API_URL, PlaceholderResolver(context))
        built = builder.build_metrics_query(
            "metricSelector=builtin:service.requestCount.total:merge(0):sum"
            "&entitySelector=type(SERVICE),tag(keptn_project:$PROJECT),tag(keptn_stage:$STAGE)",
            START,
            END,
        )

        assert params_of(built.url)["entitySelector"] == (
            "type(SERVICE),tag(keptn_project:sockshop),tag(keptn_stage:staging)"
        )


class TestBuildUSQLQuery:
    """Tests for QueryBuilder.build_usql_query."""

    def test_fixed_parameters_and_window(self):
        builder = QueryBuilder(API_URL)
        url = builder.build_usql_query("SELECT count(*) FROM usersession", START, END)

        assert url.startswith(f"{API_URL}/api/v1/userSessionQueryLanguage/table?")
        params = params_of(url)
        assert params["query"] == "SELECT count(*) FROM usersession"
        assert params["explain"] == "false"
        assert params["addDeepLinkFields"] == "false"
        assert params["startTimestamp"] == "1609502400000"
        assert params["endTimestamp"] == "1609502700000"

    def test_custom_filter_placeholder(self):
        """Test custom filters are substituted with quotes stripped."""
        resolver = PlaceholderResolver(filters=[SLIFilter(key="city", value="'Linz'")])
        builder = QueryBuilder(API_URL, resolver)
        url = builder.build_usql_query("SELECT count(*) FROM usersession WHERE city=$CITY", START, END)

        assert params_of(url)["query"] == "SELECT count(*) FROM usersession WHERE city=Linz"
