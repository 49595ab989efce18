"""
Tests for SLI directives, markdown configuration, stored query strings and SLI/SLO documents.
"""

import pytest
import yaml

from dynatrace_sli.core.errors import SLIConfigError
from dynatrace_sli.slos import (
    LegacyMetricsQuery,
    MetricsV2Query,
    ProblemsQuery,
    SecurityProblemsQuery,
    SLIDefinitions,
    SLIResult,
    SLOQuery,
    ServiceLevelObjectives,
    USQLQuery,
    apply_markdown_configuration,
    clean_indicator_name,
    parse_sli_directives,
    parse_sli_query,
)


class TestCleanIndicatorName:
    """Tests for clean_indicator_name."""

    def test_replaces_unsafe_characters(self):
        assert clean_indicator_name("resp time/p90 %") == "resp_time_p90__"

    def test_safe_name_unchanged(self):
        assert clean_indicator_name("resp_time_p95") == "resp_time_p95"


class TestParseSLIDirectives:
    """Tests for tile title directives."""

    def test_full_title(self):
        directives = parse_sli_directives("Response Time;sli=resp_time;pass=<=500;warning=<=800;weight=2;key=true")

        assert directives.is_sli
        assert directives.sli_name == "resp_time"
        assert [c.criteria for c in directives.pass_criteria] == [["<=500"]]
        assert [c.criteria for c in directives.warning_criteria] == [["<=800"]]
        assert directives.weight == 2
        assert directives.key_sli is True

    def test_repeated_pass_creates_groups(self):
        """Test each pass= starts its own group and commas join criteria within one."""
        directives = parse_sli_directives("sli=x;pass=<=+10%,<500;pass=<600")

        assert [c.criteria for c in directives.pass_criteria] == [["<=+10%", "<500"], ["<600"]]

    def test_title_without_sli(self):
        directives = parse_sli_directives("Service throughput")

        assert not directives.is_sli
        assert directives.weight == 1
        assert directives.key_sli is False

    def test_invalid_weight_becomes_zero(self):
        assert parse_sli_directives("sli=x;weight=heavy").weight == 0

    @pytest.mark.parametrize("value,expected", [("true", True), ("T", True), ("1", True), ("yes", False), ("0", False)])
    def test_key_values(self, value, expected):
        assert parse_sli_directives(f"sli=x;key={value}").key_sli is expected

    def test_defaults_used_when_no_criteria(self):
        directives = parse_sli_directives("sli=x", default_pass=["<=0"], default_warning=["<=1"])

        assert [c.criteria for c in directives.pass_criteria] == [["<=0"]]
        assert [c.criteria for c in directives.warning_criteria] == [["<=1"]]

    def test_explicit_criteria_override_defaults(self):
        directives = parse_sli_directives("sli=x;pass=<5", default_pass=["<=0"])

        assert [c.criteria for c in directives.pass_criteria] == [["<5"]]

    def test_objective_copies_directives(self):
        objective = parse_sli_directives("sli=x;pass=<=500;weight=3;key=true").objective("x_carts")

        assert objective.sli == "x_carts"
        assert objective.weight == 3
        assert objective.key_sli is True
        assert objective.pass_criteria[0].criteria == ["<=500"]


class TestMarkdownConfiguration:
    """Tests for KQG.* keys in markdown tiles."""

    def test_total_and_comparison(self):
        slo = ServiceLevelObjectives()

        apply_markdown_configuration(
            "KQG.Total.Pass=80%;KQG.Total.Warning=60%;KQG.Compare.WithScore=pass_or_warn;"
            "KQG.Compare.Results=3;KQG.Compare.Function=p90",
            slo,
        )

        assert slo.total_score.pass_threshold == "80%"
        assert slo.total_score.warning_threshold == "60%"
        assert slo.comparison.include_result_with_score == "pass_or_warn"
        assert slo.comparison.number_of_comparison_results == 3
        assert slo.comparison.compare_with == "several_results"
        assert slo.comparison.aggregate_function == "p90"

    def test_invalid_values_fall_back(self):
        slo = ServiceLevelObjectives()

        apply_markdown_configuration(
            "KQG.Compare.WithScore=sometimes;KQG.Compare.Results=many;KQG.Compare.Function=max",
            slo,
        )

        assert slo.comparison.include_result_with_score == "pass"
        assert slo.comparison.number_of_comparison_results == 1
        assert slo.comparison.compare_with == "single_result"
        assert slo.comparison.aggregate_function == "avg"

    def test_single_result_comparison(self):
        slo = ServiceLevelObjectives()

        apply_markdown_configuration("KQG.Compare.Results=1", slo)

        assert slo.comparison.compare_with == "single_result"

    def test_unknown_and_malformed_segments_ignored(self):
        slo = ServiceLevelObjectives()

        apply_markdown_configuration("## Quality gate;KQG.Unknown=1;KQG.Total.Pass=a=b", slo)

        assert slo.total_score.pass_threshold == "90%"


class TestParseSLIQuery:
    """Tests for decoding stored query strings."""

    def test_metrics_v2(self):
        query = parse_sli_query(
            "MV2;MicroSecond;metricSelector=builtin:service.response.time:merge(0):avg:names"
            "&entitySelector=type(SERVICE)"
        )

        assert query == MetricsV2Query(
            unit="MicroSecond",
            query="metricSelector=builtin:service.response.time:merge(0):avg:names&entitySelector=type(SERVICE)",
        )

    def test_metrics_v2_without_unit_field(self):
        with pytest.raises(SLIConfigError):
            parse_sli_query("MV2;metricSelector=builtin:host.cpu.usage")

    def test_usql_keeps_semicolons_in_query(self):
        query = parse_sli_query("USQL;COLUMN_CHART;Chrome;SELECT browserFamily, count(*) FROM usersession;")

        assert query == USQLQuery(
            tile_type="COLUMN_CHART",
            dimension="Chrome",
            query="SELECT browserFamily, count(*) FROM usersession;",
        )

    def test_usql_missing_fields(self):
        with pytest.raises(SLIConfigError):
            parse_sli_query("USQL;SINGLE_VALUE")

    def test_slo(self):
        assert parse_sli_query("SLO;7d07efde-b714-3e6e-ad95-08490e2540c4") == SLOQuery(
            slo_id="7d07efde-b714-3e6e-ad95-08490e2540c4"
        )

    def test_slo_without_id(self):
        with pytest.raises(SLIConfigError):
            parse_sli_query("SLO;")

    def test_problems(self):
        assert parse_sli_query("PV2;problemSelector=status(open)") == ProblemsQuery(query="problemSelector=status(open)")
        assert parse_sli_query("SECPV2;securityProblemSelector=status(OPEN)") == SecurityProblemsQuery(
            query="securityProblemSelector=status(OPEN)"
        )

    def test_legacy(self):
        assert parse_sli_query("builtin:service.requestCount.total:merge(0):sum") == LegacyMetricsQuery(
            query="builtin:service.requestCount.total:merge(0):sum"
        )

    def test_unknown_prefix_is_legacy(self):
        query = parse_sli_query("OTHER;metricSelector=x")

        assert isinstance(query, LegacyMetricsQuery)
        assert query.query == "OTHER;metricSelector=x"

    @pytest.mark.parametrize(
        "stored",
        [
            "MV2;Percent;metricSelector=builtin:service.errors.total.rate:merge(0):avg",
            "USQL;TABLE;;SELECT city, count(*) FROM usersession GROUP BY city",
            "SLO;abc",
            "PV2;problemSelector=status(open),managementZoneIds(1)",
        ],
    )
    def test_encode_restores_stored_string(self, stored):
        assert parse_sli_query(stored).encode() == stored


class TestDocuments:
    """Tests for the SLI and SLO documents."""

    def test_failed_result(self):
        result = SLIResult.failed("resp_time", "no data")

        assert result.to_dict() == {"metric": "resp_time", "value": 0.0, "success": False, "message": "no data"}

    def test_slo_yaml(self):
        objective = parse_sli_directives("sli=resp_time;pass=<=500;key=true").objective("resp_time")
        slo = ServiceLevelObjectives(objectives=[objective])

        data = yaml.safe_load(slo.to_yaml())

        assert data["spec_version"] == "1.0"
        assert data["total_score"] == {"pass": "90%", "warning": "75%"}
        assert data["objectives"] == [
            {"sli": "resp_time", "pass": [{"criteria": ["<=500"]}], "weight": 1, "key_sli": True}
        ]

    def test_sli_yaml_round_trip(self):
        sli = SLIDefinitions(indicators={"problems": "PV2;problemSelector=status(open)"})

        restored = SLIDefinitions.from_yaml(sli.to_yaml())

        assert restored.indicators == sli.indicators
        assert restored.spec_version == "0.1.4"

    def test_sli_from_empty_yaml(self):
        assert SLIDefinitions.from_yaml("").indicators == {}
