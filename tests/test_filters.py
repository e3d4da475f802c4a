"""Tests for the filter expression builder."""

import pytest

from monitorforge.compiler.filters import (
    build_filter_string,
    build_slo_filter_expression,
    interpolate_filter_wildcards,
)
from monitorforge.models.query import SloQuery

METRIC = "compute.googleapis.com/instance/cpu/utilization"


class TestWildcards:
    def test_no_wildcard_is_unchanged(self):
        """Values without a star are returned as is."""
        assert interpolate_filter_wildcards("us-east1") == "us-east1"

    def test_leading_and_trailing_star(self):
        """*x* becomes has_substring."""
        assert interpolate_filter_wildcards("*east*") == 'has_substring("east")'

    def test_leading_star(self):
        """*x becomes ends_with."""
        assert interpolate_filter_wildcards("*-b") == 'ends_with("-b")'

    def test_trailing_star(self):
        """x* becomes starts_with."""
        assert interpolate_filter_wildcards("us-*") == 'starts_with("us-")'

    def test_inner_star_becomes_regex(self):
        """A star in the middle falls back to an escaped full regex match."""
        assert (
            interpolate_filter_wildcards("us-*-b")
            == r'monitoring.regex.full_match("^us\\-.*\\-b$")'
        )


class TestBuildFilterString:
    def test_metric_type_only(self):
        """No filters means only the metric type clause."""
        assert build_filter_string(METRIC, []) == f'metric.type="{METRIC}"'

    def test_literal_value_is_quoted(self):
        """Literal values produce an exact-match quoted clause."""
        result = build_filter_string(METRIC, ["resource.label.zone", "=", "us-east1-b"])
        assert result == f'metric.type="{METRIC}" resource.label.zone="us-east1-b"'

    def test_and_connector(self):
        """Groups joined by AND are separated by a space."""
        result = build_filter_string(
            METRIC,
            ["resource.label.zone", "=", "us-east1-b", "AND", "metric.label.instance_name", "!=", "vm-1"],
        )
        assert result == (
            f'metric.type="{METRIC}" resource.label.zone="us-east1-b" '
            'metric.label.instance_name!="vm-1"'
        )

    def test_wildcard_value(self):
        """Wildcard values are rewritten, not quoted."""
        result = build_filter_string(METRIC, ["resource.label.zone", "=", "us-*"])
        assert result == f'metric.type="{METRIC}" resource.label.zone=starts_with("us-")'

    def test_regex_operator(self):
        """=~ becomes = followed by a regex match."""
        result = build_filter_string(METRIC, ["metric.label.instance_name", "=~", "vm-[0-9]+"])
        assert result == (
            f'metric.type="{METRIC}" metric.label.instance_name='
            'monitoring.regex.full_match("vm-[0-9]+")'
        )

    def test_negated_regex_operator(self):
        """!=~ becomes != followed by a regex match."""
        result = build_filter_string(METRIC, ["metric.label.instance_name", "!=~", "vm-.*"])
        assert result.endswith('metric.label.instance_name!=monitoring.regex.full_match("vm-.*")')

    def test_regex_operator_wins_over_wildcard(self):
        """With =~ a star in the value is passed through to the regex untouched."""
        result = build_filter_string(METRIC, ["metric.label.instance_name", "=~", "vm-*"])
        assert result.endswith('metric.label.instance_name=monitoring.regex.full_match("vm-*")')

    def test_malformed_filter_raises(self):
        """A filter list that isn't made of key/operator/value groups is rejected."""
        with pytest.raises(ValueError, match="Malformed filter"):
            build_filter_string(METRIC, ["resource.label.zone", "="])

    def test_idempotent(self):
        """Same input, same output."""
        filters = ["resource.label.zone", "=", "*east*", "AND", "metric.label.x", "=~", "a.*"]
        assert build_filter_string(METRIC, filters) == build_filter_string(METRIC, filters)


class TestSloFilter:
    def test_slo_filter_expression(self):
        """Selector wraps the full slo resource name."""
        query = SloQuery(
            project_name="my-project",
            service_id="checkout",
            slo_id="availability",
            selector_name="select_slo_health",
        )
        assert build_slo_filter_expression(query) == (
            'select_slo_health("projects/my-project/services/checkout/'
            'serviceLevelObjectives/availability")'
        )
