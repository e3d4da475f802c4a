"""Tests for legend templating and bucket bounds."""

from monitorforge.compiler.legend import (
    LegendContext,
    calc_bucket_bound,
    format_annotation_text,
    format_legend_keys,
    to_snake_case,
)
from monitorforge.models.response import (
    BucketOptions,
    ExplicitBuckets,
    ExponentialBuckets,
    LinearBuckets,
)

CUSTOM_METRIC = "custom.googleapis.com/my_metric"


class TestFormatLegendKeys:
    def test_no_alias_uses_default_name(self):
        """Without an alias the default name is returned."""
        result = format_legend_keys(CUSTOM_METRIC, "default", {}, {}, LegendContext())
        assert result == "default"

    def test_metric_name_and_label(self):
        """metric.name comes from the metric type, other names from the labels."""
        ctx = LegendContext(alias_by="{{metric.name}} on {{instance}}")
        result = format_legend_keys(CUSTOM_METRIC, "default", {"instance": "a"}, {}, ctx)
        assert result == "my_metric on a"

    def test_metric_type_and_service(self):
        """metric.type is the full type, metric.service its prefix."""
        ctx = LegendContext(alias_by="{{metric.type}} | {{metric.service}}")
        result = format_legend_keys(CUSTOM_METRIC, "default", {}, {}, ctx)
        assert result == f"{CUSTOM_METRIC} | custom"

    def test_whitespace_inside_braces(self):
        """Placeholders may be padded with spaces."""
        ctx = LegendContext(alias_by="{{ metric.name }}")
        assert format_legend_keys(CUSTOM_METRIC, "default", {}, {}, ctx) == "my_metric"

    def test_additional_labels(self):
        """Additional labels are looked up after the series labels."""
        ctx = LegendContext(alias_by="bucket {{bucket}}")
        result = format_legend_keys(CUSTOM_METRIC, "default", {}, {"bucket": "10"}, ctx)
        assert result == "bucket 10"

    def test_context_values(self):
        """project, service, slo and selector come from the query."""
        ctx = LegendContext(
            alias_by="{{project}}/{{service}}/{{slo}}/{{selector}}",
            project_name="p",
            service="s",
            slo="o",
            selector="select_slo_health",
        )
        assert format_legend_keys(CUSTOM_METRIC, "default", {}, {}, ctx) == "p/s/o/select_slo_health"

    def test_unresolved_placeholder_is_kept(self):
        """Names that resolve to nothing are left verbatim."""
        ctx = LegendContext(alias_by="{{nope}} {{project}}")
        assert format_legend_keys(CUSTOM_METRIC, "default", {}, {}, ctx) == "{{nope}} {{project}}"


class TestAnnotationText:
    def test_value_and_labels(self):
        """Annotation templates address labels by their full names."""
        result = format_annotation_text(
            "{{metric.value}} {{metric.label.instance}} {{resource.label.zone}} {{metric.name}}",
            "1.000000",
            CUSTOM_METRIC,
            {"instance": "a"},
            {"zone": "z"},
        )
        assert result == "1.000000 a z my_metric"


class TestBucketBounds:
    def test_underflow_bucket(self):
        """Bucket 0 always starts at 0."""
        options = BucketOptions(linear_buckets=LinearBuckets(offset=10, width=5))
        assert calc_bucket_bound(options, 0) == "0"

    def test_linear(self):
        """offset + width * (n - 1)."""
        options = BucketOptions(linear_buckets=LinearBuckets(offset=10, width=5))
        assert calc_bucket_bound(options, 3) == "20"

    def test_exponential(self):
        """scale * growth_factor ** (n - 1)."""
        options = BucketOptions(exponential_buckets=ExponentialBuckets(scale=1, growth_factor=2))
        assert calc_bucket_bound(options, 4) == "8"

    def test_exponential_truncated(self):
        """Exponential bounds are truncated to integers."""
        options = BucketOptions(exponential_buckets=ExponentialBuckets(scale=1, growth_factor=1.4))
        bounds = [calc_bucket_bound(options, n) for n in range(1, 5)]
        assert bounds == ["1", "1", "1", "2"]

    def test_explicit_shortest_form(self):
        """Explicit bounds use the shortest %g form."""
        options = BucketOptions(
            explicit_buckets=ExplicitBuckets(bounds=[0, 0.1, 1.5, 1e6, 123456, 0.00001])
        )
        assert calc_bucket_bound(options, 1) == "0.1"
        assert calc_bucket_bound(options, 2) == "1.5"
        assert calc_bucket_bound(options, 3) == "1e+06"
        assert calc_bucket_bound(options, 4) == "123456"
        assert calc_bucket_bound(options, 5) == "1e-05"

    def test_explicit(self):
        """Explicit bounds are indexed directly, past the last one is +Inf."""
        options = BucketOptions(explicit_buckets=ExplicitBuckets(bounds=[0, 10, 100]))
        assert calc_bucket_bound(options, 1) == "10"
        assert calc_bucket_bound(options, 2) == "100"
        assert calc_bucket_bound(options, 3) == "+Inf"


class TestSnakeCase:
    def test_metadata_key(self):
        """camelCase parts are snake cased."""
        assert to_snake_case("metadata.systemLabels.instanceName") == (
            "metadata.system_labels.instance_name"
        )
