"""Legend templating and histogram bucket bounds.

alias templates look like "{{metric.name}} on {{resource.label.zone}}".
placeholders are resolved against the metric type, the series labels and
finally a handful of query-level names. anything we can't resolve is left
in place so newer placeholder names degrade gracefully.
"""

import math
import re
from dataclasses import dataclass
from decimal import Decimal

from monitorforge.models.response import BucketOptions

LEGEND_KEY_FORMAT = re.compile(r"\{\{\s*(.+?)\s*\}\}")
# https://cloud.google.com/monitoring/api/v3/metrics-details#label_names
METRIC_NAME_FORMAT = re.compile(r"([\w\d_]+)\.(googleapis\.com|io)/(.+)")
MATCH_ALL_CAP = re.compile(r"(.)([A-Z][a-z]*)")


@dataclass(frozen=True)
class LegendContext:
    """Query-level values a legend template may refer to."""

    alias_by: str = ""
    project_name: str = ""
    service: str = ""
    slo: str = ""
    selector: str = ""

    def lookup(self, name: str) -> str | None:
        value = {
            "project": self.project_name,
            "service": self.service,
            "slo": self.slo,
            "selector": self.selector,
        }.get(name)
        return value or None


def to_snake_case(value: str) -> str:
    """systemLabels -> system_labels."""
    return MATCH_ALL_CAP.sub(r"\1_\2", value).lower()


def replace_with_metric_part(name: str, metric_type: str) -> str | None:
    """Resolve metric.name / metric.service from a metric type string."""
    match = METRIC_NAME_FORMAT.search(metric_type)
    if match is None:
        return None
    if name == "metric.name":
        return match.group(3)
    if name == "metric.service":
        return match.group(1)
    return None


def format_legend_keys(
    metric_type: str,
    default_name: str,
    labels: dict[str, str] | None,
    additional_labels: dict[str, str] | None,
    context: LegendContext,
) -> str:
    """Apply the alias template of a query to one series."""
    if not context.alias_by:
        return default_name

    labels = labels or {}
    additional_labels = additional_labels or {}

    def replace(match: re.Match) -> str:
        name = match.group(1).strip()

        if name == "metric.type":
            return metric_type

        metric_part = replace_with_metric_part(name, metric_type)
        if metric_part is not None:
            return metric_part

        if name in labels:
            return labels[name]
        if name in additional_labels:
            return additional_labels[name]

        value = context.lookup(name)
        if value is not None:
            return value

        return match.group(0)

    return LEGEND_KEY_FORMAT.sub(replace, context.alias_by)


def format_annotation_text(
    template: str,
    point_value: str,
    metric_type: str,
    metric_labels: dict[str, str],
    resource_labels: dict[str, str],
) -> str:
    """Apply an annotation title/text template to one point.

    same placeholder syntax as legends, but labels are addressed with their
    full metric.label.X / resource.label.X names and {{metric.value}} is the
    point value itself.
    """

    def replace(match: re.Match) -> str:
        name = match.group(1).strip()

        if name == "metric.value":
            return point_value

        metric_part = replace_with_metric_part(name, metric_type)
        if metric_part is not None:
            return metric_part

        name = name.replace("metric.label.", "", 1)
        if name in metric_labels:
            return metric_labels[name]

        name = name.replace("resource.label.", "", 1)
        if name in resource_labels:
            return resource_labels[name]

        return match.group(0)

    return LEGEND_KEY_FORMAT.sub(replace, template)


def _format_g(value: float) -> str:
    """value in the shortest %g form: plain decimals for exponents in
    [-4, 6), d.ddde+XX otherwise."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "0"

    number = Decimal(repr(value)).normalize()
    sign, digits, exponent = number.as_tuple()
    exp = len(digits) + exponent - 1
    if -4 <= exp < 6:
        return f"{number:f}"

    mantissa = "".join(str(d) for d in digits)
    if len(mantissa) > 1:
        mantissa = f"{mantissa[0]}.{mantissa[1:]}"
    return f"{'-' if sign else ''}{mantissa}e{'-' if exp < 0 else '+'}{abs(exp):02d}"


def calc_bucket_bound(bucket_options: BucketOptions, n: int) -> str:
    """Lower bound of histogram bucket n as a display string.

    bucket 0 is the underflow bucket and always starts at 0. linear and
    exponential bounds are truncated to integers, explicit bounds keep their
    value. see
    https://cloud.google.com/monitoring/api/ref_v3/rest/v3/TimeSeries#Distribution
    """
    if n == 0:
        return "0"

    if bucket_options.linear_buckets is not None:
        linear = bucket_options.linear_buckets
        return str(int(linear.offset) + int(linear.width) * (n - 1))

    if bucket_options.exponential_buckets is not None:
        exponential = bucket_options.exponential_buckets
        return str(int(exponential.scale * exponential.growth_factor ** (n - 1)))

    if bucket_options.explicit_buckets is not None:
        bounds = bucket_options.explicit_buckets.bounds
        if n < len(bounds):
            return _format_g(bounds[n])
        return "+Inf"  # overflow bucket past the last explicit bound

    return "0"
