"""Request building and response formatting helpers."""

from monitorforge.compiler.aggregation import (
    Aggregation,
    AggregationParams,
    build_metric_aggregation,
    build_slo_aggregation,
)
from monitorforge.compiler.alignment import calculate_alignment_period
from monitorforge.compiler.filters import build_filter_string, build_slo_filter_expression
from monitorforge.compiler.legend import LegendContext, calc_bucket_bound, format_legend_keys
from monitorforge.compiler.params import RequestParams

__all__ = [
    "Aggregation",
    "AggregationParams",
    "LegendContext",
    "RequestParams",
    "build_filter_string",
    "build_metric_aggregation",
    "build_slo_aggregation",
    "build_slo_filter_expression",
    "calc_bucket_bound",
    "calculate_alignment_period",
    "format_legend_keys",
]
