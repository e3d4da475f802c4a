"""Aggregation parameters for time series list requests.

the api exposes two aggregation stages as two parameter namespaces -
"aggregation." (primary) and "secondaryAggregation.". a preprocessor
(rate/delta) has to run before the user's own reduction, so when one is
set it takes over the primary stage and the user's choices move to the
secondary stage.
"""

from dataclasses import dataclass, field

from monitorforge.compiler.alignment import calculate_alignment_period
from monitorforge.compiler.params import RequestParams
from monitorforge.models.query import MetricQuery, PreprocessorType, SloQuery

CROSS_SERIES_REDUCER_DEFAULT = "REDUCE_NONE"
PER_SERIES_ALIGNER_DEFAULT = "ALIGN_MEAN"

PREPROCESSOR_ALIGNERS = {
    PreprocessorType.RATE: "ALIGN_RATE",
    PreprocessorType.DELTA: "ALIGN_DELTA",
}

SLO_HEALTH_SELECTOR = "select_slo_health"
SLO_HEALTH_ALIGNER = "ALIGN_MEAN"
SLO_DEFAULT_ALIGNER = "ALIGN_NEXT_OLDER"  # burn rate data is a step function


@dataclass
class Aggregation:
    """One aggregation stage. empty strings mean "not set"."""

    alignment_period: str = ""
    cross_series_reducer: str = ""
    per_series_aligner: str = ""
    group_by_fields: list[str] = field(default_factory=list)

    def apply(self, params: RequestParams, prefix: str) -> None:
        if self.alignment_period:
            params.add(f"{prefix}.alignmentPeriod", self.alignment_period)
        if self.cross_series_reducer:
            params.add(f"{prefix}.crossSeriesReducer", self.cross_series_reducer)
        if self.per_series_aligner:
            params.add(f"{prefix}.perSeriesAligner", self.per_series_aligner)
        for group_by in self.group_by_fields:
            params.add(f"{prefix}.groupByFields", group_by)


@dataclass
class AggregationParams:
    """Primary and (optional) secondary aggregation of one request."""

    primary: Aggregation
    secondary: Aggregation | None = None

    def apply(self, params: RequestParams) -> None:
        if self.secondary is not None:
            self.secondary.apply(params, "secondaryAggregation")
        self.primary.apply(params, "aggregation")


def build_metric_aggregation(
    query: MetricQuery, duration_seconds: int, interval_ms: int
) -> AggregationParams:
    """Work out both aggregation stages for a builder-mode metric query."""
    reducer = query.cross_series_reducer or CROSS_SERIES_REDUCER_DEFAULT
    aligner = query.per_series_aligner or PER_SERIES_ALIGNER_DEFAULT
    alignment_period = calculate_alignment_period(
        query.alignment_period, interval_ms, duration_seconds
    )
    group_bys = list(query.group_bys)

    preprocessor = query.preprocessor_type
    if preprocessor == PreprocessorType.NONE:
        return AggregationParams(
            primary=Aggregation(
                alignment_period=alignment_period,
                cross_series_reducer=reducer,
                per_series_aligner=aligner,
                group_by_fields=group_bys,
            )
        )

    # without group bys there is nothing to reduce across in the first stage
    primary_reducer = reducer if group_bys else CROSS_SERIES_REDUCER_DEFAULT
    return AggregationParams(
        primary=Aggregation(
            alignment_period=alignment_period,
            cross_series_reducer=primary_reducer,
            per_series_aligner=PREPROCESSOR_ALIGNERS[preprocessor],
            group_by_fields=group_bys,
        ),
        secondary=Aggregation(
            alignment_period=alignment_period,
            cross_series_reducer=reducer,
            per_series_aligner=aligner,
            group_by_fields=list(group_bys),
        ),
    )


def build_slo_aggregation(query: SloQuery, duration_seconds: int, interval_ms: int) -> AggregationParams:
    """Slo queries only get an alignment period and a selector-driven aligner."""
    aligner = SLO_HEALTH_ALIGNER if query.selector_name == SLO_HEALTH_SELECTOR else SLO_DEFAULT_ALIGNER
    return AggregationParams(
        primary=Aggregation(
            alignment_period=calculate_alignment_period(
                query.alignment_period, interval_ms, duration_seconds
            ),
            per_series_aligner=aligner,
        )
    )
