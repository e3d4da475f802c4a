"""Pydantic models for incoming queries.

the frontend sends one opaque json blob per query. these models are the
typed view of that blob - a CloudMonitoringQuery wraps either a metric
query (builder or mql mode) or an slo query, tagged by queryType.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

METRIC_QUERY_TYPE = "metrics"
SLO_QUERY_TYPE = "slo"
MQL_EDITOR_MODE = "mql"

ANNOTATION_QUERY = "annotationQuery"
GCE_DEFAULT_PROJECT_QUERY = "getGCEDefaultProject"


class CamelModel(BaseModel):
    """Base model accepting both camelCase (wire) and snake_case (python) names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PreprocessorType(str, Enum):
    """Normalisation step applied before the user's aggregation."""

    NONE = "none"
    RATE = "rate"
    DELTA = "delta"


def to_preprocessor_type(value: str | None) -> PreprocessorType:
    """Map the frontend preprocessor string onto the enum, defaulting to none."""
    if value == "rate":
        return PreprocessorType.RATE
    if value == "delta":
        return PreprocessorType.DELTA
    return PreprocessorType.NONE


class TimeRange(BaseModel):
    """Absolute time range of a query batch."""

    model_config = ConfigDict(populate_by_name=True)

    from_: datetime = Field(alias="from")
    to: datetime

    @property
    def duration_seconds(self) -> int:
        return int((self.to - self.from_).total_seconds())


class MetricQuery(CamelModel):
    """A metric query - builder mode by default, raw mql when editorMode is "mql"."""

    editor_mode: str = ""
    project_name: str = ""
    metric_type: str = ""
    cross_series_reducer: str = ""
    alignment_period: str = ""
    per_series_aligner: str = ""
    group_bys: list[str] = Field(default_factory=list)
    # flat token list: key, operator, value, "AND", key, operator, value...
    filters: list[str] = Field(default_factory=list)
    alias_by: str = ""
    view: str = ""
    preprocessor: str = ""
    # mql mode only
    query: str = ""
    graph_period: str = ""
    # annotation queries only
    title: str = ""
    text: str = ""

    @field_validator("group_bys", "filters", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        # old dashboards store null instead of an empty list
        return [] if value is None else value

    @property
    def preprocessor_type(self) -> PreprocessorType:
        return to_preprocessor_type(self.preprocessor)

    @property
    def is_mql(self) -> bool:
        return self.editor_mode == MQL_EDITOR_MODE


class SloQuery(CamelModel):
    """A query against a service level objective."""

    project_name: str = ""
    alignment_period: str = ""
    alias_by: str = ""
    selector_name: str = ""
    service_id: str = ""
    slo_id: str = ""


class CloudMonitoringQuery(CamelModel):
    """The typed form of one query payload."""

    query_type: str = ""
    metric_query: MetricQuery = Field(default_factory=MetricQuery)
    slo_query: SloQuery = Field(default_factory=SloQuery)
    type: str = ""  # reserved top-level types like annotationQuery

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CloudMonitoringQuery":
        """Build a query from a raw payload, migrating the legacy flat shape.

        before metricQuery/sloQuery existed the metric query fields lived at
        the top level of the payload. those are still out there in saved
        dashboards so we treat a metric payload without metricQuery as one.
        any other declared queryType is validated as is.
        """
        query_type = payload.get("queryType") or METRIC_QUERY_TYPE
        if payload.get("metricQuery") is None and query_type == METRIC_QUERY_TYPE:
            return cls(
                query_type=METRIC_QUERY_TYPE,
                metric_query=MetricQuery.model_validate(payload),
                type=payload.get("type") or "",
            )

        query = cls.model_validate(payload)
        if not query.query_type:
            query.query_type = METRIC_QUERY_TYPE
        return query


class DataQuery(CamelModel):
    """One query of a batch as handed over by the caller."""

    ref_id: str
    interval_ms: int = 0
    max_data_points: int = 0
    time_range: TimeRange
    payload: dict[str, Any] = Field(default_factory=dict, alias="json")


class QueryModel(BaseModel):
    """Just enough of a payload to spot the reserved query types."""

    type: str = ""
