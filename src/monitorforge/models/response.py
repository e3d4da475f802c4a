"""Pydantic models for Cloud Monitoring API responses.

two response shapes: timeSeries.list returns a list of series with typed
points, timeSeries.query (mql) returns a descriptor plus positional label
and point data. only the fields we actually read are modelled, everything
else is ignored by pydantic.
"""

import re
from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from monitorforge.models.query import CamelModel

# the api sends nanosecond timestamps, python datetimes stop at microseconds
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class TimeInterval(CamelModel):
    start_time: datetime | None = None
    end_time: datetime

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _trim_nanos(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _FRACTION_RE.sub(r"\1", value)
        return value


class LinearBuckets(CamelModel):
    num_finite_buckets: int = 0
    width: float = 0
    offset: float = 0


class ExponentialBuckets(CamelModel):
    num_finite_buckets: int = 0
    growth_factor: float = 0
    scale: float = 0


class ExplicitBuckets(CamelModel):
    bounds: list[float] = Field(default_factory=list)


class BucketOptions(CamelModel):
    """Histogram bucket layout - at most one of the three variants is set."""

    linear_buckets: LinearBuckets | None = None
    exponential_buckets: ExponentialBuckets | None = None
    explicit_buckets: ExplicitBuckets | None = None


class Distribution(CamelModel):
    count: str = "0"
    bucket_options: BucketOptions = Field(default_factory=BucketOptions)
    bucket_counts: list[str] = Field(default_factory=list)  # int64 comes as strings


class TypedValue(CamelModel):
    double_value: float = 0
    int64_value: str = ""
    bool_value: bool = False
    string_value: str = ""
    distribution_value: Distribution = Field(default_factory=Distribution)


class Point(CamelModel):
    interval: TimeInterval
    value: TypedValue = Field(default_factory=TypedValue)


class MetricDescriptorRef(CamelModel):
    type: str = ""
    labels: dict[str, str] = Field(default_factory=dict)


class MonitoredResource(CamelModel):
    type: str = ""
    labels: dict[str, str] = Field(default_factory=dict)


class TimeSeries(CamelModel):
    """One series from timeSeries.list."""

    metric: MetricDescriptorRef = Field(default_factory=MetricDescriptorRef)
    resource: MonitoredResource = Field(default_factory=MonitoredResource)
    metric_kind: str = ""
    value_type: str = ""
    points: list[Point] = Field(default_factory=list)
    # systemLabels / userLabels - values can be strings, bools or string lists
    meta_data: dict[str, dict[str, Any]] = Field(default_factory=dict, alias="metadata")


class TimeSeriesListResponse(CamelModel):
    time_series: list[TimeSeries] = Field(default_factory=list)
    next_page_token: str = ""
    unit: str = ""


# --- mql (timeSeries.query) ---


class LabelDescriptor(CamelModel):
    key: str
    value_type: str = "STRING"


class PointDescriptor(CamelModel):
    key: str
    value_type: str = ""
    metric_kind: str = ""
    unit: str = ""


class TimeSeriesDescriptor(CamelModel):
    label_descriptors: list[LabelDescriptor] = Field(default_factory=list)
    point_descriptors: list[PointDescriptor] = Field(default_factory=list)


class LabelValue(CamelModel):
    bool_value: bool = False
    int64_value: str = ""
    string_value: str = ""


class PointData(CamelModel):
    values: list[TypedValue] = Field(default_factory=list)
    time_interval: TimeInterval


class TimeSeriesData(CamelModel):
    label_values: list[LabelValue] = Field(default_factory=list)
    point_data: list[PointData] = Field(default_factory=list)


class TimeSeriesQueryResponse(CamelModel):
    time_series_descriptor: TimeSeriesDescriptor = Field(default_factory=TimeSeriesDescriptor)
    time_series_data: list[TimeSeriesData] = Field(default_factory=list)
    next_page_token: str = ""

    @property
    def unit(self) -> str:
        # mql reports units per point descriptor; the first one is what gets shown
        for descriptor in self.time_series_descriptor.point_descriptors:
            if descriptor.unit:
                return descriptor.unit
        return ""
