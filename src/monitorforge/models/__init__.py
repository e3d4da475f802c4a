"""Pydantic models for MonitorForge."""

from monitorforge.models.frame import (
    DataLink,
    DataResponse,
    FieldConfig,
    Frame,
    FrameField,
    FrameMeta,
    QueryDataResponse,
)
from monitorforge.models.query import (
    CloudMonitoringQuery,
    DataQuery,
    MetricQuery,
    PreprocessorType,
    SloQuery,
    TimeRange,
)
from monitorforge.models.response import (
    BucketOptions,
    ExplicitBuckets,
    ExponentialBuckets,
    LinearBuckets,
    TimeSeries,
    TimeSeriesListResponse,
    TimeSeriesQueryResponse,
)
from monitorforge.models.settings import AuthenticationType, InstanceSettings, QueryDataRequest

__all__ = [
    "AuthenticationType",
    "BucketOptions",
    "CloudMonitoringQuery",
    "DataLink",
    "DataQuery",
    "DataResponse",
    "ExplicitBuckets",
    "ExponentialBuckets",
    "FieldConfig",
    "Frame",
    "FrameField",
    "FrameMeta",
    "InstanceSettings",
    "LinearBuckets",
    "MetricQuery",
    "PreprocessorType",
    "QueryDataRequest",
    "QueryDataResponse",
    "SloQuery",
    "TimeRange",
    "TimeSeries",
    "TimeSeriesListResponse",
    "TimeSeriesQueryResponse",
]
