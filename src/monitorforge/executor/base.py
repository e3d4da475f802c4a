"""Common executor interface and http helpers.

every query shape (builder filter, slo, mql) gets its own executor. they all
know how to build their request, run it against the api and turn the
response into frames - the service never needs to know which one it has.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import Event
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from monitorforge.compiler.deeplink import DEEP_LINK_TITLE
from monitorforge.compiler.legend import LegendContext, calc_bucket_bound, format_legend_keys
from monitorforge.credentials import DatasourceInfo, get_default_project
from monitorforge.errors import CredentialError, QueryCancelledError, QueryExecutionError
from monitorforge.models.frame import (
    DataLink,
    DataResponse,
    FieldConfig,
    Frame,
    FrameField,
    FrameMeta,
)
from monitorforge.models.query import TimeRange
from monitorforge.models.response import BucketOptions, Distribution, TypedValue

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)

ANNOTATION_COLUMNS = ("time", "title", "tags", "text")

# cloud monitoring unit -> display unit. anything not in here stays unset
UNIT_MAPPINGS = {
    "bit": "bits",
    "By": "bytes",
    "s": "s",
    "min": "m",
    "h": "h",
    "d": "d",
    "us": "µs",
    "ms": "ms",
    "ns": "ns",
    "%": "percent",
    "percent": "percent",
    "MiBy": "mbytes",
    "By/s": "Bps",
    "GBy": "decgbytes",
}

# guard against a misbehaving api handing out page tokens forever
MAX_PAGES = 100


class QueryExecutor(ABC):
    """Base class for the per-query-shape executors."""

    def __init__(self, ref_id: str, time_range: TimeRange, interval_ms: int, alias_by: str = "") -> None:
        self._ref_id = ref_id
        self.time_range = time_range
        self.interval_ms = interval_ms
        self.alias_by = alias_by

    @property
    def ref_id(self) -> str:
        return self._ref_id

    def get_ref_id(self) -> str:
        return self._ref_id

    @abstractmethod
    def run(self, ds: DatasourceInfo, cancel: Event | None = None) -> tuple[Any, str]:
        """Call the api. Returns the parsed response and the executed query string.

        Raises:
            QueryExecutionError: the call failed or the body was unreadable.
            QueryCancelledError: cancel was set before or during a call.
        """

    @abstractmethod
    def parse_response(self, query_res: DataResponse, response: Any, executed_query: str) -> None:
        """Append frames for the response to query_res.

        Raises:
            QueryParseError: the response could not be converted. frames
                appended before the failure stay in query_res.
        """

    @abstractmethod
    def parse_to_annotations(self, query_res: DataResponse, response: Any, title: str, text: str) -> None:
        """Turn the response into a single annotation frame."""

    @abstractmethod
    def build_deep_link(self) -> str:
        """Metrics explorer url for this query, or "" when there is none."""

    def resolve_project(self, ds: DatasourceInfo, project_name: str) -> str:
        if project_name:
            return project_name
        try:
            return get_default_project(ds)
        except CredentialError as e:
            raise QueryExecutionError(f"failed to resolve default project: {e}") from e


def check_cancelled(cancel: Event | None, what: str) -> None:
    if cancel is not None and cancel.is_set():
        raise QueryCancelledError(f"{what} cancelled")


def send_request(
    ds: DatasourceInfo, method: str, path: str, cancel: Event | None = None, **kwargs: Any
) -> httpx.Response:
    """Issue one api call, mapping transport and credential failures.

    a response that arrives after cancel was set is dropped.
    """
    check_cancelled(cancel, f"request to {path}")
    try:
        response = ds.client.request(method, path, **kwargs)
    except httpx.HTTPError as e:
        logger.error("Request to %s failed: %s", path, e)
        raise QueryExecutionError(f"query failed: {e}") from e
    except CredentialError as e:
        raise QueryExecutionError(f"query failed: {e}") from e
    check_cancelled(cancel, f"request to {path}")
    return response


def unmarshal_response(response: httpx.Response, model: type[ResponseT]) -> ResponseT:
    """Validate a response body into model, or raise QueryExecutionError."""
    if not response.is_success:
        logger.error("Request failed, status: %s, body: %s", response.status_code, response.text)
        raise QueryExecutionError(f"query failed: {response.text}", status_code=response.status_code)

    try:
        return model.model_validate_json(response.content)
    except ValidationError as e:
        logger.error(
            "Failed to unmarshal CloudMonitoring response, status: %s, body: %s, error: %s",
            response.status_code,
            response.text,
            e,
        )
        raise QueryExecutionError(f"failed to unmarshal query response: {e}") from e


def add_config_data(frames: list[Frame], deep_link: str, unit: str) -> list[Frame]:
    """Attach the deep link and the mapped unit to every value field."""
    for frame in frames:
        value_field = frame.fields[1]
        if value_field.config is None:
            value_field.config = FieldConfig()
        value_field.config.links.append(
            DataLink(title=DEEP_LINK_TITLE, target_blank=True, url=deep_link)
        )
        if unit and unit in UNIT_MAPPINGS:
            value_field.config.unit = UNIT_MAPPINGS[unit]
    return frames


def to_utc(value: datetime) -> datetime:
    """Normalise to utc, treating naive datetimes as utc already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_rfc3339(value: datetime) -> str:
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def point_value(value_type: str, value: TypedValue) -> float:
    """Numeric value of a point, whatever its declared value type."""
    if value_type == "INT64":
        try:
            return float(value.int64_value)
        except ValueError:
            return value.double_value
    if value_type == "BOOL":
        return 1.0 if value.bool_value else 0.0
    return value.double_value


def point_text(value_type: str, value: TypedValue) -> str:
    """Point value as annotation text."""
    if value_type == "STRING":
        return value.string_value
    return f"{point_value(value_type, value):.6f}"


def name_value_field(frame: Frame, name: str, labels: dict[str, str]) -> Frame:
    frame.name = name
    value_field = frame.fields[1]
    value_field.name = name
    value_field.labels = labels
    value_field.set_display_name_as_field_name()
    return frame


def bucket_frames(
    ref_id: str,
    executed_query: str,
    points: list[tuple[datetime, Distribution]],
    metric_type: str,
    default_name: str,
    labels: dict[str, str],
    context: LegendContext,
) -> list[Frame]:
    """Expand distribution points into one frame per histogram bucket.

    points must already be in ascending time order. a bucket that never
    shows up below the highest bucket seen still gets an (empty) frame so
    the bucket list has no holes.
    """
    buckets: dict[int, Frame] = {}

    def new_bucket(i: int, options: BucketOptions) -> Frame:
        bound = calc_bucket_bound(options, i)
        bucket_labels = {**labels, "bucket": bound}
        name = format_legend_keys(metric_type, default_name, labels, {"bucket": bound}, context)
        frame = Frame.time_series(ref_id)
        frame.meta = FrameMeta(executed_query_string=executed_query)
        return name_value_field(frame, name, bucket_labels)

    for end_time, distribution in points:
        if not distribution.bucket_counts:
            continue
        max_key = 0
        for i, raw_count in enumerate(distribution.bucket_counts):
            try:
                count = float(raw_count)
            except ValueError:
                continue
            if i not in buckets:
                buckets[i] = new_bucket(i, distribution.bucket_options)
                max_key = max(max_key, i)
            buckets[i].append_row(end_time, count)
        for i in range(max_key):
            if i not in buckets:
                buckets[i] = new_bucket(i, distribution.bucket_options)

    return [buckets[i] for i in sorted(buckets)]


def annotation_frame(ref_id: str, rows: list[dict[str, Any]]) -> Frame:
    """Single frame with time/title/tags/text columns."""
    frame = Frame(
        ref_id=ref_id,
        fields=[FrameField(name=column) for column in ANNOTATION_COLUMNS],
    )
    for row in rows:
        frame.append_row(*(row[column] for column in ANNOTATION_COLUMNS))
    return frame
