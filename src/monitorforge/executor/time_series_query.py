"""Executor for raw mql queries (timeSeries.query).

the query text is whatever the user typed - we don't parse or validate it,
the api does that. we only tack the time window (and a graph period unless
the user set one) onto the end.
"""

import copy
import logging
from collections import defaultdict
from threading import Event
from typing import Any

from monitorforge.compiler.deeplink import build_deep_link, mql_data_set
from monitorforge.compiler.legend import (
    LegendContext,
    format_annotation_text,
    format_legend_keys,
    to_snake_case,
)
from monitorforge.credentials import DatasourceInfo
from monitorforge.errors import QueryParseError
from monitorforge.executor.base import (
    MAX_PAGES,
    QueryExecutor,
    add_config_data,
    annotation_frame,
    bucket_frames,
    name_value_field,
    point_text,
    point_value,
    send_request,
    to_utc,
    unmarshal_response,
)
from monitorforge.models.frame import DataResponse, Frame, FrameMeta
from monitorforge.models.query import MetricQuery, TimeRange
from monitorforge.models.response import (
    LabelDescriptor,
    LabelValue,
    TimeSeriesData,
    TimeSeriesQueryResponse,
)

logger = logging.getLogger(__name__)

MQL_TIME_FORMAT = "%Y/%m/%d-%H:%M:%S"
GRAPH_PERIOD_DISABLED = "disabled"
GRAPH_PERIOD_AUTO = ("", "auto")


def _label_value(descriptor: LabelDescriptor, value: LabelValue) -> str:
    if descriptor.value_type == "BOOL":
        return "true" if value.bool_value else "false"
    if descriptor.value_type == "INT64":
        return value.int64_value
    return value.string_value


class TimeSeriesQueryExecutor(QueryExecutor):
    """Runs an mql query."""

    def __init__(
        self,
        ref_id: str,
        time_range: TimeRange,
        interval_ms: int,
        query: str,
        project_name: str = "",
        alias_by: str = "",
        graph_period: str = "",
        max_data_points: int = 0,
    ) -> None:
        super().__init__(ref_id, time_range, interval_ms, alias_by)
        self.query = query
        self.project_name = project_name
        self.graph_period = graph_period
        self.max_data_points = max_data_points
        self._resolved_project = ""

    @classmethod
    def for_metric_query(
        cls,
        ref_id: str,
        query: MetricQuery,
        time_range: TimeRange,
        interval_ms: int,
        max_data_points: int = 0,
    ) -> "TimeSeriesQueryExecutor":
        return cls(
            ref_id,
            time_range,
            interval_ms,
            query=query.query,
            project_name=query.project_name,
            alias_by=query.alias_by,
            graph_period=query.graph_period,
            max_data_points=max_data_points,
        )

    @property
    def legend_context(self) -> LegendContext:
        return LegendContext(alias_by=self.alias_by, project_name=self.project_name)

    def _auto_graph_period_seconds(self) -> int:
        seconds = max(self.interval_ms // 1000, 1)
        if self.max_data_points > 0:
            seconds = max(seconds, self.time_range.duration_seconds // self.max_data_points)
        return seconds

    def graph_period_clause(self) -> str:
        if self.graph_period == GRAPH_PERIOD_DISABLED or "graph_period" in self.query:
            return ""
        period = self.graph_period
        if period in GRAPH_PERIOD_AUTO:
            period = f"{self._auto_graph_period_seconds()}s"
        return f" | graph_period {period}"

    @property
    def executed_query(self) -> str:
        start = to_utc(self.time_range.from_).strftime(MQL_TIME_FORMAT)
        end = to_utc(self.time_range.to).strftime(MQL_TIME_FORMAT)
        return f"{self.query}{self.graph_period_clause()} | within d'{start}', d'{end}'"

    def run(
        self, ds: DatasourceInfo, cancel: Event | None = None
    ) -> tuple[TimeSeriesQueryResponse, str]:
        project = self.resolve_project(ds, self.project_name)
        self._resolved_project = project
        path = f"/v3/projects/{project}/timeSeries:query"
        executed = self.executed_query
        logger.debug("CloudMonitoring mql request %s: %s", self.ref_id, executed)

        result = TimeSeriesQueryResponse()
        body: dict[str, Any] = {"query": executed}
        for page in range(MAX_PAGES):
            response = unmarshal_response(
                send_request(ds, "POST", path, cancel, json=body), TimeSeriesQueryResponse
            )
            if page == 0:
                result.time_series_descriptor = response.time_series_descriptor
            result.time_series_data.extend(response.time_series_data)
            if not response.next_page_token:
                break
            body = {"query": executed, "pageToken": response.next_page_token}
        else:
            logger.warning("Query %s stopped paging after %d pages", self.ref_id, MAX_PAGES)

        return result, executed

    def _series_labels(
        self, response: TimeSeriesQueryResponse, series: TimeSeriesData, labels: dict[str, set[str]]
    ) -> dict[str, str]:
        series_labels: dict[str, str] = {}
        for n, descriptor in enumerate(response.time_series_descriptor.label_descriptors):
            # resource.project_id -> resource.label.project_id
            key = to_snake_case(descriptor.key).replace(".", ".label.", 1)
            value = _label_value(descriptor, series.label_values[n])
            labels[key].add(value)
            series_labels[key] = value
        return series_labels

    def parse_response(
        self, query_res: DataResponse, response: TimeSeriesQueryResponse, executed_query: str
    ) -> None:
        labels: dict[str, set[str]] = defaultdict(set)
        start = len(query_res.frames)

        try:
            for series in response.time_series_data:
                base_labels = self._series_labels(response, series, labels)
                for n, descriptor in enumerate(response.time_series_descriptor.point_descriptors):
                    labels["metric.name"].add(descriptor.key)
                    series_labels = {**base_labels, "metric.name": descriptor.key}
                    default_name = descriptor.key

                    if descriptor.value_type != "DISTRIBUTION":
                        frame = Frame.time_series(self.ref_id)
                        frame.meta = FrameMeta(executed_query_string=executed_query)
                        for point in reversed(series.point_data):
                            frame.append_row(
                                point.time_interval.end_time,
                                point_value(descriptor.value_type, point.values[n]),
                            )
                        name = format_legend_keys(
                            descriptor.key, default_name, series_labels, None, self.legend_context
                        )
                        query_res.frames.append(name_value_field(frame, name, series_labels))
                        continue

                    points = [
                        (point.time_interval.end_time, point.values[n].distribution_value)
                        for point in reversed(series.point_data)
                    ]
                    query_res.frames.extend(
                        bucket_frames(
                            self.ref_id,
                            executed_query,
                            points,
                            descriptor.key,
                            default_name,
                            series_labels,
                            self.legend_context,
                        )
                    )
        except (KeyError, IndexError, ValueError, TypeError) as e:
            raise QueryParseError(f"failed to parse response for query {self.ref_id}: {e}") from e

        frames = query_res.frames[start:]
        if response.time_series_data:
            add_config_data(frames, self.build_deep_link(), response.unit)

        custom = {"labels": {key: sorted(values) for key, values in labels.items()}}
        for frame in frames:
            if frame.meta is not None:
                frame.meta.custom = copy.deepcopy(custom)

    def parse_to_annotations(
        self, query_res: DataResponse, response: TimeSeriesQueryResponse, title: str, text: str
    ) -> None:
        rows: list[dict[str, Any]] = []
        descriptor = response.time_series_descriptor
        try:
            for series in response.time_series_data:
                metric_labels: dict[str, str] = {}
                resource_labels: dict[str, str] = {}
                for n, label in enumerate(descriptor.label_descriptors):
                    key = to_snake_case(label.key)
                    value = _label_value(label, series.label_values[n])
                    if key.startswith("metric."):
                        metric_labels[key.removeprefix("metric.")] = value
                    elif key.startswith("resource."):
                        resource_labels[key.removeprefix("resource.")] = value

                for n, point_descriptor in enumerate(descriptor.point_descriptors):
                    for point in reversed(series.point_data):
                        value = point_text(point_descriptor.value_type, point.values[n])
                        rows.append(
                            {
                                "time": point.time_interval.end_time,
                                "title": format_annotation_text(
                                    title, value, point_descriptor.key,
                                    metric_labels, resource_labels,
                                ),
                                "tags": "",
                                "text": format_annotation_text(
                                    text, value, point_descriptor.key,
                                    metric_labels, resource_labels,
                                ),
                            }
                        )
        except IndexError as e:
            raise QueryParseError(f"failed to parse annotations for query {self.ref_id}: {e}") from e

        query_res.frames.append(annotation_frame(self.ref_id, rows))

    def build_deep_link(self) -> str:
        return build_deep_link(
            self._resolved_project or self.project_name,
            mql_data_set(self.query),
            to_utc(self.time_range.from_),
            to_utc(self.time_range.to),
        )
