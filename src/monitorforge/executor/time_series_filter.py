"""Executors for timeSeries.list requests - builder-mode metric queries and slo queries.

both shapes hit the same endpoint with a filter plus aggregation params
and get the same response back, they only differ in how the params are
put together. the slo executor is a thin subclass for that reason.
"""

import copy
import logging
from collections import defaultdict
from threading import Event
from typing import Any

from monitorforge.compiler.aggregation import build_metric_aggregation, build_slo_aggregation
from monitorforge.compiler.deeplink import build_deep_link, filter_data_set
from monitorforge.compiler.filters import build_filter_string, build_slo_filter_expression
from monitorforge.compiler.legend import (
    LegendContext,
    format_annotation_text,
    format_legend_keys,
    to_snake_case,
)
from monitorforge.compiler.params import RequestParams
from monitorforge.credentials import DatasourceInfo
from monitorforge.errors import QueryParseError
from monitorforge.executor.base import (
    MAX_PAGES,
    QueryExecutor,
    add_config_data,
    annotation_frame,
    bucket_frames,
    format_rfc3339,
    name_value_field,
    point_text,
    point_value,
    send_request,
    unmarshal_response,
)
from monitorforge.models.frame import DataResponse, Frame, FrameMeta
from monitorforge.models.query import MetricQuery, SloQuery, TimeRange
from monitorforge.models.response import TimeSeries, TimeSeriesListResponse

logger = logging.getLogger(__name__)

DEFAULT_VIEW = "FULL"


class TimeSeriesFilterExecutor(QueryExecutor):
    """Runs a builder-mode metric query through timeSeries.list."""

    def __init__(
        self,
        ref_id: str,
        time_range: TimeRange,
        interval_ms: int,
        project_name: str = "",
        alias_by: str = "",
        group_bys: list[str] | None = None,
    ) -> None:
        super().__init__(ref_id, time_range, interval_ms, alias_by)
        self.project_name = project_name
        self.group_bys = list(group_bys or [])
        self._resolved_project = ""

        self.params = RequestParams()
        self.params.add("interval.startTime", format_rfc3339(time_range.from_))
        self.params.add("interval.endTime", format_rfc3339(time_range.to))

    @classmethod
    def for_metric_query(
        cls, ref_id: str, query: MetricQuery, time_range: TimeRange, interval_ms: int
    ) -> "TimeSeriesFilterExecutor":
        executor = cls(
            ref_id,
            time_range,
            interval_ms,
            project_name=query.project_name,
            alias_by=query.alias_by,
            group_bys=query.group_bys,
        )
        executor.params.add("filter", build_filter_string(query.metric_type, query.filters))
        executor.params.add("view", query.view or DEFAULT_VIEW)
        aggregation = build_metric_aggregation(query, time_range.duration_seconds, interval_ms)
        aggregation.apply(executor.params)
        logger.debug("CloudMonitoring request %s params: %s", ref_id, executor.params)
        return executor

    @property
    def target(self) -> str:
        """The encoded request params - this is what ends up as the executed query."""
        return self.params.encode()

    @property
    def legend_context(self) -> LegendContext:
        return LegendContext(alias_by=self.alias_by, project_name=self.project_name)

    def run(
        self, ds: DatasourceInfo, cancel: Event | None = None
    ) -> tuple[TimeSeriesListResponse, str]:
        project = self.resolve_project(ds, self.project_name)
        self._resolved_project = project
        path = f"/v3/projects/{project}/timeSeries"

        series: list[TimeSeries] = []
        unit = ""
        page_token = ""
        for _ in range(MAX_PAGES):
            params = self.params.to_query_params()
            if page_token:
                params = params.add("pageToken", page_token)
            response = unmarshal_response(
                send_request(ds, "GET", path, cancel, params=params), TimeSeriesListResponse
            )
            series.extend(response.time_series)
            unit = unit or response.unit
            page_token = response.next_page_token
            if not page_token:
                break
        else:
            logger.warning("Query %s stopped paging after %d pages", self.ref_id, MAX_PAGES)

        return TimeSeriesListResponse(time_series=series, unit=unit), self.target

    def parse_response(
        self, query_res: DataResponse, response: TimeSeriesListResponse, executed_query: str
    ) -> None:
        labels: dict[str, set[str]] = defaultdict(set)
        start = len(query_res.frames)

        try:
            for series in response.time_series:
                series_labels, default_name = self._series_labels(series, labels)
                if series.value_type != "DISTRIBUTION":
                    query_res.frames.append(
                        self._value_frame(series, series_labels, default_name, executed_query)
                    )
                    continue

                points = [
                    (point.interval.end_time, point.value.distribution_value)
                    for point in reversed(series.points)
                ]
                query_res.frames.extend(
                    bucket_frames(
                        self.ref_id,
                        executed_query,
                        points,
                        series.metric.type,
                        default_name,
                        series_labels,
                        self.legend_context,
                    )
                )
        except (KeyError, IndexError, ValueError, TypeError) as e:
            raise QueryParseError(f"failed to parse response for query {self.ref_id}: {e}") from e

        frames = query_res.frames[start:]
        if response.time_series:
            add_config_data(frames, self.build_deep_link(), response.unit)

        custom = {
            "alignmentPeriod": self.params.get("aggregation.alignmentPeriod"),
            "labels": {key: sorted(values) for key, values in labels.items()},
            "groupBys": self.group_bys,
        }
        for frame in frames:
            if frame.meta is not None:
                frame.meta.custom = copy.deepcopy(custom)

    def _series_labels(
        self, series: TimeSeries, labels: dict[str, set[str]]
    ) -> tuple[dict[str, str], str]:
        """Flatten a series' labels and work out its default display name.

        the default name is the metric type followed by the values of the
        labels that distinguish this series - every metric label when there
        is no group by, otherwise only the grouped ones.
        """
        series_labels = {"resource.type": series.resource.type}
        labels["resource.type"].add(series.resource.type)
        default_name = series.metric.type

        for key, value in series.metric.labels.items():
            label_key = f"metric.label.{key}"
            labels[label_key].add(value)
            series_labels[label_key] = value
            if not self.group_bys or label_key in self.group_bys:
                default_name += f" {value}"

        for key, value in series.resource.labels.items():
            label_key = f"resource.label.{key}"
            labels[label_key].add(value)
            series_labels[label_key] = value
            if label_key in self.group_bys:
                default_name += f" {value}"

        for label_type, type_values in series.meta_data.items():
            for label_key, label_value in type_values.items():
                key = to_snake_case(f"metadata.{label_type}.{label_key}")
                if isinstance(label_value, bool):
                    value = "true" if label_value else "false"
                elif isinstance(label_value, str):
                    value = label_value
                elif isinstance(label_value, list):
                    for item in label_value:
                        labels[key].add(str(item))
                    value = ", ".join(str(item) for item in label_value)
                    if series_labels.get(key):
                        value = f"{series_labels[key]}, {value}"
                    series_labels[key] = value
                    continue
                else:
                    continue
                labels[key].add(value)
                series_labels[key] = value

        return series_labels, default_name

    def _value_frame(
        self,
        series: TimeSeries,
        series_labels: dict[str, str],
        default_name: str,
        executed_query: str,
    ) -> Frame:
        frame = Frame.time_series(self.ref_id)
        frame.meta = FrameMeta(executed_query_string=executed_query)
        # the api returns newest points first
        for point in reversed(series.points):
            frame.append_row(point.interval.end_time, point_value(series.value_type, point.value))

        name = format_legend_keys(
            series.metric.type, default_name, series_labels, None, self.legend_context
        )
        return name_value_field(frame, name, series_labels)

    def parse_to_annotations(
        self, query_res: DataResponse, response: TimeSeriesListResponse, title: str, text: str
    ) -> None:
        rows: list[dict[str, Any]] = []
        for series in response.time_series:
            for point in reversed(series.points):
                value = point_text(series.value_type, point.value)
                rows.append(
                    {
                        "time": point.interval.end_time,
                        "title": format_annotation_text(
                            title, value, series.metric.type,
                            series.metric.labels, series.resource.labels,
                        ),
                        "tags": "",
                        "text": format_annotation_text(
                            text, value, series.metric.type,
                            series.metric.labels, series.resource.labels,
                        ),
                    }
                )
        query_res.frames.append(annotation_frame(self.ref_id, rows))

    def build_deep_link(self) -> str:
        data_set = filter_data_set(
            self.params.get("filter"),
            self.params.get("aggregation.crossSeriesReducer"),
            self.params.get("aggregation.perSeriesAligner"),
            self.params.get("aggregation.alignmentPeriod"),
            self.params.get_all("aggregation.groupByFields"),
        )
        return build_deep_link(
            self._resolved_project or self.project_name,
            data_set,
            self.params.get("interval.startTime"),
            self.params.get("interval.endTime"),
        )


class SloExecutor(TimeSeriesFilterExecutor):
    """Runs an slo query. same endpoint, slo-specific filter and aligner."""

    def __init__(
        self,
        ref_id: str,
        time_range: TimeRange,
        interval_ms: int,
        project_name: str = "",
        alias_by: str = "",
        service: str = "",
        slo: str = "",
        selector: str = "",
    ) -> None:
        super().__init__(ref_id, time_range, interval_ms, project_name, alias_by)
        self.service = service
        self.slo = slo
        self.selector = selector

    @classmethod
    def for_slo_query(
        cls, ref_id: str, query: SloQuery, time_range: TimeRange, interval_ms: int
    ) -> "SloExecutor":
        executor = cls(
            ref_id,
            time_range,
            interval_ms,
            project_name=query.project_name,
            alias_by=query.alias_by,
            service=query.service_id,
            slo=query.slo_id,
            selector=query.selector_name,
        )
        executor.params.add("filter", build_slo_filter_expression(query))
        build_slo_aggregation(query, time_range.duration_seconds, interval_ms).apply(executor.params)
        logger.debug("CloudMonitoring slo request %s params: %s", ref_id, executor.params)
        return executor

    @property
    def legend_context(self) -> LegendContext:
        return LegendContext(
            alias_by=self.alias_by,
            project_name=self.project_name,
            service=self.service,
            slo=self.slo,
            selector=self.selector,
        )

    def build_deep_link(self) -> str:
        # the metrics explorer has no slo view to link to
        return ""
