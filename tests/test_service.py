"""Tests for the QueryService dispatcher."""

from threading import Event

import httpx
import pytest

from monitorforge.credentials import InstanceManager, MetadataCredentials
from monitorforge.errors import BatchError, QueryCancelledError
from monitorforge.executor import SloExecutor, TimeSeriesFilterExecutor, TimeSeriesQueryExecutor
from monitorforge.models.settings import InstanceSettings, QueryDataRequest
from monitorforge.service import QueryService

CPU_METRIC = "compute.googleapis.com/instance/cpu/utilization"


def metric_payload(project: str = "", **fields) -> dict:
    return {
        "queryType": "metrics",
        "metricQuery": {"projectName": project, "metricType": CPU_METRIC, **fields},
    }


def ok_handler(series: dict):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"timeSeries": [series]})

    return handler


class TestBuildQueryExecutors:
    def test_classification(self, make_request):
        """Each query shape gets its own executor."""
        request = make_request(
            metric_payload(),
            metric_payload(editorMode="mql", query="fetch gce_instance"),
            {"queryType": "slo", "metricQuery": {}, "sloQuery": {"serviceId": "s", "sloId": "o"}},
        )
        executors = QueryService().build_query_executors(request)

        assert [type(e) for e in executors] == [
            TimeSeriesFilterExecutor,
            TimeSeriesQueryExecutor,
            SloExecutor,
        ]
        assert [e.ref_id for e in executors] == ["A", "B", "C"]

    def test_legacy_payload(self, make_request):
        """Flat legacy payloads are built as metric queries."""
        request = make_request({"metricType": CPU_METRIC, "filters": ["zone", "=", "a"]})
        executor = QueryService().build_query_executors(request)[0]
        assert isinstance(executor, TimeSeriesFilterExecutor)
        assert executor.params.get("filter") == f'metric.type="{CPU_METRIC}" zone="a"'

    def test_unknown_query_type(self, make_request):
        """An unknown queryType fails the whole batch."""
        request = make_request(metric_payload(), {"queryType": "traces", "metricQuery": {}})
        with pytest.raises(BatchError, match="traces"):
            QueryService().build_query_executors(request)

    def test_slo_without_metric_query(self, make_request):
        """An slo payload without metricQuery is still an slo query."""
        request = make_request(
            {
                "queryType": "slo",
                "sloQuery": {
                    "projectName": "p",
                    "serviceId": "s",
                    "sloId": "o",
                    "selectorName": "select_slo_health",
                },
            }
        )
        executor = QueryService().build_query_executors(request)[0]

        assert isinstance(executor, SloExecutor)
        assert executor.params.get("filter") == (
            'select_slo_health("projects/p/services/s/serviceLevelObjectives/o")'
        )

    def test_unknown_type_without_metric_query(self, make_request):
        """An unknown queryType is rejected even without metricQuery."""
        request = make_request({"queryType": "traces"})
        with pytest.raises(BatchError, match="traces"):
            QueryService().build_query_executors(request)

    def test_undecodable_payload(self, make_request):
        """A payload that doesn't fit the query model fails the whole batch."""
        request = make_request({"queryType": "metrics", "metricQuery": "not an object"})
        with pytest.raises(BatchError, match="could not unmarshal"):
            QueryService().build_query_executors(request)

    def test_malformed_filter(self, make_request):
        """A malformed filter list fails the whole batch."""
        request = make_request(metric_payload(filters=["zone", "="]))
        with pytest.raises(BatchError, match="Malformed filter"):
            QueryService().build_query_executors(request)


class TestQueryData:
    def test_empty_batch(self, settings):
        """A batch without queries is rejected."""
        with pytest.raises(BatchError, match="no queries"):
            QueryService().query_data(QueryDataRequest(datasource=settings))

    def test_single_query(self, make_service, make_request, make_series):
        """A successful query returns frames under its ref id."""
        service = make_service(ok_handler(make_series()))
        result = service.query_data(make_request(metric_payload()))

        assert list(result.responses) == ["A"]
        assert result.responses["A"].error is None
        assert len(result.responses["A"].frames) == 1

    def test_partial_failure(self, make_service, make_request, make_series):
        """A failing query gets an error, its siblings still get frames."""
        series = make_series()

        def handler(request: httpx.Request) -> httpx.Response:
            if "/projects/p2/" in request.url.path:
                return httpx.Response(500, text="internal error")
            return httpx.Response(200, json={"timeSeries": [series]})

        service = make_service(handler)
        result = service.query_data(
            make_request(metric_payload("p1"), metric_payload("p2"), metric_payload("p3"))
        )

        assert len(result.responses["A"].frames) == 1
        assert len(result.responses["C"].frames) == 1
        assert result.responses["B"].frames == []
        assert "status 500" in result.responses["B"].error
        assert result.responses["A"].error is None
        assert result.responses["C"].error is None

    def test_cancel_mid_batch(self, make_service, make_request, make_series):
        """Cancelling during the second query stops the batch without results."""
        cancel = Event()
        paths: list[str] = []
        series = make_series()

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if "/projects/p2/" in request.url.path:
                cancel.set()
            return httpx.Response(200, json={"timeSeries": [series]})

        service = make_service(handler)
        request = make_request(metric_payload("p1"), metric_payload("p2"), metric_payload("p3"))
        with pytest.raises(QueryCancelledError):
            service.query_data(request, cancel)
        assert paths == ["/v3/projects/p1/timeSeries", "/v3/projects/p2/timeSeries"]

    def test_batch_error_makes_no_calls(self, make_service, make_request):
        """Classification errors happen before any api call."""
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        service = make_service(handler)
        with pytest.raises(BatchError):
            service.query_data(make_request(metric_payload(), metric_payload(filters=["x"])))
        assert calls == []

    def test_parse_error_keeps_frames(self, make_service, make_request, mql_response):
        """Frames produced before a parse error are kept next to the error."""
        broken = {**mql_response["timeSeriesData"][0], "labelValues": []}
        mql_response["timeSeriesData"].append(broken)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=mql_response)

        service = make_service(handler)
        result = service.query_data(
            make_request(metric_payload(editorMode="mql", query="fetch gce_instance"))
        )

        assert len(result.responses["A"].frames) == 1
        assert "failed to parse response" in result.responses["A"].error

    def test_slo_query(self, make_service, make_request, make_series):
        """Slo queries are sent to timeSeries.list with the slo filter."""
        filters: list[str] = []
        series = make_series()

        def handler(request: httpx.Request) -> httpx.Response:
            filters.append(request.url.params["filter"])
            return httpx.Response(200, json={"timeSeries": [series]})

        service = make_service(handler)
        payload = {
            "queryType": "slo",
            "metricQuery": {},
            "sloQuery": {
                "projectName": "p",
                "serviceId": "s",
                "sloId": "o",
                "selectorName": "select_slo_health",
            },
        }
        result = service.query_data(make_request(payload))

        assert filters == ['select_slo_health("projects/p/services/s/serviceLevelObjectives/o")']
        assert len(result.responses["A"].frames) == 1


class TestAnnotationQuery:
    def test_annotation_frame(self, make_service, make_request, make_series):
        """annotationQuery runs the first query and returns annotation rows."""
        series = make_series(metric_labels={"instance_name": "vm-1"})
        service = make_service(ok_handler(series))
        payload = {
            **metric_payload(title="{{metric.label.instance_name}}", text="{{metric.value}}"),
            "type": "annotationQuery",
        }
        result = service.query_data(make_request(payload))

        frame = result.responses["A"].frames[0]
        assert [f.name for f in frame.fields] == ["time", "title", "tags", "text"]
        assert frame.fields[1].values == ["vm-1", "vm-1"]
        assert frame.fields[3].values == ["1.000000", "2.000000"]

    def test_annotation_failure(self, make_service, make_request):
        """A failed annotation query is reported on its ref id."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="permission denied")

        service = make_service(handler)
        result = service.query_data(make_request({**metric_payload(), "type": "annotationQuery"}))
        assert "permission denied" in result.responses["A"].error


def metadata_manager(token_response: httpx.Response) -> InstanceManager:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/token"):
            return token_response
        if request.url.path.endswith("/project/project-id"):
            return httpx.Response(200, text="gce-project")
        return httpx.Response(404)

    return InstanceManager(
        metadata_factory=lambda: MetadataCredentials(
            client=httpx.Client(transport=httpx.MockTransport(handler))
        )
    )


class TestDefaultProject:
    def test_jwt_default_project(self, make_service, make_request):
        """Jwt datasources report the configured default project."""
        service = make_service(lambda request: httpx.Response(200, json={}))
        result = service.query_data(make_request({"type": "getGCEDefaultProject"}))
        frame = result.responses["A"].frames[0]
        assert frame.meta.custom == {"defaultProject": "test-project"}

    def test_gce_default_project(self, make_request):
        """Gce datasources ask the metadata server."""
        manager = metadata_manager(
            httpx.Response(200, json={"access_token": "t", "expires_in": 3600})
        )
        request = make_request({"type": "getGCEDefaultProject"})
        request.datasource = InstanceSettings(id=2, json_data={"authenticationType": "gce"})

        result = QueryService(manager).query_data(request)
        assert result.responses["A"].frames[0].meta.custom == {"defaultProject": "gce-project"}
        manager.dispose()

    def test_gce_invalid_token(self, make_request):
        """A token without an expiry fails the batch."""
        manager = metadata_manager(httpx.Response(200, json={"access_token": "t"}))
        request = make_request({"type": "getGCEDefaultProject"})
        request.datasource = InstanceSettings(id=2, json_data={"authenticationType": "gce"})

        with pytest.raises(BatchError, match="failed to retrieve default project"):
            QueryService(manager).query_data(request)
        manager.dispose()
