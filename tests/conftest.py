"""Pytest fixtures for MonitorForge tests."""

from collections.abc import Callable, Generator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest

from monitorforge.credentials import DatasourceInfo, InstanceManager
from monitorforge.models.query import DataQuery, TimeRange
from monitorforge.models.settings import InstanceSettings, QueryDataRequest
from monitorforge.service import QueryService

Handler = Callable[[httpx.Request], httpx.Response]

CPU_METRIC = "compute.googleapis.com/instance/cpu/utilization"


@pytest.fixture
def time_range() -> TimeRange:
    """One hour starting at midnight, 2024-01-01 UTC."""
    return TimeRange.model_validate(
        {"from": "2024-01-01T00:00:00Z", "to": "2024-01-01T01:00:00Z"}
    )


@pytest.fixture
def settings() -> InstanceSettings:
    """A jwt datasource with a default project."""
    return InstanceSettings(id=1, json_data={"defaultProject": "test-project"})


@pytest.fixture
def make_manager() -> Generator[Callable[[Handler], InstanceManager], None, None]:
    """Factory for instance managers whose api client talks to a mock handler."""
    managers: list[InstanceManager] = []

    def factory(handler: Handler) -> InstanceManager:
        manager = InstanceManager(
            token_source=lambda _settings: "test-token",
            transport=httpx.MockTransport(handler),
        )
        managers.append(manager)
        return manager

    yield factory
    for manager in managers:
        manager.dispose()


@pytest.fixture
def make_ds(
    make_manager: Callable[[Handler], InstanceManager], settings: InstanceSettings
) -> Callable[[Handler], DatasourceInfo]:
    """Factory for a resolved datasource backed by a mock handler."""

    def factory(handler: Handler) -> DatasourceInfo:
        return make_manager(handler).get(settings)

    return factory


@pytest.fixture
def make_service(
    make_manager: Callable[[Handler], InstanceManager],
) -> Callable[[Handler], QueryService]:
    def factory(handler: Handler) -> QueryService:
        return QueryService(make_manager(handler))

    return factory


@pytest.fixture
def make_request(
    settings: InstanceSettings, time_range: TimeRange
) -> Callable[..., QueryDataRequest]:
    """Build a batch from raw payloads, ref ids A, B, C, ..."""

    def factory(*payloads: dict[str, Any], interval_ms: int = 15000) -> QueryDataRequest:
        return QueryDataRequest(
            datasource=settings,
            queries=[
                DataQuery(
                    ref_id=chr(ord("A") + i),
                    interval_ms=interval_ms,
                    time_range=time_range,
                    payload=payload,
                )
                for i, payload in enumerate(payloads)
            ],
        )

    return factory


@pytest.fixture
def make_series() -> Callable[..., dict[str, Any]]:
    """Factory for one timeSeries.list series. points are given oldest first
    and returned newest first, the way the api sends them."""

    def factory(
        metric_type: str = CPU_METRIC,
        metric_labels: dict[str, str] | None = None,
        resource_labels: dict[str, str] | None = None,
        values: list[Any] | None = None,
        value_type: str = "DOUBLE",
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        values = [1.0, 2.0] if values is None else values
        value_key = {
            "DOUBLE": "doubleValue",
            "INT64": "int64Value",
            "BOOL": "boolValue",
            "STRING": "stringValue",
            "DISTRIBUTION": "distributionValue",
        }[value_type]
        points = [
            {
                "interval": {
                    "startTime": f"2024-01-01T00:{i:02d}:00Z",
                    "endTime": f"2024-01-01T00:{i + 1:02d}:00Z",
                },
                "value": {value_key: value},
            }
            for i, value in enumerate(values)
        ]
        series: dict[str, Any] = {
            "metric": {"type": metric_type, "labels": metric_labels or {}},
            "resource": {"type": "gce_instance", "labels": resource_labels or {}},
            "metricKind": "GAUGE",
            "valueType": value_type,
            "points": list(reversed(points)),
        }
        if metadata is not None:
            series["metadata"] = metadata
        return series

    return factory


@pytest.fixture
def mql_response() -> dict[str, Any]:
    """A timeSeries.query response with one series and two points."""
    return {
        "timeSeriesDescriptor": {
            "labelDescriptors": [
                {"key": "resource.instance_id"},
                {"key": "metric.instance_name"},
            ],
            "pointDescriptors": [
                {
                    "key": "value.utilization",
                    "valueType": "DOUBLE",
                    "metricKind": "GAUGE",
                    "unit": "s",
                }
            ],
        },
        "timeSeriesData": [
            {
                "labelValues": [{"stringValue": "123"}, {"stringValue": "vm-1"}],
                "pointData": [
                    {
                        "values": [{"doubleValue": 2.0}],
                        "timeInterval": {
                            "startTime": "2024-01-01T00:01:00Z",
                            "endTime": "2024-01-01T00:02:00Z",
                        },
                    },
                    {
                        "values": [{"doubleValue": 1.0}],
                        "timeInterval": {
                            "startTime": "2024-01-01T00:00:00Z",
                            "endTime": "2024-01-01T00:01:00Z",
                        },
                    },
                ],
            }
        ],
    }


@pytest.fixture
def minute() -> Callable[[int], datetime]:
    """datetime for a minute past midnight 2024-01-01 UTC."""

    def factory(m: int) -> datetime:
        return datetime(2024, 1, 1, 0, m, tzinfo=timezone.utc)

    return factory


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(
        """
datasource:
  id: 7
  url: https://monitoring.googleapis.com
  jsonData:
    authenticationType: jwt
    defaultProject: my-project
    clientEmail: reader@my-project.iam.gserviceaccount.com
    timeout: 10
  secureJsonData:
    privateKey: secret
"""
    )
    return path


@pytest.fixture
def batch_file(tmp_path: Path) -> Path:
    path = tmp_path / "batch.yaml"
    path.write_text(
        f"""
range:
  from: "2024-01-01T00:00:00Z"
  to: "2024-01-01T01:00:00Z"
intervalMs: 60000
queries:
  - queryType: metrics
    metricQuery:
      metricType: {CPU_METRIC}
      filters: ["zone", "=", "us-central1-*"]
      aliasBy: "{{{{metric.label.instance_name}}}}"
  - refId: MQL
    intervalMs: 30000
    queryType: metrics
    metricQuery:
      editorMode: mql
      projectName: other-project
      query: fetch gce_instance::compute.googleapis.com/instance/cpu/utilization
"""
    )
    return path
