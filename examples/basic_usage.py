"""Basic usage example for MonitorForge.

runs examples/batch.yaml against a canned api so it works offline.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx

# Add parent to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from monitorforge.credentials import InstanceManager
from monitorforge.parser.loader import load_batch, load_settings
from monitorforge.service import QueryService

HERE = Path(__file__).parent
START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def fake_points(count: int) -> list[dict]:
    points = []
    for i in range(count):
        end = START + timedelta(minutes=5 * (i + 1))
        points.append(
            {
                "interval": {"endTime": end.strftime("%Y-%m-%dT%H:%M:%SZ")},
                "value": {"doubleValue": 0.1 * (i + 1)},
            }
        )
    return list(reversed(points))  # newest first, like the real api


def fake_api(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith(":query"):
        return httpx.Response(
            200,
            json={
                "timeSeriesDescriptor": {
                    "labelDescriptors": [{"key": "resource.zone"}],
                    "pointDescriptors": [{"key": "value.utilization", "valueType": "DOUBLE"}],
                },
                "timeSeriesData": [
                    {
                        "labelValues": [{"stringValue": "us-central1-a"}],
                        "pointData": [
                            {"values": [p["value"]], "timeInterval": p["interval"]}
                            for p in fake_points(3)
                        ],
                    }
                ],
            },
        )
    return httpx.Response(
        200,
        json={
            "timeSeries": [
                {
                    "metric": {"type": "compute.googleapis.com/instance/cpu/utilization"},
                    "resource": {"type": "gce_instance", "labels": {"zone": "us-central1-a"}},
                    "valueType": "DOUBLE",
                    "points": fake_points(3),
                }
            ],
            "unit": "10^2.%",
        },
    )


def main():
    """Demonstrate MonitorForge capabilities."""
    settings = load_settings(HERE / "settings.yaml")
    request = load_batch(HERE / "batch.yaml", settings)

    manager = InstanceManager(
        token_source=lambda _settings: "demo-token",
        transport=httpx.MockTransport(fake_api),
    )
    service = QueryService(manager)

    print("=" * 60)
    print("MonitorForge Cloud Monitoring Demo")
    print("=" * 60)

    # 1. Requests the batch turns into
    print("\n1. Requests:")
    for executor in service.build_query_executors(request):
        print(f"   {executor.ref_id}: {type(executor).__name__}")

    # 2. Run it
    print("\n2. Results:")
    result = service.query_data(request)
    for ref_id, response in result.responses.items():
        if response.error:
            print(f"   {ref_id}: error: {response.error}")
            continue
        for frame in response.frames:
            values = ", ".join(f"{v:.2f}" for v in frame.value_field.values)
            print(f"   {ref_id}: {frame.name} -> [{values}]")

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)

    manager.dispose()


if __name__ == "__main__":
    main()
