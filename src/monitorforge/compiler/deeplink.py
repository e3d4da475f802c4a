"""Deep links into the Cloud Monitoring metrics explorer.

the explorer reads its whole chart config from a json "pageState" query
parameter. we wrap the explorer url in the account chooser so users with
several google accounts land in the right one.
"""

import json
from datetime import datetime
from typing import Any

import httpx

METRICS_EXPLORER_URL = "https://console.cloud.google.com/monitoring/metrics-explorer"
ACCOUNT_CHOOSER_URL = "https://accounts.google.com/AccountChooser"

DEEP_LINK_TITLE = "View in Metrics Explorer"


def _iso(value: datetime | str) -> str:
    return value if isinstance(value, str) else value.strftime("%Y-%m-%dT%H:%M:%SZ")


def build_deep_link(
    project_name: str,
    data_set: dict[str, Any],
    start: datetime | str,
    end: datetime | str,
) -> str:
    """Build an account-chooser wrapped explorer url for one chart data set."""
    page_state = {
        "xyChart": {
            "constantLines": [],
            "dataSets": [data_set],
            "timeshiftDuration": "0s",
            "y1Axis": {"label": "y1Axis", "scale": "LINEAR"},
        },
        "timeSelection": {
            "timeRange": "custom",
            "start": _iso(start),
            "end": _iso(end),
        },
    }
    explorer_url = httpx.URL(
        METRICS_EXPLORER_URL,
        params={
            "project": project_name,
            "Grafana_deeplink": "true",
            "pageState": json.dumps(page_state, sort_keys=True, separators=(",", ":")),
        },
    )
    return str(httpx.URL(ACCOUNT_CHOOSER_URL, params={"continue": str(explorer_url)}))


def filter_data_set(
    filter_expr: str,
    cross_series_reducer: str,
    per_series_aligner: str,
    alignment_period: str,
    group_by_fields: list[str],
) -> dict[str, Any]:
    """Chart data set for a builder-mode (timeSeriesFilter) query."""
    return {
        "timeSeriesFilter": {
            "aggregations": [],
            "crossSeriesReducer": cross_series_reducer,
            "filter": filter_expr,
            "groupByFields": group_by_fields,
            "minAlignmentPeriod": alignment_period.lstrip("+"),
            "perSeriesAligner": per_series_aligner,
            "secondaryGroupByFields": [],
            "unitOverride": "1",
        }
    }


def mql_data_set(query: str) -> dict[str, Any]:
    """Chart data set for a raw mql query."""
    return {
        "timeSeriesQuery": query,
        "targetAxis": "Y1",
        "plotType": "LINE",
    }
