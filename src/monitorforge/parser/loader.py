"""YAML/JSON loaders for datasource settings and query batches.

a settings file describes one datasource instance, a batch file a set of
queries sharing a time range. keeping them apart means the same batch can
be pointed at different datasources without editing it.

settings.yaml:

    datasource:
      id: 1
      url: https://monitoring.googleapis.com
      jsonData:
        authenticationType: jwt
        defaultProject: my-project
      secureJsonData:
        privateKey: ...

batch.yaml:

    range:
      from: 2024-01-01T00:00:00Z
      to: 2024-01-01T06:00:00Z
    intervalMs: 60000
    queries:
      - queryType: metrics
        metricQuery:
          metricType: compute.googleapis.com/instance/cpu/utilization
"""

import json
import string
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from monitorforge.models.query import DataQuery, TimeRange
from monitorforge.models.settings import InstanceSettings, QueryDataRequest

# keys of a batch query entry that belong to the batch, not the payload
QUERY_ENVELOPE_KEYS = ("refId", "intervalMs", "maxDataPoints")


def _read(path: Path) -> Any:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with open(path) as f:
        # json is a subset of yaml but the error messages are better this way
        if path.suffix == ".json":
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in {path}: {e}") from e
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e


def load_settings(path: Path) -> InstanceSettings:
    """Load datasource settings from a yaml file."""
    data = _read(path)
    if not isinstance(data, dict) or not isinstance(data.get("datasource"), dict):
        raise ValueError(f"No datasource section found in {path}")

    raw = dict(data["datasource"])
    # on disk the secrets are simply "secureJsonData"
    if "secureJsonData" in raw:
        raw["decryptedSecureJsonData"] = raw.pop("secureJsonData")

    try:
        return InstanceSettings.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid datasource settings in {path}: {e}") from e


def default_ref_id(index: int) -> str:
    """A, B, ... Z, AA, AB, ..."""
    letters = string.ascii_uppercase
    ref_id = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, len(letters))
        ref_id = letters[remainder] + ref_id
    return ref_id


def load_batch(path: Path, settings: InstanceSettings | None = None) -> QueryDataRequest:
    """Load a query batch from a yaml or json file.

    Args:
        path: The batch file.
        settings: Datasource to run the batch against. Defaults to an empty
            (jwt, no default project) datasource, which is enough for
            validating and showing requests.
    """
    data = _read(path)
    if not isinstance(data, dict):
        raise ValueError(f"Batch file {path} must contain a mapping")

    queries = data.get("queries")
    if not queries:
        raise ValueError(f"No queries found in {path}")

    try:
        time_range = TimeRange.model_validate(data.get("range") or {})
    except ValidationError as e:
        raise ValueError(f"Invalid time range in {path}: {e}") from e

    data_queries = []
    for i, entry in enumerate(queries):
        if not isinstance(entry, dict):
            raise ValueError(f"Query #{i + 1} in {path} must be a mapping")
        payload = {k: v for k, v in entry.items() if k not in QUERY_ENVELOPE_KEYS}
        try:
            data_queries.append(
                DataQuery(
                    ref_id=entry.get("refId") or default_ref_id(i),
                    interval_ms=entry.get("intervalMs", data.get("intervalMs", 0)),
                    max_data_points=entry.get("maxDataPoints", data.get("maxDataPoints", 0)),
                    time_range=time_range,
                    payload=payload,
                )
            )
        except ValidationError as e:
            raise ValueError(f"Invalid query #{i + 1} in {path}: {e}") from e

    return QueryDataRequest(datasource=settings or InstanceSettings(), queries=data_queries)
