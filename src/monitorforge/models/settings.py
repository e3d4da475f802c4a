"""Pydantic models for datasource instance settings and batch requests."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from monitorforge.models.query import CamelModel, DataQuery

DEFAULT_API_URL = "https://monitoring.googleapis.com"
DEFAULT_TIMEOUT_SECONDS = 30.0


class AuthenticationType(str, Enum):
    JWT = "jwt"  # service account key, token acquired by the host
    GCE = "gce"  # ambient credentials from the metadata server


class InstanceSettings(CamelModel):
    """Stored configuration of one datasource instance.

    jsonData is the plain settings blob, decryptedSecureJsonData holds the
    secrets the host already decrypted for us.
    """

    id: int = 0
    updated: datetime | None = None
    url: str = ""
    json_data: dict[str, Any] = Field(default_factory=dict)
    decrypted_secure_json_data: dict[str, str] = Field(default_factory=dict)

    @property
    def authentication_type(self) -> AuthenticationType:
        value = self.json_data.get("authenticationType") or AuthenticationType.JWT.value
        return AuthenticationType(value)

    @property
    def default_project(self) -> str:
        return self.json_data.get("defaultProject") or ""

    @property
    def client_email(self) -> str:
        return self.json_data.get("clientEmail") or ""

    @property
    def token_uri(self) -> str:
        return self.json_data.get("tokenUri") or ""

    @property
    def timeout(self) -> float:
        return float(self.json_data.get("timeout") or DEFAULT_TIMEOUT_SECONDS)


class QueryDataRequest(CamelModel):
    """A batch of queries sharing one datasource."""

    datasource: InstanceSettings = Field(default_factory=InstanceSettings)
    queries: list[DataQuery] = Field(default_factory=list)
