"""Datasource instance resolution and credentials.

an instance is the resolved, ready-to-use form of the stored settings:
base url, auth mode and an httpx client. instances are cached per
datasource id and rebuilt when the settings' "updated" stamp changes -
during a batch they are read-only and shared by every executor.

token acquisition for service account (jwt) auth belongs to the host, it
is plugged in as a token_source callable. for gce auth we talk to the
metadata server ourselves since that is also where the default project
comes from.
"""

import logging
import time
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from monitorforge.errors import BatchError, CredentialError
from monitorforge.models.settings import DEFAULT_API_URL, AuthenticationType, InstanceSettings

logger = logging.getLogger(__name__)

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
MONITORING_READ_SCOPE = "https://www.googleapis.com/auth/monitoring.read"

# refresh a cached token this many seconds before it actually expires
TOKEN_EXPIRY_MARGIN = 60


class MetadataCredentials:
    """Ambient credentials served by the GCE metadata server."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        base_url: str = METADATA_URL,
        timeout: float = 5.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._token: str | None = None
        self._expires_at = 0.0

    def token(self) -> str:
        """Get a bearer token, reusing the cached one while it is still valid."""
        if self._token and time.monotonic() < self._expires_at:
            return self._token

        try:
            response = self._client.get(
                f"{self.base_url}/instance/service-accounts/default/token",
                params={"scopes": MONITORING_READ_SCOPE},
                headers=METADATA_HEADERS,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CredentialError(f"failed to retrieve GCP credential token: {e}") from e

        access_token = data.get("access_token")
        expires_in = data.get("expires_in") or 0
        if not access_token or expires_in <= 0:
            raise CredentialError("failed to validate GCP credentials")

        self._token = access_token
        self._expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
        return access_token

    def project_id(self) -> str:
        try:
            response = self._client.get(
                f"{self.base_url}/project/project-id", headers=METADATA_HEADERS
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CredentialError(f"failed to retrieve default project: {e}") from e

        project = response.text.strip()
        if not project:
            raise CredentialError("metadata server returned an empty project id")
        return project

    def close(self) -> None:
        self._client.close()


class BearerTokenAuth(httpx.Auth):
    """Attach a freshly resolved bearer token to every request."""

    def __init__(self, token_source: Callable[[], str]) -> None:
        self._token_source = token_source

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token_source()}"
        yield request


@dataclass
class DatasourceInfo:
    """A resolved datasource instance."""

    id: int
    updated: datetime | None
    url: str
    authentication_type: AuthenticationType
    default_project: str
    client_email: str
    token_uri: str
    client: httpx.Client
    decrypted_secure_json_data: dict[str, str] = field(default_factory=dict)
    metadata: MetadataCredentials | None = None

    def close(self) -> None:
        self.client.close()
        if self.metadata is not None:
            self.metadata.close()


def get_default_project(info: DatasourceInfo) -> str:
    """Default project of a datasource.

    gce datasources ask the metadata server, after making sure the ambient
    credentials actually yield a valid token. everything else uses the
    project stored in the settings.
    """
    if info.authentication_type == AuthenticationType.GCE:
        if info.metadata is None:
            raise CredentialError("gce authentication configured without metadata credentials")
        info.metadata.token()
        return info.metadata.project_id()
    return info.default_project


TokenSource = Callable[[InstanceSettings], str]


class InstanceManager:
    """Builds and caches DatasourceInfo objects per datasource id."""

    def __init__(
        self,
        token_source: TokenSource | None = None,
        transport: httpx.BaseTransport | None = None,
        metadata_factory: Callable[[], MetadataCredentials] | None = None,
    ) -> None:
        """Initialize the instance manager.

        Args:
            token_source: Produces bearer tokens for jwt datasources.
            transport: Optional httpx transport for the api client (tests, proxies).
            metadata_factory: Builds the metadata credentials for gce datasources.
        """
        self.token_source = token_source
        self.transport = transport
        self.metadata_factory = metadata_factory or MetadataCredentials
        self._instances: dict[int, DatasourceInfo] = {}

    def get(self, settings: InstanceSettings) -> DatasourceInfo:
        cached = self._instances.get(settings.id)
        if cached is not None and cached.updated == settings.updated:
            return cached
        if cached is not None:
            logger.debug("Datasource %s settings changed, rebuilding instance", settings.id)
            cached.close()

        info = self._new_instance(settings)
        self._instances[settings.id] = info
        return info

    def _new_instance(self, settings: InstanceSettings) -> DatasourceInfo:
        try:
            auth_type = settings.authentication_type
        except ValueError as e:
            raise BatchError(f"error reading settings: {e}") from e

        metadata = self.metadata_factory() if auth_type == AuthenticationType.GCE else None

        auth: httpx.Auth | None = None
        if metadata is not None:
            auth = BearerTokenAuth(metadata.token)
        elif self.token_source is not None:
            token_source = self.token_source
            auth = BearerTokenAuth(lambda: token_source(settings))

        client = httpx.Client(
            base_url=settings.url or DEFAULT_API_URL,
            timeout=settings.timeout,
            auth=auth,
            transport=self.transport,
            headers={"Content-Type": "application/json"},
        )

        return DatasourceInfo(
            id=settings.id,
            updated=settings.updated,
            url=settings.url or DEFAULT_API_URL,
            authentication_type=auth_type,
            default_project=settings.default_project,
            client_email=settings.client_email,
            token_uri=settings.token_uri,
            client=client,
            decrypted_secure_json_data=dict(settings.decrypted_secure_json_data),
            metadata=metadata,
        )

    def dispose(self) -> None:
        for info in self._instances.values():
            info.close()
        self._instances.clear()
