"""GCP Provider - credentials and REST clients for the Google Cloud APIs."""

import json
import logging
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

import google.auth
from google.oauth2 import service_account
from googleapiclient import discovery
from googleapiclient.errors import HttpError
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, SecretStr

from gcp_env_provisioner.core.waiter import wait_for_operation

if TYPE_CHECKING:
    from collections.abc import Callable

    from google.auth.credentials import Credentials

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

# Discovery API name -> version used by the handlers.
API_VERSIONS: dict[str, str] = {
    "cloudbilling": "v1",
    "cloudresourcemanager": "v3",
    "compute": "v1",
    "container": "v1",
    "pubsub": "v1",
    "redis": "v1",
    "servicenetworking": "v1",
    "serviceusage": "v1",
    "sqladmin": "v1",
}


_COMPUTE_PREFIX = "https://www.googleapis.com/compute/v1/"


def is_not_found(exc: HttpError) -> bool:
    """Return True when a Google API call failed because the resource does not exist."""
    return exc.resp.status == 404


def relative_link(link: str | None) -> str | None:
    """Strip the Compute API host from a self link (``projects/...`` form)."""
    if link is None:
        return None
    return link.removeprefix(_COMPUTE_PREFIX)


class GoogleApiClient:
    """Lazily builds and caches discovery clients, one per API."""

    def __init__(self, credentials: "Credentials") -> None:
        self._credentials = credentials
        self._services: dict[str, Any] = {}

    def service(self, api: str) -> Any:
        if api not in self._services:
            try:
                version = API_VERSIONS[api]
            except KeyError as e:
                raise ValueError(f"Unsupported Google API: {api}") from e
            logger.debug("Building %s %s client", api, version)
            self._services[api] = discovery.build(
                api, version, credentials=self._credentials, cache_discovery=False
            )
        return self._services[api]


class ServiceAccountAuth(BaseModel):
    """Service-account key authentication.

    ``credentials`` is either the JSON key itself or a path to the key file.
    """

    credentials: SecretStr

    def load(self) -> "Credentials":
        value = self.credentials.get_secret_value().strip()
        if value.startswith("{"):
            info = json.loads(value)
            return service_account.Credentials.from_service_account_info(
                info, scopes=CLOUD_PLATFORM_SCOPES
            )
        return service_account.Credentials.from_service_account_file(
            str(Path(value).expanduser()), scopes=CLOUD_PLATFORM_SCOPES
        )


class GCPProvider(BaseModel):
    """Connection configuration for Google Cloud.

    Provide ``auth`` for a service-account key, or leave it unset to use
    Application Default Credentials. For testing, use `from_client` to inject
    an object exposing ``service(api_name)``.

    Examples:
        # Service account key from the environment
        provider = GCPProvider(auth=ServiceAccountAuth(credentials=os.environ["GCP_CREDENTIALS"]))

        # Application Default Credentials
        provider = GCPProvider()
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    auth: ServiceAccountAuth | None = None
    poll_interval: float = Field(default=5.0, gt=0)
    operation_timeout: float = Field(default=3600.0, gt=0)

    # Injected client (for testing)
    _injected_client: Any = PrivateAttr(default=None)

    @classmethod
    def from_client(cls, client: Any, **kwargs: Any) -> Self:
        """Create a provider with an injected client.

        Args:
            client: Any object with a ``service(api_name)`` method returning a
                discovery-style resource (e.g. a ``MagicMock`` in tests).
            **kwargs: Other provider fields (``poll_interval``, ``operation_timeout``).
        """
        provider = cls(**kwargs)
        provider._injected_client = client
        return provider

    @cached_property
    def client(self) -> Any:
        """Get the Google API client."""
        if self._injected_client is not None:
            return self._injected_client

        if self.auth is not None:
            credentials = self.auth.load()
        else:
            credentials, _ = google.auth.default(scopes=CLOUD_PLATFORM_SCOPES)
        return GoogleApiClient(credentials)

    def api(self, name: str) -> Any:
        """Return the discovery resource for API *name* (e.g. ``"compute"``)."""
        return self.client.service(name)

    def wait(
        self,
        operation: dict[str, Any],
        poll: "Callable[[], dict[str, Any]]",
        *,
        sleep: "Callable[[float], None] | None" = None,
    ) -> dict[str, Any]:
        """Block until *operation* is done using this provider's interval and timeout."""
        kwargs: dict[str, Any] = {}
        if sleep is not None:
            kwargs["sleep"] = sleep
        return wait_for_operation(
            poll,
            operation=operation,
            interval=self.poll_interval,
            timeout=self.operation_timeout,
            **kwargs,
        )
