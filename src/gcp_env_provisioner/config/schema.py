"""Configuration models for YAML-based environment definitions."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, SecretStr, StrictBool
from pydantic_settings import BaseSettings, SettingsConfigDict

from gcp_env_provisioner.resources.gke import CLOUD_PLATFORM_SCOPE

DEFAULT_APIS: list[str] = [
    "compute.googleapis.com",
    "container.googleapis.com",
    "sqladmin.googleapis.com",
    "servicenetworking.googleapis.com",
    "redis.googleapis.com",
    "pubsub.googleapis.com",
]


class ProviderConfig(BaseSettings):
    """Google Cloud connection settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``GCP_`` prefix.  Constructor kwargs take precedence.

    ``credentials`` (a service-account key, as JSON text or a file path) is
    typically provided via ``GCP_CREDENTIALS`` rather than YAML to avoid
    committing secrets to version control. Without it, Application Default
    Credentials are used.
    """

    model_config = SettingsConfigDict(env_prefix="GCP_", extra="forbid")

    environment: str = Field(default="dev", pattern=r"^[a-z][a-z0-9-]{0,19}$")
    region: str = "us-central1"
    credentials: SecretStr | None = None
    poll_interval: float = Field(default=5.0, gt=0)
    operation_timeout: float = Field(default=3600.0, gt=0)


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


def _none_to_dict(v: Any) -> Any:
    return v if v is not None else {}


class _Spec(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ComponentFlags(_Spec):
    """Feature toggles. Only real booleans are accepted."""

    gke: StrictBool = False
    databases: StrictBool = False
    redis: StrictBool = False
    pubsub: StrictBool = False


class SubnetSpec(_Spec):
    cidr: str
    region: str | None = None
    secondary_ranges: Annotated[dict[str, str], BeforeValidator(_none_to_dict)] = {}
    private_google_access: bool = True


class NodePoolSpec(_Spec):
    name: str = "default-pool"
    machine_type: str = "e2-standard-4"
    min_node_count: int = Field(default=1, ge=0)
    max_node_count: int = Field(default=3, ge=1)
    disk_size_gb: int = Field(default=100, ge=10)
    preemptible: bool = False
    oauth_scopes: list[str] = Field(default_factory=lambda: [CLOUD_PLATFORM_SCOPE])


class GKEConfig(_Spec):
    """GKE cluster settings.

    ``subnet_name`` must name an entry of ``subnets`` when the network is
    created; the pod and service range names must be secondary ranges of it.
    """

    name: str | None = None
    location: str | None = None
    subnet_name: str | None = None
    release_channel: Literal["RAPID", "REGULAR", "STABLE", "UNSPECIFIED"] = "REGULAR"
    pods_range_name: str | None = None
    services_range_name: str | None = None
    private_nodes: bool = True
    master_ipv4_cidr: str | None = "172.16.0.0/28"
    node_pools: list[NodePoolSpec] = Field(default_factory=lambda: [NodePoolSpec()])


class DatabaseSpec(_Spec):
    """One Cloud SQL instance and the logical databases inside it."""

    name: str
    region: str | None = None
    database_version: str = "POSTGRES_15"
    tier: str = "db-custom-2-7680"
    availability_type: Literal["ZONAL", "REGIONAL"] = "ZONAL"
    disk_size_gb: int = Field(default=20, ge=10)
    deletion_protection: bool = False
    databases: Annotated[list[str], BeforeValidator(_none_to_list)] = []


class RedisConfig(_Spec):
    name: str | None = None
    region: str | None = None
    tier: Literal["BASIC", "STANDARD_HA"] = "BASIC"
    memory_size_gb: int = Field(default=1, ge=1)
    redis_version: str = "REDIS_7_0"
    connect_mode: Literal["DIRECT_PEERING", "PRIVATE_SERVICE_ACCESS"] = "DIRECT_PEERING"


def _topic_entry(v: Any) -> Any:
    return {"name": v} if isinstance(v, str) else v


class TopicSpec(_Spec):
    name: str
    message_retention_duration: str | None = None


class PubSubConfig(_Spec):
    topics: list[Annotated[TopicSpec, BeforeValidator(_topic_entry)]] = []


class EnvironmentSpec(_Spec):
    """Desired state of one environment, validated straight from YAML."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    state_path: Path | None = None

    # Project
    create_project: bool = True
    existing_project_id: str | None = None
    project_id: str | None = None
    project_prefix: str = "dev-env"
    billing_account: str | None = None
    folder_id: str | None = None
    labels: Annotated[dict[str, str], BeforeValidator(_none_to_dict)] = {}

    enable_components: ComponentFlags = Field(default_factory=ComponentFlags)
    enabled_apis: list[str] = Field(default_factory=lambda: list(DEFAULT_APIS))

    # Network
    create_network: bool = True
    network_name: str | None = None
    existing_network: str | None = None
    existing_subnetwork: str | None = None
    subnets: Annotated[dict[str, SubnetSpec], BeforeValidator(_none_to_dict)] = {}

    # Components
    gke_config: GKEConfig | None = None
    databases: Annotated[list[DatabaseSpec], BeforeValidator(_none_to_list)] = []
    redis_config: RedisConfig | None = None
    pubsub_config: PubSubConfig | None = None

    config_dir: Path = Path()

    @property
    def environment(self) -> str:
        return self.provider.environment

    @property
    def state_file(self) -> Path:
        """State file for the selected environment."""
        if self.state_path is not None:
            return self.state_path
        return Path(".gcp-env") / f"{self.environment}.state.json"

    @property
    def resolved_network_name(self) -> str:
        return self.network_name or f"{self.environment}-vpc"

    @property
    def resolved_project_id(self) -> str | None:
        """Owning project of every node (None when an existing id is missing)."""
        if not self.create_project:
            return self.existing_project_id or None
        return self.project_id or f"{self.project_prefix}-{self.environment}"
