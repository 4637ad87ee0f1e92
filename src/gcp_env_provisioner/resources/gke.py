"""GKE cluster and node pool resource models."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import Field

from gcp_env_provisioner.resources.base import Resource

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class GKEClusterResource(Resource):
    """A VPC-native GKE cluster.

    The default node pool is removed on creation; node pools are managed as
    separate ``gcp_gke_node_pool`` nodes.
    """

    resource_type: ClassVar[str] = "gcp_gke_cluster"
    feature: ClassVar[str] = "gke"
    plan_priority: ClassVar[int] = 50

    location: str
    network: str
    subnetwork: str
    release_channel: Literal["RAPID", "REGULAR", "STABLE", "UNSPECIFIED"] = "REGULAR"
    pods_range_name: str | None = None
    services_range_name: str | None = None
    private_nodes: bool = True
    master_ipv4_cidr: str | None = "172.16.0.0/28"


class GKENodePoolResource(Resource):
    """An autoscaled node pool attached to a cluster."""

    resource_type: ClassVar[str] = "gcp_gke_node_pool"
    feature: ClassVar[str] = "gke"
    plan_priority: ClassVar[int] = 60
    unordered_fields: ClassVar[frozenset[str]] = frozenset({"oauth_scopes"})

    cluster: str
    location: str
    machine_type: str = "e2-standard-4"
    min_node_count: int = Field(default=1, ge=0)
    max_node_count: int = Field(default=3, ge=1)
    disk_size_gb: int = Field(default=100, ge=10)
    preemptible: bool = False
    oauth_scopes: list[str] = Field(default_factory=lambda: [CLOUD_PLATFORM_SCOPE])

    def parent_address(self) -> str:
        return f"gcp_gke_cluster.{self.cluster}"
