"""VPC network and subnetwork resource models."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import Field

from gcp_env_provisioner.resources.base import Resource


class NetworkResource(Resource):
    """A custom-mode VPC network."""

    resource_type: ClassVar[str] = "gcp_network"
    feature: ClassVar[str] = "network"
    plan_priority: ClassVar[int] = 20

    routing_mode: Literal["REGIONAL", "GLOBAL"] = "REGIONAL"
    auto_create_subnetworks: bool = False


class SubnetworkResource(Resource):
    """A regional subnetwork with optional secondary ranges (GKE pods/services)."""

    resource_type: ClassVar[str] = "gcp_subnetwork"
    feature: ClassVar[str] = "network"
    plan_priority: ClassVar[int] = 30

    network: str
    region: str
    ip_cidr_range: str
    secondary_ranges: dict[str, str] = Field(default_factory=dict)
    private_google_access: bool = True
