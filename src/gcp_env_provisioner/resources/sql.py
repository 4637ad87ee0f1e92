"""Private services access and Cloud SQL resource models."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import Field

from gcp_env_provisioner.resources.base import Resource


class PrivateServiceAccessResource(Resource):
    """Reserved peering range plus the service networking connection.

    The node name doubles as the name of the reserved global address.
    """

    resource_type: ClassVar[str] = "gcp_private_service_access"
    feature: ClassVar[str] = "databases"
    plan_priority: ClassVar[int] = 40

    network: str
    prefix_length: int = Field(default=16, ge=8, le=29)


class SQLInstanceResource(Resource):
    """A Cloud SQL instance with a private IP on the environment network."""

    resource_type: ClassVar[str] = "gcp_sql_instance"
    feature: ClassVar[str] = "databases"
    plan_priority: ClassVar[int] = 50

    region: str
    network: str
    database_version: str = "POSTGRES_15"
    tier: str = "db-custom-2-7680"
    availability_type: Literal["ZONAL", "REGIONAL"] = "ZONAL"
    disk_size_gb: int = Field(default=20, ge=10)
    deletion_protection: bool = False


class SQLDatabaseResource(Resource):
    """A logical database inside a Cloud SQL instance.

    Named ``<instance>.<database>`` so names stay unique across instances.
    """

    resource_type: ClassVar[str] = "gcp_sql_database"
    feature: ClassVar[str] = "databases"
    plan_priority: ClassVar[int] = 60

    instance: str
    database: str

    def parent_address(self) -> str:
        return f"gcp_sql_instance.{self.instance}"
