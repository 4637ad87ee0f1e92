"""Private services access and Cloud SQL handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from googleapiclient.errors import HttpError

from gcp_env_provisioner.core.provider import is_not_found, relative_link
from gcp_env_provisioner.engine.handlers import (
    PlanContext,
    ResourceHandler,
    check_immutable,
    common_attrs,
)
from gcp_env_provisioner.engine.network_handler import wait_global

if TYPE_CHECKING:
    from gcp_env_provisioner.core.state import ResourceInstance
    from gcp_env_provisioner.engine.handlers import EngineContext
    from gcp_env_provisioner.resources.sql import (
        PrivateServiceAccessResource,
        SQLDatabaseResource,
        SQLInstanceResource,
    )

logger = logging.getLogger(__name__)

SERVICE_NETWORKING = "services/servicenetworking.googleapis.com"
PEERING_CONNECTION = f"{SERVICE_NETWORKING}/connections/servicenetworking-googleapis-com"


class PrivateServiceAccessHandler(ResourceHandler["PrivateServiceAccessResource"]):
    """Reserves a VPC peering range and connects it to Google-managed services.

    Cloud SQL private IP and Redis in PRIVATE_SERVICE_ACCESS mode both need
    this connection on the environment network.
    """

    def _addresses(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("compute").globalAddresses()

    def _connections(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("servicenetworking").services().connections()

    def _wait_networking(self, ctx: EngineContext, op: dict[str, Any]) -> dict[str, Any]:
        ops = ctx.provider.api("servicenetworking").operations()
        return ctx.provider.wait(op, lambda: ops.get(name=op["name"]).execute())

    def _consumer_network(self, ctx: EngineContext, project: str, network: str) -> str:
        # Service networking wants the project number in the network path.
        info = (
            ctx.provider.api("cloudresourcemanager")
            .projects()
            .get(name=f"projects/{project}")
            .execute()
        )
        number = info["name"].removeprefix("projects/")
        return f"projects/{number}/global/networks/{network.rsplit('/', 1)[-1]}"

    def _get(self, ctx: EngineContext, project: str, name: str) -> dict[str, Any] | None:
        try:
            return self._addresses(ctx).get(project=project, address=name).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def _read_attrs(
        self, project: str, address: dict[str, Any], labels: dict[str, str]
    ) -> dict[str, Any]:
        attrs = common_attrs(address["name"], project, labels)
        attrs.update(
            {
                "network": relative_link(address.get("network")),
                "prefix_length": address.get("prefixLength"),
                "address": address.get("address"),
                "self_link": relative_link(address.get("selfLink")),
            }
        )
        return attrs

    def create(self, ctx: EngineContext, desired: PrivateServiceAccessResource) -> dict[str, Any]:
        logger.info("Reserving peering range %s on %s", desired.name, desired.network)
        op = (
            self._addresses(ctx)
            .insert(
                project=desired.project,
                body={
                    "name": desired.name,
                    "purpose": "VPC_PEERING",
                    "addressType": "INTERNAL",
                    "prefixLength": desired.prefix_length,
                    "network": desired.network,
                },
            )
            .execute()
        )
        wait_global(ctx, desired.project, op)

        logger.info("Connecting %s to service networking", desired.network)
        op = (
            self._connections(ctx)
            .create(
                parent=SERVICE_NETWORKING,
                body={
                    "network": self._consumer_network(ctx, desired.project, desired.network),
                    "reservedPeeringRanges": [desired.name],
                },
            )
            .execute()
        )
        self._wait_networking(ctx, op)

        address = self._get(ctx, desired.project, desired.name)
        if address is None:
            raise RuntimeError(f"Peering range '{desired.name}' not found after creation")
        return self._read_attrs(desired.project, address, desired.labels)

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        address = self._get(ctx, project, prior.name)
        if address is None:
            return None
        return self._read_attrs(project, address, prior.attributes.get("labels", {}))

    def update(
        self,
        ctx: EngineContext,
        desired: PrivateServiceAccessResource,
        prior: ResourceInstance,
    ) -> dict[str, Any]:
        _ = ctx
        check_immutable(desired, prior, ["project", "network", "prefix_length"])
        return {**prior.attributes, "labels": dict(desired.labels)}

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        project = prior.attributes["project"]
        network = prior.attributes["network"]
        logger.info("Removing service networking connection from %s", network)
        try:
            op = (
                self._connections(ctx)
                .deleteConnection(
                    name=PEERING_CONNECTION,
                    body={"consumerNetwork": self._consumer_network(ctx, project, network)},
                )
                .execute()
            )
            self._wait_networking(ctx, op)
        except HttpError as exc:
            if not is_not_found(exc):
                raise

        try:
            op = self._addresses(ctx).delete(project=project, address=prior.name).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        wait_global(ctx, project, op)


def _wait_sql(ctx: EngineContext, project: str, op: dict[str, Any]) -> dict[str, Any]:
    ops = ctx.provider.api("sqladmin").operations()
    return ctx.provider.wait(
        op, lambda: ops.get(project=project, operation=op["name"]).execute()
    )


class SQLInstanceHandler(ResourceHandler["SQLInstanceResource"]):
    """CRUD handler for Cloud SQL instances with private IP only."""

    def _instances(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("sqladmin").instances()

    def _get(self, ctx: EngineContext, project: str, name: str) -> dict[str, Any] | None:
        try:
            return self._instances(ctx).get(project=project, instance=name).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def _read_attrs(self, project: str, instance: dict[str, Any]) -> dict[str, Any]:
        settings = instance.get("settings", {})
        ip_config = settings.get("ipConfiguration", {})
        private_ip = next(
            (a["ipAddress"] for a in instance.get("ipAddresses", []) if a.get("type") == "PRIVATE"),
            None,
        )
        attrs = common_attrs(instance["name"], project, settings.get("userLabels"))
        attrs.update(
            {
                "region": instance.get("region"),
                "network": ip_config.get("privateNetwork"),
                "database_version": instance.get("databaseVersion"),
                "tier": settings.get("tier"),
                "availability_type": settings.get("availabilityType", "ZONAL"),
                "disk_size_gb": int(settings.get("dataDiskSizeGb", 0)),
                "deletion_protection": settings.get("deletionProtectionEnabled", False),
                "connection_name": instance.get("connectionName"),
                "private_ip": private_ip,
                "self_link": instance.get("selfLink"),
            }
        )
        return attrs

    def _settings(self, desired: SQLInstanceResource) -> dict[str, Any]:
        return {
            "tier": desired.tier,
            "availabilityType": desired.availability_type,
            "dataDiskSizeGb": str(desired.disk_size_gb),
            "userLabels": dict(desired.labels),
            "deletionProtectionEnabled": desired.deletion_protection,
            "ipConfiguration": {"ipv4Enabled": False, "privateNetwork": desired.network},
        }

    def _require(self, ctx: EngineContext, desired: SQLInstanceResource) -> dict[str, Any]:
        instance = self._get(ctx, desired.project, desired.name)
        if instance is None:
            raise RuntimeError(f"SQL instance '{desired.name}' not found")
        return instance

    def create(self, ctx: EngineContext, desired: SQLInstanceResource) -> dict[str, Any]:
        logger.info("Creating Cloud SQL instance %s (%s)", desired.name, desired.database_version)
        op = (
            self._instances(ctx)
            .insert(
                project=desired.project,
                body={
                    "name": desired.name,
                    "region": desired.region,
                    "databaseVersion": desired.database_version,
                    "settings": self._settings(desired),
                },
            )
            .execute()
        )
        _wait_sql(ctx, desired.project, op)
        return self._read_attrs(desired.project, self._require(ctx, desired))

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        instance = self._get(ctx, project, prior.name)
        if instance is None:
            return None
        return self._read_attrs(project, instance)

    def update(
        self, ctx: EngineContext, desired: SQLInstanceResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        check_immutable(desired, prior, ["project", "region", "network", "database_version"])
        op = (
            self._instances(ctx)
            .patch(
                project=desired.project,
                instance=desired.name,
                body={"settings": self._settings(desired)},
            )
            .execute()
        )
        _wait_sql(ctx, desired.project, op)
        return self._read_attrs(desired.project, self._require(ctx, desired))

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        if prior.attributes.get("deletion_protection"):
            raise RuntimeError(
                f"SQL instance '{prior.name}' has deletion protection enabled; "
                "disable it and apply before destroying"
            )
        project = prior.attributes["project"]
        logger.info("Deleting Cloud SQL instance %s", prior.name)
        try:
            op = self._instances(ctx).delete(project=project, instance=prior.name).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        _wait_sql(ctx, project, op)


class SQLDatabaseHandler(ResourceHandler["SQLDatabaseResource"]):
    """CRUD handler for databases inside a Cloud SQL instance."""

    def _databases(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("sqladmin").databases()

    def _get(
        self, ctx: EngineContext, project: str, instance: str, database: str
    ) -> dict[str, Any] | None:
        try:
            return (
                self._databases(ctx)
                .get(project=project, instance=instance, database=database)
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def _read_attrs(
        self, name: str, project: str, db: dict[str, Any], labels: dict[str, str]
    ) -> dict[str, Any]:
        attrs = common_attrs(name, project, labels)
        attrs.update(
            {
                "instance": db.get("instance"),
                "database": db.get("name"),
                "charset": db.get("charset"),
                "self_link": db.get("selfLink"),
            }
        )
        return attrs

    def validate_plan(
        self, ctx: EngineContext, desired: SQLDatabaseResource, plan_ctx: PlanContext
    ) -> list[str]:
        _ = ctx
        if not plan_ctx.has_resource(desired.instance, resource_type="gcp_sql_instance"):
            return [
                f"Database '{desired.name}' references unknown SQL instance '{desired.instance}'"
            ]
        return []

    def create(self, ctx: EngineContext, desired: SQLDatabaseResource) -> dict[str, Any]:
        logger.info("Creating database %s on %s", desired.database, desired.instance)
        op = (
            self._databases(ctx)
            .insert(
                project=desired.project,
                instance=desired.instance,
                body={"name": desired.database, "instance": desired.instance},
            )
            .execute()
        )
        _wait_sql(ctx, desired.project, op)
        db = self._get(ctx, desired.project, desired.instance, desired.database)
        if db is None:
            raise RuntimeError(f"Database '{desired.name}' not found after creation")
        return self._read_attrs(desired.name, desired.project, db, desired.labels)

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        db = self._get(ctx, project, prior.attributes["instance"], prior.attributes["database"])
        if db is None:
            return None
        return self._read_attrs(prior.name, project, db, prior.attributes.get("labels", {}))

    def update(
        self, ctx: EngineContext, desired: SQLDatabaseResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        _ = ctx
        check_immutable(desired, prior, ["project", "instance", "database"])
        # Only labels can differ and databases do not carry any.
        return {**prior.attributes, "labels": dict(desired.labels)}

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        project = prior.attributes["project"]
        logger.info("Deleting database %s", prior.name)
        try:
            op = (
                self._databases(ctx)
                .delete(
                    project=project,
                    instance=prior.attributes["instance"],
                    database=prior.attributes["database"],
                )
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        _wait_sql(ctx, project, op)
