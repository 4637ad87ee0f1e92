"""GKE cluster and node pool handlers via the Kubernetes Engine API."""

from __future__ import annotations

import ipaddress
import logging
from typing import TYPE_CHECKING, Any

from googleapiclient.errors import HttpError

from gcp_env_provisioner.core.provider import is_not_found
from gcp_env_provisioner.engine.handlers import (
    PlanContext,
    ResourceHandler,
    check_immutable,
    common_attrs,
)

if TYPE_CHECKING:
    from gcp_env_provisioner.core.state import ResourceInstance
    from gcp_env_provisioner.engine.handlers import EngineContext
    from gcp_env_provisioner.resources.gke import GKEClusterResource, GKENodePoolResource

logger = logging.getLogger(__name__)

# Clusters need a node pool at creation; this one is removed once the cluster is up.
BOOTSTRAP_POOL = "bootstrap-pool"


def _cluster_path(project: str, location: str, cluster: str) -> str:
    return f"projects/{project}/locations/{location}/clusters/{cluster}"


def _wait(ctx: EngineContext, project: str, location: str, op: dict[str, Any]) -> dict[str, Any]:
    ops = ctx.provider.api("container").projects().locations().operations()
    name = f"projects/{project}/locations/{location}/operations/{op['name']}"
    return ctx.provider.wait(op, lambda: ops.get(name=name).execute())


class GKEClusterHandler(ResourceHandler["GKEClusterResource"]):
    """CRUD handler for VPC-native GKE clusters."""

    def _clusters(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("container").projects().locations().clusters()

    def _get(self, ctx: EngineContext, path: str) -> dict[str, Any] | None:
        try:
            return self._clusters(ctx).get(name=path).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def _read_attrs(
        self, project: str, location: str, cluster: dict[str, Any]
    ) -> dict[str, Any]:
        network_config = cluster.get("networkConfig", {})
        ip_policy = cluster.get("ipAllocationPolicy", {})
        private = cluster.get("privateClusterConfig", {})
        attrs = common_attrs(cluster["name"], project, cluster.get("resourceLabels"))
        attrs.update(
            {
                "location": location,
                "network": network_config.get("network"),
                "subnetwork": network_config.get("subnetwork"),
                "release_channel": cluster.get("releaseChannel", {}).get("channel", "UNSPECIFIED"),
                "pods_range_name": ip_policy.get("clusterSecondaryRangeName"),
                "services_range_name": ip_policy.get("servicesSecondaryRangeName"),
                "private_nodes": private.get("enablePrivateNodes", False),
                "master_ipv4_cidr": private.get("masterIpv4CidrBlock"),
                "endpoint": cluster.get("endpoint"),
                "status": cluster.get("status"),
                "self_link": cluster.get("selfLink"),
            }
        )
        return attrs

    def _require(self, ctx: EngineContext, desired: GKEClusterResource) -> dict[str, Any]:
        cluster = self._get(ctx, _cluster_path(desired.project, desired.location, desired.name))
        if cluster is None:
            raise RuntimeError(f"Cluster '{desired.name}' not found")
        return cluster

    def validate(self, ctx: EngineContext, desired: GKEClusterResource) -> list[str]:
        _ = ctx
        if not desired.private_nodes:
            return []
        if desired.master_ipv4_cidr is None:
            return [f"Cluster '{desired.name}': private nodes require master_ipv4_cidr"]
        try:
            cidr = ipaddress.ip_network(desired.master_ipv4_cidr)
        except ValueError as exc:
            return [f"Cluster '{desired.name}': invalid master_ipv4_cidr: {exc}"]
        if cidr.prefixlen != 28:
            return [f"Cluster '{desired.name}': master_ipv4_cidr must be a /28, got {cidr}"]
        return []

    def create(self, ctx: EngineContext, desired: GKEClusterResource) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": desired.name,
            "network": desired.network,
            "subnetwork": desired.subnetwork,
            "resourceLabels": dict(desired.labels),
            "releaseChannel": {"channel": desired.release_channel},
            "nodePools": [{"name": BOOTSTRAP_POOL, "initialNodeCount": 1}],
            "ipAllocationPolicy": {"useIpAliases": True},
        }
        if desired.pods_range_name:
            body["ipAllocationPolicy"]["clusterSecondaryRangeName"] = desired.pods_range_name
        if desired.services_range_name:
            body["ipAllocationPolicy"]["servicesSecondaryRangeName"] = desired.services_range_name
        if desired.private_nodes:
            body["privateClusterConfig"] = {
                "enablePrivateNodes": True,
                "masterIpv4CidrBlock": desired.master_ipv4_cidr,
            }

        logger.info("Creating GKE cluster %s in %s", desired.name, desired.location)
        op = (
            self._clusters(ctx)
            .create(
                parent=f"projects/{desired.project}/locations/{desired.location}",
                body={"cluster": body},
            )
            .execute()
        )
        _wait(ctx, desired.project, desired.location, op)

        pool_path = (
            _cluster_path(desired.project, desired.location, desired.name)
            + f"/nodePools/{BOOTSTRAP_POOL}"
        )
        logger.debug("Removing %s from %s", BOOTSTRAP_POOL, desired.name)
        op = self._clusters(ctx).nodePools().delete(name=pool_path).execute()
        _wait(ctx, desired.project, desired.location, op)

        return self._read_attrs(desired.project, desired.location, self._require(ctx, desired))

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        location = prior.attributes["location"]
        cluster = self._get(ctx, _cluster_path(project, location, prior.name))
        if cluster is None:
            return None
        return self._read_attrs(project, location, cluster)

    def update(
        self, ctx: EngineContext, desired: GKEClusterResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        check_immutable(
            desired,
            prior,
            [
                "project",
                "location",
                "network",
                "subnetwork",
                "pods_range_name",
                "services_range_name",
                "private_nodes",
                "master_ipv4_cidr",
            ],
        )
        path = _cluster_path(desired.project, desired.location, desired.name)
        clusters = self._clusters(ctx)

        if desired.release_channel != prior.attributes.get("release_channel"):
            op = clusters.update(
                name=path,
                body={"update": {"desiredReleaseChannel": {"channel": desired.release_channel}}},
            ).execute()
            _wait(ctx, desired.project, desired.location, op)

        if dict(desired.labels) != prior.attributes.get("labels"):
            current = self._require(ctx, desired)
            op = clusters.setResourceLabels(
                name=path,
                body={
                    "resourceLabels": dict(desired.labels),
                    "labelFingerprint": current.get("labelFingerprint"),
                },
            ).execute()
            _wait(ctx, desired.project, desired.location, op)

        return self._read_attrs(desired.project, desired.location, self._require(ctx, desired))

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        project = prior.attributes["project"]
        location = prior.attributes["location"]
        logger.info("Deleting GKE cluster %s", prior.name)
        try:
            op = (
                self._clusters(ctx)
                .delete(name=_cluster_path(project, location, prior.name))
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        _wait(ctx, project, location, op)


class GKENodePoolHandler(ResourceHandler["GKENodePoolResource"]):
    """CRUD handler for autoscaled node pools."""

    def _pools(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("container").projects().locations().clusters().nodePools()

    @staticmethod
    def _path(project: str, location: str, cluster: str, pool: str) -> str:
        return _cluster_path(project, location, cluster) + f"/nodePools/{pool}"

    def _get(self, ctx: EngineContext, path: str) -> dict[str, Any] | None:
        try:
            return self._pools(ctx).get(name=path).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def _read_attrs(
        self, project: str, location: str, cluster: str, pool: dict[str, Any]
    ) -> dict[str, Any]:
        config = pool.get("config", {})
        autoscaling = pool.get("autoscaling", {})
        attrs = common_attrs(pool["name"], project, config.get("resourceLabels"))
        attrs.update(
            {
                "cluster": cluster,
                "location": location,
                "machine_type": config.get("machineType"),
                "min_node_count": autoscaling.get("minNodeCount", 0),
                "max_node_count": autoscaling.get("maxNodeCount", 0),
                "disk_size_gb": config.get("diskSizeGb"),
                "preemptible": config.get("preemptible", False),
                "oauth_scopes": list(config.get("oauthScopes", [])),
                "status": pool.get("status"),
                "self_link": pool.get("selfLink"),
            }
        )
        return attrs

    def _require(self, ctx: EngineContext, desired: GKENodePoolResource) -> dict[str, Any]:
        path = self._path(desired.project, desired.location, desired.cluster, desired.name)
        pool = self._get(ctx, path)
        if pool is None:
            raise RuntimeError(f"Node pool '{desired.name}' not found")
        return pool

    def validate(self, ctx: EngineContext, desired: GKENodePoolResource) -> list[str]:
        _ = ctx
        if desired.min_node_count > desired.max_node_count:
            return [
                f"Node pool '{desired.name}': min_node_count ({desired.min_node_count}) "
                f"exceeds max_node_count ({desired.max_node_count})"
            ]
        return []

    def validate_plan(
        self, ctx: EngineContext, desired: GKENodePoolResource, plan_ctx: PlanContext
    ) -> list[str]:
        _ = ctx
        if not plan_ctx.has_resource(desired.cluster, resource_type="gcp_gke_cluster"):
            return [f"Node pool '{desired.name}' references unknown cluster '{desired.cluster}'"]
        return []

    def create(self, ctx: EngineContext, desired: GKENodePoolResource) -> dict[str, Any]:
        body = {
            "nodePool": {
                "name": desired.name,
                "initialNodeCount": max(desired.min_node_count, 1),
                "autoscaling": {
                    "enabled": True,
                    "minNodeCount": desired.min_node_count,
                    "maxNodeCount": desired.max_node_count,
                },
                "config": {
                    "machineType": desired.machine_type,
                    "diskSizeGb": desired.disk_size_gb,
                    "preemptible": desired.preemptible,
                    "oauthScopes": list(desired.oauth_scopes),
                    "resourceLabels": dict(desired.labels),
                },
            }
        }
        logger.info("Creating node pool %s on %s", desired.name, desired.cluster)
        op = (
            self._pools(ctx)
            .create(
                parent=_cluster_path(desired.project, desired.location, desired.cluster),
                body=body,
            )
            .execute()
        )
        _wait(ctx, desired.project, desired.location, op)
        return self._read_attrs(
            desired.project, desired.location, desired.cluster, self._require(ctx, desired)
        )

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        location = prior.attributes["location"]
        cluster = prior.attributes["cluster"]
        pool = self._get(ctx, self._path(project, location, cluster, prior.name))
        if pool is None:
            return None
        return self._read_attrs(project, location, cluster, pool)

    def update(
        self, ctx: EngineContext, desired: GKENodePoolResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        check_immutable(
            desired, prior, ["project", "location", "cluster", "preemptible", "oauth_scopes"]
        )
        path = self._path(desired.project, desired.location, desired.cluster, desired.name)
        pools = self._pools(ctx)

        if (desired.min_node_count, desired.max_node_count) != (
            prior.attributes.get("min_node_count"),
            prior.attributes.get("max_node_count"),
        ):
            op = pools.setAutoscaling(
                name=path,
                body={
                    "autoscaling": {
                        "enabled": True,
                        "minNodeCount": desired.min_node_count,
                        "maxNodeCount": desired.max_node_count,
                    }
                },
            ).execute()
            _wait(ctx, desired.project, desired.location, op)

        node_update: dict[str, Any] = {}
        if desired.machine_type != prior.attributes.get("machine_type"):
            node_update["machineType"] = desired.machine_type
        if desired.disk_size_gb != prior.attributes.get("disk_size_gb"):
            node_update["diskSizeGb"] = desired.disk_size_gb
        if dict(desired.labels) != prior.attributes.get("labels"):
            node_update["resourceLabels"] = {"labels": dict(desired.labels)}
        if node_update:
            op = pools.update(name=path, body=node_update).execute()
            _wait(ctx, desired.project, desired.location, op)

        return self._read_attrs(
            desired.project, desired.location, desired.cluster, self._require(ctx, desired)
        )

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        project = prior.attributes["project"]
        location = prior.attributes["location"]
        cluster = prior.attributes["cluster"]
        logger.info("Deleting node pool %s from %s", prior.name, cluster)
        try:
            op = (
                self._pools(ctx)
                .delete(name=self._path(project, location, cluster, prior.name))
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        _wait(ctx, project, location, op)
