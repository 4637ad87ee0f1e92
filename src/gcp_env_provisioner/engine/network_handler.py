"""VPC network and subnetwork handlers via the Compute Engine API."""

from __future__ import annotations

import ipaddress
import logging
from typing import TYPE_CHECKING, Any

from googleapiclient.errors import HttpError

from gcp_env_provisioner.core.provider import is_not_found, relative_link
from gcp_env_provisioner.engine.handlers import ResourceHandler, check_immutable, common_attrs

if TYPE_CHECKING:
    from gcp_env_provisioner.core.state import ResourceInstance
    from gcp_env_provisioner.engine.handlers import EngineContext
    from gcp_env_provisioner.resources.network import NetworkResource, SubnetworkResource

logger = logging.getLogger(__name__)


def wait_global(ctx: EngineContext, project: str, op: dict[str, Any]) -> dict[str, Any]:
    """Wait for a global Compute Engine operation."""
    ops = ctx.provider.api("compute").globalOperations()
    return ctx.provider.wait(
        op, lambda: ops.get(project=project, operation=op["name"]).execute()
    )


def wait_region(ctx: EngineContext, project: str, region: str, op: dict[str, Any]) -> dict[str, Any]:
    """Wait for a regional Compute Engine operation."""
    ops = ctx.provider.api("compute").regionOperations()
    return ctx.provider.wait(
        op, lambda: ops.get(project=project, region=region, operation=op["name"]).execute()
    )


class NetworkHandler(ResourceHandler["NetworkResource"]):
    """CRUD handler for custom-mode VPC networks."""

    def _networks(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("compute").networks()

    def _get(self, ctx: EngineContext, project: str, name: str) -> dict[str, Any] | None:
        try:
            return self._networks(ctx).get(project=project, network=name).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def _read_attrs(
        self, project: str, network: dict[str, Any], labels: dict[str, str]
    ) -> dict[str, Any]:
        # Networks carry no labels; the stored ones are echoed back.
        attrs = common_attrs(network["name"], project, labels)
        attrs.update(
            {
                "routing_mode": network.get("routingConfig", {}).get("routingMode", "REGIONAL"),
                "auto_create_subnetworks": network.get("autoCreateSubnetworks", False),
                "self_link": relative_link(network.get("selfLink")),
            }
        )
        return attrs

    def validate(self, ctx: EngineContext, desired: NetworkResource) -> list[str]:
        _ = ctx
        if desired.auto_create_subnetworks:
            return [f"Network '{desired.name}' must be custom-mode (auto_create_subnetworks=false)"]
        return []

    def create(self, ctx: EngineContext, desired: NetworkResource) -> dict[str, Any]:
        logger.info("Creating network %s in %s", desired.name, desired.project)
        op = (
            self._networks(ctx)
            .insert(
                project=desired.project,
                body={
                    "name": desired.name,
                    "autoCreateSubnetworks": desired.auto_create_subnetworks,
                    "routingConfig": {"routingMode": desired.routing_mode},
                },
            )
            .execute()
        )
        wait_global(ctx, desired.project, op)
        network = self._get(ctx, desired.project, desired.name)
        if network is None:
            raise RuntimeError(f"Network '{desired.name}' not found after creation")
        return self._read_attrs(desired.project, network, desired.labels)

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        network = self._get(ctx, project, prior.name)
        if network is None:
            return None
        return self._read_attrs(project, network, prior.attributes.get("labels", {}))

    def update(
        self, ctx: EngineContext, desired: NetworkResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        check_immutable(desired, prior, ["project", "auto_create_subnetworks"])
        if desired.routing_mode != prior.attributes.get("routing_mode"):
            op = (
                self._networks(ctx)
                .patch(
                    project=desired.project,
                    network=desired.name,
                    body={"routingConfig": {"routingMode": desired.routing_mode}},
                )
                .execute()
            )
            wait_global(ctx, desired.project, op)
        network = self._get(ctx, desired.project, desired.name)
        if network is None:
            raise RuntimeError(f"Network '{desired.name}' not found after update")
        return self._read_attrs(desired.project, network, desired.labels)

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        project = prior.attributes["project"]
        logger.info("Deleting network %s", prior.name)
        try:
            op = self._networks(ctx).delete(project=project, network=prior.name).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        wait_global(ctx, project, op)


class SubnetworkHandler(ResourceHandler["SubnetworkResource"]):
    """CRUD handler for regional subnetworks.

    The primary range can only grow (``expandIpCidrRange``); secondary ranges
    are patched with the subnetwork fingerprint.
    """

    def _subnets(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("compute").subnetworks()

    def _get(
        self, ctx: EngineContext, project: str, region: str, name: str
    ) -> dict[str, Any] | None:
        try:
            return (
                self._subnets(ctx)
                .get(project=project, region=region, subnetwork=name)
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def _read_attrs(
        self, project: str, region: str, subnet: dict[str, Any], labels: dict[str, str]
    ) -> dict[str, Any]:
        attrs = common_attrs(subnet["name"], project, labels)
        attrs.update(
            {
                "network": relative_link(subnet.get("network")),
                "region": region,
                "ip_cidr_range": subnet.get("ipCidrRange"),
                "secondary_ranges": {
                    r["rangeName"]: r["ipCidrRange"] for r in subnet.get("secondaryIpRanges", [])
                },
                "private_google_access": subnet.get("privateIpGoogleAccess", False),
                "self_link": relative_link(subnet.get("selfLink")),
            }
        )
        return attrs

    def _require(
        self, ctx: EngineContext, desired: SubnetworkResource, action: str
    ) -> dict[str, Any]:
        subnet = self._get(ctx, desired.project, desired.region, desired.name)
        if subnet is None:
            raise RuntimeError(f"Subnetwork '{desired.name}' not found after {action}")
        return subnet

    def validate(self, ctx: EngineContext, desired: SubnetworkResource) -> list[str]:
        _ = ctx
        errors: list[str] = []
        try:
            primary = ipaddress.ip_network(desired.ip_cidr_range)
        except ValueError as exc:
            return [f"Subnetwork '{desired.name}': invalid ip_cidr_range: {exc}"]

        seen = [("primary", primary)]
        for range_name, cidr in sorted(desired.secondary_ranges.items()):
            try:
                net = ipaddress.ip_network(cidr)
            except ValueError as exc:
                errors.append(f"Subnetwork '{desired.name}': invalid range '{range_name}': {exc}")
                continue
            errors.extend(
                f"Subnetwork '{desired.name}': range '{range_name}' ({cidr}) overlaps {other}"
                for other, other_net in seen
                if net.overlaps(other_net)
            )
            seen.append((range_name, net))
        return errors

    def create(self, ctx: EngineContext, desired: SubnetworkResource) -> dict[str, Any]:
        logger.info("Creating subnetwork %s in %s", desired.name, desired.region)
        op = (
            self._subnets(ctx)
            .insert(
                project=desired.project,
                region=desired.region,
                body={
                    "name": desired.name,
                    "network": desired.network,
                    "ipCidrRange": desired.ip_cidr_range,
                    "privateIpGoogleAccess": desired.private_google_access,
                    "secondaryIpRanges": [
                        {"rangeName": k, "ipCidrRange": v}
                        for k, v in sorted(desired.secondary_ranges.items())
                    ],
                },
            )
            .execute()
        )
        wait_region(ctx, desired.project, desired.region, op)
        subnet = self._require(ctx, desired, "creation")
        return self._read_attrs(desired.project, desired.region, subnet, desired.labels)

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        region = prior.attributes["region"]
        subnet = self._get(ctx, project, region, prior.name)
        if subnet is None:
            return None
        return self._read_attrs(project, region, subnet, prior.attributes.get("labels", {}))

    def update(
        self, ctx: EngineContext, desired: SubnetworkResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        check_immutable(desired, prior, ["project", "network", "region"])
        subnets = self._subnets(ctx)
        scope = {"project": desired.project, "region": desired.region, "subnetwork": desired.name}

        if desired.ip_cidr_range != prior.attributes.get("ip_cidr_range"):
            logger.info("Expanding %s to %s", desired.name, desired.ip_cidr_range)
            op = subnets.expandIpCidrRange(
                **scope, body={"ipCidrRange": desired.ip_cidr_range}
            ).execute()
            wait_region(ctx, desired.project, desired.region, op)

        if desired.private_google_access != prior.attributes.get("private_google_access"):
            op = subnets.setPrivateIpGoogleAccess(
                **scope, body={"privateIpGoogleAccess": desired.private_google_access}
            ).execute()
            wait_region(ctx, desired.project, desired.region, op)

        if desired.secondary_ranges != prior.attributes.get("secondary_ranges"):
            current = self._require(ctx, desired, "update")
            op = subnets.patch(
                **scope,
                body={
                    "fingerprint": current.get("fingerprint"),
                    "secondaryIpRanges": [
                        {"rangeName": k, "ipCidrRange": v}
                        for k, v in sorted(desired.secondary_ranges.items())
                    ],
                },
            ).execute()
            wait_region(ctx, desired.project, desired.region, op)

        subnet = self._require(ctx, desired, "update")
        return self._read_attrs(desired.project, desired.region, subnet, desired.labels)

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        project = prior.attributes["project"]
        region = prior.attributes["region"]
        logger.info("Deleting subnetwork %s", prior.name)
        try:
            op = (
                self._subnets(ctx)
                .delete(project=project, region=region, subnetwork=prior.name)
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        wait_region(ctx, project, region, op)
