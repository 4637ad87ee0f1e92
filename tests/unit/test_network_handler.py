"""Tests for the network and subnetwork handlers."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from gcp_env_provisioner.core.state import ResourceInstance
from gcp_env_provisioner.core.waiter import OperationError
from gcp_env_provisioner.engine.handlers import EngineContext
from gcp_env_provisioner.engine.network_handler import NetworkHandler, SubnetworkHandler
from gcp_env_provisioner.resources.network import NetworkResource, SubnetworkResource

COMPUTE = "https://www.googleapis.com/compute/v1/"
DONE = {"name": "op-1", "status": "DONE"}
NETWORK_PATH = "projects/dev-env-dev/global/networks/dev-vpc"


def _not_found() -> HttpError:
    return HttpError(httplib2.Response({"status": 404}), b"not found")


def _instance(address: str, attrs: dict[str, Any]) -> ResourceInstance:
    now = datetime.now(UTC)
    return ResourceInstance(
        address=address,
        resource_type=address.split(".", 1)[0],
        name=attrs["name"],
        attributes=attrs,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def compute(apis: dict[str, MagicMock]) -> MagicMock:
    return apis.setdefault("compute", MagicMock())


def _network(routing_mode: str = "REGIONAL") -> dict[str, Any]:
    return {
        "name": "dev-vpc",
        "autoCreateSubnetworks": False,
        "routingConfig": {"routingMode": routing_mode},
        "selfLink": COMPUTE + NETWORK_PATH,
    }


def _subnet(**overrides: Any) -> dict[str, Any]:
    subnet = {
        "name": "subnet-gke",
        "network": COMPUTE + NETWORK_PATH,
        "ipCidrRange": "10.0.0.0/20",
        "secondaryIpRanges": [
            {"rangeName": "pods", "ipCidrRange": "10.4.0.0/14"},
            {"rangeName": "services", "ipCidrRange": "10.8.0.0/20"},
        ],
        "privateIpGoogleAccess": True,
        "fingerprint": "abc=",
        "selfLink": COMPUTE + "projects/dev-env-dev/regions/us-central1/subnetworks/subnet-gke",
    }
    subnet.update(overrides)
    return subnet


def _desired_subnet(**overrides: Any) -> SubnetworkResource:
    fields: dict[str, Any] = {
        "name": "subnet-gke",
        "project": "dev-env-dev",
        "network": NETWORK_PATH,
        "region": "us-central1",
        "ip_cidr_range": "10.0.0.0/20",
        "secondary_ranges": {"pods": "10.4.0.0/14", "services": "10.8.0.0/20"},
    }
    fields.update(overrides)
    return SubnetworkResource(**fields)


class TestNetworkHandler:
    def test_create_inserts_custom_mode_network(
        self, ctx: EngineContext, compute: MagicMock
    ) -> None:
        networks = compute.networks.return_value
        networks.insert.return_value.execute.return_value = DONE
        networks.get.return_value.execute.return_value = _network()

        desired = NetworkResource(name="dev-vpc", project="dev-env-dev", labels={"env": "dev"})
        attrs = NetworkHandler().create(ctx, desired)

        networks.insert.assert_called_once_with(
            project="dev-env-dev",
            body={
                "name": "dev-vpc",
                "autoCreateSubnetworks": False,
                "routingConfig": {"routingMode": "REGIONAL"},
            },
        )
        assert attrs["self_link"] == NETWORK_PATH
        assert attrs["labels"] == {"env": "dev"}
        assert attrs["routing_mode"] == "REGIONAL"

    def test_create_polls_running_operation(self, ctx: EngineContext, compute: MagicMock) -> None:
        networks = compute.networks.return_value
        networks.insert.return_value.execute.return_value = {"name": "op-1", "status": "RUNNING"}
        ops = compute.globalOperations.return_value
        ops.get.return_value.execute.side_effect = [
            {"name": "op-1", "status": "RUNNING"},
            DONE,
        ]
        networks.get.return_value.execute.return_value = _network()

        NetworkHandler().create(ctx, NetworkResource(name="dev-vpc", project="dev-env-dev"))

        ops.get.assert_called_with(project="dev-env-dev", operation="op-1")
        assert ops.get.return_value.execute.call_count == 2

    def test_create_surfaces_operation_error(self, ctx: EngineContext, compute: MagicMock) -> None:
        compute.networks.return_value.insert.return_value.execute.return_value = {
            "name": "op-1",
            "status": "DONE",
            "error": {"errors": [{"message": "Quota 'NETWORKS' exceeded"}]},
        }

        with pytest.raises(OperationError, match="Quota 'NETWORKS' exceeded"):
            NetworkHandler().create(ctx, NetworkResource(name="dev-vpc", project="dev-env-dev"))

    def test_read_missing_returns_none(self, ctx: EngineContext, compute: MagicMock) -> None:
        compute.networks.return_value.get.return_value.execute.side_effect = _not_found()
        prior = _instance("gcp_network.dev-vpc", {"name": "dev-vpc", "project": "dev-env-dev"})
        assert NetworkHandler().read(ctx, prior) is None

    def test_read_echoes_stored_labels(self, ctx: EngineContext, compute: MagicMock) -> None:
        compute.networks.return_value.get.return_value.execute.return_value = _network("GLOBAL")
        prior = _instance(
            "gcp_network.dev-vpc",
            {"name": "dev-vpc", "project": "dev-env-dev", "labels": {"env": "dev"}},
        )
        attrs = NetworkHandler().read(ctx, prior)
        assert attrs is not None
        assert attrs["labels"] == {"env": "dev"}
        assert attrs["routing_mode"] == "GLOBAL"

    def test_update_patches_routing_mode(self, ctx: EngineContext, compute: MagicMock) -> None:
        networks = compute.networks.return_value
        networks.patch.return_value.execute.return_value = DONE
        networks.get.return_value.execute.return_value = _network("GLOBAL")
        prior = _instance(
            "gcp_network.dev-vpc",
            {
                "name": "dev-vpc",
                "project": "dev-env-dev",
                "routing_mode": "REGIONAL",
                "auto_create_subnetworks": False,
            },
        )
        desired = NetworkResource(name="dev-vpc", project="dev-env-dev", routing_mode="GLOBAL")

        attrs = NetworkHandler().update(ctx, desired, prior)

        networks.patch.assert_called_once_with(
            project="dev-env-dev",
            network="dev-vpc",
            body={"routingConfig": {"routingMode": "GLOBAL"}},
        )
        assert attrs["routing_mode"] == "GLOBAL"

    def test_delete_tolerates_missing(self, ctx: EngineContext, compute: MagicMock) -> None:
        compute.networks.return_value.delete.return_value.execute.side_effect = _not_found()
        prior = _instance("gcp_network.dev-vpc", {"name": "dev-vpc", "project": "dev-env-dev"})
        NetworkHandler().delete(ctx, prior)
        compute.globalOperations.return_value.get.assert_not_called()

    def test_delete_propagates_other_errors(self, ctx: EngineContext, compute: MagicMock) -> None:
        compute.networks.return_value.delete.return_value.execute.side_effect = HttpError(
            httplib2.Response({"status": 400}), b"resource in use"
        )
        prior = _instance("gcp_network.dev-vpc", {"name": "dev-vpc", "project": "dev-env-dev"})
        with pytest.raises(HttpError):
            NetworkHandler().delete(ctx, prior)

    def test_validate_rejects_auto_mode(self, ctx: EngineContext) -> None:
        desired = NetworkResource(
            name="dev-vpc", project="dev-env-dev", auto_create_subnetworks=True
        )
        assert NetworkHandler().validate(ctx, desired)


class TestSubnetworkHandler:
    def test_create_sends_secondary_ranges(self, ctx: EngineContext, compute: MagicMock) -> None:
        subnets = compute.subnetworks.return_value
        subnets.insert.return_value.execute.return_value = DONE
        subnets.get.return_value.execute.return_value = _subnet()

        attrs = SubnetworkHandler().create(ctx, _desired_subnet())

        body = subnets.insert.call_args.kwargs["body"]
        assert body["network"] == NETWORK_PATH
        assert body["secondaryIpRanges"] == [
            {"rangeName": "pods", "ipCidrRange": "10.4.0.0/14"},
            {"rangeName": "services", "ipCidrRange": "10.8.0.0/20"},
        ]
        assert attrs["network"] == NETWORK_PATH
        assert attrs["secondary_ranges"] == {"pods": "10.4.0.0/14", "services": "10.8.0.0/20"}
        assert attrs["self_link"].startswith("projects/dev-env-dev/regions/us-central1/")

    def test_update_expands_primary_range(self, ctx: EngineContext, compute: MagicMock) -> None:
        subnets = compute.subnetworks.return_value
        subnets.expandIpCidrRange.return_value.execute.return_value = DONE
        subnets.get.return_value.execute.return_value = _subnet(ipCidrRange="10.0.0.0/19")
        prior = _instance(
            "gcp_subnetwork.subnet-gke",
            SubnetworkHandler()._read_attrs("dev-env-dev", "us-central1", _subnet(), {}),
        )

        attrs = SubnetworkHandler().update(ctx, _desired_subnet(ip_cidr_range="10.0.0.0/19"), prior)

        subnets.expandIpCidrRange.assert_called_once_with(
            project="dev-env-dev",
            region="us-central1",
            subnetwork="subnet-gke",
            body={"ipCidrRange": "10.0.0.0/19"},
        )
        subnets.patch.assert_not_called()
        subnets.setPrivateIpGoogleAccess.assert_not_called()
        assert attrs["ip_cidr_range"] == "10.0.0.0/19"

    def test_update_patches_secondary_ranges_with_fingerprint(
        self, ctx: EngineContext, compute: MagicMock
    ) -> None:
        subnets = compute.subnetworks.return_value
        subnets.patch.return_value.execute.return_value = DONE
        subnets.get.return_value.execute.return_value = _subnet()
        prior = _instance(
            "gcp_subnetwork.subnet-gke",
            SubnetworkHandler()._read_attrs("dev-env-dev", "us-central1", _subnet(), {}),
        )
        desired = _desired_subnet(secondary_ranges={"pods": "10.4.0.0/14"})

        SubnetworkHandler().update(ctx, desired, prior)

        body = subnets.patch.call_args.kwargs["body"]
        assert body["fingerprint"] == "abc="
        assert body["secondaryIpRanges"] == [{"rangeName": "pods", "ipCidrRange": "10.4.0.0/14"}]

    def test_update_refuses_region_change(self, ctx: EngineContext, compute: MagicMock) -> None:
        prior = _instance(
            "gcp_subnetwork.subnet-gke",
            SubnetworkHandler()._read_attrs("dev-env-dev", "us-central1", _subnet(), {}),
        )
        with pytest.raises(RuntimeError, match="immutable fields: region"):
            SubnetworkHandler().update(ctx, _desired_subnet(region="europe-west1"), prior)
        compute.subnetworks.return_value.patch.assert_not_called()

    def test_validate_accepts_disjoint_ranges(self, ctx: EngineContext) -> None:
        assert SubnetworkHandler().validate(ctx, _desired_subnet()) == []

    def test_validate_reports_overlap(self, ctx: EngineContext) -> None:
        desired = _desired_subnet(secondary_ranges={"pods": "10.0.8.0/21"})
        errors = SubnetworkHandler().validate(ctx, desired)
        assert len(errors) == 1
        assert "overlaps primary" in errors[0]

    def test_validate_reports_invalid_cidr(self, ctx: EngineContext) -> None:
        errors = SubnetworkHandler().validate(ctx, _desired_subnet(ip_cidr_range="10.0.0.300/20"))
        assert errors
        assert "invalid ip_cidr_range" in errors[0]
