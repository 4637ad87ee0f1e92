"""Tests for output collection."""

from __future__ import annotations

from typing import Any

from gcp_env_provisioner.core.state import ResourceInstance, State
from gcp_env_provisioner.engine.outputs import collect_outputs, results_from_state
from gcp_env_provisioner.engine.types import Action, ProvisionResult


def _result(
    address: str,
    attrs: dict[str, Any],
    *,
    success: bool = True,
    action: Action = Action.CREATE,
) -> ProvisionResult:
    return ProvisionResult(
        address=address,
        resource_type=address.split(".", 1)[0],
        success=success,
        action=action,
        attributes=attrs,
    )


def _full_results() -> dict[str, ProvisionResult]:
    project = {"project": "dev-env-dev"}
    results = [
        _result("gcp_project.dev-env-dev", {"name": "dev-env-dev", "project_id": "dev-env-dev"}),
        _result(
            "gcp_network.dev-vpc",
            {"name": "dev-vpc", "self_link": "projects/dev-env-dev/global/networks/dev-vpc"},
        ),
        _result(
            "gcp_subnetwork.subnet-gke",
            {
                "name": "subnet-gke",
                "self_link": "projects/dev-env-dev/regions/us-central1/subnetworks/subnet-gke",
            },
        ),
        _result("gcp_gke_cluster.dev-gke", {"name": "dev-gke", "endpoint": "34.1.2.3", **project}),
        _result(
            "gcp_sql_instance.main-db",
            {"name": "main-db", "connection_name": "dev-env-dev:us-central1:main-db"},
        ),
        _result("gcp_redis_instance.dev-cache", {"name": "dev-cache", "host": "10.0.0.4"}),
        _result(
            "gcp_pubsub_topic.events",
            {"name": "events", "topic_id": "projects/dev-env-dev/topics/events"},
        ),
    ]
    return {r.address: r for r in results}


def test_collects_every_named_output() -> None:
    outputs = collect_outputs(_full_results()).as_dict(reveal=True)

    assert outputs == {
        "project_id": "dev-env-dev",
        "network": "projects/dev-env-dev/global/networks/dev-vpc",
        "subnets": {
            "subnet-gke": "projects/dev-env-dev/regions/us-central1/subnetworks/subnet-gke"
        },
        "cluster_name": "dev-gke",
        "cluster_endpoint": "34.1.2.3",
        "database_connection_names": {"main-db": "dev-env-dev:us-central1:main-db"},
        "redis_host": "10.0.0.4",
        "pubsub_topics": {"events": "projects/dev-env-dev/topics/events"},
    }


def test_cluster_endpoint_is_masked_by_default() -> None:
    outputs = collect_outputs(_full_results())
    assert outputs.as_dict()["cluster_endpoint"] == "**********"
    assert "34.1.2.3" not in repr(outputs)


def test_pruned_components_are_none() -> None:
    results = _full_results()
    for address in ("gcp_gke_cluster.dev-gke", "gcp_redis_instance.dev-cache"):
        del results[address]

    outputs = collect_outputs(results)

    assert outputs.cluster_name is None
    assert outputs.cluster_endpoint is None
    assert outputs.redis_host is None
    assert outputs.database_connection_names is not None


def test_failed_and_deleted_results_are_ignored() -> None:
    results = {
        "gcp_redis_instance.dev-cache": _result(
            "gcp_redis_instance.dev-cache", {"name": "dev-cache", "host": "10.0.0.4"}, success=False
        ),
        "gcp_pubsub_topic.events": _result(
            "gcp_pubsub_topic.events",
            {"name": "events", "topic_id": "projects/p/topics/events"},
            action=Action.DELETE,
        ),
    }
    outputs = collect_outputs(results)
    assert outputs.redis_host is None
    assert outputs.pubsub_topics is None


def test_project_id_falls_back_to_owning_project() -> None:
    results = {
        "gcp_network.dev-vpc": _result(
            "gcp_network.dev-vpc",
            {"name": "dev-vpc", "project": "proj-123", "self_link": "projects/proj-123/x"},
        )
    }
    assert collect_outputs(results).project_id == "proj-123"


def test_empty_results() -> None:
    assert collect_outputs({}).as_dict() == {
        "project_id": None,
        "network": None,
        "subnets": None,
        "cluster_name": None,
        "cluster_endpoint": None,
        "database_connection_names": None,
        "redis_host": None,
        "pubsub_topics": None,
    }


def test_results_from_state() -> None:
    state = State(environment="dev")
    state.resources["gcp_redis_instance.dev-cache"] = ResourceInstance(
        address="gcp_redis_instance.dev-cache",
        resource_type="gcp_redis_instance",
        name="dev-cache",
        attributes={"name": "dev-cache", "host": "10.0.0.4"},
    )

    results = results_from_state(state)

    assert results["gcp_redis_instance.dev-cache"].action == Action.NOOP
    assert collect_outputs(results).redis_host == "10.0.0.4"
