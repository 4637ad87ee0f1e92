"""Output collection: named environment outputs from provisioning results."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, SecretStr

from gcp_env_provisioner.engine.types import Action, ProvisionResult

if TYPE_CHECKING:
    from collections.abc import Mapping

    from gcp_env_provisioner.core.state import State

logger = logging.getLogger(__name__)


class EnvironmentOutputs(BaseModel):
    """Fixed set of outputs for downstream consumers.

    Outputs whose owning component was pruned (or never provisioned) are ``None``.
    """

    SENSITIVE: ClassVar[frozenset[str]] = frozenset({"cluster_endpoint"})

    project_id: str | None = None
    network: str | None = None
    subnets: dict[str, str] | None = None
    cluster_name: str | None = None
    cluster_endpoint: SecretStr | None = None
    database_connection_names: dict[str, str] | None = None
    redis_host: str | None = None
    pubsub_topics: dict[str, str] | None = None

    def as_dict(self, *, reveal: bool = False) -> dict[str, Any]:
        """Plain mapping of outputs; sensitive values are masked unless *reveal*."""
        data = self.model_dump(mode="json")
        if reveal and self.cluster_endpoint is not None:
            data["cluster_endpoint"] = self.cluster_endpoint.get_secret_value()
        return data


def _put(data: dict[str, Any], key: str, name: str, value: Any) -> None:
    if value is not None:
        data.setdefault(key, {})[name] = value


def collect_outputs(results: Mapping[str, ProvisionResult]) -> EnvironmentOutputs:
    """Extract the named outputs from a ``address -> ProvisionResult`` mapping.

    Failed results and deletions are ignored. When no project node was
    provisioned, ``project_id`` falls back to the owning project recorded on
    the other results.
    """
    data: dict[str, Any] = {}
    owning_project: str | None = None

    for address in sorted(results):
        result = results[address]
        if not result.success or result.action == Action.DELETE:
            continue
        attrs = result.attributes
        name = attrs.get("name", address.split(".", 1)[-1])
        owning_project = owning_project or attrs.get("project")

        match result.resource_type:
            case "gcp_project":
                data["project_id"] = attrs.get("project_id") or name
            case "gcp_network":
                data["network"] = attrs.get("self_link")
            case "gcp_subnetwork":
                _put(data, "subnets", name, attrs.get("self_link"))
            case "gcp_gke_cluster":
                data["cluster_name"] = name
                data["cluster_endpoint"] = attrs.get("endpoint")
            case "gcp_sql_instance":
                _put(data, "database_connection_names", name, attrs.get("connection_name"))
            case "gcp_redis_instance":
                data["redis_host"] = attrs.get("host")
            case "gcp_pubsub_topic":
                _put(data, "pubsub_topics", name, attrs.get("topic_id"))

    data.setdefault("project_id", owning_project)
    logger.debug("Collected outputs: %s", sorted(k for k, v in data.items() if v is not None))
    return EnvironmentOutputs.model_validate(data)


def results_from_state(state: State) -> dict[str, ProvisionResult]:
    """Successful results for every resource tracked in *state*."""
    return {
        address: ProvisionResult(
            address=address,
            resource_type=inst.resource_type,
            success=True,
            action=Action.NOOP,
            attributes=dict(inst.attributes),
        )
        for address, inst in state.resources.items()
    }
