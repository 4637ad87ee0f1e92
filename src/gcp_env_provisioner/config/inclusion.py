"""Conditional inclusion: prune nodes whose feature is disabled."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from gcp_env_provisioner.config.schema import EnvironmentSpec
    from gcp_env_provisioner.resources.base import Resource

# Project and API enablement are always provisioned.
ALWAYS_ON: frozenset[str] = frozenset({"core"})


def enabled_features(spec: EnvironmentSpec) -> frozenset[str]:
    """Features whose nodes belong to the environment."""
    features = set(ALWAYS_ON)
    if spec.create_network:
        features.add("network")
    flags = spec.enable_components
    features.update(
        name for name, enabled in flags.model_dump().items() if enabled is True
    )
    return frozenset(features)


def resolve_inclusion(nodes: Iterable[Resource], features: Iterable[str]) -> list[Resource]:
    """Return the nodes owned by an enabled feature, in their original order."""
    enabled = frozenset(features)
    return [n for n in nodes if n.feature in enabled]
