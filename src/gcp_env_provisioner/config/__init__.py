"""Configuration loading plus the plan/apply entry points the CLI drives."""

from __future__ import annotations

from typing import TYPE_CHECKING

from gcp_env_provisioner.config.builder import build_graph, build_node_table
from gcp_env_provisioner.config.inclusion import enabled_features, resolve_inclusion
from gcp_env_provisioner.config.loader import ConfigurationError, load_config
from gcp_env_provisioner.config.registry import default_registry
from gcp_env_provisioner.config.schema import EnvironmentSpec, ProviderConfig
from gcp_env_provisioner.core.provider import GCPProvider, ServiceAccountAuth
from gcp_env_provisioner.core.state import State
from gcp_env_provisioner.engine.driver import EngineDriver
from gcp_env_provisioner.engine.engine import EnvironmentEngine, ProgressCallback
from gcp_env_provisioner.engine.lock import state_lock
from gcp_env_provisioner.engine.outputs import (
    EnvironmentOutputs,
    collect_outputs,
    results_from_state,
)
from gcp_env_provisioner.engine.types import Action, ResourceChange

if TYPE_CHECKING:
    from pathlib import Path

    from gcp_env_provisioner.engine.types import ApplyResult, Plan
    from gcp_env_provisioner.resources.base import Resource

__all__ = [
    "ConfigurationError",
    "EnvironmentSpec",
    "ProviderConfig",
    "State",
    "apply",
    "build",
    "build_graph",
    "build_node_table",
    "driver",
    "drift",
    "enabled_features",
    "load",
    "load_config",
    "outputs",
    "plan",
    "plan_and_apply",
    "refresh",
    "resolve_inclusion",
    "save_state",
]


def load(path: Path | str, *, environment: str | None = None) -> EnvironmentSpec:
    return load_config(path, environment=environment)


def build(config: EnvironmentSpec) -> list[Resource]:
    """Ordered, pruned resource nodes for the configuration (no cloud calls)."""
    return build_graph(config)


def _engine_from_config(config: EnvironmentSpec) -> EnvironmentEngine:
    settings = config.provider
    auth = ServiceAccountAuth(credentials=settings.credentials) if settings.credentials else None
    return EnvironmentEngine(
        provider=GCPProvider(
            auth=auth,
            poll_interval=settings.poll_interval,
            operation_timeout=settings.operation_timeout,
        ),
        environment=config.environment,
        state_path=config.state_file,
        registry=default_registry(),
    )


def driver(
    config: EnvironmentSpec, *, refresh: bool = True, progress: ProgressCallback | None = None
) -> EngineDriver:
    """Provisioning driver for the configuration's environment."""
    return EngineDriver(_engine_from_config(config), refresh=refresh, progress=progress)


def plan(config: EnvironmentSpec, *, destroy: bool = False, refresh: bool = True) -> Plan:
    """Plan the environment, or with ``destroy=True`` the teardown of everything it tracks.

    The configuration is built first in both cases, so graph errors surface
    before any cloud call.
    """
    nodes = build_graph(config)
    engine = _engine_from_config(config)
    if destroy:
        return engine.plan_teardown(refresh=refresh)
    return engine.plan(nodes, refresh=refresh)


def apply(
    plan_obj: Plan, config: EnvironmentSpec, *, progress: ProgressCallback | None = None
) -> ApplyResult:
    return _engine_from_config(config).apply(plan_obj, progress=progress)


def plan_and_apply(
    config: EnvironmentSpec, *, destroy: bool = False, refresh: bool = True
) -> ApplyResult:
    return apply(plan(config, destroy=destroy, refresh=refresh), config)


def refresh(config: EnvironmentSpec) -> tuple[list[ResourceChange], State]:
    """Re-read the environment from Google Cloud without saving.

    Returns the drift and the refreshed state; pass the state to
    :func:`save_state` to keep it.
    """
    before, after = _engine_from_config(config).refresh()
    return _drift_changes(before, after), after


def save_state(config: EnvironmentSpec, state: State) -> None:
    with state_lock(config.state_file):
        state.commit(config.state_file)


def drift(config: EnvironmentSpec) -> list[ResourceChange]:
    """Differences between the state file and the live resources."""
    return refresh(config)[0]


def outputs(config: EnvironmentSpec) -> EnvironmentOutputs:
    """Outputs of the environment, recomputed from its state file."""
    state = State.open(config.state_file, config.environment)
    return collect_outputs(results_from_state(state))


def _drift_changes(before: State, after: State) -> list[ResourceChange]:
    """An update per resource whose attributes moved, a delete per resource that vanished."""
    changes: list[ResourceChange] = []
    for address, inst in after.resources.items():
        old = before.resources.get(address)
        if old is None or old.attributes == inst.attributes:
            continue
        keys = sorted(old.attributes.keys() | inst.attributes.keys())
        changes.append(
            ResourceChange(
                address=address,
                resource_type=inst.resource_type,
                action=Action.UPDATE,
                desired=dict(inst.attributes),
                recorded=dict(old.attributes),
                changed={
                    k: (old.attributes.get(k), inst.attributes.get(k))
                    for k in keys
                    if old.attributes.get(k) != inst.attributes.get(k)
                },
            )
        )
    changes.extend(
        ResourceChange(
            address=address,
            resource_type=before.resources[address].resource_type,
            action=Action.DELETE,
            recorded=dict(before.resources[address].attributes),
        )
        for address in sorted(before.resources.keys() - after.resources.keys())
    )
    return changes
