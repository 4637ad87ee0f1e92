"""Base class and helpers for per-kind resource handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from gcp_env_provisioner.resources.base import Resource

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from gcp_env_provisioner.core import GCPProvider
    from gcp_env_provisioner.core.state import ResourceInstance, State

R = TypeVar("R", bound=Resource)


@dataclass(frozen=True)
class EngineContext:
    provider: GCPProvider
    environment: str


class PlanContext:
    """Addresses a plan can rely on: the desired nodes plus everything tracked in state."""

    def __init__(self, desired: Iterable[str], state: State) -> None:
        self._known = set(desired) | set(state.resources)

    def __contains__(self, address: object) -> bool:
        return address in self._known

    def has_resource(self, name: str, *, resource_type: str) -> bool:
        return f"{resource_type}.{name}" in self._known


class ResourceHandler(Generic[R]):
    """Translates one kind of node into Google Cloud API calls.

    ``read``, ``create`` and ``update`` return the attributes to track in
    state: every model field of the node, so the engine can compare them
    with the desired node, plus identifying attributes such as
    ``self_link``. ``read`` returns None once the resource is gone.
    """

    def validate(self, ctx: EngineContext, desired: R) -> list[str]:
        """Problems with the node on its own; an empty list means valid."""
        _ = ctx, desired
        return []

    def validate_plan(self, ctx: EngineContext, desired: R, plan_ctx: PlanContext) -> list[str]:
        """Problems that involve other nodes of the plan."""
        _ = ctx, desired, plan_ctx
        return []

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        raise NotImplementedError

    def create(self, ctx: EngineContext, desired: R) -> dict[str, Any]:
        raise NotImplementedError

    def update(self, ctx: EngineContext, desired: R, prior: ResourceInstance) -> dict[str, Any]:
        raise NotImplementedError

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        raise NotImplementedError


def common_attrs(name: str, project: str, labels: Mapping[str, str] | None) -> dict[str, Any]:
    """Attributes shared by every node kind, in the shape of ``Resource.model_dump``."""
    return {"name": name, "project": project, "labels": dict(labels or {})}


def check_immutable(desired: Resource, prior: ResourceInstance, fields: list[str]) -> None:
    """Raise if any of *fields* changed; Google Cloud cannot update them in place."""
    changed = [f for f in fields if getattr(desired, f) != prior.attributes.get(f)]
    if changed:
        raise RuntimeError(
            f"Cannot update {desired.address} in place; changed immutable fields: "
            f"{', '.join(changed)}. Destroy and re-apply to replace it."
        )
