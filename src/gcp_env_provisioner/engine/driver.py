"""Provisioning driver: apply or destroy an ordered list of resource nodes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from gcp_env_provisioner.engine.types import ProvisionResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gcp_env_provisioner.engine.engine import EnvironmentEngine, ProgressCallback
    from gcp_env_provisioner.resources.base import Resource

logger = logging.getLogger(__name__)


class ProvisioningDriver(Protocol):
    """Something that can bring nodes into existence and tear them down again."""

    def apply(self, nodes: Sequence[Resource]) -> dict[str, ProvisionResult]: ...

    def destroy(self, nodes: Sequence[Resource]) -> dict[str, ProvisionResult]: ...


class EngineDriver:
    """`ProvisioningDriver` backed by the state-tracking plan/apply engine.

    ``apply`` plans the given nodes against the stored state and applies the
    plan. ``destroy`` deletes those of the given nodes that the state
    tracks, dependents first; tracked resources that are not among the nodes
    are left alone. Errors propagate unchanged: `ProvisioningError` stops an
    apply at the first failing node, `DestroyError` is raised after a
    best-effort teardown.
    """

    def __init__(
        self,
        engine: EnvironmentEngine,
        *,
        refresh: bool = True,
        progress: ProgressCallback | None = None,
    ) -> None:
        self._engine = engine
        self._refresh = refresh
        self._progress = progress

    def apply(self, nodes: Sequence[Resource]) -> dict[str, ProvisionResult]:
        plan = self._engine.plan(nodes, refresh=self._refresh)
        logger.info("Applying %d nodes: %s", len(nodes), plan.summary())
        return self._engine.apply(plan, progress=self._progress).results

    def destroy(self, nodes: Sequence[Resource]) -> dict[str, ProvisionResult]:
        plan = self._engine.plan_teardown([n.address for n in nodes], refresh=self._refresh)
        logger.info("Destroying %d of %d nodes", len(plan.changes), len(nodes))
        return self._engine.apply(plan, progress=self._progress).results


__all__ = ["EngineDriver", "ProvisionResult", "ProvisioningDriver"]
