"""Plan and apply one environment's nodes against its state file."""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from gcp_env_provisioner.core.state import State
from gcp_env_provisioner.engine.errors import (
    ApplyCanceled,
    DestroyError,
    DuplicateAddressError,
    ProvisioningError,
    StalePlanError,
    StateEnvironmentMismatchError,
    ValidationError,
)
from gcp_env_provisioner.engine.graph import DependencyGraph
from gcp_env_provisioner.engine.handlers import EngineContext, PlanContext
from gcp_env_provisioner.engine.lock import state_lock
from gcp_env_provisioner.engine.outputs import collect_outputs, results_from_state
from gcp_env_provisioner.engine.types import (
    Action,
    ApplyResult,
    Plan,
    ProvisionResult,
    ResourceChange,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence
    from pathlib import Path

    from gcp_env_provisioner.core import GCPProvider
    from gcp_env_provisioner.engine.registry import ResourceTypeRegistry
    from gcp_env_provisioner.resources.base import Resource

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ResourceChange, Literal["start", "done"]], None]


def _config_digest(nodes: Iterable[Resource]) -> str:
    desired = sorted((n.address, n.desired_attributes()) for n in nodes)
    text = json.dumps(desired, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _result(
    change: ResourceChange, *, attributes: dict[str, Any] | None = None, error: str | None = None
) -> ProvisionResult:
    return ProvisionResult(
        address=change.address,
        resource_type=change.resource_type,
        success=error is None,
        action=change.action,
        attributes=dict(attributes or {}),
        error=error,
    )


class EnvironmentEngine:
    """Terraform-style plan/apply for the nodes of one environment instance.

    ``plan`` compares the desired nodes with what the state file tracks
    (after re-reading it from Google Cloud unless ``refresh=False``);
    ``apply`` carries a plan out, writing the state after every node.
    """

    def __init__(
        self,
        *,
        provider: GCPProvider,
        environment: str,
        state_path: Path,
        registry: ResourceTypeRegistry,
    ) -> None:
        self._provider = provider
        self._environment = environment
        self._state_path = state_path
        self._registry = registry

    @property
    def environment(self) -> str:
        return self._environment

    @property
    def state_path(self) -> Path:
        return self._state_path

    def _ctx(self) -> EngineContext:
        return EngineContext(provider=self._provider, environment=self._environment)

    def _priority(self, resource_type: str) -> int:
        return self._registry.get(resource_type).model.plan_priority

    # ── State ───────────────────────────────────────────────────────

    def load_state(self) -> State:
        """The environment's state, without locking (read-only callers)."""
        state = State.open(self._state_path, self._environment)
        if state.environment != self._environment:
            raise StateEnvironmentMismatchError(self._environment, state.environment)
        return state

    def _reread(self, state: State) -> bool:
        """Replace tracked attributes with what Google Cloud reports now."""
        ctx = self._ctx()
        changed = False
        for address, inst in sorted(state.resources.items()):
            live = self._registry.handler(inst.resource_type).read(ctx, inst)
            if live is None:
                logger.info("%s was deleted outside of the provisioner", address)
                state.forget(address)
                changed = True
            elif live != inst.attributes:
                logger.debug("%s changed in Google Cloud", address)
                inst.attributes = live
                inst.updated_at = datetime.now(UTC)
                changed = True
        return changed

    def refresh(self, *, persist: bool = False) -> tuple[State, State]:
        """Re-read every tracked resource. Returns the state before and after."""
        with state_lock(self._state_path):
            state = self.load_state()
            before = state.model_copy(deep=True)
            if self._reread(state) and persist:
                state.commit(self._state_path)
            return before, state

    @contextlib.contextmanager
    def _planning_state(self, refresh: bool) -> Iterator[State]:
        if not refresh:
            yield self.load_state()
            return
        # A refresh may write the state file.
        with state_lock(self._state_path):
            state = self.load_state()
            if self._reread(state):
                state.commit(self._state_path)
            yield state

    # ── Planning ────────────────────────────────────────────────────

    def _index(self, nodes: Sequence[Resource]) -> dict[str, Resource]:
        desired: dict[str, Resource] = {}
        for node in nodes:
            if node.address in desired:
                raise DuplicateAddressError(node.address)
            self._registry.get(node.resource_type)
            desired[node.address] = node
        return desired

    def _validate(self, desired: dict[str, Resource], state: State) -> None:
        ctx = self._ctx()
        known = PlanContext(desired, state)
        errors: list[str] = []
        for node in desired.values():
            handler = self._registry.handler(node.resource_type)
            errors += handler.validate(ctx, node)
            errors += handler.validate_plan(ctx, node, known)
            errors += [
                f"{node.address} depends on unknown address {dep}"
                for dep in node.depends_on
                if dep not in known
            ]
        if errors:
            raise ValidationError(errors)

    def _change_for(self, node: Resource, deps: list[str], state: State) -> ResourceChange:
        desired = {**node.model_dump(exclude={"address"}), "depends_on": deps}
        inst = state.resources.get(node.address)
        if inst is None:
            action, recorded, changed = Action.CREATE, None, {}
        else:
            recorded = dict(inst.attributes)
            changed = node.changed_fields(recorded)
            action = Action.UPDATE if changed else Action.NOOP
        logger.debug("%s: %s", node.address, action.value)
        return ResourceChange(
            address=node.address,
            resource_type=node.resource_type,
            action=action,
            desired=desired,
            recorded=recorded,
            changed=changed,
        )

    def _deletes(self, state: State, addresses: set[str]) -> list[ResourceChange]:
        """Delete changes for *addresses*, dependents before what they depend on."""
        graph = DependencyGraph(
            addresses,
            {a: state.resources[a].dependencies for a in addresses},
            priorities={a: self._priority(state.resources[a].resource_type) for a in addresses},
        )
        return [
            ResourceChange(
                address=address,
                resource_type=state.resources[address].resource_type,
                action=Action.DELETE,
                recorded=dict(state.resources[address].attributes),
            )
            for address in graph.reverse_topological_order()
        ]

    def _plan_for(
        self,
        state: State,
        changes: list[ResourceChange],
        *,
        refresh: bool,
        destroy: bool = False,
        nodes: Iterable[Resource] = (),
    ) -> Plan:
        return Plan(
            environment=self._environment,
            destroy=destroy,
            refresh=refresh,
            lineage=state.lineage,
            serial=state.serial,
            state_digest=state.digest(),
            config_digest=_config_digest(nodes),
            changes=changes,
        )

    def plan(
        self, nodes: Sequence[Resource], *, destroy: bool = False, refresh: bool = True
    ) -> Plan:
        """Plan bringing the environment in line with *nodes*.

        With ``destroy=True`` the plan deletes those of *nodes* that state
        tracks instead.
        """
        if destroy:
            return self.plan_teardown([n.address for n in nodes], refresh=refresh)

        logger.info("Planning %d nodes for %s", len(nodes), self._environment)
        desired = self._index(nodes)
        with self._planning_state(refresh) as state:
            self._validate(desired, state)
            deps = {address: node.dependencies() for address, node in desired.items()}
            order = DependencyGraph(
                desired, deps, priorities={a: n.plan_priority for a, n in desired.items()}
            ).topological_order()
            changes = [self._change_for(desired[a], deps[a], state) for a in order]
            changes += self._deletes(state, set(state.resources) - set(desired))
            return self._plan_for(state, changes, refresh=refresh, nodes=desired.values())

    def plan_teardown(
        self, addresses: Iterable[str] | None = None, *, refresh: bool = True
    ) -> Plan:
        """Plan deleting tracked resources: *addresses*, or everything when None."""
        with self._planning_state(refresh) as state:
            targets = set(state.resources)
            if addresses is not None:
                targets &= set(addresses)
            logger.info("Planning teardown of %d resources in %s", len(targets), self._environment)
            changes = self._deletes(state, targets)
            return self._plan_for(state, changes, refresh=refresh, destroy=True)

    # ── Applying ────────────────────────────────────────────────────

    def _state_for(self, plan: Plan) -> State:
        if plan.environment != self._environment:
            raise StalePlanError(
                f"Plan was made for environment {plan.environment!r}, not {self._environment!r}"
            )
        if not self._state_path.exists():
            # The plan was made before the first apply.
            return State(environment=self._environment, lineage=plan.lineage, serial=plan.serial)
        state = self.load_state()
        if state.lineage != plan.lineage:
            raise StalePlanError("The state file was replaced after planning; re-run plan")
        if state.serial != plan.serial or state.digest() != plan.state_digest:
            raise StalePlanError("The state changed after planning; re-run plan")
        return state

    def _provisioning_order(self, changes: list[ResourceChange]) -> list[ResourceChange]:
        by_addr = {c.address: c for c in changes}
        graph = DependencyGraph(
            by_addr,
            {a: (c.desired or {}).get("depends_on", []) for a, c in by_addr.items()},
            priorities={a: self._priority(c.resource_type) for a, c in by_addr.items()},
        )
        return [by_addr[a] for a in graph.topological_order()]

    def _teardown_order(self, changes: list[ResourceChange], state: State) -> list[ResourceChange]:
        missing = [c.address for c in changes if c.address not in state.resources]
        if missing:
            raise StalePlanError(f"Not tracked in state: {', '.join(missing)}")
        by_addr = {c.address: c for c in changes}
        return [by_addr[c.address] for c in self._deletes(state, set(by_addr))]

    def _provision(
        self, ctx: EngineContext, change: ResourceChange, state: State
    ) -> dict[str, Any]:
        registration = self._registry.get(change.resource_type)
        node = registration.model.model_validate(change.desired)
        if node.address != change.address:
            raise ValueError(f"Planned node {node.address} does not match {change.address}")
        if change.action is Action.CREATE:
            attrs = registration.handler.create(ctx, node)
        else:
            attrs = registration.handler.update(ctx, node, state.resources[change.address])
        state.record(change.address, change.resource_type, attrs, node.dependencies())
        return attrs

    def _remove(self, ctx: EngineContext, change: ResourceChange, state: State) -> dict[str, Any]:
        inst = state.resources[change.address]
        self._registry.handler(change.resource_type).delete(ctx, inst)
        state.forget(change.address)
        return inst.attributes

    def apply(self, plan: Plan, *, progress: ProgressCallback | None = None) -> ApplyResult:
        """Carry out *plan*.

        Creates and updates run first, in dependency order, and are
        fail-stop: the first failure raises `ProvisioningError`. Deletes run
        afterwards, dependents first, and are best-effort: a failed delete
        only skips the deletes that wait on it, and `DestroyError` is raised
        once every other delete was attempted.
        """
        with state_lock(self._state_path):
            state = self._state_for(plan)
            ctx = self._ctx()
            applied: list[ResourceChange] = []
            results: dict[str, ProvisionResult] = {}
            failures: dict[str, str] = {}

            for change in plan.changes:
                inst = state.resources.get(change.address)
                if change.action is Action.NOOP and inst is not None:
                    results[change.address] = _result(change, attributes=inst.attributes)

            provisioning = self._provisioning_order(
                [c for c in plan.changes if c.action in (Action.CREATE, Action.UPDATE)]
            )
            teardown = self._teardown_order(
                [c for c in plan.changes if c.action is Action.DELETE], state
            )
            logger.info(
                "Applying %d changes to %s", len(provisioning) + len(teardown), self._environment
            )

            def step(change: ResourceChange, run: Callable[..., dict[str, Any]]) -> None:
                if progress:
                    progress(change, "start")
                try:
                    attrs = run(ctx, change, state)
                except KeyboardInterrupt as exc:  # pragma: no cover
                    raise ApplyCanceled("Apply canceled") from exc
                state.commit(self._state_path)
                applied.append(change)
                results[change.address] = _result(change, attributes=attrs)
                if progress:
                    progress(change, "done")

            try:
                for change in provisioning:
                    try:
                        step(change, self._provision)
                    except ApplyCanceled:
                        raise
                    except Exception as exc:
                        results[change.address] = _result(change, error=str(exc))
                        raise ProvisioningError(
                            applied=applied,
                            address=change.address,
                            message=str(exc),
                            results=results,
                        ) from exc

                for change in teardown:
                    waits_on = [d for d in state.dependents_of(change.address) if d in failures]
                    if waits_on:
                        failures[change.address] = f"skipped; waits on failed {', '.join(waits_on)}"
                    else:
                        try:
                            step(change, self._remove)
                        except ApplyCanceled:
                            raise
                        except Exception as exc:
                            failures[change.address] = str(exc)
                    if change.address in failures:
                        reason = failures[change.address]
                        logger.warning("Could not delete %s: %s", change.address, reason)
                        results[change.address] = _result(change, error=reason)
            finally:
                # Outputs follow whatever was applied, also when the apply stopped early.
                if applied:
                    state.outputs = collect_outputs(results_from_state(state)).as_dict(reveal=True)
                    state.write(self._state_path)

            if failures:
                raise DestroyError(applied=applied, failures=failures, results=results)
            return ApplyResult(applied=applied, results=results)
