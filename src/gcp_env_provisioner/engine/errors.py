"""Errors raised while planning or applying an environment."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gcp_env_provisioner.engine.types import ApplyResult, ProvisionResult, ResourceChange


class EngineError(Exception):
    """Base class for plan/apply failures."""


class UnknownResourceTypeError(EngineError):
    def __init__(self, resource_type: str) -> None:
        super().__init__(f"No handler registered for resource type {resource_type!r}")
        self.resource_type = resource_type


class DuplicateAddressError(EngineError):
    def __init__(self, address: str) -> None:
        super().__init__(f"Address {address} is used by more than one node")
        self.address = address


class DependencyCycleError(EngineError):
    def __init__(self, addresses: list[str]) -> None:
        super().__init__(f"Nodes depend on each other in a cycle: {', '.join(addresses)}")
        self.addresses = addresses


class StateEnvironmentMismatchError(EngineError):
    """The state file belongs to another environment instance."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"State file belongs to environment {got!r}, not {expected!r}")
        self.expected = expected
        self.got = got


class StalePlanError(EngineError):
    """The state changed after the plan was made."""


class StateLockError(EngineError):
    """Another run holds the state lock."""


class ValidationError(EngineError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("\n".join(["Validation failed:", *(f"  - {e}" for e in errors)]))


class PartialApplyError(EngineError):
    """An apply that stopped or finished with failures.

    ``result`` holds what was applied before (or despite) the failure.
    """

    result: ApplyResult

    def _keep(
        self, applied: list[ResourceChange], results: dict[str, ProvisionResult] | None
    ) -> None:
        from gcp_env_provisioner.engine.types import ApplyResult

        self.result = ApplyResult(applied=applied, results=results or {})


class ProvisioningError(PartialApplyError):
    """A create or update failed; nothing after it ran and nothing was rolled back.

    The handler's exception is chained as ``__cause__``.
    """

    def __init__(
        self,
        *,
        applied: list[ResourceChange],
        address: str,
        message: str,
        results: dict[str, ProvisionResult] | None = None,
    ) -> None:
        super().__init__(f"Provisioning failed on {address}: {message}")
        self.address = address
        self._keep(applied, results)


class DestroyError(PartialApplyError):
    """One or more deletes failed or were skipped; ``failures`` maps address to reason."""

    def __init__(
        self,
        *,
        applied: list[ResourceChange],
        failures: dict[str, str],
        results: dict[str, ProvisionResult] | None = None,
    ) -> None:
        listing = "".join(f"\n  - {addr}: {why}" for addr, why in sorted(failures.items()))
        super().__init__(f"Could not delete {len(failures)} resource(s):{listing}")
        self.failures = failures
        self._keep(applied, results)


class ApplyCanceled(EngineError):
    """Interrupted (Ctrl-C) between operations."""
