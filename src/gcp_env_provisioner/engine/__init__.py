"""Plan and apply engine for GCP environment resources."""

from gcp_env_provisioner.engine.driver import EngineDriver, ProvisioningDriver
from gcp_env_provisioner.engine.engine import EnvironmentEngine
from gcp_env_provisioner.engine.errors import (
    ApplyCanceled,
    DependencyCycleError,
    DestroyError,
    DuplicateAddressError,
    EngineError,
    PartialApplyError,
    ProvisioningError,
    StalePlanError,
    StateEnvironmentMismatchError,
    StateLockError,
    UnknownResourceTypeError,
    ValidationError,
)
from gcp_env_provisioner.engine.handlers import EngineContext, PlanContext, ResourceHandler
from gcp_env_provisioner.engine.outputs import EnvironmentOutputs, collect_outputs
from gcp_env_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
from gcp_env_provisioner.engine.types import (
    Action,
    ApplyResult,
    Plan,
    ProvisionResult,
    ResourceChange,
)

__all__ = [
    "Action",
    "ApplyCanceled",
    "ApplyResult",
    "DependencyCycleError",
    "DestroyError",
    "DuplicateAddressError",
    "EngineContext",
    "EngineDriver",
    "EngineError",
    "EnvironmentEngine",
    "EnvironmentOutputs",
    "PartialApplyError",
    "Plan",
    "PlanContext",
    "ProvisionResult",
    "ProvisioningDriver",
    "ProvisioningError",
    "ResourceChange",
    "ResourceHandler",
    "ResourceTypeRegistration",
    "ResourceTypeRegistry",
    "StalePlanError",
    "StateEnvironmentMismatchError",
    "StateLockError",
    "UnknownResourceTypeError",
    "ValidationError",
    "collect_outputs",
]
