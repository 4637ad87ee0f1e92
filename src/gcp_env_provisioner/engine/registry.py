"""Which model and handler serve each resource type."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

from gcp_env_provisioner.engine.errors import UnknownResourceTypeError

if TYPE_CHECKING:
    from gcp_env_provisioner.engine.handlers import ResourceHandler
    from gcp_env_provisioner.resources.base import Resource


class ResourceTypeRegistration(NamedTuple):
    model: type[Resource]
    handler: ResourceHandler[Any]

    @property
    def resource_type(self) -> str:
        return self.model.resource_type

    @property
    def feature(self) -> str:
        return self.model.feature


class ResourceTypeRegistry:
    def __init__(self) -> None:
        self._by_type: dict[str, ResourceTypeRegistration] = {}

    def register(self, model: type[Resource], handler: ResourceHandler[Any]) -> None:
        resource_type = getattr(model, "resource_type", None)
        if not resource_type or not getattr(model, "feature", None):
            raise ValueError(f"{model.__name__} must set the resource_type and feature classvars")
        if resource_type in self._by_type:
            raise ValueError(f"Resource type already registered: {resource_type}")
        self._by_type[resource_type] = ResourceTypeRegistration(model, handler)

    def get(self, resource_type: str) -> ResourceTypeRegistration:
        registration = self._by_type.get(resource_type)
        if registration is None:
            raise UnknownResourceTypeError(resource_type)
        return registration

    def handler(self, resource_type: str) -> ResourceHandler[Any]:
        return self.get(resource_type).handler

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._by_type

    def resource_types(self) -> list[str]:
        return sorted(self._by_type)
