"""Base resource class for GCP resource nodes."""

from collections.abc import Mapping
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

# Lowercase GCP-style identifiers; dots allow API ids and instance-scoped names.
NAME_PATTERN = r"^[a-z0-9]([a-z0-9._-]*[a-z0-9])?$"


class Resource(BaseModel):
    """Base class for all resource nodes.

    Resources are pure data: the desired state of one provisioning unit.
    Handlers turn them into Google Cloud API calls.

    ``feature`` names the feature area that owns the node; the inclusion
    resolver drops nodes whose feature is disabled. ``unordered_fields``
    lists list-valued fields whose order Google Cloud does not preserve.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    resource_type: ClassVar[str]
    feature: ClassVar[str]
    plan_priority: ClassVar[int] = 100
    unordered_fields: ClassVar[frozenset[str]] = frozenset()

    name: str = Field(pattern=NAME_PATTERN)
    project: str
    labels: dict[str, str] = Field(default_factory=dict)

    depends_on: list[str] = []

    @computed_field
    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., 'gcp_network.dev-vpc')."""
        return f"{self.resource_type}.{self.name}"

    def parent_address(self) -> str | None:
        """Address of the node this one lives inside (a node pool's cluster, ...)."""
        return None

    def dependencies(self) -> list[str]:
        """Upstream addresses: ``depends_on`` plus the parent node, if any."""
        deps = list(self.depends_on)
        parent = self.parent_address()
        if parent is not None and parent not in deps:
            deps.append(parent)
        return deps

    def desired_attributes(self) -> dict[str, Any]:
        """Field values as handlers record them; unset optional fields are left out."""
        return self.model_dump(exclude_none=True, exclude={"address", "depends_on"})

    def changed_fields(self, recorded: Mapping[str, Any]) -> dict[str, tuple[Any, Any]]:
        """Fields whose recorded value differs from the desired one, as ``(recorded, desired)``.

        Labels only have to contain the desired entries: Google adds its own
        (``goog-*``) labels to some resources.
        """
        changed: dict[str, tuple[Any, Any]] = {}
        for field, want in self.desired_attributes().items():
            have = recorded.get(field)
            if field == "labels" and isinstance(have, dict):
                same = all(have.get(k) == v for k, v in want.items())
            elif field in self.unordered_fields and isinstance(have, list):
                same = set(want) == set(have)
            else:
                same = want == have
            if not same:
                changed[field] = (have, want)
        return changed
