"""Plans, planned changes and provisioning results."""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from gcp_env_provisioner import __version__

if TYPE_CHECKING:
    from collections.abc import Iterable


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "no-op"


def count_actions(actions: Iterable[Action]) -> dict[str, int]:
    """``{"create": n, "update": n, "delete": n}``; no-ops are not counted."""
    counts = Counter(a.value for a in actions)
    return {a.value: counts[a.value] for a in (Action.CREATE, Action.UPDATE, Action.DELETE)}


class ResourceChange(BaseModel):
    """What a plan will do to one node.

    ``desired`` is the node's model dump (creates and updates),
    ``recorded`` the attributes tracked in state (updates and deletes) and
    ``changed`` maps each differing field to ``(recorded, desired)``.
    """

    address: str
    resource_type: str
    action: Action
    desired: dict[str, Any] | None = None
    recorded: dict[str, Any] | None = None
    changed: dict[str, tuple[Any, Any]] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.address.split(".", 1)[-1]


class Plan(BaseModel):
    """Changes for one environment, tied to the state they were computed against.

    A plan saved to disk can be applied later; the state ``lineage``,
    ``serial`` and ``state_digest`` it carries make the apply fail when the
    state moved on in between.
    """

    environment: str
    destroy: bool = False
    refresh: bool = True
    lineage: str
    serial: int
    state_digest: str
    config_digest: str
    engine_version: str = __version__
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    changes: list[ResourceChange] = Field(default_factory=list)

    @property
    def pending(self) -> list[ResourceChange]:
        return [c for c in self.changes if c.action is not Action.NOOP]

    def summary(self) -> dict[str, int]:
        return count_actions(c.action for c in self.changes)

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> Plan:
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


class ProvisionResult(BaseModel):
    """Outcome of provisioning (or deleting) one resource node.

    On success ``attributes`` holds what was read back from Google Cloud,
    including identifying attributes such as ``self_link``,
    ``connection_name``, ``host`` or ``endpoint``.
    """

    address: str
    resource_type: str
    success: bool
    action: Action | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class ApplyResult(BaseModel):
    applied: list[ResourceChange] = Field(default_factory=list)
    results: dict[str, ProvisionResult] = Field(default_factory=dict)

    def summary(self) -> dict[str, int]:
        return count_actions(c.action for c in self.applied)
