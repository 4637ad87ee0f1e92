"""Per-environment state: which nodes have been provisioned and how they looked."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)

STATE_FORMAT = 1


def _now() -> datetime:
    return datetime.now(UTC)


def _sha256(payload: Any) -> str:
    text = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ResourceInstance(BaseModel):
    """One provisioned node as last read back from Google Cloud.

    ``attributes`` holds every model field of the node plus identifying
    attributes (``self_link``, ``connection_name``, ``endpoint``, ...);
    ``dependencies`` are the upstream addresses it was provisioned after.
    """

    address: str
    resource_type: str
    name: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def fingerprint(self) -> str:
        return _sha256(self.attributes)


class State(BaseModel):
    """State file of one environment instance (``.gcp-env/<env>.state.json``).

    ``lineage`` is fixed when the file is first created and ``serial``
    grows with every write, so a saved plan can tell whether the state it
    was computed against is still current.
    """

    format_version: int = STATE_FORMAT
    environment: str
    lineage: str = Field(default_factory=lambda: uuid.uuid4().hex)
    serial: int = 0
    resources: dict[str, ResourceInstance] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)

    def record(
        self,
        address: str,
        resource_type: str,
        attributes: dict[str, Any],
        dependencies: Iterable[str] = (),
    ) -> ResourceInstance:
        """Track freshly provisioned *attributes*, keeping the original creation time."""
        previous = self.resources.get(address)
        instance = ResourceInstance(
            address=address,
            resource_type=resource_type,
            name=address.split(".", 1)[-1],
            attributes=dict(attributes),
            dependencies=list(dependencies),
            created_at=previous.created_at if previous else _now(),
        )
        self.resources[address] = instance
        return instance

    def forget(self, address: str) -> ResourceInstance | None:
        return self.resources.pop(address, None)

    def dependents_of(self, address: str) -> list[str]:
        """Tracked addresses that were provisioned on top of *address*."""
        return sorted(a for a, inst in self.resources.items() if address in inst.dependencies)

    def digest(self) -> str:
        """Digest of what a plan is computed against.

        Timestamps and outputs are left out: they change without changing
        what a plan would do.
        """
        return _sha256(
            {
                "format_version": self.format_version,
                "environment": self.environment,
                "lineage": self.lineage,
                "serial": self.serial,
                "resources": {
                    address: [inst.resource_type, inst.fingerprint(), sorted(inst.dependencies)]
                    for address, inst in self.resources.items()
                },
            }
        )

    def write(self, path: Path) -> None:
        """Write the state atomically, keeping the previous file as ``<path>.backup``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            shutil.copyfile(path, path.with_name(path.name + ".backup"))

        scratch = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            with scratch.open("w", encoding="utf-8") as f:
                f.write(self.model_dump_json(indent=2))
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(scratch, path)
        finally:
            scratch.unlink(missing_ok=True)
        logger.debug("Wrote state serial %d to %s", self.serial, path)

    def commit(self, path: Path) -> None:
        """Bump the serial and write."""
        self.serial += 1
        self.write(path)

    @classmethod
    def read(cls, path: Path) -> State:
        return cls.model_validate_json(path.read_text(encoding="utf-8"))

    @classmethod
    def open(cls, path: Path, environment: str) -> State:
        """Read the state file at *path*, or start an empty state for *environment*."""
        if not path.exists():
            logger.debug("No state at %s; starting empty state for %s", path, environment)
            return cls(environment=environment)
        return cls.read(path)
