"""Project and API enablement resource models."""

from __future__ import annotations

from typing import ClassVar

from pydantic import Field

from gcp_env_provisioner.resources.base import Resource


class ProjectResource(Resource):
    """A GCP project created for the environment.

    The project id is the node name; ``project`` mirrors it so every node
    carries its owning project the same way.
    """

    resource_type: ClassVar[str] = "gcp_project"
    feature: ClassVar[str] = "core"
    plan_priority: ClassVar[int] = 0

    name: str = Field(pattern=r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$")
    display_name: str = ""
    billing_account: str | None = None
    folder_id: str | None = None


class ProjectServiceResource(Resource):
    """An enabled API (e.g. ``container.googleapis.com``) on the owning project."""

    resource_type: ClassVar[str] = "gcp_project_service"
    feature: ClassVar[str] = "core"
    plan_priority: ClassVar[int] = 10

    disable_on_destroy: bool = False
