"""Project and API enablement handlers (Resource Manager, Cloud Billing, Service Usage)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from googleapiclient.errors import HttpError

from gcp_env_provisioner.core.provider import is_not_found
from gcp_env_provisioner.engine.handlers import ResourceHandler, common_attrs

if TYPE_CHECKING:
    from gcp_env_provisioner.core.state import ResourceInstance
    from gcp_env_provisioner.engine.handlers import EngineContext
    from gcp_env_provisioner.resources.project import ProjectResource, ProjectServiceResource

logger = logging.getLogger(__name__)


def _billing_name(account: str | None) -> str | None:
    if not account:
        return None
    return account if account.startswith("billingAccounts/") else f"billingAccounts/{account}"


def _strip_billing(name: str | None) -> str | None:
    if not name:
        return None
    return name.removeprefix("billingAccounts/")


class ProjectHandler(ResourceHandler["ProjectResource"]):
    """CRUD handler for GCP projects.

    Projects are addressed by id (``projects/<id>``); a project pending
    deletion counts as gone.
    """

    def _crm(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("cloudresourcemanager")

    def _wait(self, ctx: EngineContext, op: dict[str, Any]) -> dict[str, Any]:
        ops = self._crm(ctx).operations()
        return ctx.provider.wait(op, lambda: ops.get(name=op["name"]).execute())

    def _get(self, ctx: EngineContext, project_id: str) -> dict[str, Any] | None:
        try:
            project = self._crm(ctx).projects().get(name=f"projects/{project_id}").execute()
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise
        if project.get("state") == "DELETE_REQUESTED":
            return None
        return project

    def _billing_account(self, ctx: EngineContext, project_id: str) -> str | None:
        info = (
            ctx.provider.api("cloudbilling")
            .projects()
            .getBillingInfo(name=f"projects/{project_id}")
            .execute()
        )
        if not info.get("billingEnabled", bool(info.get("billingAccountName"))):
            return None
        return _strip_billing(info.get("billingAccountName"))

    def _set_billing(self, ctx: EngineContext, project_id: str, account: str | None) -> None:
        logger.info("Linking project %s to billing account %s", project_id, account)
        ctx.provider.api("cloudbilling").projects().updateBillingInfo(
            name=f"projects/{project_id}",
            body={"billingAccountName": _billing_name(account) or ""},
        ).execute()

    def _read_attrs(self, ctx: EngineContext, project: dict[str, Any]) -> dict[str, Any]:
        project_id = project["projectId"]
        parent = project.get("parent", "")
        attrs = common_attrs(project_id, project_id, project.get("labels"))
        attrs.update(
            {
                "display_name": project.get("displayName", ""),
                "billing_account": self._billing_account(ctx, project_id),
                "folder_id": parent.removeprefix("folders/")
                if parent.startswith("folders/")
                else None,
                "project_id": project_id,
                "project_number": project.get("name", "").removeprefix("projects/"),
            }
        )
        return attrs

    def validate(self, ctx: EngineContext, desired: ProjectResource) -> list[str]:
        _ = ctx
        if desired.project != desired.name:
            return [f"Project '{desired.name}' must own itself (project={desired.project!r})"]
        return []

    def create(self, ctx: EngineContext, desired: ProjectResource) -> dict[str, Any]:
        body: dict[str, Any] = {
            "projectId": desired.name,
            "displayName": desired.display_name or desired.name,
            "labels": dict(desired.labels),
        }
        if desired.folder_id:
            body["parent"] = f"folders/{desired.folder_id}"

        logger.info("Creating project %s", desired.name)
        op = self._crm(ctx).projects().create(body=body).execute()
        self._wait(ctx, op)

        if desired.billing_account:
            self._set_billing(ctx, desired.name, desired.billing_account)

        project = self._get(ctx, desired.name)
        if project is None:
            raise RuntimeError(f"Project '{desired.name}' not found after creation")
        return self._read_attrs(ctx, project)

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = self._get(ctx, prior.name)
        if project is None:
            return None
        return self._read_attrs(ctx, project)

    def update(
        self, ctx: EngineContext, desired: ProjectResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        name = f"projects/{desired.name}"
        projects = self._crm(ctx).projects()

        op = projects.patch(
            name=name,
            updateMask="displayName,labels",
            body={
                "displayName": desired.display_name or desired.name,
                "labels": dict(desired.labels),
            },
        ).execute()
        self._wait(ctx, op)

        if desired.folder_id and desired.folder_id != prior.attributes.get("folder_id"):
            logger.info("Moving project %s to folder %s", desired.name, desired.folder_id)
            op = projects.move(
                name=name, body={"destinationParent": f"folders/{desired.folder_id}"}
            ).execute()
            self._wait(ctx, op)

        if desired.billing_account != prior.attributes.get("billing_account"):
            self._set_billing(ctx, desired.name, desired.billing_account)

        project = self._get(ctx, desired.name)
        if project is None:
            raise RuntimeError(f"Project '{desired.name}' not found after update")
        return self._read_attrs(ctx, project)

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        logger.info("Deleting project %s", prior.name)
        try:
            op = self._crm(ctx).projects().delete(name=f"projects/{prior.name}").execute()
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        self._wait(ctx, op)


class ProjectServiceHandler(ResourceHandler["ProjectServiceResource"]):
    """Enables Google APIs on the owning project.

    APIs stay enabled on destroy unless ``disable_on_destroy`` is set.
    """

    def _services(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("serviceusage").services()

    def _wait(self, ctx: EngineContext, op: dict[str, Any]) -> dict[str, Any]:
        ops = ctx.provider.api("serviceusage").operations()
        return ctx.provider.wait(op, lambda: ops.get(name=op["name"]).execute())

    @staticmethod
    def _service_name(project: str, api: str) -> str:
        return f"projects/{project}/services/{api}"

    def _read_attrs(
        self, project: str, api: str, labels: dict[str, str], disable_on_destroy: bool
    ) -> dict[str, Any]:
        attrs = common_attrs(api, project, labels)
        attrs["disable_on_destroy"] = disable_on_destroy
        attrs["state"] = "ENABLED"
        return attrs

    def create(self, ctx: EngineContext, desired: ProjectServiceResource) -> dict[str, Any]:
        logger.info("Enabling %s on %s", desired.name, desired.project)
        op = (
            self._services(ctx)
            .enable(name=self._service_name(desired.project, desired.name), body={})
            .execute()
        )
        self._wait(ctx, op)
        return self._read_attrs(
            desired.project, desired.name, desired.labels, desired.disable_on_destroy
        )

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        try:
            service = (
                self._services(ctx).get(name=self._service_name(project, prior.name)).execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise
        if service.get("state") != "ENABLED":
            return None
        # Service Usage has no labels; echo the stored ones to avoid phantom drift.
        return self._read_attrs(
            project,
            prior.name,
            prior.attributes.get("labels", {}),
            prior.attributes.get("disable_on_destroy", False),
        )

    def update(
        self, ctx: EngineContext, desired: ProjectServiceResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        _ = ctx, prior
        return self._read_attrs(
            desired.project, desired.name, desired.labels, desired.disable_on_destroy
        )

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        if not prior.attributes.get("disable_on_destroy", False):
            logger.debug("Leaving %s enabled", prior.name)
            return
        project = prior.attributes["project"]
        logger.info("Disabling %s on %s", prior.name, project)
        try:
            op = (
                self._services(ctx)
                .disable(
                    name=self._service_name(project, prior.name),
                    body={"disableDependentServices": False},
                )
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        self._wait(ctx, op)
