"""Pub/Sub topic handler. Topic calls are synchronous (no operations to poll)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from googleapiclient.errors import HttpError

from gcp_env_provisioner.core.provider import is_not_found
from gcp_env_provisioner.engine.handlers import ResourceHandler, check_immutable, common_attrs

if TYPE_CHECKING:
    from gcp_env_provisioner.core.state import ResourceInstance
    from gcp_env_provisioner.engine.handlers import EngineContext
    from gcp_env_provisioner.resources.pubsub import PubSubTopicResource

logger = logging.getLogger(__name__)


class PubSubTopicHandler(ResourceHandler["PubSubTopicResource"]):
    def _topics(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("pubsub").projects().topics()

    @staticmethod
    def _path(project: str, name: str) -> str:
        return f"projects/{project}/topics/{name}"

    def _read_attrs(self, project: str, topic: dict[str, Any]) -> dict[str, Any]:
        attrs = common_attrs(topic["name"].rsplit("/", 1)[-1], project, topic.get("labels"))
        attrs["topic_id"] = topic["name"]
        if topic.get("messageRetentionDuration"):
            attrs["message_retention_duration"] = topic["messageRetentionDuration"]
        return attrs

    def _body(self, desired: PubSubTopicResource) -> dict[str, Any]:
        body: dict[str, Any] = {"labels": dict(desired.labels)}
        if desired.message_retention_duration:
            body["messageRetentionDuration"] = desired.message_retention_duration
        return body

    def create(self, ctx: EngineContext, desired: PubSubTopicResource) -> dict[str, Any]:
        logger.info("Creating Pub/Sub topic %s", desired.name)
        topic = (
            self._topics(ctx)
            .create(name=self._path(desired.project, desired.name), body=self._body(desired))
            .execute()
        )
        return self._read_attrs(desired.project, topic)

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        try:
            topic = self._topics(ctx).get(topic=self._path(project, prior.name)).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise
        return self._read_attrs(project, topic)

    def update(
        self, ctx: EngineContext, desired: PubSubTopicResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        check_immutable(desired, prior, ["project"])
        mask = ["labels"]
        if desired.message_retention_duration != prior.attributes.get(
            "message_retention_duration"
        ):
            mask.append("messageRetentionDuration")
        topic = (
            self._topics(ctx)
            .patch(
                name=self._path(desired.project, desired.name),
                body={"topic": self._body(desired), "updateMask": ",".join(mask)},
            )
            .execute()
        )
        return self._read_attrs(desired.project, topic)

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        project = prior.attributes["project"]
        logger.info("Deleting Pub/Sub topic %s", prior.name)
        try:
            self._topics(ctx).delete(topic=self._path(project, prior.name)).execute()
        except HttpError as exc:
            if not is_not_found(exc):
                raise
