"""Pub/Sub topic resource model (messaging queue)."""

from __future__ import annotations

from typing import ClassVar

from gcp_env_provisioner.resources.base import Resource


class PubSubTopicResource(Resource):
    resource_type: ClassVar[str] = "gcp_pubsub_topic"
    feature: ClassVar[str] = "pubsub"

    message_retention_duration: str | None = None
