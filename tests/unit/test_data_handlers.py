"""Tests for the data-tier handlers: private services access, Cloud SQL, Redis, Pub/Sub."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from gcp_env_provisioner.core.state import ResourceInstance, State
from gcp_env_provisioner.engine.handlers import EngineContext, PlanContext
from gcp_env_provisioner.engine.pubsub_handler import PubSubTopicHandler
from gcp_env_provisioner.engine.redis_handler import RedisInstanceHandler
from gcp_env_provisioner.engine.sql_handler import (
    PEERING_CONNECTION,
    SERVICE_NETWORKING,
    PrivateServiceAccessHandler,
    SQLDatabaseHandler,
    SQLInstanceHandler,
)
from gcp_env_provisioner.resources.pubsub import PubSubTopicResource
from gcp_env_provisioner.resources.redis import RedisInstanceResource
from gcp_env_provisioner.resources.sql import (
    PrivateServiceAccessResource,
    SQLDatabaseResource,
    SQLInstanceResource,
)

NETWORK_PATH = "projects/dev-env-dev/global/networks/dev-vpc"
DONE = {"name": "op-1", "status": "DONE"}
DONE_LRO = {"name": "operations/op-1", "done": True}


def _not_found() -> HttpError:
    return HttpError(httplib2.Response({"status": 404}), b"not found")


def _instance(address: str, attrs: dict[str, Any]) -> ResourceInstance:
    now = datetime.now(UTC)
    return ResourceInstance(
        address=address,
        resource_type=address.split(".", 1)[0],
        name=attrs["name"],
        attributes=attrs,
        created_at=now,
        updated_at=now,
    )


def _api(apis: dict[str, MagicMock], name: str) -> MagicMock:
    return apis.setdefault(name, MagicMock())


class TestPrivateServiceAccessHandler:
    def test_create_reserves_range_then_connects(
        self, ctx: EngineContext, apis: dict[str, MagicMock]
    ) -> None:
        addresses = _api(apis, "compute").globalAddresses.return_value
        addresses.insert.return_value.execute.return_value = DONE
        addresses.get.return_value.execute.return_value = {
            "name": "dev-vpc-psa",
            "network": "https://www.googleapis.com/compute/v1/" + NETWORK_PATH,
            "prefixLength": 16,
            "address": "10.100.0.0",
        }
        _api(apis, "cloudresourcemanager").projects.return_value.get.return_value.execute.return_value = {
            "name": "projects/123456789"
        }
        connections = _api(apis, "servicenetworking").services.return_value.connections.return_value
        connections.create.return_value.execute.return_value = DONE_LRO

        desired = PrivateServiceAccessResource(
            name="dev-vpc-psa", project="dev-env-dev", network=NETWORK_PATH
        )
        attrs = PrivateServiceAccessHandler().create(ctx, desired)

        body = addresses.insert.call_args.kwargs["body"]
        assert body["purpose"] == "VPC_PEERING"
        assert body["prefixLength"] == 16
        connections.create.assert_called_once_with(
            parent=SERVICE_NETWORKING,
            body={
                "network": "projects/123456789/global/networks/dev-vpc",
                "reservedPeeringRanges": ["dev-vpc-psa"],
            },
        )
        assert attrs["network"] == NETWORK_PATH
        assert attrs["address"] == "10.100.0.0"

    def test_delete_tolerates_missing_connection(
        self, ctx: EngineContext, apis: dict[str, MagicMock]
    ) -> None:
        _api(apis, "cloudresourcemanager").projects.return_value.get.return_value.execute.return_value = {
            "name": "projects/123456789"
        }
        connections = _api(apis, "servicenetworking").services.return_value.connections.return_value
        connections.deleteConnection.return_value.execute.side_effect = _not_found()
        addresses = _api(apis, "compute").globalAddresses.return_value
        addresses.delete.return_value.execute.return_value = DONE

        prior = _instance(
            "gcp_private_service_access.dev-vpc-psa",
            {"name": "dev-vpc-psa", "project": "dev-env-dev", "network": NETWORK_PATH},
        )
        PrivateServiceAccessHandler().delete(ctx, prior)

        assert connections.deleteConnection.call_args.kwargs["name"] == PEERING_CONNECTION
        addresses.delete.assert_called_once_with(project="dev-env-dev", address="dev-vpc-psa")


class TestSQLInstanceHandler:
    def test_create_is_private_ip_only(self, ctx: EngineContext, apis: dict[str, MagicMock]) -> None:
        instances = _api(apis, "sqladmin").instances.return_value
        instances.insert.return_value.execute.return_value = DONE
        instances.get.return_value.execute.return_value = {
            "name": "main-db",
            "region": "us-central1",
            "databaseVersion": "POSTGRES_15",
            "connectionName": "dev-env-dev:us-central1:main-db",
            "ipAddresses": [
                {"type": "OUTGOING", "ipAddress": "34.0.0.1"},
                {"type": "PRIVATE", "ipAddress": "10.100.0.3"},
            ],
            "settings": {
                "tier": "db-custom-2-7680",
                "dataDiskSizeGb": "20",
                "ipConfiguration": {"privateNetwork": NETWORK_PATH},
            },
        }

        desired = SQLInstanceResource(
            name="main-db", project="dev-env-dev", region="us-central1", network=NETWORK_PATH
        )
        attrs = SQLInstanceHandler().create(ctx, desired)

        settings = instances.insert.call_args.kwargs["body"]["settings"]
        assert settings["ipConfiguration"] == {"ipv4Enabled": False, "privateNetwork": NETWORK_PATH}
        assert attrs["connection_name"] == "dev-env-dev:us-central1:main-db"
        assert attrs["private_ip"] == "10.100.0.3"
        assert attrs["disk_size_gb"] == 20

    def test_delete_refuses_protected_instance(
        self, ctx: EngineContext, apis: dict[str, MagicMock]
    ) -> None:
        prior = _instance(
            "gcp_sql_instance.main-db",
            {"name": "main-db", "project": "dev-env-dev", "deletion_protection": True},
        )
        with pytest.raises(RuntimeError, match="deletion protection"):
            SQLInstanceHandler().delete(ctx, prior)
        _api(apis, "sqladmin").instances.return_value.delete.assert_not_called()

    def test_update_refuses_version_change(self, ctx: EngineContext) -> None:
        prior = _instance(
            "gcp_sql_instance.main-db",
            {
                "name": "main-db",
                "project": "dev-env-dev",
                "region": "us-central1",
                "network": NETWORK_PATH,
                "database_version": "POSTGRES_14",
            },
        )
        desired = SQLInstanceResource(
            name="main-db", project="dev-env-dev", region="us-central1", network=NETWORK_PATH
        )
        with pytest.raises(RuntimeError, match="database_version"):
            SQLInstanceHandler().update(ctx, desired, prior)


class TestSQLDatabaseHandler:
    def test_create_inserts_into_instance(
        self, ctx: EngineContext, apis: dict[str, MagicMock]
    ) -> None:
        databases = _api(apis, "sqladmin").databases.return_value
        databases.insert.return_value.execute.return_value = DONE
        databases.get.return_value.execute.return_value = {
            "name": "app",
            "instance": "main-db",
            "charset": "UTF8",
        }

        desired = SQLDatabaseResource(
            name="main-db.app", project="dev-env-dev", instance="main-db", database="app"
        )
        attrs = SQLDatabaseHandler().create(ctx, desired)

        databases.insert.assert_called_once_with(
            project="dev-env-dev", instance="main-db", body={"name": "app", "instance": "main-db"}
        )
        assert attrs["name"] == "main-db.app"
        assert attrs["database"] == "app"

    def test_validate_plan_requires_instance(self, ctx: EngineContext) -> None:
        db = SQLDatabaseResource(
            name="main-db.app", project="dev-env-dev", instance="main-db", database="app"
        )
        plan_ctx = PlanContext({db.address: db}, State(environment="dev"))
        errors = SQLDatabaseHandler().validate_plan(ctx, db, plan_ctx)
        assert errors
        assert "unknown SQL instance" in errors[0]


class TestRedisInstanceHandler:
    def _api_instance(self, memory: int = 1) -> dict[str, Any]:
        return {
            "name": "projects/dev-env-dev/locations/us-central1/instances/dev-cache",
            "authorizedNetwork": NETWORK_PATH,
            "tier": "BASIC",
            "memorySizeGb": memory,
            "redisVersion": "REDIS_7_0",
            "host": "10.200.0.4",
            "port": 6379,
            "state": "READY",
        }

    def test_create_uses_instance_id(self, ctx: EngineContext, apis: dict[str, MagicMock]) -> None:
        instances = _api(apis, "redis").projects.return_value.locations.return_value.instances
        instances.return_value.create.return_value.execute.return_value = DONE_LRO
        instances.return_value.get.return_value.execute.return_value = self._api_instance()

        desired = RedisInstanceResource(
            name="dev-cache",
            project="dev-env-dev",
            region="us-central1",
            authorized_network=NETWORK_PATH,
        )
        attrs = RedisInstanceHandler().create(ctx, desired)

        call = instances.return_value.create.call_args.kwargs
        assert call["parent"] == "projects/dev-env-dev/locations/us-central1"
        assert call["instanceId"] == "dev-cache"
        assert attrs["name"] == "dev-cache"
        assert attrs["host"] == "10.200.0.4"
        assert attrs["port"] == 6379

    def test_update_patches_memory_and_labels(
        self, ctx: EngineContext, apis: dict[str, MagicMock]
    ) -> None:
        instances = _api(apis, "redis").projects.return_value.locations.return_value.instances
        instances.return_value.patch.return_value.execute.return_value = DONE_LRO
        instances.return_value.get.return_value.execute.return_value = self._api_instance(4)
        prior = _instance(
            "gcp_redis_instance.dev-cache",
            RedisInstanceHandler()._read_attrs("dev-env-dev", "us-central1", self._api_instance()),
        )
        desired = RedisInstanceResource(
            name="dev-cache",
            project="dev-env-dev",
            region="us-central1",
            authorized_network=NETWORK_PATH,
            memory_size_gb=4,
        )

        attrs = RedisInstanceHandler().update(ctx, desired, prior)

        assert instances.return_value.patch.call_args.kwargs["updateMask"] == "memorySizeGb,labels"
        assert attrs["memory_size_gb"] == 4


class TestPubSubTopicHandler:
    def test_create_records_topic_id(self, ctx: EngineContext, apis: dict[str, MagicMock]) -> None:
        topics = _api(apis, "pubsub").projects.return_value.topics.return_value
        topics.create.return_value.execute.return_value = {
            "name": "projects/dev-env-dev/topics/events",
            "labels": {"environment": "dev"},
        }

        desired = PubSubTopicResource(
            name="events", project="dev-env-dev", labels={"environment": "dev"}
        )
        attrs = PubSubTopicHandler().create(ctx, desired)

        topics.create.assert_called_once_with(
            name="projects/dev-env-dev/topics/events", body={"labels": {"environment": "dev"}}
        )
        assert attrs["topic_id"] == "projects/dev-env-dev/topics/events"
        assert attrs["name"] == "events"

    def test_update_adds_retention_to_mask(
        self, ctx: EngineContext, apis: dict[str, MagicMock]
    ) -> None:
        topics = _api(apis, "pubsub").projects.return_value.topics.return_value
        topics.patch.return_value.execute.return_value = {
            "name": "projects/dev-env-dev/topics/events",
            "messageRetentionDuration": "86400s",
        }
        prior = _instance("gcp_pubsub_topic.events", {"name": "events", "project": "dev-env-dev"})
        desired = PubSubTopicResource(
            name="events", project="dev-env-dev", message_retention_duration="86400s"
        )

        attrs = PubSubTopicHandler().update(ctx, desired, prior)

        assert topics.patch.call_args.kwargs["body"]["updateMask"] == (
            "labels,messageRetentionDuration"
        )
        assert attrs["message_retention_duration"] == "86400s"

    def test_delete_tolerates_missing(self, ctx: EngineContext, apis: dict[str, MagicMock]) -> None:
        topics = _api(apis, "pubsub").projects.return_value.topics.return_value
        topics.delete.return_value.execute.side_effect = _not_found()
        prior = _instance("gcp_pubsub_topic.events", {"name": "events", "project": "dev-env-dev"})
        PubSubTopicHandler().delete(ctx, prior)
        topics.delete.assert_called_once_with(topic="projects/dev-env-dev/topics/events")

    def test_read_missing_returns_none(self, ctx: EngineContext, apis: dict[str, MagicMock]) -> None:
        topics = _api(apis, "pubsub").projects.return_value.topics.return_value
        topics.get.return_value.execute.side_effect = _not_found()
        prior = _instance("gcp_pubsub_topic.events", {"name": "events", "project": "dev-env-dev"})
        assert PubSubTopicHandler().read(ctx, prior) is None
