"""Memorystore for Redis handler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from googleapiclient.errors import HttpError

from gcp_env_provisioner.core.provider import is_not_found
from gcp_env_provisioner.engine.handlers import ResourceHandler, check_immutable, common_attrs

if TYPE_CHECKING:
    from gcp_env_provisioner.core.state import ResourceInstance
    from gcp_env_provisioner.engine.handlers import EngineContext
    from gcp_env_provisioner.resources.redis import RedisInstanceResource

logger = logging.getLogger(__name__)


class RedisInstanceHandler(ResourceHandler["RedisInstanceResource"]):
    def _api(self, ctx: EngineContext) -> Any:
        return ctx.provider.api("redis").projects().locations()

    @staticmethod
    def _path(project: str, region: str, name: str) -> str:
        return f"projects/{project}/locations/{region}/instances/{name}"

    def _wait(self, ctx: EngineContext, op: dict[str, Any]) -> dict[str, Any]:
        ops = self._api(ctx).operations()
        return ctx.provider.wait(op, lambda: ops.get(name=op["name"]).execute())

    def _get(self, ctx: EngineContext, path: str) -> dict[str, Any] | None:
        try:
            return self._api(ctx).instances().get(name=path).execute()
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def _read_attrs(self, project: str, region: str, instance: dict[str, Any]) -> dict[str, Any]:
        name = instance["name"].rsplit("/", 1)[-1]
        attrs = common_attrs(name, project, instance.get("labels"))
        attrs.update(
            {
                "region": region,
                "authorized_network": instance.get("authorizedNetwork"),
                "tier": instance.get("tier"),
                "memory_size_gb": instance.get("memorySizeGb"),
                "redis_version": instance.get("redisVersion"),
                "connect_mode": instance.get("connectMode", "DIRECT_PEERING"),
                "host": instance.get("host"),
                "port": instance.get("port"),
                "state": instance.get("state"),
            }
        )
        return attrs

    def _require(self, ctx: EngineContext, desired: RedisInstanceResource) -> dict[str, Any]:
        instance = self._get(ctx, self._path(desired.project, desired.region, desired.name))
        if instance is None:
            raise RuntimeError(f"Redis instance '{desired.name}' not found")
        return instance

    def create(self, ctx: EngineContext, desired: RedisInstanceResource) -> dict[str, Any]:
        logger.info("Creating Redis instance %s in %s", desired.name, desired.region)
        op = (
            self._api(ctx)
            .instances()
            .create(
                parent=f"projects/{desired.project}/locations/{desired.region}",
                instanceId=desired.name,
                body={
                    "tier": desired.tier,
                    "memorySizeGb": desired.memory_size_gb,
                    "redisVersion": desired.redis_version,
                    "authorizedNetwork": desired.authorized_network,
                    "connectMode": desired.connect_mode,
                    "labels": dict(desired.labels),
                },
            )
            .execute()
        )
        self._wait(ctx, op)
        return self._read_attrs(desired.project, desired.region, self._require(ctx, desired))

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        project = prior.attributes["project"]
        region = prior.attributes["region"]
        instance = self._get(ctx, self._path(project, region, prior.name))
        if instance is None:
            return None
        return self._read_attrs(project, region, instance)

    def update(
        self, ctx: EngineContext, desired: RedisInstanceResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        check_immutable(
            desired,
            prior,
            ["project", "region", "authorized_network", "tier", "redis_version", "connect_mode"],
        )
        op = (
            self._api(ctx)
            .instances()
            .patch(
                name=self._path(desired.project, desired.region, desired.name),
                updateMask="memorySizeGb,labels",
                body={"memorySizeGb": desired.memory_size_gb, "labels": dict(desired.labels)},
            )
            .execute()
        )
        self._wait(ctx, op)
        return self._read_attrs(desired.project, desired.region, self._require(ctx, desired))

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        project = prior.attributes["project"]
        region = prior.attributes["region"]
        logger.info("Deleting Redis instance %s", prior.name)
        try:
            op = (
                self._api(ctx)
                .instances()
                .delete(name=self._path(project, region, prior.name))
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return
            raise
        self._wait(ctx, op)
