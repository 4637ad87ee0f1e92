"""Memorystore for Redis resource model."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import Field

from gcp_env_provisioner.resources.base import Resource


class RedisInstanceResource(Resource):
    resource_type: ClassVar[str] = "gcp_redis_instance"
    feature: ClassVar[str] = "redis"
    plan_priority: ClassVar[int] = 50

    region: str
    authorized_network: str
    tier: Literal["BASIC", "STANDARD_HA"] = "BASIC"
    memory_size_gb: int = Field(default=1, ge=1)
    redis_version: str = "REDIS_7_0"
    connect_mode: Literal["DIRECT_PEERING", "PRIVATE_SERVICE_ACCESS"] = "DIRECT_PEERING"
