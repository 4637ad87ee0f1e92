"""Default resource type registry factory."""

from __future__ import annotations

from gcp_env_provisioner.engine.gke_handler import GKEClusterHandler, GKENodePoolHandler
from gcp_env_provisioner.engine.network_handler import NetworkHandler, SubnetworkHandler
from gcp_env_provisioner.engine.project_handler import ProjectHandler, ProjectServiceHandler
from gcp_env_provisioner.engine.pubsub_handler import PubSubTopicHandler
from gcp_env_provisioner.engine.redis_handler import RedisInstanceHandler
from gcp_env_provisioner.engine.registry import ResourceTypeRegistry
from gcp_env_provisioner.engine.sql_handler import (
    PrivateServiceAccessHandler,
    SQLDatabaseHandler,
    SQLInstanceHandler,
)
from gcp_env_provisioner.resources import (
    GKEClusterResource,
    GKENodePoolResource,
    NetworkResource,
    PrivateServiceAccessResource,
    ProjectResource,
    ProjectServiceResource,
    PubSubTopicResource,
    RedisInstanceResource,
    SQLDatabaseResource,
    SQLInstanceResource,
    SubnetworkResource,
)


def default_registry() -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource types and handlers."""
    registry = ResourceTypeRegistry()

    registry.register(ProjectResource, ProjectHandler())
    registry.register(ProjectServiceResource, ProjectServiceHandler())

    registry.register(NetworkResource, NetworkHandler())
    registry.register(SubnetworkResource, SubnetworkHandler())

    registry.register(GKEClusterResource, GKEClusterHandler())
    registry.register(GKENodePoolResource, GKENodePoolHandler())

    registry.register(PrivateServiceAccessResource, PrivateServiceAccessHandler())
    registry.register(SQLInstanceResource, SQLInstanceHandler())
    registry.register(SQLDatabaseResource, SQLDatabaseHandler())

    registry.register(RedisInstanceResource, RedisInstanceHandler())
    registry.register(PubSubTopicResource, PubSubTopicHandler())

    return registry
