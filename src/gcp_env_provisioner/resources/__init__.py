"""GCP resource node definitions."""

from gcp_env_provisioner.resources.base import Resource
from gcp_env_provisioner.resources.gke import GKEClusterResource, GKENodePoolResource
from gcp_env_provisioner.resources.network import NetworkResource, SubnetworkResource
from gcp_env_provisioner.resources.project import ProjectResource, ProjectServiceResource
from gcp_env_provisioner.resources.pubsub import PubSubTopicResource
from gcp_env_provisioner.resources.redis import RedisInstanceResource
from gcp_env_provisioner.resources.sql import (
    PrivateServiceAccessResource,
    SQLDatabaseResource,
    SQLInstanceResource,
)

__all__ = [
    "GKEClusterResource",
    "GKENodePoolResource",
    "NetworkResource",
    "PrivateServiceAccessResource",
    "ProjectResource",
    "ProjectServiceResource",
    "PubSubTopicResource",
    "RedisInstanceResource",
    "Resource",
    "SQLDatabaseResource",
    "SQLInstanceResource",
    "SubnetworkResource",
]
