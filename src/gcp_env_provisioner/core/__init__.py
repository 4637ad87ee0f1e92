"""Core infrastructure components for the GCP environment provisioner."""

from gcp_env_provisioner.core.provider import GCPProvider, ServiceAccountAuth
from gcp_env_provisioner.core.state import ResourceInstance, State

__all__ = ["GCPProvider", "ResourceInstance", "ServiceAccountAuth", "State"]
