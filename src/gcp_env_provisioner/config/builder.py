"""Dependency graph builder: EnvironmentSpec → ordered resource nodes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from gcp_env_provisioner.config.inclusion import enabled_features, resolve_inclusion
from gcp_env_provisioner.config.loader import ConfigurationError
from gcp_env_provisioner.engine.graph import DependencyGraph
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

if TYPE_CHECKING:
    from collections.abc import Iterable

    from gcp_env_provisioner.config.schema import EnvironmentSpec
    from gcp_env_provisioner.resources.base import Resource

logger = logging.getLogger(__name__)

MANAGED_BY = "gcp-env-provisioner"


@dataclass
class _BuildContext:
    spec: EnvironmentSpec
    project_id: str
    labels: dict[str, str]
    project_address: str | None = None
    api_addresses: list[str] = field(default_factory=list)

    @property
    def region(self) -> str:
        return self.spec.provider.region

    @property
    def network_address(self) -> str:
        return f"{NetworkResource.resource_type}.{self.spec.resolved_network_name}"

    def network_path(self, component: str) -> str:
        """Network a component attaches to: created or externally supplied."""
        if self.spec.create_network:
            return f"projects/{self.project_id}/global/networks/{self.spec.resolved_network_name}"
        existing = self.spec.existing_network
        if not existing:
            raise ConfigurationError(
                f"{component} needs a network: set existing_network when create_network is false"
            )
        if "/" in existing:
            return existing
        return f"projects/{self.project_id}/global/networks/{existing}"

    def project_deps(self) -> list[str]:
        """The API nodes; the project node itself when no API is enabled."""
        if self.api_addresses:
            return list(self.api_addresses)
        return [self.project_address] if self.project_address else []

    def network_deps(self) -> list[str]:
        """Project-level deps, plus the network node when it is created here."""
        deps = self.project_deps()
        if self.spec.create_network:
            deps.append(self.network_address)
        return deps

    def subnet_path(self, region: str, name: str) -> str:
        return f"projects/{self.project_id}/regions/{region}/subnetworks/{name}"


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _api_name(api: str) -> str:
    return api if "." in api else f"{api}.googleapis.com"


def _core_nodes(ctx: _BuildContext) -> list[Resource]:
    spec = ctx.spec
    nodes: list[Resource] = []
    service_deps: list[str] = []
    if spec.create_project:
        project = ProjectResource(
            name=ctx.project_id,
            project=ctx.project_id,
            labels=ctx.labels,
            display_name=f"{spec.project_prefix} {spec.environment}",
            billing_account=spec.billing_account,
            folder_id=spec.folder_id,
        )
        nodes.append(project)
        service_deps.append(project.address)
        ctx.project_address = project.address

    for api in dict.fromkeys(_api_name(a) for a in spec.enabled_apis):
        service = ProjectServiceResource(
            name=api, project=ctx.project_id, labels=ctx.labels, depends_on=service_deps
        )
        nodes.append(service)
        ctx.api_addresses.append(service.address)
    return nodes


def _network_nodes(ctx: _BuildContext) -> list[Resource]:
    spec = ctx.spec
    network = NetworkResource(
        name=spec.resolved_network_name,
        project=ctx.project_id,
        labels=ctx.labels,
        depends_on=ctx.project_deps(),
    )
    nodes: list[Resource] = [network]
    for name, subnet in sorted(spec.subnets.items()):
        nodes.append(
            SubnetworkResource(
                name=name,
                project=ctx.project_id,
                labels=ctx.labels,
                network=ctx.network_path("subnetwork"),
                region=subnet.region or ctx.region,
                ip_cidr_range=subnet.cidr,
                secondary_ranges=dict(subnet.secondary_ranges),
                private_google_access=subnet.private_google_access,
                depends_on=[network.address],
            )
        )
    return nodes


def _gke_nodes(ctx: _BuildContext) -> list[Resource]:
    spec = ctx.spec
    config = spec.gke_config
    if config is None:
        raise ConfigurationError("enable_components.gke is true but gke_config is missing")

    name = config.name or f"{spec.environment}-gke"
    location = config.location or ctx.region
    network = ctx.network_path("gke")
    deps = ctx.network_deps()

    if spec.create_network:
        if not config.subnet_name:
            raise ConfigurationError(
                "gke_config.subnet_name is required when create_network is true"
            )
        subnet = spec.subnets.get(config.subnet_name)
        if subnet is None:
            raise ConfigurationError(
                f"gke_config.subnet_name '{config.subnet_name}' is not defined in subnets"
            )
        for label, range_name in (
            ("pods_range_name", config.pods_range_name),
            ("services_range_name", config.services_range_name),
        ):
            if range_name and range_name not in subnet.secondary_ranges:
                raise ConfigurationError(
                    f"gke_config.{label} '{range_name}' is not a secondary range "
                    f"of subnet '{config.subnet_name}'"
                )
        subnetwork = ctx.subnet_path(subnet.region or ctx.region, config.subnet_name)
        deps.append(f"{SubnetworkResource.resource_type}.{config.subnet_name}")
    else:
        existing = spec.existing_subnetwork
        if not existing:
            raise ConfigurationError(
                "gke needs a subnetwork: set existing_subnetwork when create_network is false"
            )
        subnetwork = existing if "/" in existing else ctx.subnet_path(ctx.region, existing)

    cluster = GKEClusterResource(
        name=name,
        project=ctx.project_id,
        labels=ctx.labels,
        location=location,
        network=network,
        subnetwork=subnetwork,
        release_channel=config.release_channel,
        pods_range_name=config.pods_range_name,
        services_range_name=config.services_range_name,
        private_nodes=config.private_nodes,
        master_ipv4_cidr=config.master_ipv4_cidr,
        depends_on=deps,
    )
    nodes: list[Resource] = [cluster]
    for pool in config.node_pools:
        nodes.append(
            GKENodePoolResource(
                name=pool.name,
                project=ctx.project_id,
                labels=ctx.labels,
                cluster=name,
                location=location,
                machine_type=pool.machine_type,
                min_node_count=pool.min_node_count,
                max_node_count=pool.max_node_count,
                disk_size_gb=pool.disk_size_gb,
                preemptible=pool.preemptible,
                oauth_scopes=list(pool.oauth_scopes),
                depends_on=[cluster.address],
            )
        )
    return nodes


def _psa_name(network_path: str) -> str:
    return f"{_basename(network_path)}-psa"


def _database_nodes(ctx: _BuildContext) -> list[Resource]:
    spec = ctx.spec
    if not spec.databases:
        raise ConfigurationError("enable_components.databases is true but no databases are set")

    network = ctx.network_path("databases")
    psa = PrivateServiceAccessResource(
        name=_psa_name(network),
        project=ctx.project_id,
        labels=ctx.labels,
        network=network,
        depends_on=ctx.network_deps(),
    )
    nodes: list[Resource] = [psa]
    for db in spec.databases:
        instance = SQLInstanceResource(
            name=db.name,
            project=ctx.project_id,
            labels=ctx.labels,
            region=db.region or ctx.region,
            network=network,
            database_version=db.database_version,
            tier=db.tier,
            availability_type=db.availability_type,
            disk_size_gb=db.disk_size_gb,
            deletion_protection=db.deletion_protection,
            depends_on=[psa.address],
        )
        nodes.append(instance)
        nodes.extend(
            SQLDatabaseResource(
                name=f"{db.name}.{database}",
                project=ctx.project_id,
                labels=ctx.labels,
                instance=db.name,
                database=database,
                depends_on=[instance.address],
            )
            for database in db.databases
        )
    return nodes


def _redis_nodes(ctx: _BuildContext) -> list[Resource]:
    spec = ctx.spec
    config = spec.redis_config
    if config is None:
        raise ConfigurationError("enable_components.redis is true but redis_config is missing")

    network = ctx.network_path("redis")
    deps = ctx.network_deps()
    if config.connect_mode == "PRIVATE_SERVICE_ACCESS":
        deps.append(f"{PrivateServiceAccessResource.resource_type}.{_psa_name(network)}")
    return [
        RedisInstanceResource(
            name=config.name or f"{spec.environment}-redis",
            project=ctx.project_id,
            labels=ctx.labels,
            region=config.region or ctx.region,
            authorized_network=network,
            tier=config.tier,
            memory_size_gb=config.memory_size_gb,
            redis_version=config.redis_version,
            connect_mode=config.connect_mode,
            depends_on=deps,
        )
    ]


def _pubsub_nodes(ctx: _BuildContext) -> list[Resource]:
    config = ctx.spec.pubsub_config
    if config is None:
        raise ConfigurationError("enable_components.pubsub is true but pubsub_config is missing")
    return [
        PubSubTopicResource(
            name=topic.name,
            project=ctx.project_id,
            labels=ctx.labels,
            message_retention_duration=topic.message_retention_duration,
            depends_on=ctx.project_deps(),
        )
        for topic in config.topics
    ]


_BUILDERS: list[tuple[str, Callable[[_BuildContext], list[Resource]]]] = [
    ("core", _core_nodes),
    ("network", _network_nodes),
    ("gke", _gke_nodes),
    ("databases", _database_nodes),
    ("redis", _redis_nodes),
    ("pubsub", _pubsub_nodes),
]


def _context(spec: EnvironmentSpec) -> _BuildContext:
    project_id = spec.resolved_project_id
    if project_id is None:
        raise ConfigurationError("existing_project_id is required when create_project is false")
    labels = {"environment": spec.environment, "managed-by": MANAGED_BY, **spec.labels}
    return _BuildContext(spec=spec, project_id=project_id, labels=labels)


def build_node_table(
    spec: EnvironmentSpec, features: Iterable[str] | None = None
) -> list[Resource]:
    """Build the full node table, before pruning.

    Nodes of disabled features are included when they can be built; a
    feature that cannot be built (missing or inconsistent settings) only
    fails when it is enabled.
    """
    enabled = frozenset(enabled_features(spec) if features is None else features)
    ctx = _context(spec)
    table: list[Resource] = []
    for feature, build in _BUILDERS:
        try:
            nodes = build(ctx)
        except ConfigurationError as exc:
            if feature in enabled:
                raise
            logger.debug("Feature %s is disabled and cannot be built: %s", feature, exc)
            continue
        except ValueError as exc:
            # pydantic rejected a node built from the settings
            if feature in enabled:
                raise ConfigurationError(f"Invalid {feature} settings: {exc}") from exc
            logger.debug("Feature %s is disabled and cannot be built: %s", feature, exc)
            continue
        table.extend(nodes)
    return table


def _check_references(nodes: list[Resource], table: list[Resource]) -> None:
    by_addr = {n.address: n for n in table}
    graph = DependencyGraph(
        (n.address for n in nodes), {n.address: n.dependencies() for n in nodes}
    )
    errors: list[str] = []
    for address, missing in graph.unresolved_dependencies().items():
        for dep in missing:
            pruned = by_addr.get(dep)
            if pruned is not None:
                errors.append(
                    f"{address} depends on {dep}, whose feature '{pruned.feature}' is disabled"
                )
            else:
                errors.append(f"{address} depends on unknown node {dep}")
    if errors:
        raise ConfigurationError("\n".join(errors))


def _check_duplicates(nodes: list[Resource]) -> None:
    seen: set[str] = set()
    dupes: set[str] = set()
    for n in nodes:
        if n.address in seen:
            dupes.add(n.address)
        seen.add(n.address)
    if dupes:
        raise ConfigurationError(f"Duplicate resource addresses: {', '.join(sorted(dupes))}")


def build_graph(spec: EnvironmentSpec) -> list[Resource]:
    """Build, prune and order the environment's nodes.

    Every node appears after all of its dependencies. The order is
    deterministic: building twice from the same spec yields the same list.

    Raises:
        ConfigurationError: Missing or inconsistent settings, or an included
            node that depends on a pruned one.
    """
    features = enabled_features(spec)
    table = build_node_table(spec, features)
    nodes = resolve_inclusion(table, features)
    logger.debug(
        "Pruned %d of %d nodes (features: %s)",
        len(table) - len(nodes),
        len(table),
        ", ".join(sorted(features)),
    )

    _check_duplicates(nodes)
    _check_references(nodes, table)

    by_addr = {n.address: n for n in nodes}
    order = DependencyGraph(
        by_addr,
        {addr: n.dependencies() for addr, n in by_addr.items()},
        priorities={addr: n.plan_priority for addr, n in by_addr.items()},
    ).topological_order()
    logger.info("Built %d nodes for environment %s", len(order), spec.environment)
    return [by_addr[addr] for addr in order]
