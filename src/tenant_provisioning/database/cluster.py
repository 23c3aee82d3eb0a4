"""
# Cluster Topology Registry

Selects and describes the database cluster a connection should use.

## Canonical Topologies

| Name | Nodes | Replication | Sharding |
|------|-------|-------------|----------|
| `development` | `node-1` (primary) `localhost:27017`, `node-2` `:27018`, `node-3` `:27019` | 3 | off |
| `production` | `prod-node-{i}` at `{ip}:27017`, first host primary | `min(n, 3)` | on, `max(1, n // 2)` shards |

## Environment Detection

The environment counts as development when `APP_ENV` is not `production` **or** the
configured `DATABASE_URL` points at `localhost`. Outside development the host list is
read from `DATABASE_CLUSTER_IPS`; resolving without one is a configuration error.

The registry is a plain object owned by the composition root (see
`tenant_provisioning.bootstrap`); there is no module-level instance.

## Usage Example

```python
registry = ClusterTopologyRegistry(settings)
topology = registry.resolve_current_topology()
handle = registry.create_handle_for_cluster("development", "tenant-abc")
```
"""

from typing import Dict, List, Optional

from tenant_provisioning.config import Settings, get_database_config
from tenant_provisioning.database.connection import ConnectionHandle, create_connection_handle
from tenant_provisioning.database.exceptions import ClusterNotFoundError, ConfigurationError
from tenant_provisioning.managers.logging_manager import get_logger
from tenant_provisioning.models.cluster_models import ClusterNode, DatabaseClusterConfig, NodeRole
from tenant_provisioning.models.database_models import DatabaseConfig

logger = get_logger(prefix="[CLUSTER]")

DEVELOPMENT_CLUSTER = "development"
PRODUCTION_CLUSTER = "production"

DEFAULT_DATABASE_PORT = 27017
DEFAULT_STUDIO_PORT = 8080
MAX_REPLICATION_FACTOR = 3


def development_topology() -> DatabaseClusterConfig:
    """Fixed three-node local cluster; `node-1` is primary."""
    nodes = []
    for index in range(3):
        port = DEFAULT_DATABASE_PORT + index
        nodes.append(
            ClusterNode(
                id=f"node-{index + 1}",
                url=f"mongodb://localhost:{port}",
                studio_url=f"http://localhost:{DEFAULT_STUDIO_PORT + index}",
                tcp_port=port,
                role=NodeRole.PRIMARY if index == 0 else NodeRole.REPLICA,
            )
        )
    return DatabaseClusterConfig(nodes=nodes, replication_factor=3, enable_sharding=False)


def production_topology(ips: List[str]) -> DatabaseClusterConfig:
    """
    Synthesize the production topology from a host list.

    The first host becomes the primary. Replication is capped at three copies and
    the shard count is half the node count (at least one).
    """
    nodes = [
        ClusterNode(
            id=f"prod-node-{index + 1}",
            url=f"mongodb://{ip}:{DEFAULT_DATABASE_PORT}",
            studio_url=f"https://{ip}:{DEFAULT_STUDIO_PORT}",
            tcp_port=DEFAULT_DATABASE_PORT,
            role=NodeRole.PRIMARY if index == 0 else NodeRole.REPLICA,
        )
        for index, ip in enumerate(ips)
    ]
    return DatabaseClusterConfig(
        nodes=nodes,
        replication_factor=max(1, min(len(ips), MAX_REPLICATION_FACTOR)),
        enable_sharding=True,
        shards=max(1, len(ips) // 2),
    )


class ClusterTopologyRegistry:
    """
    Named cluster topologies plus environment-driven topology resolution.

    Attributes:
        settings (Settings): Source of `APP_ENV`, `DATABASE_URL` and `DATABASE_CLUSTER_IPS`.
    """

    def __init__(self, settings: Settings, eager: bool = True, handle_factory=create_connection_handle):
        self.settings = settings
        self._handle_factory = handle_factory
        self._topologies: Dict[str, DatabaseClusterConfig] = {}
        if eager:
            self.initialize()

    def initialize(self) -> None:
        """Register `development`, and `production` when a host list is configured."""
        self.register_topology(DEVELOPMENT_CLUSTER, development_topology())
        ips = self.settings.cluster_ips
        if ips:
            self.register_topology(PRODUCTION_CLUSTER, production_topology(ips))

    def register_topology(self, name: str, topology: DatabaseClusterConfig) -> None:
        """Insert or replace a named topology. No role validation happens here."""
        self._topologies[name] = topology
        logger.debug(f"Registered cluster {name} with {len(topology.nodes)} nodes")

    def get_topology(self, name: str) -> List[ClusterNode]:
        """Nodes of a named topology; empty list when the name is unknown."""
        topology = self._topologies.get(name)
        return list(topology.nodes) if topology else []

    def get_cluster(self, name: str) -> DatabaseClusterConfig:
        try:
            return self._topologies[name]
        except KeyError:
            raise ClusterNotFoundError(name) from None

    def registered_names(self) -> List[str]:
        return list(self._topologies)

    def is_development(self) -> bool:
        return not self.settings.is_production or "localhost" in self.settings.DATABASE_URL

    def resolve_current_topology(self) -> DatabaseClusterConfig:
        """
        Topology for the current environment. Recomputed on every call.

        Raises:
            ConfigurationError: Production without `DATABASE_CLUSTER_IPS`.
        """
        if self.is_development():
            return development_topology()

        ips = self.settings.cluster_ips
        if not ips:
            raise ConfigurationError("cluster IPs not configured for production")
        return production_topology(ips)

    def build_database_config(
        self,
        topology: DatabaseClusterConfig,
        database_name: str,
        base_config: Optional[DatabaseConfig] = None,
    ) -> DatabaseConfig:
        """`DatabaseConfig` over the topology's node URLs, keeping auth and session knobs of `base_config`."""
        base_config = base_config or get_database_config(self.settings)
        return base_config.with_urls(topology.urls()).with_database(database_name)

    def create_handle_for_cluster(
        self,
        cluster_name: str,
        database_name: str,
        base_config: Optional[DatabaseConfig] = None,
    ) -> ConnectionHandle:
        """
        Build a not-initialized handle for `database_name` on a registered cluster.

        Raises:
            ClusterNotFoundError: Unknown cluster name.
            ConfigurationError: The cluster does not have exactly one primary node.
        """
        topology = self.get_cluster(cluster_name)
        primary = topology.primary()
        logger.info(f"Creating handle for {database_name} on cluster {cluster_name} (primary {primary.id})")
        return self._handle_factory(self.build_database_config(topology, database_name, base_config))
