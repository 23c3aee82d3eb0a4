"""
# Cluster Topology Models

This module defines the **topology primitives** used to decide which database nodes a
connection talks to.

## Domain Model Overview

- **ClusterNode**: One database server with its driver URL, admin (studio) URL, raw TCP
  port and role.
- **DatabaseClusterConfig**: An ordered set of nodes plus replication and sharding
  parameters.

## Role Sanity

Exactly one node per topology should be `primary`. This is **not** enforced when a
topology is constructed (registries accept whatever they are given); it is checked at
consumption time by `DatabaseClusterConfig.primary()`.

## Usage Example

```python
topology = DatabaseClusterConfig(
    nodes=[
        ClusterNode(id="node-1", url="mongodb://10.0.0.1:27017",
                    studio_url="https://10.0.0.1:8080", tcp_port=27017,
                    role=NodeRole.PRIMARY),
    ],
    replication_factor=1,
)
topology.primary().url  # "mongodb://10.0.0.1:27017"
```
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from tenant_provisioning.database.exceptions import ConfigurationError


class NodeRole(str, Enum):
    """Enumeration of node roles in a database cluster.

    Attributes:
        PRIMARY: Node accepting writes; used for the initial connection.
        REPLICA: Node holding a replicated copy of the data.
    """
    PRIMARY = "primary"
    REPLICA = "replica"


class ClusterNode(BaseModel):
    """Model representing a single database server.

    Attributes:
        id (str): Stable node identifier (e.g. `node-1`).
        url (str): Driver connection URL.
        studio_url (str): Admin HTTP URL used for provisioning requests.
        tcp_port (int): Port of the database's native protocol.
        role (NodeRole): Primary or replica.
    """
    id: str = Field(..., description="Unique node identifier")
    url: str = Field(..., description="Driver connection URL")
    studio_url: str = Field(..., description="Admin/studio HTTP URL")
    tcp_port: int = Field(..., ge=1, le=65535, description="Native protocol port")
    role: NodeRole = Field(default=NodeRole.REPLICA, description="Node role")


class DatabaseClusterConfig(BaseModel):
    """Model representing a cluster topology.

    Attributes:
        nodes (List[ClusterNode]): Ordered node list.
        replication_factor (int): Target number of copies of each database.
        enable_sharding (bool): Whether databases are sharded across nodes.
        shards (Optional[int]): Shard count when sharding is enabled.
    """
    nodes: List[ClusterNode] = Field(default_factory=list, description="Cluster nodes")
    replication_factor: int = Field(default=1, ge=1, description="Replication factor")
    enable_sharding: bool = Field(default=False, description="Sharding enabled")
    shards: Optional[int] = Field(default=None, ge=1, description="Shard count")

    def urls(self) -> List[str]:
        """Driver URLs of all nodes, in topology order."""
        return [node.url for node in self.nodes]

    def primary_nodes(self) -> List[ClusterNode]:
        return [node for node in self.nodes if node.role == NodeRole.PRIMARY]

    def primary(self) -> ClusterNode:
        """
        Return the single primary node.

        Raises:
            ConfigurationError: If the topology has no primary or more than one.
        """
        primaries = self.primary_nodes()
        if not primaries:
            raise ConfigurationError("No primary node found in cluster")
        if len(primaries) > 1:
            raise ConfigurationError(
                f"Cluster has {len(primaries)} primary nodes; exactly one is required",
                details={"primaries": [node.id for node in primaries]},
            )
        return primaries[0]
