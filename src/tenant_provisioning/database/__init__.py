"""
# Database Package

Connection lifecycle, units of work, cluster topology and remote provisioning for the
tenant layer, built on **Motor** (async MongoDB driver).

## Modules

- **`exceptions`**: Error taxonomy shared by the whole package.
- **`session`**: `DocumentSession`, the unit of work (identity map, change tracking,
  optimistic concurrency).
- **`connection`**: `ConnectionHandle` lifecycle and `with_session()`.
- **`cluster`**: `ClusterTopologyRegistry` and the canonical topologies.
- **`admin_client`**: HTTP client for the remote database provisioning endpoint.
- **`tenant_indexes`**: Index catalogue for the management and tenant databases.

Submodules are imported directly (`from tenant_provisioning.database.connection import
ConnectionHandle`); this package module stays import-free because the configuration
layer depends on `exceptions`.
"""
