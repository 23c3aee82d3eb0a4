"""
# Tenant Indexes

This module defines the **database indexes** of the management database and of each
tenant database.

## Index Catalog

### Management database

| Index Name | Collection | Fields | Purpose |
|------------|------------|--------|---------|
| `tenant_id_idx` | `tenants` | `tenant_id` (1) | Unique lookup by tenant id |
| `tenant_owner_idx` | `tenants` | `owner_user_id` (1) | Tenants owned by a user |
| `tenant_partner_idx` | `tenants` | `partner_id` (1) | Tenants managed by a partner |
| `membership_user_active_idx` | `memberships` | `user_id` (1), `is_active` (1) | **Primary access**: a user's tenants |
| `membership_tenant_idx` | `memberships` | `tenant_id` (1) | Cleanup on tenant deletion |
| `partner_id_idx` | `partners` | `partner_id` (1) | Unique lookup by partner id |

### Tenant database

| Index Name | Collection | Fields | Purpose |
|------------|------------|--------|---------|
| `membership_user_idx` | `memberships` | `user_id` (1) | Member lookup |
| `config_type_idx` | `tenant-configs` | `config_type` (1), `is_active` (1) | Active config by type |

Index creation is **best effort**: a failing index is logged and skipped so that an
unreachable index never blocks service start-up.

## Usage Example

```python
await create_indexes(management_handle.get_database(), MANAGEMENT_INDEXES)
```
"""

from typing import Any, Dict, List

from pymongo.errors import PyMongoError

from tenant_provisioning.managers.logging_manager import get_logger

logger = get_logger(prefix="[TenantIndexes]")

MANAGEMENT_INDEXES = [
    {"collection": "tenants", "index": [("tenant_id", 1)], "options": {"name": "tenant_id_idx", "unique": True}},
    {"collection": "tenants", "index": [("owner_user_id", 1)], "options": {"name": "tenant_owner_idx"}},
    {"collection": "tenants", "index": [("partner_id", 1)], "options": {"name": "tenant_partner_idx"}},
    {
        "collection": "memberships",
        "index": [("user_id", 1), ("is_active", 1)],
        "options": {"name": "membership_user_active_idx"},
    },
    {"collection": "memberships", "index": [("tenant_id", 1)], "options": {"name": "membership_tenant_idx"}},
    {"collection": "partners", "index": [("partner_id", 1)], "options": {"name": "partner_id_idx", "unique": True}},
]

TENANT_INDEXES = [
    {"collection": "memberships", "index": [("user_id", 1)], "options": {"name": "membership_user_idx"}},
    {
        "collection": "tenant-configs",
        "index": [("config_type", 1), ("is_active", 1)],
        "options": {"name": "config_type_idx"},
    },
]


async def create_indexes(database, index_specs: List[Dict[str, Any]]) -> int:
    """
    Create the given indexes on a Motor database. Idempotent.

    Args:
        database: An `AsyncIOMotorDatabase`.
        index_specs: Entries of `{"collection", "index", "options"}`.

    Returns:
        int: Number of indexes created (or confirmed present).
    """
    created_count = 0
    for index_spec in index_specs:
        collection_name = index_spec["collection"]
        options = index_spec.get("options", {})
        try:
            await database[collection_name].create_index(index_spec["index"], **options)
            created_count += 1
            logger.debug("Created index %s on collection %s", options.get("name", "unnamed"), collection_name)
        except PyMongoError as e:
            logger.warning(
                "Failed to create index %s on collection %s: %s", options.get("name", "unnamed"), collection_name, e
            )

    logger.info("Index creation completed: %d/%d indexes created", created_count, len(index_specs))
    return created_count
