"""
Composition root.

Builds the cluster registry, the optional admin client and the tenant service from one
`Settings` instance. Nothing in the package holds module-level service state; callers
own the objects returned here and close them when done.
"""

from typing import Optional

import httpx

from tenant_provisioning.config import Settings, settings as default_settings
from tenant_provisioning.database.admin_client import DatabaseAdminClient
from tenant_provisioning.database.cluster import ClusterTopologyRegistry
from tenant_provisioning.database.connection import create_connection_handle
from tenant_provisioning.managers.logging_manager import get_logger, set_log_level
from tenant_provisioning.services.tenant_service import TenantProvisioningService

logger = get_logger(prefix="[Bootstrap]")


def build_admin_client(
    config: Settings,
    registry: ClusterTopologyRegistry,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[DatabaseAdminClient]:
    """
    Admin client for the provisioning endpoint, or None when it is disabled.

    The endpoint is `DATABASE_ADMIN_URL` when set, otherwise the studio URL of the
    current topology's primary node.
    """
    if not config.DATABASE_ADMIN_ENABLED:
        return None
    base_url = config.DATABASE_ADMIN_URL or registry.resolve_current_topology().primary().studio_url
    logger.info(f"Using database admin endpoint {base_url}")
    return DatabaseAdminClient(base_url, timeout=config.DATABASE_ADMIN_TIMEOUT, transport=transport)


async def build_tenant_service(
    config: Optional[Settings] = None,
    handle_factory=create_connection_handle,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TenantProvisioningService:
    """Wire settings, registry and admin client into an initialized service."""
    config = config or default_settings
    set_log_level(config.LOG_LEVEL)
    registry = ClusterTopologyRegistry(config)
    admin_client = build_admin_client(config, registry, transport=transport)
    try:
        return await TenantProvisioningService.create(
            config, registry, admin_client=admin_client, handle_factory=handle_factory
        )
    except Exception:
        if admin_client is not None:
            await admin_client.close()
        raise
