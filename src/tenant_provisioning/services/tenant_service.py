"""
# Tenant Provisioning Service

Central service for the tenant lifecycle: one physically isolated database per tenant,
plus tenant, membership and partner metadata in the **management database**.

## Storage Layout

| Database | Documents |
|----------|-----------|
| `MANAGEMENT_DATABASE_NAME` | `tenants/*`, `partners/*`, `memberships/*` (mirror) |
| `tenant-{tenant_id}` | `memberships/*` (authoritative), `tenant-configs/{tenant_id}` |

Memberships are a **materialized view**: the tenant database holds the authoritative
copy and the management database a mirror with the same id, updated on every add and
remove, so `get_user_memberships()` is a single indexed query.

## Provisioning Flow

`create_tenant()` runs as a saga:

1. `register_tenant`: tenant record committed in the management database.
2. `create_remote_database`: admin endpoint asked to create the database (only when
   one is configured).
3. `open_provisioning_handle`: a fresh handle initialized over the current topology.
4. `seed_configuration`: the `system` tenant config written through that handle.

A failure after step 1 compensates in reverse order and raises
`PartialProvisioningError`. The provisioning handle is always disposed; it never
enters the cache.

## Connection Cache

`get_tenant_client()` keeps at most one live handle per tenant. Concurrent misses for
the same tenant are serialized by a per-tenant `asyncio.Lock` with a second lookup
under the lock, so only one handle is ever built. `delete_tenant()` takes the same lock,
so a miss in flight cannot cache a handle for a tenant being deleted. A lock is
dropped once nobody holds or waits on it.

## Usage Example

```python
service = await TenantProvisioningService.create(settings, registry)
async with service:
    tenant = await service.create_tenant(CreateTenantRequest(...))
    handle = await service.get_tenant_client(tenant.tenant_id)
```
"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from tenant_provisioning.config import Settings, get_database_config
from tenant_provisioning.database.admin_client import DatabaseAdminClient
from tenant_provisioning.database.cluster import ClusterTopologyRegistry
from tenant_provisioning.database.connection import ConnectionHandle, create_connection_handle
from tenant_provisioning.database.exceptions import (
    NotFoundError,
    NotInitializedError,
    PartnerNotFoundError,
    TenantNotFoundError,
)
from tenant_provisioning.database.tenant_indexes import MANAGEMENT_INDEXES, TENANT_INDEXES, create_indexes
from tenant_provisioning.managers.logging_manager import get_logger
from tenant_provisioning.models.tenant_models import (
    MEMBERSHIPS_COLLECTION,
    ConfigType,
    CreatePartnerRequest,
    CreateTenantRequest,
    MembershipUser,
    PartnerDocument,
    TenantConfigDocument,
    TenantDocument,
    TenantPlan,
    TenantRole,
    TenantStatus,
    UserMembershipDocument,
    get_default_scopes_for_role,
    get_features_for_plan,
    get_plan_limits,
    membership_document_id,
    partner_document_id,
    tenant_config_document_id,
    tenant_document_id,
    utc_now,
)
from tenant_provisioning.services.provisioning_saga import ProvisioningSaga

logger = get_logger(prefix="[TenantService]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")

TENANT_DATABASE_PREFIX = "tenant-"
IMMUTABLE_TENANT_FIELDS = frozenset({"id", "collection", "tenant_id", "database_name", "created_at", "created_by"})


def tenant_database_name(tenant_id: str) -> str:
    return f"{TENANT_DATABASE_PREFIX}{tenant_id}"


class TenantProvisioningService:
    """
    Tenant lifecycle, connection cache and metadata management.

    Build instances with `await TenantProvisioningService.create(...)`; the constructor
    expects an already-initialized management handle.

    Attributes:
        settings (Settings): Application settings.
        registry (ClusterTopologyRegistry): Topology source for tenant databases.
        admin_client (Optional[DatabaseAdminClient]): Remote provisioning endpoint, if configured.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ClusterTopologyRegistry,
        management_handle: ConnectionHandle,
        admin_client: Optional[DatabaseAdminClient] = None,
        handle_factory=create_connection_handle,
    ):
        if management_handle is None or not management_handle.is_initialized():
            raise NotInitializedError(settings.MANAGEMENT_DATABASE_NAME)

        self.settings = settings
        self.registry = registry
        self.admin_client = admin_client
        self._management: Optional[ConnectionHandle] = management_handle
        self._handle_factory = handle_factory
        self._base_config = get_database_config(settings)
        self._tenant_handles: Dict[str, ConnectionHandle] = {}
        self._tenant_locks: Dict[str, asyncio.Lock] = {}
        self._tenant_lock_users: Dict[str, int] = {}

    @classmethod
    async def create(
        cls,
        settings: Settings,
        registry: ClusterTopologyRegistry,
        admin_client: Optional[DatabaseAdminClient] = None,
        handle_factory=create_connection_handle,
    ) -> "TenantProvisioningService":
        """
        Initialize the management handle, ensure its indexes and build the service.

        Raises:
            InitializationError: The management database is unreachable.
        """
        config = get_database_config(settings).with_database(settings.MANAGEMENT_DATABASE_NAME)
        management_handle = handle_factory(config)
        await management_handle.initialize()
        await create_indexes(management_handle.get_database(), MANAGEMENT_INDEXES)
        logger.info(f"Management database {settings.MANAGEMENT_DATABASE_NAME} ready")
        return cls(settings, registry, management_handle, admin_client=admin_client, handle_factory=handle_factory)

    def _require_management(self) -> ConnectionHandle:
        if self._management is None:
            raise NotInitializedError(self.settings.MANAGEMENT_DATABASE_NAME)
        return self._management

    def get_management_handle(self) -> ConnectionHandle:
        """The initialized management database handle."""
        return self._require_management()

    def _build_tenant_handle(self, topology, database_name: str) -> ConnectionHandle:
        return self._handle_factory(self.registry.build_database_config(topology, database_name, self._base_config))

    async def _teardown_database(self, database_name: str) -> None:
        if self.admin_client is not None:
            await self.admin_client.delete_database(database_name)
        else:
            await self._require_management().drop_database(database_name)

    @staticmethod
    async def _upsert(handle: ConnectionHandle, body: Dict[str, Any]) -> None:
        async with handle.open_session() as session:
            existing = await session.load(body["id"])
            if existing is None:
                session.store(dict(body))
            else:
                existing.clear()
                existing.update(body)
            await session.save_changes()

    @staticmethod
    async def _delete(handle: ConnectionHandle, doc_id: str) -> None:
        async with handle.open_session() as session:
            session.delete(doc_id)
            await session.save_changes()

    # --- Tenants ---

    async def create_tenant(self, request: CreateTenantRequest) -> TenantDocument:
        """
        Create a tenant record and provision its isolated database.

        Args:
            request: Tenant name, plan, owner and initial settings.

        Returns:
            TenantDocument: The committed tenant record.

        Raises:
            ConfigurationError: No topology can be resolved (nothing is written).
            PartialProvisioningError: A step after the metadata commit failed.
        """
        management = self._require_management()
        start_time = time.time()

        tenant_id = uuid.uuid4().hex
        database_name = tenant_database_name(tenant_id)
        limits = get_plan_limits(request.plan)
        topology = self.registry.resolve_current_topology()

        tenant = TenantDocument(
            id=tenant_document_id(tenant_id),
            tenant_id=tenant_id,
            name=request.name,
            plan=request.plan,
            status=TenantStatus.ACTIVE,
            database_name=database_name,
            owner_user_id=request.owner_user_id,
            owner_email=request.owner_email,
            owner_name=request.owner_name,
            company_limit=limits["companies"],
            user_limit=limits["users"],
            storage_limit_gb=limits["storage"],
            settings=request.settings,
            partner_id=request.partner_id,
            created_by=request.owner_user_id,
        )
        provisioned: Dict[str, ConnectionHandle] = {}

        async def register_tenant():
            async with management.open_session() as session:
                session.store(tenant.model_dump(mode="json"))
                await session.save_changes()

        async def unregister_tenant():
            await self._delete(management, tenant.id)

        async def create_remote_database():
            await self.admin_client.create_database(database_name)

        async def open_provisioning_handle():
            handle = self._build_tenant_handle(topology, database_name)
            await handle.initialize()
            provisioned["handle"] = handle

        async def drop_database():
            await self._teardown_database(database_name)

        async def seed_configuration():
            handle = provisioned["handle"]
            await create_indexes(handle.get_database(), TENANT_INDEXES)
            config = self._build_system_config(tenant_id, request.plan, request.owner_user_id)
            async with handle.open_session() as session:
                session.store(config.model_dump(mode="json"))
                await session.save_changes()

        saga = ProvisioningSaga(
            "create_tenant",
            resource_id=tenant_id,
            compensate_on_failure=self.settings.PROVISIONING_COMPENSATE_ON_FAILURE,
        )
        saga.add_step("register_tenant", register_tenant, compensate=unregister_tenant)
        if self.admin_client is not None:
            saga.add_step("create_remote_database", create_remote_database, compensate=drop_database)
            saga.add_step("open_provisioning_handle", open_provisioning_handle)
        else:
            saga.add_step("open_provisioning_handle", open_provisioning_handle, compensate=drop_database)
        saga.add_step("seed_configuration", seed_configuration)

        try:
            await saga.run()
        finally:
            handle = provisioned.pop("handle", None)
            if handle is not None:
                await handle.dispose()

        perf_logger.info(f"create_tenant {tenant_id} took {time.time() - start_time:.3f}s")
        logger.info(f"Created tenant {tenant_id} ({request.plan.value}) with database {database_name}")
        return tenant

    @staticmethod
    def _build_system_config(tenant_id: str, plan: TenantPlan, created_by: str) -> TenantConfigDocument:
        return TenantConfigDocument(
            id=tenant_config_document_id(tenant_id),
            tenant_id=tenant_id,
            config_type=ConfigType.SYSTEM,
            config={
                "plan": TenantPlan(plan).value,
                "features": get_features_for_plan(plan),
                "limits": get_plan_limits(plan),
            },
            version=1,
            is_active=True,
            created_by=created_by,
        )

    async def get_tenant(self, tenant_id: str) -> TenantDocument:
        """Load a tenant record. Raises `TenantNotFoundError` if absent."""
        management = self._require_management()
        async with management.open_session() as session:
            raw = await session.load(tenant_document_id(tenant_id))
        if raw is None:
            raise TenantNotFoundError(tenant_id)
        return TenantDocument.model_validate(raw)

    async def update_tenant(self, tenant_id: str, updates: Dict[str, Any]) -> TenantDocument:
        """
        Merge `updates` into a tenant record and commit it.

        Raises:
            ValueError: `updates` touches an immutable field (`tenant_id`, `database_name`, ...)
                or a key that is not a tenant field.
            TenantNotFoundError: Unknown tenant.
            ValidationError: The merged record is invalid.
        """
        forbidden = IMMUTABLE_TENANT_FIELDS.intersection(updates)
        if forbidden:
            raise ValueError(f"Cannot modify immutable tenant fields: {sorted(forbidden)}")
        unknown = set(updates).difference(TenantDocument.model_fields)
        if unknown:
            raise ValueError(f"Unknown tenant fields: {sorted(unknown)}")

        management = self._require_management()
        async with management.open_session() as session:
            raw = await session.load(tenant_document_id(tenant_id))
            if raw is None:
                raise TenantNotFoundError(tenant_id)
            tenant = TenantDocument.model_validate({**raw, **updates})
            tenant.updated_at = utc_now()
            raw.clear()
            raw.update(tenant.model_dump(mode="json"))
            await session.save_changes()

        logger.info(f"Updated tenant {tenant_id}: {sorted(updates)}")
        return tenant

    async def delete_tenant(self, tenant_id: str) -> None:
        """
        Delete a tenant: evict its cached handle, tear down its database, then remove its
        record and mirrored memberships.

        Raises:
            TenantNotFoundError: Unknown tenant.
            PartialProvisioningError: The database is gone but the metadata cleanup failed.
        """
        management = self._require_management()
        async with self._tenant_lock(tenant_id):
            tenant = await self.get_tenant(tenant_id)
            await self._evict_tenant_handle(tenant_id)

            async def teardown_database():
                await self._teardown_database(tenant.database_name)

            async def delete_metadata():
                async with management.open_session() as session:
                    for membership in await session.query(MEMBERSHIPS_COLLECTION, tenant_id=tenant_id):
                        session.delete(membership["id"])
                    session.delete(tenant.id)
                    await session.save_changes()

            saga = ProvisioningSaga("delete_tenant", resource_id=tenant_id, compensate_on_failure=False)
            saga.add_step("teardown_database", teardown_database)
            saga.add_step("delete_metadata", delete_metadata)
            await saga.run()

        logger.info(f"Deleted tenant {tenant_id} and database {tenant.database_name}")

    async def _evict_tenant_handle(self, tenant_id: str) -> None:
        handle = self._tenant_handles.pop(tenant_id, None)
        if handle is not None:
            await handle.dispose()
            logger.debug(f"Evicted cached handle for tenant {tenant_id}")

    @asynccontextmanager
    async def _tenant_lock(self, tenant_id: str):
        lock = self._tenant_locks.get(tenant_id)
        if lock is None:
            lock = self._tenant_locks[tenant_id] = asyncio.Lock()
        self._tenant_lock_users[tenant_id] = self._tenant_lock_users.get(tenant_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._tenant_lock_users.pop(tenant_id) - 1
            if remaining:
                self._tenant_lock_users[tenant_id] = remaining
            else:
                del self._tenant_locks[tenant_id]

    async def get_tenant_client(self, tenant_id: str) -> ConnectionHandle:
        """
        Initialized handle for a tenant's database, cached per tenant.

        Raises:
            TenantNotFoundError: Unknown tenant.
            ConfigurationError: No topology can be resolved.
            InitializationError: The tenant database is unreachable.
        """
        self._require_management()
        handle = self._tenant_handles.get(tenant_id)
        if handle is not None:
            return handle

        async with self._tenant_lock(tenant_id):
            handle = self._tenant_handles.get(tenant_id)
            if handle is not None:
                return handle

            tenant = await self.get_tenant(tenant_id)
            topology = self.registry.resolve_current_topology()
            handle = self._build_tenant_handle(topology, tenant.database_name)
            await handle.initialize()
            self._tenant_handles[tenant_id] = handle
            logger.info(f"Cached connection for tenant {tenant_id}")
            return handle

    def cached_tenant_ids(self) -> List[str]:
        return list(self._tenant_handles)

    # --- Memberships ---

    async def add_user_to_tenant(
        self,
        tenant_id: str,
        user: MembershipUser,
        role: Union[TenantRole, str],
        scopes: Optional[Sequence[str]] = None,
        invited_by: str = "system",
        expires_at: Optional[datetime] = None,
    ) -> UserMembershipDocument:
        """
        Add (or update) a user's membership in a tenant.

        The membership is written to the tenant database first, then mirrored into the
        management database. Explicit `scopes` override the role defaults.
        """
        role = TenantRole(role)
        handle = await self.get_tenant_client(tenant_id)
        management = self._require_management()

        now = utc_now()
        membership = UserMembershipDocument(
            id=membership_document_id(user.user_id, tenant_id),
            tenant_id=tenant_id,
            user_id=user.user_id,
            email=user.email,
            name=user.name,
            role=role,
            scopes=list(scopes) if scopes is not None else get_default_scopes_for_role(role),
            invited_by=invited_by,
            invited_at=now,
            accepted_at=now,
            expires_at=expires_at,
        )
        body = membership.model_dump(mode="json")

        async def write_membership():
            await self._upsert(handle, body)

        async def remove_membership():
            await self._delete(handle, membership.id)

        async def mirror_membership():
            await self._upsert(management, body)

        saga = ProvisioningSaga("add_user_to_tenant", resource_id=membership.id)
        saga.add_step("write_membership", write_membership, compensate=remove_membership)
        saga.add_step("mirror_membership", mirror_membership)
        await saga.run()

        logger.info(f"Added user {user.user_id} to tenant {tenant_id} as {role.value}")
        return membership

    async def remove_user_from_tenant(self, tenant_id: str, user_id: str) -> None:
        """Hard-delete a membership from the tenant database and the management mirror."""
        handle = await self.get_tenant_client(tenant_id)
        doc_id = membership_document_id(user_id, tenant_id)
        await self._delete(handle, doc_id)
        await self._delete(self._require_management(), doc_id)
        logger.info(f"Removed user {user_id} from tenant {tenant_id}")

    async def get_user_memberships(self, user_id: str) -> List[UserMembershipDocument]:
        """Active memberships of a user, read from the management mirror."""
        management = self._require_management()
        async with management.open_session() as session:
            documents = await session.query(MEMBERSHIPS_COLLECTION, user_id=user_id, is_active=True)
        return [UserMembershipDocument.model_validate(document) for document in documents]

    async def get_user_tenants(self, user_id: str) -> List[str]:
        return [membership.tenant_id for membership in await self.get_user_memberships(user_id)]

    # --- Partners ---

    async def create_partner(self, request: CreatePartnerRequest) -> PartnerDocument:
        """Register a partner in `pending` status with the default 10% revenue share."""
        management = self._require_management()
        partner_id = uuid.uuid4().hex
        partner = PartnerDocument(
            id=partner_document_id(partner_id),
            partner_id=partner_id,
            name=request.name,
            own_tenant_id=request.tenant_id,
            business_type=request.business_type,
            contact_info=request.contact_info,
            created_by=request.tenant_id,
        )
        async with management.open_session() as session:
            session.store(partner.model_dump(mode="json"))
            await session.save_changes()

        logger.info(f"Created partner {partner_id} ({request.business_type.value})")
        return partner

    async def get_partner(self, partner_id: str) -> PartnerDocument:
        management = self._require_management()
        async with management.open_session() as session:
            raw = await session.load(partner_document_id(partner_id))
        if raw is None:
            raise PartnerNotFoundError(partner_id)
        return PartnerDocument.model_validate(raw)

    # --- Tenant configuration ---

    async def get_tenant_config(self, tenant_id: str) -> TenantConfigDocument:
        """The tenant's `system` configuration, read from its own database."""
        handle = await self.get_tenant_client(tenant_id)
        async with handle.open_session() as session:
            raw = await session.load(tenant_config_document_id(tenant_id))
        if raw is None:
            raise NotFoundError(f"Configuration for tenant {tenant_id} not found", details={"tenant_id": tenant_id})
        return TenantConfigDocument.model_validate(raw)

    async def update_tenant_config(
        self, tenant_id: str, changes: Dict[str, Any], changed_by: str = "system"
    ) -> TenantConfigDocument:
        """Apply versioned changes to the tenant's configuration. No-op changes are not written."""
        handle = await self.get_tenant_client(tenant_id)
        async with handle.open_session() as session:
            raw = await session.load(tenant_config_document_id(tenant_id))
            if raw is None:
                raise NotFoundError(f"Configuration for tenant {tenant_id} not found", details={"tenant_id": tenant_id})
            config = TenantConfigDocument.model_validate(raw)
            diff = config.apply_changes(changes, changed_by)
            if diff:
                raw.clear()
                raw.update(config.model_dump(mode="json"))
                await session.save_changes()
                logger.info(f"Tenant {tenant_id} config now at version {config.version}: {sorted(diff)}")
        return config

    # --- Lifecycle ---

    async def close(self) -> None:
        """Dispose every cached handle and the management handle. Safe to call twice."""
        for tenant_id, handle in list(self._tenant_handles.items()):
            await handle.dispose()
            logger.debug(f"Disposed handle for tenant {tenant_id}")
        self._tenant_handles.clear()

        if self._management is not None:
            await self._management.dispose()
            self._management = None
        if self.admin_client is not None:
            await self.admin_client.close()
            self.admin_client = None
        logger.info("Tenant provisioning service closed")

    async def __aenter__(self) -> "TenantProvisioningService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
