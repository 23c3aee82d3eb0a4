"""
# Tenant Provisioning

Multi-tenant database connection and provisioning layer on MongoDB (Motor).

- `database.connection`: connection handle lifecycle and units of work.
- `database.cluster`: environment-driven cluster topology.
- `services.tenant_service`: one isolated database per tenant, connection cache and
  tenant, membership and partner metadata.
- `bootstrap`: composition root.
"""

__version__ = "0.1.0"
