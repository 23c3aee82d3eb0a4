"""
Command-line interface for tenant provisioning.

Commands print JSON to stdout and exit with 0 on success, 1 on failure.

Example:
    tenant-provisioning topology
    tenant-provisioning create-tenant --name "TechCorp" --plan standard \\
        --owner-id user-123 --owner-email admin@techcorp.com --owner-name "John Doe"
    tenant-provisioning add-user <tenant_id> --user-id user-456 --email jane@techcorp.com \\
        --name "Jane Roe" --role recruiter
"""

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from tenant_provisioning.bootstrap import build_tenant_service
from tenant_provisioning.config import Settings, settings as default_settings
from tenant_provisioning.database.cluster import ClusterTopologyRegistry
from tenant_provisioning.database.exceptions import TenantProvisioningError
from tenant_provisioning.managers.logging_manager import get_logger, set_log_level
from tenant_provisioning.models.tenant_models import (
    CreateTenantRequest,
    MembershipUser,
    TenantPlan,
    TenantRole,
)

logger = get_logger(prefix="[TenantCLI]")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


class TenantCLI:
    """CLI tool for tenant administration."""

    def __init__(self, config: Settings):
        self.config = config

    async def topology(self, cluster: Optional[str] = None) -> bool:
        """Print a registered cluster, or the topology resolved for the current environment."""
        registry = ClusterTopologyRegistry(self.config)
        topology = registry.get_cluster(cluster) if cluster else registry.resolve_current_topology()
        _print_json(
            {
                "development": registry.is_development(),
                "registered": registry.registered_names(),
                "topology": topology.model_dump(mode="json"),
            }
        )
        return True

    async def create_tenant(self, request: CreateTenantRequest) -> bool:
        async with await build_tenant_service(self.config) as service:
            tenant = await service.create_tenant(request)
            _print_json(tenant.model_dump(mode="json"))
        return True

    async def get_tenant(self, tenant_id: str) -> bool:
        async with await build_tenant_service(self.config) as service:
            tenant = await service.get_tenant(tenant_id)
            _print_json(tenant.model_dump(mode="json"))
        return True

    async def delete_tenant(self, tenant_id: str) -> bool:
        async with await build_tenant_service(self.config) as service:
            await service.delete_tenant(tenant_id)
            _print_json({"deleted": tenant_id})
        return True

    async def add_user(
        self, tenant_id: str, user: MembershipUser, role: TenantRole, scopes: Optional[List[str]] = None
    ) -> bool:
        async with await build_tenant_service(self.config) as service:
            membership = await service.add_user_to_tenant(tenant_id, user, role, scopes=scopes)
            _print_json(membership.model_dump(mode="json"))
        return True

    async def list_databases(self) -> bool:
        """List databases through the admin endpoint, or the driver when none is configured."""
        async with await build_tenant_service(self.config) as service:
            if service.admin_client is not None:
                names = await service.admin_client.list_databases()
            else:
                names = await service.get_management_handle().get_store().list_database_names()
            _print_json({"databases": names})
        return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tenant-provisioning",
        description="Tenant database provisioning tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (e.g. DEBUG)")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    topology_parser = subparsers.add_parser("topology", help="Show cluster topology")
    topology_parser.add_argument("--cluster", help="Registered cluster name (default: current environment)")

    create_parser = subparsers.add_parser("create-tenant", help="Create a tenant and its database")
    create_parser.add_argument("--name", required=True, help="Tenant name")
    create_parser.add_argument(
        "--plan", choices=[plan.value for plan in TenantPlan], default=TenantPlan.FREE.value, help="Subscription plan"
    )
    create_parser.add_argument("--owner-id", required=True, help="Owner user ID")
    create_parser.add_argument("--owner-email", required=True, help="Owner email")
    create_parser.add_argument("--owner-name", required=True, help="Owner name")
    create_parser.add_argument("--partner-id", help="Managing partner ID")

    get_parser = subparsers.add_parser("get-tenant", help="Show a tenant record")
    get_parser.add_argument("tenant_id", help="Tenant ID")

    delete_parser = subparsers.add_parser("delete-tenant", help="Delete a tenant and its database")
    delete_parser.add_argument("tenant_id", help="Tenant ID")

    add_user_parser = subparsers.add_parser("add-user", help="Add a user to a tenant")
    add_user_parser.add_argument("tenant_id", help="Tenant ID")
    add_user_parser.add_argument("--user-id", required=True, help="User ID")
    add_user_parser.add_argument("--email", required=True, help="User email")
    add_user_parser.add_argument("--name", required=True, help="User name")
    add_user_parser.add_argument(
        "--role", choices=[role.value for role in TenantRole], default=TenantRole.VIEWER.value, help="Tenant role"
    )
    add_user_parser.add_argument("--scopes", nargs="+", help="Explicit scopes (default: role defaults)")

    subparsers.add_parser("list-databases", help="List databases on the cluster")

    return parser


def main(argv: Optional[List[str]] = None, config: Optional[Settings] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1
    config = config or default_settings
    if args.log_level:
        config = config.model_copy(update={"LOG_LEVEL": args.log_level})
        set_log_level(args.log_level)

    cli = TenantCLI(config)

    try:
        if args.command == "topology":
            success = asyncio.run(cli.topology(cluster=args.cluster))
        elif args.command == "create-tenant":
            request = CreateTenantRequest(
                name=args.name,
                plan=TenantPlan(args.plan),
                owner_user_id=args.owner_id,
                owner_email=args.owner_email,
                owner_name=args.owner_name,
                partner_id=args.partner_id,
            )
            success = asyncio.run(cli.create_tenant(request))
        elif args.command == "get-tenant":
            success = asyncio.run(cli.get_tenant(args.tenant_id))
        elif args.command == "delete-tenant":
            success = asyncio.run(cli.delete_tenant(args.tenant_id))
        elif args.command == "add-user":
            user = MembershipUser(user_id=args.user_id, email=args.email, name=args.name)
            success = asyncio.run(cli.add_user(args.tenant_id, user, TenantRole(args.role), scopes=args.scopes))
        elif args.command == "list-databases":
            success = asyncio.run(cli.list_databases())
        else:
            parser.print_help()
            return 1
    except TenantProvisioningError as e:
        logger.error(f"{args.command} failed: {e.message}")
        _print_json({"error": e.to_dict()})
        return 1
    except ValueError as e:
        logger.error(f"{args.command} rejected: {e}")
        _print_json({"error": {"code": "ValidationError", "message": str(e)}})
        return 1

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
