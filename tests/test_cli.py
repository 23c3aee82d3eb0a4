import json
from unittest.mock import patch

import httpx
import pytest

from tenant_provisioning.bootstrap import build_admin_client, build_tenant_service
from tenant_provisioning.cli.tenant_cli import build_parser, main
from tenant_provisioning.config import Settings
from tenant_provisioning.services.tenant_service import TenantProvisioningService


@pytest.fixture
def patched_bootstrap(registry, handle_factory):
    async def fake_build(config):
        return await TenantProvisioningService.create(config, registry, handle_factory=handle_factory)

    with patch("tenant_provisioning.cli.tenant_cli.build_tenant_service", side_effect=fake_build):
        yield


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "tenant-provisioning" in capsys.readouterr().out


def test_parser_rejects_unknown_plan():
    with pytest.raises(SystemExit):
        build_parser().parse_args(
            ["create-tenant", "--name", "Acme", "--plan", "gold", "--owner-id", "u", "--owner-email", "e", "--owner-name", "n"]
        )


def test_topology_command(settings, capsys):
    assert main(["topology"], config=settings) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["development"] is True
    assert output["registered"] == ["development"]
    assert output["topology"]["nodes"][0]["id"] == "node-1"


def test_topology_for_unknown_cluster(settings, capsys):
    assert main(["topology", "--cluster", "nowhere"], config=settings) == 1

    output = json.loads(capsys.readouterr().out)
    assert output["error"]["code"] == "ClusterNotFoundError"


def test_create_tenant_command(settings, patched_bootstrap, capsys):
    code = main(
        [
            "create-tenant",
            "--name", "Acme Corp",
            "--plan", "enterprise",
            "--owner-id", "user-1",
            "--owner-email", "owner@acme.io",
            "--owner-name", "Ann Owner",
        ],
        config=settings,
    )

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["name"] == "Acme Corp"
    assert output["plan"] == "enterprise"
    assert output["database_name"] == f"tenant-{output['tenant_id']}"


def test_invalid_request_is_reported(settings, capsys):
    code = main(
        ["create-tenant", "--name", "A", "--owner-id", "u", "--owner-email", "e@x.io", "--owner-name", "n"],
        config=settings,
    )

    assert code == 1
    assert json.loads(capsys.readouterr().out)["error"]["code"] == "ValidationError"


def test_get_unknown_tenant_command(settings, patched_bootstrap, capsys):
    assert main(["get-tenant", "missing"], config=settings) == 1

    output = json.loads(capsys.readouterr().out)
    assert output["error"]["code"] == "TenantNotFoundError"
    assert output["error"]["details"] == {"tenant_id": "missing"}


def test_admin_client_disabled_by_default(settings, registry):
    assert build_admin_client(settings, registry) is None


@pytest.mark.asyncio
async def test_admin_client_defaults_to_primary_studio_url(registry):
    config = Settings(_env_file=None, DATABASE_ADMIN_ENABLED=True, DATABASE_ADMIN_TIMEOUT=5.0)

    client = build_admin_client(config, registry, transport=httpx.MockTransport(lambda request: httpx.Response(200)))

    assert client.base_url == "http://localhost:8080"
    await client.close()


@pytest.mark.asyncio
async def test_build_tenant_service(settings, handle_factory, fake_server):
    service = await build_tenant_service(settings, handle_factory=handle_factory)

    assert service.admin_client is None
    assert service.get_management_handle().config.database == "tenant-management"
    assert service.registry.registered_names() == ["development"]
    await service.close()
    assert fake_server.clients[0].closed is True


@pytest.mark.asyncio
async def test_build_tenant_service_applies_configured_log_level(settings, handle_factory):
    config = settings.model_copy(update={"LOG_LEVEL": "DEBUG"})

    with patch("tenant_provisioning.bootstrap.set_log_level") as set_level:
        service = await build_tenant_service(config, handle_factory=handle_factory)

    set_level.assert_called_once_with("DEBUG")
    await service.close()


def test_log_level_flag_overrides_settings(settings, registry, handle_factory, capsys):
    seen = []

    async def fake_build(config):
        seen.append(config)
        return await TenantProvisioningService.create(config, registry, handle_factory=handle_factory)

    with patch("tenant_provisioning.cli.tenant_cli.build_tenant_service", side_effect=fake_build), patch(
        "tenant_provisioning.cli.tenant_cli.set_log_level"
    ) as set_level:
        assert main(["--log-level", "WARNING", "get-tenant", "missing"], config=settings) == 1

    set_level.assert_called_once_with("WARNING")
    assert seen[0].LOG_LEVEL == "WARNING"
    assert seen[0] is not settings
