import pytest
from pydantic import ValidationError

from tenant_provisioning.models.tenant_models import (
    ConfigType,
    CreateTenantRequest,
    TenantConfigDocument,
    TenantPlan,
    get_default_scopes_for_role,
    get_features_for_plan,
    get_plan_limits,
    membership_document_id,
)


@pytest.mark.parametrize(
    "plan, expected",
    [
        (TenantPlan.FREE, {"companies": 1, "users": 5, "storage": 10}),
        (TenantPlan.STANDARD, {"companies": 5, "users": 25, "storage": 100}),
        (TenantPlan.ENTERPRISE, {"companies": 50, "users": 500, "storage": 1000}),
    ],
)
def test_plan_limits(plan, expected):
    assert get_plan_limits(plan) == expected


def test_plan_limits_fall_back_to_free():
    assert get_plan_limits("platinum") == {"companies": 1, "users": 5, "storage": 10}


def test_plan_features():
    free = get_features_for_plan(TenantPlan.FREE)
    standard = get_features_for_plan(TenantPlan.STANDARD)
    enterprise = get_features_for_plan(TenantPlan.ENTERPRISE)

    assert free["basic_recruitment"] and free["evaluations"] and free["reports"]
    assert not any(free[flag] for flag in ("ai_evaluation", "advanced_analytics", "sso", "api_access"))
    assert standard["ai_evaluation"] and standard["sso"]
    assert not standard["api_access"]
    assert enterprise["dedicated_infrastructure"] and enterprise["custom_integrations"]
    assert all(enterprise.values())


@pytest.mark.parametrize(
    "role, scopes",
    [
        ("owner", ["*"]),
        ("admin", ["users", "companies", "jobs", "reports", "settings"]),
        ("recruiter", ["candidates", "jobs", "applications", "interviews"]),
        ("interviewer", ["evaluations", "candidates"]),
        ("viewer", ["read"]),
        ("partner_manager", ["customers", "reports", "analytics"]),
        ("janitor", ["read"]),
    ],
)
def test_default_scopes(role, scopes):
    assert get_default_scopes_for_role(role) == scopes


def test_default_scopes_are_copies():
    get_default_scopes_for_role("owner").append("extra")

    assert get_default_scopes_for_role("owner") == ["*"]


def test_membership_document_id():
    assert membership_document_id("user-1", "abc") == "memberships/user-1-abc"


def test_create_tenant_request_validation():
    request = CreateTenantRequest(
        name="  Acme  ", owner_user_id="u1", owner_email="a@acme.io", owner_name="Ann"
    )

    assert request.name == "Acme"
    assert request.plan == TenantPlan.FREE
    with pytest.raises(ValidationError):
        CreateTenantRequest(name="A", owner_user_id="u1", owner_email="a@acme.io", owner_name="Ann")


def test_tenant_config_apply_changes():
    config = TenantConfigDocument(
        id="tenant-configs/abc",
        tenant_id="abc",
        config_type=ConfigType.SYSTEM,
        config={"plan": "free", "theme": "light"},
    )

    diff = config.apply_changes({"plan": "standard", "theme": "light", "locale": "de"}, changed_by="user-1")

    assert diff == {"plan": {"old": "free", "new": "standard"}, "locale": {"old": None, "new": "de"}}
    assert config.version == 2
    assert config.config == {"plan": "standard", "theme": "light", "locale": "de"}
    assert len(config.change_history) == 1
    assert config.change_history[0].changed_by == "user-1"
    assert config.change_history[0].version == 2


def test_tenant_config_apply_no_changes_keeps_version():
    config = TenantConfigDocument(
        id="tenant-configs/abc", tenant_id="abc", config_type=ConfigType.SYSTEM, config={"plan": "free"}
    )

    assert config.apply_changes({"plan": "free"}, changed_by="user-1") == {}
    assert config.version == 1
    assert config.change_history == []
