"""
# Multi-Tenancy Models

This module defines the **documents and requests** of the tenant management domain.

## Domain Model Overview

- **Tenant**: An isolated customer organization backed by its own physical database.
  Its metadata lives in the central management database.
- **UserMembership**: The link between a user and a tenant, defining role and scopes.
  Stored inside the tenant's own database and mirrored into the management database.
- **Partner**: A reseller/consultant organization managing customer tenants.
- **TenantConfig**: Versioned configuration document stored in the tenant database.

## Document Layout

| Document | Id | Database |
|----------|----|----------|
| Tenant | `tenants/{tenant_id}` | management |
| Partner | `partners/{partner_id}` | management |
| UserMembership | `memberships/{user_id}-{tenant_id}` | tenant (+ management mirror) |
| TenantConfig | `tenant-configs/{tenant_id}` | tenant |

## Plans

| Plan | Companies | Users | Storage (GB) |
|------|-----------|-------|--------------|
| free | 1 | 5 | 10 |
| standard | 5 | 25 | 100 |
| enterprise | 50 | 500 | 1000 |

Limits are copied onto the tenant at creation time and can be changed independently
afterwards.

## Usage Example

```python
request = CreateTenantRequest(
    name="TechCorp Industries",
    plan=TenantPlan.STANDARD,
    owner_user_id="user-123",
    owner_email="admin@techcorp.com",
    owner_name="John Doe",
)
```
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

# Collection names
TENANTS_COLLECTION = "tenants"
PARTNERS_COLLECTION = "partners"
MEMBERSHIPS_COLLECTION = "memberships"
TENANT_CONFIGS_COLLECTION = "tenant-configs"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TenantPlan(str, Enum):
    """Subscription plans."""
    FREE = "free"
    STANDARD = "standard"
    ENTERPRISE = "enterprise"


class TenantStatus(str, Enum):
    """Tenant lifecycle states."""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TRIAL = "trial"


class TenantRole(str, Enum):
    """Roles a user can hold within a tenant."""
    OWNER = "owner"
    ADMIN = "admin"
    RECRUITER = "recruiter"
    INTERVIEWER = "interviewer"
    VIEWER = "viewer"
    PARTNER_MANAGER = "partner_manager"


class PartnerStatus(str, Enum):
    """Partner lifecycle states."""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING = "pending"


class PartnerBusinessType(str, Enum):
    """Kinds of partner organizations."""
    RESELLER = "reseller"
    CONSULTANT = "consultant"
    IMPLEMENTATION_PARTNER = "implementation_partner"


class ConfigType(str, Enum):
    """Tags for tenant configuration documents."""
    WORKFLOW = "workflow"
    EVALUATION = "evaluation"
    AI = "ai"
    INTEGRATION = "integration"
    SYSTEM = "system"


# Plan-derived limits: (companies, users, storage GB)
PLAN_LIMITS: Dict[TenantPlan, Dict[str, int]] = {
    TenantPlan.FREE: {"companies": 1, "users": 5, "storage": 10},
    TenantPlan.STANDARD: {"companies": 5, "users": 25, "storage": 100},
    TenantPlan.ENTERPRISE: {"companies": 50, "users": 500, "storage": 1000},
}

BASE_FEATURES: Dict[str, bool] = {
    "basic_recruitment": True,
    "evaluations": True,
    "reports": True,
}

PLAN_FEATURES: Dict[TenantPlan, Dict[str, bool]] = {
    TenantPlan.FREE: {
        **BASE_FEATURES,
        "ai_evaluation": False,
        "advanced_analytics": False,
        "custom_workflows": False,
        "api_access": False,
        "sso": False,
        "priority_support": False,
    },
    TenantPlan.STANDARD: {
        **BASE_FEATURES,
        "ai_evaluation": True,
        "advanced_analytics": False,
        "custom_workflows": False,
        "api_access": False,
        "sso": True,
        "priority_support": False,
    },
    TenantPlan.ENTERPRISE: {
        **BASE_FEATURES,
        "ai_evaluation": True,
        "advanced_analytics": True,
        "custom_workflows": True,
        "api_access": True,
        "sso": True,
        "priority_support": True,
        "dedicated_infrastructure": True,
        "custom_integrations": True,
    },
}

ROLE_SCOPES: Dict[TenantRole, List[str]] = {
    TenantRole.OWNER: ["*"],
    TenantRole.ADMIN: ["users", "companies", "jobs", "reports", "settings"],
    TenantRole.RECRUITER: ["candidates", "jobs", "applications", "interviews"],
    TenantRole.INTERVIEWER: ["evaluations", "candidates"],
    TenantRole.VIEWER: ["read"],
    TenantRole.PARTNER_MANAGER: ["customers", "reports", "analytics"],
}


def get_plan_limits(plan: TenantPlan) -> Dict[str, int]:
    """Limits for a plan; unknown plans fall back to the free tier."""
    try:
        return dict(PLAN_LIMITS[TenantPlan(plan)])
    except ValueError:
        return dict(PLAN_LIMITS[TenantPlan.FREE])


def get_features_for_plan(plan: TenantPlan) -> Dict[str, bool]:
    """Feature flags for a plan; unknown plans get only the base features."""
    try:
        return dict(PLAN_FEATURES[TenantPlan(plan)])
    except ValueError:
        return dict(BASE_FEATURES)


def get_default_scopes_for_role(role: str) -> List[str]:
    """Default scopes for a role; unknown roles are read-only."""
    try:
        return list(ROLE_SCOPES[TenantRole(role)])
    except ValueError:
        return ["read"]


def tenant_document_id(tenant_id: str) -> str:
    return f"{TENANTS_COLLECTION}/{tenant_id}"


def partner_document_id(partner_id: str) -> str:
    return f"{PARTNERS_COLLECTION}/{partner_id}"


def membership_document_id(user_id: str, tenant_id: str) -> str:
    return f"{MEMBERSHIPS_COLLECTION}/{user_id}-{tenant_id}"


def tenant_config_document_id(tenant_id: str) -> str:
    return f"{TENANT_CONFIGS_COLLECTION}/{tenant_id}"


# Request Models
class CreateTenantRequest(BaseModel):
    """Request model for creating a tenant.

    Attributes:
        name (str): Organization name, 2-100 characters.
        plan (TenantPlan): Subscription plan.
        owner_user_id (str): Id of the owning user.
        owner_email (str): Owner's email address.
        owner_name (str): Owner's full name.
        settings (Dict[str, Any]): Initial settings blob (branding, sso, security, ...).
        partner_id (Optional[str]): Managing partner, if any.
    """
    name: str = Field(..., min_length=2, max_length=100, description="Tenant name")
    plan: TenantPlan = Field(TenantPlan.FREE, description="Subscription plan")
    owner_user_id: str = Field(..., min_length=1, description="Owner user ID")
    owner_email: str = Field(..., min_length=3, description="Owner email")
    owner_name: str = Field(..., min_length=1, description="Owner name")
    settings: Dict[str, Any] = Field(default_factory=dict, description="Tenant settings")
    partner_id: Optional[str] = Field(None, description="Managing partner ID")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Validate that the tenant name is not blank."""
        v = v.strip()
        if not v:
            raise ValueError("Tenant name cannot be empty")
        return v


class MembershipUser(BaseModel):
    """Identity of the user being added to a tenant."""
    user_id: str = Field(..., min_length=1, description="User ID")
    email: str = Field(..., description="Email address")
    name: str = Field(..., description="Full name")


class ContactInfo(BaseModel):
    email: str = Field(..., description="Contact email")
    phone: str = Field("", description="Contact phone")
    address: Optional[Dict[str, str]] = Field(None, description="Postal address")


class CreatePartnerRequest(BaseModel):
    """Request model for registering a partner.

    Attributes:
        name (str): Partner organization name.
        tenant_id (str): The partner's own tenant.
        business_type (PartnerBusinessType): Kind of partner.
        contact_info (ContactInfo): Primary contact.
    """
    name: str = Field(..., min_length=2, max_length=100, description="Partner name")
    tenant_id: str = Field(..., min_length=1, description="Partner's own tenant ID")
    business_type: PartnerBusinessType = Field(..., description="Business type")
    contact_info: ContactInfo = Field(..., description="Contact information")


# Database Schema Models
class UsageStats(BaseModel):
    companies_count: int = Field(0, ge=0)
    users_count: int = Field(0, ge=0)
    storage_used_gb: float = Field(0.0, ge=0)
    evaluations_count: int = Field(0, ge=0)
    last_calculated: datetime = Field(default_factory=utc_now)


class TenantDocument(BaseModel):
    """Database document model for the `tenants` collection (management database).

    `tenant_id` and `database_name` are assigned once at creation and never change;
    `database_name` is the only key used to open the tenant's connection.
    """
    id: str = Field(..., description="Document ID (tenants/{tenant_id})")
    collection: str = Field(TENANTS_COLLECTION, description="Collection name")
    tenant_id: str = Field(..., description="Unique tenant ID")
    name: str = Field(..., description="Tenant name")
    plan: TenantPlan = Field(..., description="Subscription plan")
    status: TenantStatus = Field(TenantStatus.ACTIVE, description="Tenant status")
    database_name: str = Field(..., description="Tenant database name")
    database_url: Optional[str] = Field(None, description="Dedicated database URL")
    owner_user_id: str = Field(..., description="Owner user ID")
    owner_email: str = Field(..., description="Owner email")
    owner_name: str = Field(..., description="Owner name")
    company_limit: int = Field(..., ge=0, description="Max companies")
    user_limit: int = Field(..., ge=0, description="Max users")
    storage_limit_gb: int = Field(..., ge=0, description="Storage limit in GB")
    settings: Dict[str, Any] = Field(default_factory=dict, description="Settings blob")
    usage_stats: UsageStats = Field(default_factory=UsageStats, description="Usage snapshot")
    billing: Optional[Dict[str, Any]] = Field(None, description="Billing details")
    partner_id: Optional[str] = Field(None, description="Managing partner ID")
    reseller_id: Optional[str] = Field(None, description="Reseller ID")
    reseller_commission: Optional[float] = Field(None, ge=0, le=100, description="Reseller commission %")
    last_login_at: Optional[datetime] = Field(None, description="Last activity")
    trial_ends_at: Optional[datetime] = Field(None, description="Trial expiry")
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update time")
    created_by: Optional[str] = Field(None, description="Creator user ID")


class UserMembershipDocument(BaseModel):
    """Database document model for the `memberships` collection."""
    id: str = Field(..., description="Document ID (memberships/{user_id}-{tenant_id})")
    collection: str = Field(MEMBERSHIPS_COLLECTION, description="Collection name")
    tenant_id: str = Field(..., description="Tenant ID")
    user_id: str = Field(..., description="User ID")
    email: Optional[str] = Field(None, description="User email")
    name: Optional[str] = Field(None, description="User name")
    role: TenantRole = Field(..., description="Role")
    scopes: List[str] = Field(default_factory=list, description="Granted scopes")
    invited_by: str = Field("system", description="Inviter")
    invited_at: datetime = Field(default_factory=utc_now, description="Invitation time")
    accepted_at: Optional[datetime] = Field(None, description="Acceptance time")
    is_active: bool = Field(True, description="Membership active")
    expires_at: Optional[datetime] = Field(None, description="Expiry for contractors")


class CommissionStructure(BaseModel):
    signup_bonus: float = Field(0, ge=0)
    monthly_recurring: float = Field(0, ge=0)
    custom_rates: Dict[str, float] = Field(default_factory=dict)


class PerformanceMetrics(BaseModel):
    customers_count: int = Field(0, ge=0)
    total_revenue: float = Field(0, ge=0)
    satisfaction_score: float = Field(0, ge=0)
    last_updated: datetime = Field(default_factory=utc_now)


class PartnerDocument(BaseModel):
    """Database document model for the `partners` collection (management database)."""
    id: str = Field(..., description="Document ID (partners/{partner_id})")
    collection: str = Field(PARTNERS_COLLECTION, description="Collection name")
    partner_id: str = Field(..., description="Partner ID")
    name: str = Field(..., description="Partner name")
    status: PartnerStatus = Field(PartnerStatus.PENDING, description="Partner status")
    own_tenant_id: str = Field(..., description="Partner's own tenant")
    customer_tenant_ids: List[str] = Field(default_factory=list, description="Managed tenants")
    business_type: PartnerBusinessType = Field(..., description="Business type")
    contact_info: ContactInfo = Field(..., description="Contact information")
    rev_share_percent: float = Field(10, ge=0, le=100, description="Revenue share %")
    commission_structure: CommissionStructure = Field(default_factory=CommissionStructure)
    capabilities: List[str] = Field(default_factory=list, description="Capabilities")
    certifications: List[str] = Field(default_factory=list, description="Certifications")
    branding: Optional[Dict[str, Any]] = Field(None, description="White-label options")
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    is_deleted: bool = Field(False, description="Soft-delete flag")
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete time")
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update time")
    created_by: Optional[str] = Field(None, description="Creator")


class ChangeHistoryEntry(BaseModel):
    version: int = Field(..., ge=1)
    changed_at: datetime = Field(default_factory=utc_now)
    changed_by: str = Field(...)
    changes: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="field -> {old, new}")


class TenantConfigDocument(BaseModel):
    """Database document model for the `tenant-configs` collection (tenant database)."""
    id: str = Field(..., description="Document ID (tenant-configs/{tenant_id})")
    collection: str = Field(TENANT_CONFIGS_COLLECTION, description="Collection name")
    tenant_id: str = Field(..., description="Tenant ID")
    config_type: ConfigType = Field(..., description="Configuration type")
    config: Dict[str, Any] = Field(default_factory=dict, description="Configuration payload")
    version: int = Field(1, ge=1, description="Version counter")
    is_active: bool = Field(True, description="Active flag")
    change_history: List[ChangeHistoryEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    created_by: str = Field("system")

    def apply_changes(self, changes: Dict[str, Any], changed_by: str) -> Dict[str, Dict[str, Any]]:
        """
        Apply top-level config changes, recording a field-level diff.

        Unchanged fields are ignored. When anything changed, the version is bumped
        and one history entry is appended.

        Args:
            changes: Mapping of config keys to their new values.
            changed_by: Actor recorded in the history entry.

        Returns:
            Dict[str, Dict[str, Any]]: The recorded diff (`{field: {"old", "new"}}`).
        """
        diff: Dict[str, Dict[str, Any]] = {}
        for key, new_value in changes.items():
            old_value = self.config.get(key)
            if old_value != new_value:
                diff[key] = {"old": old_value, "new": new_value}

        if not diff:
            return diff

        for key, values in diff.items():
            self.config[key] = values["new"]

        self.version += 1
        self.updated_at = utc_now()
        self.change_history.append(
            ChangeHistoryEntry(version=self.version, changed_at=self.updated_at, changed_by=changed_by, changes=diff)
        )
        return diff
