"""Exceptions raised by the tenant provisioning layer.

All errors derive from `TenantProvisioningError`, which carries a message, an error
code (defaults to the class name) and a free-form details dictionary.
"""

from typing import Any, Dict, List, Optional


class TenantProvisioningError(Exception):
    """Base exception for all errors raised by this package."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
            "type": self.__class__.__name__,
        }


class DatabaseError(TenantProvisioningError):
    """Base class for connection and session errors."""
    pass


class NotInitializedError(DatabaseError):
    """Raised when a connection handle is used before `initialize()` or after `dispose()`."""

    def __init__(self, database: str = ""):
        self.database = database
        target = f" for database '{database}'" if database else ""
        super().__init__(
            f"Connection handle{target} is not initialized. Call initialize() first.",
            details={"database": database},
        )


class AlreadyInitializedError(DatabaseError):
    """Raised when `initialize()` is called on an initialized handle."""

    def __init__(self, database: str = ""):
        self.database = database
        super().__init__(
            f"Connection handle for database '{database}' is already initialized",
            details={"database": database},
        )


class InitializationError(DatabaseError):
    """Raised when the underlying client cannot be constructed or reached."""

    def __init__(self, database: str, reason: str = ""):
        self.database = database
        self.reason = reason
        message = f"Failed to initialize connection to database '{database}'"
        if reason:
            message += f": {reason}"
        super().__init__(message, details={"database": database, "reason": reason})


class ConcurrencyError(DatabaseError):
    """Raised when an optimistic concurrency check fails on commit."""

    def __init__(self, document_id: str, reason: str = ""):
        self.document_id = document_id
        message = f"Optimistic concurrency violation on document '{document_id}'"
        if reason:
            message += f": {reason}"
        super().__init__(message, details={"document_id": document_id})


class SessionRequestLimitError(DatabaseError):
    """Raised when a session exceeds its maximum number of store round trips."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"Maximum number of requests per session ({limit}) exceeded",
            details={"limit": limit},
        )


class ConfigurationError(TenantProvisioningError):
    """Raised when required configuration is missing or malformed."""
    pass


class ClusterNotFoundError(TenantProvisioningError):
    """Raised when a cluster topology name is not registered."""

    def __init__(self, cluster_name: str):
        self.cluster_name = cluster_name
        super().__init__(f"Cluster '{cluster_name}' not found", details={"cluster_name": cluster_name})


class ProvisioningError(TenantProvisioningError):
    """Raised when the remote provisioning endpoint rejects a request."""
    pass


class PartialProvisioningError(ProvisioningError):
    """
    Raised when a multi-step operation fails after at least one step completed.

    Attributes:
        operation: Name of the operation (e.g. `create_tenant`).
        failed_step: Name of the step that raised.
        completed_steps: Steps that had completed before the failure.
        compensated: True if every compensation of the completed steps succeeded.
        step_log: Serialized step records, in execution order.
    """

    def __init__(
        self,
        operation: str,
        failed_step: str,
        completed_steps: List[str],
        compensated: bool,
        step_log: Optional[List[Dict[str, Any]]] = None,
        resource_id: Optional[str] = None,
    ):
        self.operation = operation
        self.failed_step = failed_step
        self.completed_steps = completed_steps
        self.compensated = compensated
        self.step_log = step_log or []
        self.resource_id = resource_id
        state = "rolled back" if compensated else "left partially applied"
        super().__init__(
            f"{operation} failed at step '{failed_step}' after {completed_steps}; state {state}",
            details={
                "operation": operation,
                "failed_step": failed_step,
                "completed_steps": completed_steps,
                "compensated": compensated,
                "resource_id": resource_id,
                "step_log": self.step_log,
            },
        )


class NotFoundError(TenantProvisioningError):
    """Base class for lookups of unknown ids."""
    pass


class TenantNotFoundError(NotFoundError):
    """Raised when a tenant id has no metadata record."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant {tenant_id} not found", details={"tenant_id": tenant_id})


class PartnerNotFoundError(NotFoundError):
    """Raised when a partner id has no record."""

    def __init__(self, partner_id: str):
        self.partner_id = partner_id
        super().__init__(f"Partner {partner_id} not found", details={"partner_id": partner_id})
