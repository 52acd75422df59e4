from __future__ import annotations

from typing import Any


class TenantGateError(Exception):
    """Base error for TenantGate."""

    code = "TENANTGATE_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class Unauthorized(TenantGateError):
    """No valid acting identity."""

    code = "AUTH_UNAUTHORIZED"


class Forbidden(TenantGateError):
    """Valid identity without the privilege for the operation."""

    code = "AUTH_FORBIDDEN"


class FeatureNotEnabled(Forbidden):
    """Feature flag resolved to off for the tenant."""

    code = "FEATURE_NOT_ENABLED"


class NotFound(TenantGateError):
    """Referenced tenant, customer, account or flag does not exist."""

    code = "NOT_FOUND"


class PreconditionFailed(TenantGateError):
    """Structurally valid request blocked by a business rule."""

    code = "PRECONDITION_FAILED"


class UnknownFlag(TenantGateError):
    """Flag key is neither in the registry nor in the store."""

    code = "UNKNOWN_FLAG"


class LimitExceeded(TenantGateError):
    """Plan limit reached for a bounded resource type."""

    code = "PLAN_LIMIT_REACHED"

    def __init__(self, *, resource_type: str, current: int, limit: int) -> None:
        super().__init__(
            f"Plan limit reached for {resource_type}. Upgrade the plan to add more.",
            details={"resource_type": resource_type, "current": current, "limit": limit},
        )
        self.resource_type = resource_type
        self.current = current
        self.limit = limit


class ContextNotConfigured(TenantGateError):
    """Account has no resolvable tenant or customer binding."""

    code = "CONTEXT_NOT_CONFIGURED"


class DatabaseError(TenantGateError):
    """Database layer failure."""

    code = "DATABASE_ERROR"
