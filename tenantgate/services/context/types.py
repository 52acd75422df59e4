from __future__ import annotations

from dataclasses import dataclass
from typing import Any


SCOPE_PLATFORM = "platform"
SCOPE_TENANT = "tenant"
SCOPE_CUSTOMER = "customer"
SCOPES = (SCOPE_PLATFORM, SCOPE_TENANT, SCOPE_CUSTOMER)


@dataclass(frozen=True)
class ResolvedContext:
    # Acting scope plus the single id bound to it; build() is the only constructor callers use.
    scope: str
    tenant_id: str | None = None
    customer_id: str | None = None

    @classmethod
    def build(
        cls,
        scope: str,
        *,
        tenant_id: str | None = None,
        customer_id: str | None = None,
    ) -> "ResolvedContext":
        if scope == SCOPE_PLATFORM:
            return cls(scope=SCOPE_PLATFORM)
        if scope == SCOPE_TENANT:
            if not tenant_id:
                raise ValueError("tenant scope requires tenant_id")
            return cls(scope=SCOPE_TENANT, tenant_id=tenant_id)
        if scope == SCOPE_CUSTOMER:
            if not customer_id:
                raise ValueError("customer scope requires customer_id")
            return cls(scope=SCOPE_CUSTOMER, customer_id=customer_id)
        raise ValueError(f"Unsupported context scope: {scope}")

    @classmethod
    def platform(cls) -> "ResolvedContext":
        return cls(scope=SCOPE_PLATFORM)

    def as_dict(self) -> dict[str, Any]:
        return {"scope": self.scope, "tenant_id": self.tenant_id, "customer_id": self.customer_id}
