from __future__ import annotations


ROLE_PLATFORM_OPERATOR = "platform_operator"
ROLE_TENANT_ADMIN = "tenant_admin"
ROLE_TENANT_MEMBER = "tenant_member"
ROLE_CUSTOMER_USER = "customer_user"

TENANT_ROLES = {ROLE_TENANT_ADMIN, ROLE_TENANT_MEMBER}


def is_platform_operator(role: str | None) -> bool:
    return role == ROLE_PLATFORM_OPERATOR


def is_tenant_role(role: str | None) -> bool:
    return role in TENANT_ROLES


def is_customer_role(role: str | None) -> bool:
    return role == ROLE_CUSTOMER_USER
