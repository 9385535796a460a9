"""Shared API dependencies."""
from typing import Optional

from fastapi import Header, HTTPException

from app.services.onboarding import TenantContext


def get_tenant_context(
    x_tenant_id: Optional[int] = Header(None),
    x_user_id: Optional[int] = Header(None),
) -> TenantContext:
    """
    Resolve the caller's tenant and user.

    Token verification happens at the gateway, which forwards the
    authenticated tenant and user ids in these headers.
    """
    if x_tenant_id is None or x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing tenant context")
    return TenantContext(tenant_id=x_tenant_id, user_id=x_user_id)
