"""Request scoping dependencies.

Staff authentication happens upstream; by the time a request reaches this
service the gateway has already authorized it for the organization named in
``X-Organization-Id``.
"""
from typing import Optional

from fastapi import Header, HTTPException, status


def get_organization_id(x_organization_id: Optional[str] = Header(None)) -> str:
    if not x_organization_id or not x_organization_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-Organization-Id header missing")
    return x_organization_id.strip()


def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> Optional[str]:
    """Staff member performing the change, recorded on versions and audit logs."""
    if x_actor_id and x_actor_id.strip():
        return x_actor_id.strip()
    return None
