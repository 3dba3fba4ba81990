"""
Principal dependencies.

Identity is resolved upstream; the auth collaborator forwards it as trusted
headers and the engine takes them as given.
"""
import logging
from datetime import date
from typing import Callable, List, Optional

from fastapi import Depends, Header, HTTPException, status

from leave_engine.schemas.principal import Principal, UserRole

logger = logging.getLogger(__name__)


def get_principal(
    x_user_id: Optional[int] = Header(default=None, alias="X-User-Id"),
    x_tenant_id: Optional[int] = Header(default=None, alias="X-Tenant-Id"),
    x_user_role: str = Header(default=UserRole.EMPLOYEE.value, alias="X-User-Role"),
    x_user_gender: Optional[str] = Header(default=None, alias="X-User-Gender"),
    x_user_hired_on: Optional[date] = Header(default=None, alias="X-User-Hired-On"),
) -> Principal:
    if x_user_id is None or x_tenant_id is None:
        logger.warning("Request without identity headers")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers",
        )
    try:
        user_role = UserRole(x_user_role.lower())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown role: {x_user_role}")
    return Principal(
        user_id=x_user_id,
        tenant_id=x_tenant_id,
        role=user_role,
        gender=x_user_gender.lower() if x_user_gender else None,
        hired_on=x_user_hired_on,
    )


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks the principal has one of the allowed roles.

    Usage:
        @router.post("/types")
        def create(principal: Principal = Depends(require_role(ADMIN_ROLES))):
            ...
    """
    def role_checker(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in allowed_roles]}",
            )
        return principal
    return role_checker


ADMIN_ROLES = [UserRole.GROUP_ADMIN, UserRole.MANAGEMENT, UserRole.SUPER_ADMIN]
MANAGEMENT_ROLES = [UserRole.MANAGEMENT, UserRole.SUPER_ADMIN]
