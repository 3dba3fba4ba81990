import enum
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserRole(str, enum.Enum):
    """
    Roles supplied by the identity collaborator.

    Hierarchy (most to least permissions):
    - SUPER_ADMIN: Platform-wide access
    - MANAGEMENT: Company management, final approval authority
    - GROUP_ADMIN: First-level approver for their group
    - EMPLOYEE: Self-service access
    """
    SUPER_ADMIN = "super_admin"
    MANAGEMENT = "management"
    GROUP_ADMIN = "group_admin"
    EMPLOYEE = "employee"


class Principal(BaseModel):
    """The acting user as resolved upstream. The engine trusts it as given."""
    model_config = ConfigDict(frozen=True)

    user_id: int
    tenant_id: int
    role: UserRole = UserRole.EMPLOYEE
    gender: Optional[str] = None
    hired_on: Optional[date] = None
