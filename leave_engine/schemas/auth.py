from pydantic import BaseModel
from typing import List, Optional
import enum


class UserRole(str, enum.Enum):
    """
    Roles carried in access tokens issued by the identity service.

    Hierarchy (most to least permissions):
    - SUPER_ADMIN: Platform-wide access
    - HR_ADMIN: Full HR access, manages leave policies
    - HR_MANAGER: Approves leave, reads requests
    - MANAGER: Approves leave for the team
    - EMPLOYEE: Self-service submission
    """
    SUPER_ADMIN = "SUPER_ADMIN"
    HR_ADMIN = "HR_ADMIN"
    HR_MANAGER = "HR_MANAGER"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


class Permission(str, enum.Enum):
    MANAGE_SETTINGS = "manage_settings"
    APPROVE_LEAVE = "approve_leave"
    VIEW_LEAVE_REQUESTS = "view_leave_requests"
    SUBMIT_LEAVE = "submit_leave"


# Used when a token does not carry an explicit permission list
ROLE_PERMISSIONS = {
    UserRole.SUPER_ADMIN: [p.value for p in Permission],
    UserRole.HR_ADMIN: [p.value for p in Permission],
    UserRole.HR_MANAGER: [
        Permission.APPROVE_LEAVE.value,
        Permission.VIEW_LEAVE_REQUESTS.value,
        Permission.SUBMIT_LEAVE.value,
    ],
    UserRole.MANAGER: [
        Permission.APPROVE_LEAVE.value,
        Permission.VIEW_LEAVE_REQUESTS.value,
        Permission.SUBMIT_LEAVE.value,
    ],
    UserRole.EMPLOYEE: [Permission.SUBMIT_LEAVE.value],
}


class TokenData(BaseModel):
    sub: Optional[str] = None
    role: Optional[str] = None
    permissions: Optional[List[str]] = None
    employee_id: Optional[str] = None


class Actor(BaseModel):
    """The authenticated caller. Identity itself lives in another service."""
    id: str
    role: UserRole
    permissions: List[str] = []
    employee_id: Optional[str] = None

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions
