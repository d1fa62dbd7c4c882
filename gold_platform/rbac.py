"""
Role-Based Access Control (RBAC) Module

Role and permission tables for the admin back-office. Authentication happens
upstream; this module only checks the role on an already-resolved caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Set, Union

from .errors import Unauthorized


class UserRole(Enum):
    """Platform roles, from least to most privileged"""
    USER = "user"
    AUDITOR = "auditor"
    OPERATOR = "operator"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class Permission(Enum):
    """System permissions"""
    # User management
    USER_VIEW = "user.view"
    USER_UPDATE = "user.update"
    USER_CHANGE_ROLE = "user.change_role"

    # KYC management
    KYC_VIEW = "kyc.view"
    KYC_REVIEW = "kyc.review"
    KYC_APPROVE = "kyc.approve"
    KYC_REJECT = "kyc.reject"
    KYC_REQUEST_DOCUMENTS = "kyc.request_documents"

    # Configuration
    CONFIG_VIEW = "config.view"
    CONFIG_UPDATE = "config.update"
    CONFIG_UPDATE_CRITICAL = "config.update_critical"  # Fee schedules

    # Reports and audit
    REPORTS_VIEW = "reports.view"
    AUDIT_VIEW = "audit.view"


_KYC_FULL = {
    Permission.KYC_VIEW,
    Permission.KYC_REVIEW,
    Permission.KYC_APPROVE,
    Permission.KYC_REJECT,
    Permission.KYC_REQUEST_DOCUMENTS,
}

_ADMIN_PERMISSIONS = _KYC_FULL | {
    Permission.USER_VIEW,
    Permission.USER_UPDATE,
    Permission.USER_CHANGE_ROLE,
    Permission.CONFIG_VIEW,
    Permission.CONFIG_UPDATE,
    Permission.REPORTS_VIEW,
    Permission.AUDIT_VIEW,
}

ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.USER: frozenset(),
    # Read-only access
    UserRole.AUDITOR: frozenset({
        Permission.USER_VIEW,
        Permission.KYC_VIEW,
        Permission.CONFIG_VIEW,
        Permission.REPORTS_VIEW,
        Permission.AUDIT_VIEW,
    }),
    UserRole.OPERATOR: frozenset(_KYC_FULL | {
        Permission.USER_VIEW,
        Permission.USER_UPDATE,
        Permission.REPORTS_VIEW,
        Permission.AUDIT_VIEW,
    }),
    UserRole.ADMIN: frozenset(_ADMIN_PERMISSIONS),
    UserRole.SUPERADMIN: frozenset(_ADMIN_PERMISSIONS | {Permission.CONFIG_UPDATE_CRITICAL}),
}

ADMIN_ROLES: FrozenSet[UserRole] = frozenset({
    UserRole.OPERATOR, UserRole.ADMIN, UserRole.SUPERADMIN
})


def has_permission(role: UserRole, permission: Permission) -> bool:
    """Check if a role has a specific permission"""
    return permission in ROLE_PERMISSIONS[role]


def has_all_permissions(role: UserRole, permissions: Set[Permission]) -> bool:
    """Check if a role has all of the specified permissions"""
    return permissions.issubset(ROLE_PERMISSIONS[role])


def is_admin_role(role: UserRole) -> bool:
    """Operator, admin and superadmin may act on KYC reviews"""
    return role in ADMIN_ROLES


@dataclass(frozen=True)
class CallerIdentity:
    """Identity resolved by the authentication layer before a core call"""
    user_id: str
    role: UserRole

    @classmethod
    def of(cls, user_id: str, role: Union[UserRole, str]) -> 'CallerIdentity':
        if not isinstance(role, UserRole):
            try:
                role = UserRole(role)
            except ValueError:
                raise Unauthorized(f"Unknown role: {role}")
        return cls(user_id=user_id, role=role)


def require_permission(caller: CallerIdentity, permission: Permission) -> None:
    """
    Raise Unauthorized unless the caller's role grants the permission
    """
    if not has_permission(caller.role, permission):
        raise Unauthorized(
            f"Role '{caller.role.value}' lacks permission '{permission.value}'"
        )
