"""
Tests for role and permission checks
"""

import pytest

from gold_platform.errors import Unauthorized
from gold_platform.rbac import (
    UserRole, Permission, CallerIdentity, ROLE_PERMISSIONS,
    has_permission, has_all_permissions, is_admin_role, require_permission
)


class TestRolePermissions:

    def test_every_role_has_an_entry(self):
        assert set(ROLE_PERMISSIONS) == set(UserRole)

    def test_user_has_no_admin_permissions(self):
        assert not has_permission(UserRole.USER, Permission.KYC_VIEW)
        assert not has_permission(UserRole.USER, Permission.KYC_APPROVE)

    def test_auditor_is_read_only(self):
        assert has_permission(UserRole.AUDITOR, Permission.KYC_VIEW)
        assert has_permission(UserRole.AUDITOR, Permission.AUDIT_VIEW)
        assert not has_permission(UserRole.AUDITOR, Permission.KYC_APPROVE)
        assert not has_permission(UserRole.AUDITOR, Permission.KYC_REJECT)
        assert not has_permission(UserRole.AUDITOR, Permission.KYC_REVIEW)

    def test_operator_has_full_kyc(self):
        assert has_all_permissions(UserRole.OPERATOR, {
            Permission.KYC_VIEW, Permission.KYC_REVIEW,
            Permission.KYC_APPROVE, Permission.KYC_REJECT
        })
        assert not has_permission(UserRole.OPERATOR, Permission.CONFIG_UPDATE)

    def test_only_superadmin_updates_critical_config(self):
        assert has_permission(UserRole.SUPERADMIN, Permission.CONFIG_UPDATE_CRITICAL)
        assert not has_permission(UserRole.ADMIN, Permission.CONFIG_UPDATE_CRITICAL)

    def test_admin_roles(self):
        assert is_admin_role(UserRole.OPERATOR)
        assert is_admin_role(UserRole.ADMIN)
        assert is_admin_role(UserRole.SUPERADMIN)
        assert not is_admin_role(UserRole.AUDITOR)
        assert not is_admin_role(UserRole.USER)


class TestCallerIdentity:

    def test_of_role_string(self):
        caller = CallerIdentity.of("admin-1", "admin")
        assert caller.role == UserRole.ADMIN

    def test_unknown_role(self):
        with pytest.raises(Unauthorized):
            CallerIdentity.of("x", "root")

    def test_require_permission(self):
        require_permission(CallerIdentity("ops-1", UserRole.OPERATOR), Permission.KYC_APPROVE)
        with pytest.raises(Unauthorized) as exc_info:
            require_permission(CallerIdentity("u-1", UserRole.USER), Permission.KYC_APPROVE)
        assert "kyc.approve" in str(exc_info.value)
