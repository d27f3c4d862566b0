"""
Login, lockout, refresh, logout and password change.
"""
from datetime import timedelta

import pytest

from finhub.core.clock import as_utc
from finhub.core.config import settings
from finhub.core.exceptions import (
    AccountInactive, AccountLocked, InvalidCredentials, InvalidPassword,
    InvalidToken, NoCompanyAssigned, NotFound
)
from finhub.models import AuditLog, UserStatus
from finhub.services.permission_service import SYSTEM_ROLES

from conftest import PASSWORD, START, add_membership, make_company, make_user


COMPANY_ADMIN_CODES = sorted(
    next(r for r in SYSTEM_ROLES if r["role_name"] == "Company Admin")["permissions"]
)


class TestLogin:

    def test_successful_login_returns_tokens_company_and_permissions(self, auth_service, tenant, token_manager):
        result = auth_service.login("admin", PASSWORD)

        assert result["token_type"] == "bearer"
        assert result["user"].id == tenant.admin.id
        assert result["company"].id == tenant.company.id
        assert [c["id"] for c in result["companies"]] == [tenant.company.id]
        assert result["companies"][0]["is_default"] is True
        assert result["permissions"] == COMPANY_ADMIN_CODES

        claims = token_manager.decode_access_token(result["access_token"])
        assert claims["sub"] == str(tenant.admin.id)
        assert claims["company_id"] == tenant.company.id
        assert claims["username"] == "admin"

        refresh_claims = token_manager.decode_refresh_token(result["refresh_token"])
        assert refresh_claims["sub"] == str(tenant.admin.id)
        assert "company_id" not in refresh_claims

    def test_success_records_last_login_and_resets_counter(self, auth_service, tenant):
        with pytest.raises(InvalidCredentials):
            auth_service.login("admin", "wrong-password")
        assert tenant.admin.failed_attempts == 1

        auth_service.login("admin", PASSWORD)

        assert tenant.admin.failed_attempts == 0
        assert tenant.admin.locked_until is None
        assert as_utc(tenant.admin.last_login_at) == START

    def test_unknown_username(self, auth_service, db, tenant):
        with pytest.raises(InvalidCredentials):
            auth_service.login("nobody", PASSWORD)

        failure = db.query(AuditLog).filter(AuditLog.action == "LOGIN_FAILED").one()
        assert failure.username == "nobody"
        assert failure.status == "failure"

    def test_inactive_account_is_rejected_before_password_check(self, auth_service, db, tenant):
        tenant.admin.status = UserStatus.INACTIVE.value
        db.flush()

        with pytest.raises(AccountInactive):
            auth_service.login("admin", PASSWORD)
        with pytest.raises(AccountInactive):
            auth_service.login("admin", "wrong-password")
        assert tenant.admin.failed_attempts == 0

    def test_user_without_company(self, auth_service, db):
        make_user(db, "drifter")

        with pytest.raises(NoCompanyAssigned):
            auth_service.login("drifter", PASSWORD)

    def test_default_membership_is_preferred(self, auth_service, db, tenant):
        second = make_company(db, "Second Co")
        add_membership(db, tenant.admin, second, roles=["Viewer"])
        for membership in tenant.admin.memberships:
            membership.is_default = membership.company_id == second.id
        db.flush()

        result = auth_service.login("admin", PASSWORD)

        assert result["company"].id == second.id
        assert result["permissions"] == ["ap.read", "ar.read", "customer.read", "vendor.read"]

    def test_first_membership_used_when_none_is_default(self, auth_service, db, tenant):
        second = make_company(db, "Second Co")
        add_membership(db, tenant.admin, second)
        for membership in tenant.admin.memberships:
            membership.is_default = False
        db.flush()

        result = auth_service.login("admin", PASSWORD)

        assert result["company"].id == tenant.company.id


class TestLockout:

    def _fail(self, auth_service, times):
        for _ in range(times):
            with pytest.raises(InvalidCredentials):
                auth_service.login("admin", "wrong-password")

    def test_threshold_failures_lock_the_account(self, auth_service, tenant):
        self._fail(auth_service, settings.LOCKOUT_THRESHOLD - 1)
        assert tenant.admin.status == UserStatus.ACTIVE.value

        self._fail(auth_service, 1)

        assert tenant.admin.status == UserStatus.LOCKED.value
        assert tenant.admin.failed_attempts == settings.LOCKOUT_THRESHOLD
        assert as_utc(tenant.admin.locked_until) == START + timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES)

    def test_locked_account_rejects_correct_password(self, auth_service, tenant):
        self._fail(auth_service, settings.LOCKOUT_THRESHOLD)

        with pytest.raises(AccountLocked):
            auth_service.login("admin", PASSWORD)
        with pytest.raises(AccountLocked):
            auth_service.login("admin", "wrong-password")
        assert tenant.admin.failed_attempts == settings.LOCKOUT_THRESHOLD

    def test_lock_expires_after_duration(self, auth_service, tenant, clock):
        self._fail(auth_service, settings.LOCKOUT_THRESHOLD)

        clock.advance(minutes=settings.LOCKOUT_DURATION_MINUTES, seconds=-1)
        with pytest.raises(AccountLocked):
            auth_service.login("admin", PASSWORD)

        clock.advance(seconds=1)
        result = auth_service.login("admin", PASSWORD)

        assert result["user"].id == tenant.admin.id
        assert tenant.admin.status == UserStatus.ACTIVE.value
        assert tenant.admin.failed_attempts == 0
        assert tenant.admin.locked_until is None

    def test_expired_lock_with_wrong_password_counts_from_zero(self, auth_service, tenant, clock):
        self._fail(auth_service, settings.LOCKOUT_THRESHOLD)
        clock.advance(minutes=settings.LOCKOUT_DURATION_MINUTES + 1)

        self._fail(auth_service, 1)

        assert tenant.admin.status == UserStatus.ACTIVE.value
        assert tenant.admin.failed_attempts == 1

    def test_lock_is_audited(self, auth_service, db, tenant):
        self._fail(auth_service, settings.LOCKOUT_THRESHOLD)

        locked = db.query(AuditLog).filter(AuditLog.action == "ACCOUNT_LOCKED").all()
        assert len(locked) == 1
        assert locked[0].user_id == tenant.admin.id


class TestRefresh:

    def test_refresh_issues_access_token_for_default_company(self, auth_service, tenant, token_manager):
        tokens = auth_service.login("admin", PASSWORD)

        result = auth_service.refresh(tokens["refresh_token"])

        claims = token_manager.decode_access_token(result["access_token"])
        assert claims["company_id"] == tenant.company.id
        assert result["permissions"] == COMPANY_ADMIN_CODES
        assert "refresh_token" not in result

    def test_refresh_follows_company_switch(self, auth_service, db, tenant, token_manager):
        tokens = auth_service.login("admin", PASSWORD)
        second = make_company(db, "Second Co")
        add_membership(db, tenant.admin, second, roles=["AR Clerk"])
        for membership in tenant.admin.memberships:
            membership.is_default = membership.company_id == second.id
        db.flush()

        result = auth_service.refresh(tokens["refresh_token"])

        assert token_manager.decode_access_token(result["access_token"])["company_id"] == second.id
        assert result["permissions"] == ["ar.read", "ar.write", "customer.read", "customer.write"]

    def test_access_token_is_not_a_refresh_token(self, auth_service, tenant):
        tokens = auth_service.login("admin", PASSWORD)

        with pytest.raises(InvalidToken):
            auth_service.refresh(tokens["access_token"])

    def test_expired_refresh_token(self, auth_service, tenant, clock):
        tokens = auth_service.login("admin", PASSWORD)
        clock.advance(days=settings.REFRESH_TOKEN_EXPIRE_DAYS, seconds=1)

        with pytest.raises(InvalidToken) as exc_info:
            auth_service.refresh(tokens["refresh_token"])
        assert exc_info.value.code == "INVALID_TOKEN"

    def test_inactive_user_cannot_refresh(self, auth_service, db, tenant):
        tokens = auth_service.login("admin", PASSWORD)
        tenant.admin.status = UserStatus.INACTIVE.value
        db.flush()

        with pytest.raises(InvalidToken):
            auth_service.refresh(tokens["refresh_token"])

    def test_garbage_token(self, auth_service):
        with pytest.raises(InvalidToken):
            auth_service.refresh("not-a-jwt")


class TestLogoutAndPassword:

    def test_logout_revokes_token_until_expiry(self, auth_service, tenant, token_manager, revocation_list, clock):
        tokens = auth_service.login("admin", PASSWORD)
        identity = token_manager.identity_from_token(tokens["access_token"])

        auth_service.logout(identity)

        assert revocation_list.is_revoked(identity.token_id)
        clock.advance(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES, seconds=1)
        assert len(revocation_list) == 0

    def test_change_password(self, auth_service, tenant):
        auth_service.change_password(tenant.admin.id, PASSWORD, "N3w-password!")

        with pytest.raises(InvalidCredentials):
            auth_service.login("admin", PASSWORD)
        assert auth_service.login("admin", "N3w-password!")["user"].id == tenant.admin.id

    def test_change_password_requires_current_password(self, auth_service, tenant):
        with pytest.raises(InvalidPassword):
            auth_service.change_password(tenant.admin.id, "wrong-password", "N3w-password!")

    def test_change_password_unknown_user(self, auth_service, db):
        with pytest.raises(NotFound):
            auth_service.change_password(9999, PASSWORD, "N3w-password!")
