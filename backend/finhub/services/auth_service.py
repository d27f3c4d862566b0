"""
Auth Service - Login, Lockout, Token Refresh and Logout
"""
from datetime import timedelta
from typing import Optional
import logging

from sqlalchemy.orm import Session, joinedload

from finhub.core.clock import Clock, as_utc
from finhub.core.config import Settings, settings
from finhub.core.exceptions import (
    AccountInactive, AccountLocked, InvalidCredentials, InvalidPassword,
    InvalidToken, NoCompanyAssigned, NotFound
)
from finhub.core.security import (
    Identity, TokenManager, TokenRevocationList, get_password_hash, verify_password
)
from finhub.models import User, UserCompany, UserStatus
from finhub.services.audit_service import AuditAction, AuditService
from finhub.services.permission_service import PermissionResolver

logger = logging.getLogger(__name__)


def company_payload(membership: UserCompany) -> dict:
    """Company columns plus the membership's is_default flag"""
    company = membership.company
    return {
        "id": company.id,
        "company_name": company.company_name,
        "short_name": company.short_name,
        "tax_id": company.tax_id,
        "representative": company.representative,
        "phone": company.phone,
        "fax": company.fax,
        "address": company.address,
        "email": company.email,
        "default_currency": company.default_currency,
        "tax_rate": company.tax_rate,
        "fiscal_year_start": company.fiscal_year_start,
        "status": company.status,
        "created_at": company.created_at,
        "is_default": membership.is_default,
    }


class AuthService:
    def __init__(
        self,
        db: Session,
        token_manager: TokenManager,
        revocation_list: TokenRevocationList,
        resolver: PermissionResolver,
        clock: Clock,
        config: Settings = settings,
        audit: Optional[AuditService] = None
    ):
        self.db = db
        self.token_manager = token_manager
        self.revocation_list = revocation_list
        self.resolver = resolver
        self.clock = clock
        self.config = config
        self.audit = audit or AuditService(db)

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User)\
            .options(joinedload(User.memberships).joinedload(UserCompany.company))\
            .filter(User.username == username)\
            .first()

    def _record_failure(self, username: str, reason: str, user: Optional[User] = None):
        self.audit.log(
            action=AuditAction.LOGIN_FAILED,
            resource_type="User",
            resource_id=user.id if user else None,
            description=f"Failed login attempt for username '{username}'",
            user_id=user.id if user else None,
            username=username,
            status="failure",
            error_message=reason
        )

    def login(self, username: str, password: str) -> dict:
        """
        Verify credentials and issue a token pair for the default company.

        Failed-attempt counters and lock state are flushed before an error is
        raised; the caller commits them even though the login fails.
        """
        user = self.get_by_username(username)
        if not user:
            self._record_failure(username, "Unknown username")
            raise InvalidCredentials()

        now = self.clock.now()

        if user.status == UserStatus.LOCKED.value:
            locked_until = as_utc(user.locked_until)
            if locked_until is not None and locked_until <= now:
                user.status = UserStatus.ACTIVE.value
                user.failed_attempts = 0
                user.locked_until = None
                self.db.flush()
                logger.info(f"Lock on user '{user.username}' expired, account unlocked")
            else:
                self._record_failure(username, "Account locked", user)
                raise AccountLocked()

        if user.status == UserStatus.INACTIVE.value:
            self._record_failure(username, "Account inactive", user)
            raise AccountInactive()

        if not verify_password(password, user.hashed_password):
            user.failed_attempts = (user.failed_attempts or 0) + 1
            if user.failed_attempts >= self.config.LOCKOUT_THRESHOLD:
                user.status = UserStatus.LOCKED.value
                user.locked_until = now + timedelta(minutes=self.config.LOCKOUT_DURATION_MINUTES)
                logger.warning(
                    f"User '{user.username}' locked after {user.failed_attempts} failed attempts"
                )
                self.audit.log(
                    action=AuditAction.ACCOUNT_LOCKED,
                    resource_type="User",
                    resource_id=user.id,
                    description=f"Account '{user.username}' locked until {user.locked_until.isoformat()}",
                    user_id=user.id,
                    username=user.username
                )
            self._record_failure(username, "Invalid password", user)
            self.db.flush()
            raise InvalidCredentials()

        membership = user.default_membership
        if membership is None:
            raise NoCompanyAssigned()

        user.failed_attempts = 0
        user.locked_until = None
        user.last_login_at = now
        self.db.flush()

        company_id = membership.company_id
        permissions = self.resolver.resolve(self.db, user.id, company_id)

        self.audit.log(
            action=AuditAction.LOGIN,
            resource_type="User",
            resource_id=user.id,
            description=f"User '{user.username}' logged in",
            user_id=user.id,
            username=user.username,
            company_id=company_id
        )
        logger.info(f"User '{user.username}' logged in to company {company_id}")

        return {
            "access_token": self.token_manager.create_access_token(user.id, company_id, user.username),
            "refresh_token": self.token_manager.create_refresh_token(user.id),
            "token_type": "bearer",
            "user": user,
            "company": membership.company,
            "companies": [company_payload(m) for m in sorted(user.memberships, key=lambda m: m.id)],
            "permissions": sorted(permissions),
        }

    def refresh(self, refresh_token: str) -> dict:
        """New access token for the user's current default company"""
        try:
            payload = self.token_manager.decode_refresh_token(refresh_token)
            user_id = int(payload["sub"])
        except (InvalidToken, ValueError):
            raise InvalidToken("Invalid or expired refresh token")

        user = self.db.query(User)\
            .options(joinedload(User.memberships))\
            .filter(User.id == user_id)\
            .first()
        if not user or user.status != UserStatus.ACTIVE.value:
            raise InvalidToken("User not found or inactive")

        membership = user.default_membership
        if membership is None:
            raise NoCompanyAssigned()

        company_id = membership.company_id
        permissions = self.resolver.resolve(self.db, user.id, company_id)
        return {
            "access_token": self.token_manager.create_access_token(user.id, company_id, user.username),
            "token_type": "bearer",
            "permissions": sorted(permissions),
        }

    def logout(self, identity: Identity) -> None:
        """Revoke the presented access token until it would expire"""
        self.revocation_list.revoke(identity.token_id, identity.expires_at)
        self.audit.log(
            action=AuditAction.LOGOUT,
            resource_type="User",
            resource_id=identity.user_id,
            description=f"User '{identity.username}' logged out",
            user_id=identity.user_id,
            username=identity.username,
            company_id=identity.company_id
        )

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found")

        if not verify_password(current_password, user.hashed_password):
            raise InvalidPassword()

        user.hashed_password = get_password_hash(new_password)
        self.db.flush()

        self.audit.log(
            action=AuditAction.PASSWORD_CHANGE,
            resource_type="User",
            resource_id=user.id,
            description=f"User '{user.username}' changed password",
            user_id=user.id,
            username=user.username
        )
