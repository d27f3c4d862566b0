"""
User Service - Business Logic for User Operations
"""
from typing import Optional, List, Tuple
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from finhub.core.exceptions import Duplicate, NotFound
from finhub.core.pagination import paginate
from finhub.core.security import get_password_hash
from finhub.models import Company, Role, User, UserCompany, UserCompanyRole, UserStatus
from finhub.schemas import UserCreate, UserUpdate
from finhub.services.audit_service import AuditAction, AuditService
from finhub.services.permission_service import PermissionResolver

logger = logging.getLogger(__name__)


def user_with_roles(user: User, company_id: int) -> dict:
    """User columns plus the roles held in ``company_id``"""
    roles = sorted(
        (a.role for a in user.role_assignments if a.company_id == company_id),
        key=lambda r: r.id
    )
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "status": user.status,
        "last_login_at": user.last_login_at,
        "created_at": user.created_at,
        "roles": [{"role_id": r.id, "role_name": r.role_name} for r in roles],
    }


class UserService:
    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def list_users(
        self,
        company_id: int,
        search: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[dict], dict]:
        query = self.db.query(User)\
            .join(UserCompany, UserCompany.user_id == User.id)\
            .filter(UserCompany.company_id == company_id)

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                User.username.ilike(pattern),
                User.display_name.ilike(pattern),
                User.email.ilike(pattern)
            ))
        if status:
            query = query.filter(User.status == status)

        users, meta = paginate(query.order_by(User.created_at.desc(), User.id.desc()), page, limit)
        return [user_with_roles(u, company_id) for u in users], meta

    def get_user(self, user_id: int, company_id: int) -> dict:
        user = self.db.query(User)\
            .join(UserCompany, UserCompany.user_id == User.id)\
            .filter(User.id == user_id, UserCompany.company_id == company_id)\
            .first()
        if not user:
            raise NotFound("User not found")
        return user_with_roles(user, company_id)

    def create_user(self, user_data: UserCreate, actor_id: Optional[int] = None) -> User:
        if self.get_by_username(user_data.username):
            raise Duplicate("Username already registered")
        if self.get_by_email(user_data.email):
            raise Duplicate("Email already registered")

        user = User(
            username=user_data.username,
            email=user_data.email,
            display_name=user_data.display_name,
            hashed_password=get_password_hash(user_data.password),
            status=UserStatus.ACTIVE.value,
            failed_attempts=0
        )
        self.db.add(user)
        self.db.flush()

        if user_data.company_id:
            if not self.db.query(Company).filter(Company.id == user_data.company_id).first():
                raise NotFound("Company not found")
            self.db.add(UserCompany(user_id=user.id, company_id=user_data.company_id, is_default=True))
            for role in self._get_roles(user_data.role_ids or [], user_data.company_id):
                self.db.add(UserCompanyRole(
                    user_id=user.id,
                    role_id=role.id,
                    company_id=user_data.company_id
                ))
            self.db.flush()

        self.audit.log(
            action=AuditAction.CREATE,
            resource_type="User",
            resource_id=user.id,
            description=f"User '{user.username}' created",
            new_values={"username": user.username, "email": user.email},
            user_id=actor_id,
            company_id=user_data.company_id
        )
        return user

    def update_user(self, user_id: int, company_id: int, user_data: UserUpdate,
                    actor_id: Optional[int] = None) -> dict:
        self.get_user(user_id, company_id)
        user = self.get_by_id(user_id)

        update_data = user_data.model_dump(exclude_unset=True, exclude_none=True)

        if "email" in update_data and update_data["email"] != user.email:
            if self.get_by_email(update_data["email"]):
                raise Duplicate("Email already registered")
            user.email = update_data["email"]
        if "display_name" in update_data:
            user.display_name = update_data["display_name"]
        if "password" in update_data:
            user.hashed_password = get_password_hash(update_data["password"])
        if "status" in update_data:
            user.status = update_data["status"]
            if user.status == UserStatus.ACTIVE.value:
                user.failed_attempts = 0
                user.locked_until = None

        self.db.flush()
        self.audit.log(
            action=AuditAction.UPDATE,
            resource_type="User",
            resource_id=user.id,
            new_values={k: v for k, v in update_data.items() if k != "password"},
            user_id=actor_id,
            company_id=company_id
        )
        return user_with_roles(user, company_id)

    def _get_roles(self, role_ids: List[int], company_id: int) -> List[Role]:
        """Roles assignable in ``company_id``; unknown ids raise NotFound"""
        role_ids = list(dict.fromkeys(role_ids))
        if not role_ids:
            return []
        roles = self.db.query(Role).filter(
            Role.id.in_(role_ids),
            or_(Role.company_id.is_(None), Role.company_id == company_id)
        ).all()
        missing = set(role_ids) - {r.id for r in roles}
        if missing:
            raise NotFound("Role not found", details={"role_ids": sorted(missing)})
        return sorted(roles, key=lambda r: r.id)

    def assign_roles(self, user_id: int, company_id: int, role_ids: List[int],
                     resolver: PermissionResolver, actor_id: Optional[int] = None) -> List[dict]:
        """
        Replace every role the user holds in ``company_id`` with ``role_ids``.

        Adds a non-default membership if the user is not yet a member. The
        permission cache entry for the pair is dropped now and again on commit.
        """
        user = self.get_by_id(user_id)
        if not user:
            raise NotFound("User not found")
        if not self.db.query(Company).filter(Company.id == company_id).first():
            raise NotFound("Company not found")

        roles = self._get_roles(role_ids, company_id)

        membership = self.db.query(UserCompany).filter(
            UserCompany.user_id == user_id,
            UserCompany.company_id == company_id
        ).first()
        if not membership:
            self.db.add(UserCompany(user_id=user_id, company_id=company_id, is_default=False))

        self.db.query(UserCompanyRole).filter(
            UserCompanyRole.user_id == user_id,
            UserCompanyRole.company_id == company_id
        ).delete(synchronize_session="fetch")

        for role in roles:
            self.db.add(UserCompanyRole(user_id=user_id, role_id=role.id, company_id=company_id))

        self.db.flush()
        self.db.expire(user, ["role_assignments", "memberships"])
        resolver.invalidate_on_commit(self.db, [(user_id, company_id)])

        assigned = [{"role_id": r.id, "role_name": r.role_name} for r in roles]
        self.audit.log(
            action=AuditAction.ROLE_ASSIGNED,
            resource_type="User",
            resource_id=user_id,
            description=f"Roles of user '{user.username}' replaced in company {company_id}",
            new_values={"roles": assigned},
            user_id=actor_id,
            company_id=company_id
        )
        logger.info(f"User {user_id} roles in company {company_id} set to {[r.id for r in roles]}")
        return assigned
