"""
Permission Service - Business Logic for RBAC
"""
from typing import Dict, Iterable, List, Optional, Set, Tuple
import logging
import threading

from sqlalchemy import event, or_
from sqlalchemy.orm import Session, joinedload

from finhub.core.clock import Clock
from finhub.core.exceptions import InvalidStatus, NotFound, ValidationError, Duplicate
from finhub.models import Permission, Role, RolePermission, UserCompanyRole

logger = logging.getLogger(__name__)

CacheKey = Tuple[int, int]


class PermissionCache:
    """
    Time-bounded cache of resolved permission sets keyed by (user, company).

    Entries are served until ``ttl_seconds`` after they were stored. Callers
    that change role data must invalidate explicitly.
    """

    def __init__(self, ttl_seconds: int, clock: Clock):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[CacheKey, Tuple[frozenset, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int, company_id: int) -> Optional[frozenset]:
        key = (user_id, company_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            permissions, expires_at = entry
            if expires_at <= self.clock.timestamp():
                del self._entries[key]
                return None
            return permissions

    def set(self, user_id: int, company_id: int, permissions: frozenset) -> None:
        with self._lock:
            self._entries[(user_id, company_id)] = (
                permissions,
                self.clock.timestamp() + self.ttl_seconds,
            )

    def invalidate(self, user_id: int, company_id: int) -> None:
        with self._lock:
            self._entries.pop((user_id, company_id), None)
        logger.debug(f"Permission cache invalidated for user={user_id} company={company_id}")

    def invalidate_many(self, keys: Iterable[CacheKey]) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PermissionResolver:
    """
    Effective permission set for a (user, company): the union of permission
    codes of every role assigned to the user in that company.
    """

    def __init__(self, cache: PermissionCache):
        self.cache = cache

    def compute(self, db: Session, user_id: int, company_id: int) -> frozenset:
        """Uncached read from the role assignment tables"""
        rows = db.query(Permission.permission_code)\
            .join(RolePermission, RolePermission.permission_id == Permission.id)\
            .join(UserCompanyRole, UserCompanyRole.role_id == RolePermission.role_id)\
            .filter(
                UserCompanyRole.user_id == user_id,
                UserCompanyRole.company_id == company_id
            )\
            .distinct()\
            .all()
        return frozenset(code for (code,) in rows)

    def resolve(self, db: Session, user_id: int, company_id: int) -> frozenset:
        cached = self.cache.get(user_id, company_id)
        if cached is not None:
            return cached

        permissions = self.compute(db, user_id, company_id)
        self.cache.set(user_id, company_id, permissions)
        return permissions

    def invalidate(self, user_id: int, company_id: int) -> None:
        self.cache.invalidate(user_id, company_id)

    def invalidate_on_commit(self, db: Session, keys: Iterable[CacheKey]) -> None:
        """
        Drop ``keys`` now and again once ``db`` commits.

        A concurrent request may resolve from the old committed rows between
        the flush and the commit. The second pass evicts what it cached.
        """
        keys = list(keys)
        self.cache.invalidate_many(keys)

        def evict(session):
            self.cache.invalidate_many(keys)

        event.listen(db, "after_commit", evict, once=True)

    def invalidate_role_holders(self, db: Session, role_id: int) -> None:
        """Drop cached sets of everyone holding ``role_id`` in any company"""
        holders = db.query(UserCompanyRole.user_id, UserCompanyRole.company_id)\
            .filter(UserCompanyRole.role_id == role_id)\
            .all()
        self.invalidate_on_commit(db, [(user_id, company_id) for user_id, company_id in holders])


class PermissionService:
    def __init__(self, db: Session):
        self.db = db

    def get_all_permissions(self) -> List[Permission]:
        return self.db.query(Permission).order_by(Permission.id).all()

    def get_permissions_by_module(self) -> dict:
        categorized = {}
        for perm in self.get_all_permissions():
            categorized.setdefault(perm.module, []).append(perm)
        return categorized

    def get_by_codes(self, codes: Iterable[str]) -> List[Permission]:
        codes = set(codes)
        if not codes:
            return []
        permissions = self.db.query(Permission).filter(Permission.permission_code.in_(codes)).all()
        unknown = codes - {p.permission_code for p in permissions}
        if unknown:
            raise ValidationError(
                "Unknown permission codes",
                details={"permission_codes": sorted(unknown)}
            )
        return permissions


class RoleService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, role_id: int) -> Optional[Role]:
        return self.db.query(Role).filter(Role.id == role_id).first()

    def get_by_name(self, role_name: str, company_id: int = None) -> Optional[Role]:
        return self.db.query(Role).filter(
            Role.role_name == role_name,
            Role.company_id == company_id if company_id is not None else Role.company_id.is_(None)
        ).first()

    def get_visible_role(self, role_id: int, company_id: int) -> Role:
        """System roles and roles owned by ``company_id``"""
        role = self.db.query(Role).filter(
            Role.id == role_id,
            or_(Role.company_id.is_(None), Role.company_id == company_id)
        ).first()
        if not role:
            raise NotFound("Role not found")
        return role

    def list_roles(self, company_id: int) -> List[Role]:
        return self.db.query(Role)\
            .options(joinedload(Role.permission_links).joinedload(RolePermission.permission))\
            .filter(or_(Role.company_id.is_(None), Role.company_id == company_id))\
            .order_by(Role.id)\
            .all()

    def create(self, company_id: int, role_name: str, description: str = None,
               permission_codes: Iterable[str] = ()) -> Role:
        if self.db.query(Role).filter(
            Role.role_name == role_name,
            or_(Role.company_id.is_(None), Role.company_id == company_id)
        ).first():
            raise Duplicate(f"Role '{role_name}' already exists")

        permissions = PermissionService(self.db).get_by_codes(permission_codes)
        role = Role(
            role_name=role_name,
            description=description,
            is_system=False,
            company_id=company_id
        )
        self.db.add(role)
        self.db.flush()

        for perm in permissions:
            self.db.add(RolePermission(role_id=role.id, permission_id=perm.id))

        self.db.flush()
        return role

    def update_permissions(self, role_id: int, company_id: int, permission_codes: Iterable[str],
                           resolver: PermissionResolver) -> Role:
        role = self.get_visible_role(role_id, company_id)
        if role.is_system or role.company_id != company_id:
            raise InvalidStatus("System roles cannot be edited")

        permissions = PermissionService(self.db).get_by_codes(permission_codes)

        self.db.query(RolePermission).filter(RolePermission.role_id == role.id).delete()
        for perm in permissions:
            self.db.add(RolePermission(role_id=role.id, permission_id=perm.id))
        self.db.flush()
        self.db.expire(role, ["permission_links"])

        resolver.invalidate_role_holders(self.db, role.id)
        logger.info(f"Role {role.id} permissions replaced with {sorted(p.permission_code for p in permissions)}")
        return role


# ==================== SEED DATA ====================

PERMISSIONS = [
    {"permission_code": "user.manage", "permission_name": "Manage Users", "module": "users"},
    {"permission_code": "company.manage", "permission_name": "Manage Companies", "module": "companies"},
    {"permission_code": "customer.read", "permission_name": "View Customers", "module": "customers"},
    {"permission_code": "customer.write", "permission_name": "Create/Edit Customers", "module": "customers"},
    {"permission_code": "ar.read", "permission_name": "View Accounts Receivable", "module": "ar"},
    {"permission_code": "ar.write", "permission_name": "Create/Edit AR Entries", "module": "ar"},
    {"permission_code": "vendor.read", "permission_name": "View Vendors", "module": "vendors"},
    {"permission_code": "vendor.write", "permission_name": "Create/Edit Vendors", "module": "vendors"},
    {"permission_code": "ap.read", "permission_name": "View Accounts Payable", "module": "ap"},
    {"permission_code": "ap.write", "permission_name": "Create/Edit AP Entries", "module": "ap"},
]

ALL_PERMISSIONS = "*"

SYSTEM_ROLES = [
    {
        "role_name": "System Admin",
        "description": "Full system access across all companies",
        "permissions": ALL_PERMISSIONS,
    },
    {
        "role_name": "Company Admin",
        "description": "Full access within assigned company",
        "permissions": [
            "user.manage", "company.manage",
            "customer.read", "customer.write",
            "ar.read", "ar.write",
            "vendor.read", "vendor.write",
            "ap.read", "ap.write",
        ],
    },
    {
        "role_name": "Accountant",
        "description": "Financial data access",
        "permissions": [
            "customer.read", "customer.write",
            "ar.read", "ar.write",
            "vendor.read", "vendor.write",
            "ap.read", "ap.write",
        ],
    },
    {
        "role_name": "AR Clerk",
        "description": "Accounts receivable specialist",
        "permissions": ["customer.read", "customer.write", "ar.read", "ar.write"],
    },
    {
        "role_name": "AP Clerk",
        "description": "Accounts payable specialist",
        "permissions": ["vendor.read", "vendor.write", "ap.read", "ap.write"],
    },
    {
        "role_name": "Viewer",
        "description": "Read-only access",
        "permissions": ["customer.read", "ar.read", "vendor.read", "ap.read"],
    },
]


def seed_permissions(db: Session):
    """Seed default permissions into the database"""
    existing = {p.permission_code: p for p in db.query(Permission).all()}

    for perm_data in PERMISSIONS:
        perm = existing.get(perm_data["permission_code"])
        if perm is None:
            db.add(Permission(**perm_data))
        else:
            perm.permission_name = perm_data["permission_name"]
            perm.module = perm_data["module"]

    db.commit()


def seed_roles(db: Session):
    """Seed the system roles; existing roles keep their id, permissions are synced"""
    permissions = {p.permission_code: p for p in db.query(Permission).all()}

    for role_data in SYSTEM_ROLES:
        role = db.query(Role).filter(
            Role.role_name == role_data["role_name"],
            Role.company_id.is_(None)
        ).first()
        if role is None:
            role = Role(
                role_name=role_data["role_name"],
                description=role_data["description"],
                is_system=True
            )
            db.add(role)
            db.flush()

        if role_data["permissions"] == ALL_PERMISSIONS:
            wanted: Set[int] = {p.id for p in permissions.values()}
        else:
            wanted = {permissions[code].id for code in role_data["permissions"] if code in permissions}

        current = {link.permission_id for link in role.permission_links}
        for permission_id in wanted - current:
            db.add(RolePermission(role_id=role.id, permission_id=permission_id))

    db.commit()
