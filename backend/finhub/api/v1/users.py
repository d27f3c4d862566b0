"""
User & Role API Routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from finhub.api.deps import PageParams, get_audit_service
from finhub.core.database import get_db
from finhub.core.security import (
    Identity, PermissionChecker, authorize, get_current_identity, get_permission_resolver
)
from finhub.schemas import (
    AssignRolesRequest, Page, RoleCreate, RolePermissionsUpdate, RoleResponse,
    RoleSummary, UserCreate, UserStatusEnum, UserUpdate, UserWithRoles
)
from finhub.services.audit_service import AuditService
from finhub.services.permission_service import RoleService
from finhub.services.user_service import UserService, user_with_roles

router = APIRouter(prefix="/users", tags=["Users"])

require_user_manage = PermissionChecker(["user.manage"])


# ==================== ROLES ====================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """System roles plus the roles defined by the current company"""
    return RoleService(db).list_roles(identity.company_id)


@router.post("/roles", response_model=RoleResponse, status_code=201)
async def create_role(
    role_data: RoleCreate,
    identity: Identity = Depends(require_user_manage),
    db: Session = Depends(get_db)
):
    role = RoleService(db).create(
        identity.company_id,
        role_data.role_name,
        role_data.description,
        role_data.permission_codes
    )
    db.commit()
    db.refresh(role)
    return role


@router.put("/roles/{role_id}/permissions", response_model=RoleResponse)
async def update_role_permissions(
    role_id: int,
    permissions_data: RolePermissionsUpdate,
    identity: Identity = Depends(require_user_manage),
    db: Session = Depends(get_db),
    resolver=Depends(get_permission_resolver)
):
    """Replace the permission set of a company-defined role"""
    role = RoleService(db).update_permissions(
        role_id,
        identity.company_id,
        permissions_data.permission_codes,
        resolver
    )
    db.commit()
    db.refresh(role)
    return role


# ==================== USERS ====================

@router.get("", response_model=Page[UserWithRoles])
async def list_users(
    search: Optional[str] = None,
    status: Optional[UserStatusEnum] = None,
    paging: PageParams = Depends(),
    identity: Identity = Depends(require_user_manage),
    db: Session = Depends(get_db)
):
    """Members of the current company"""
    users, meta = UserService(db).list_users(
        identity.company_id,
        search=search,
        status=status.value if status else None,
        page=paging.page,
        limit=paging.limit
    )
    return {"items": users, "meta": meta}


@router.get("/{user_id}", response_model=UserWithRoles)
async def get_user(
    user_id: int,
    identity: Identity = Depends(require_user_manage),
    db: Session = Depends(get_db)
):
    return UserService(db).get_user(user_id, identity.company_id)


@router.post("", response_model=UserWithRoles, status_code=201)
async def create_user(
    user_data: UserCreate,
    identity: Identity = Depends(require_user_manage),
    db: Session = Depends(get_db),
    resolver=Depends(get_permission_resolver),
    audit: AuditService = Depends(get_audit_service)
):
    company_id = user_data.company_id
    if company_id is not None and company_id != identity.company_id:
        authorize(db, resolver, identity, company_id, ["user.manage"])

    user = UserService(db, audit=audit).create_user(user_data, actor_id=identity.user_id)
    db.commit()
    db.refresh(user)
    return user_with_roles(user, company_id)


@router.put("/{user_id}", response_model=UserWithRoles)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    identity: Identity = Depends(require_user_manage),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    user = UserService(db, audit=audit).update_user(
        user_id,
        identity.company_id,
        user_data,
        actor_id=identity.user_id
    )
    db.commit()
    return user


@router.put("/{user_id}/roles", response_model=List[RoleSummary])
async def assign_roles(
    user_id: int,
    roles_data: AssignRolesRequest,
    identity: Identity = Depends(require_user_manage),
    db: Session = Depends(get_db),
    resolver=Depends(get_permission_resolver),
    audit: AuditService = Depends(get_audit_service)
):
    """Replace the user's roles in the given company"""
    if roles_data.company_id != identity.company_id:
        authorize(db, resolver, identity, roles_data.company_id, ["user.manage"])

    roles = UserService(db, audit=audit).assign_roles(
        user_id,
        roles_data.company_id,
        roles_data.role_ids,
        resolver,
        actor_id=identity.user_id
    )
    db.commit()
    return roles
