"""
Company API Routes
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from finhub.api.deps import get_audit_service
from finhub.core.database import get_db
from finhub.core.security import (
    Identity, PermissionChecker, authorize, get_current_identity,
    get_permission_resolver, get_token_manager
)
from finhub.schemas import (
    CompanyCreate, CompanyMembershipResponse, CompanyResponse, CompanyUpdate,
    SwitchCompanyResponse
)
from finhub.services.audit_service import AuditService
from finhub.services.company_service import CompanyService

router = APIRouter(prefix="/companies", tags=["Companies"])


@router.get("", response_model=List[CompanyMembershipResponse])
async def list_companies(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Companies the current user belongs to"""
    return CompanyService(db).list_companies(identity.user_id)


@router.get("/{company_id}", response_model=CompanyResponse)
async def get_company(
    company_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    return CompanyService(db).get_company(company_id, identity.user_id)


@router.post("", response_model=CompanyResponse, status_code=201)
async def create_company(
    company_data: CompanyCreate,
    identity: Identity = Depends(PermissionChecker(["company.manage"])),
    db: Session = Depends(get_db),
    resolver=Depends(get_permission_resolver),
    audit: AuditService = Depends(get_audit_service)
):
    """Create a company; the creator becomes its Company Admin"""
    company = CompanyService(db, audit=audit).create_company(company_data, identity.user_id, resolver)
    db.commit()
    db.refresh(company)
    return company


@router.put("/{company_id}", response_model=CompanyResponse)
async def update_company(
    company_id: int,
    company_data: CompanyUpdate,
    identity: Identity = Depends(PermissionChecker(["company.manage"])),
    db: Session = Depends(get_db),
    resolver=Depends(get_permission_resolver),
    audit: AuditService = Depends(get_audit_service)
):
    service = CompanyService(db, audit=audit)
    # Managing another company requires the permission there too
    if company_id != identity.company_id:
        service.get_company(company_id, identity.user_id)
        authorize(db, resolver, identity, company_id, ["company.manage"])

    company = service.update_company(company_id, identity.user_id, company_data)
    db.commit()
    db.refresh(company)
    return company


@router.post("/{company_id}/switch", response_model=SwitchCompanyResponse)
async def switch_company(
    company_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    token_manager=Depends(get_token_manager),
    resolver=Depends(get_permission_resolver),
    audit: AuditService = Depends(get_audit_service)
):
    """Make ``company_id`` the default company and get a token scoped to it"""
    result = CompanyService(db, audit=audit).switch_company(
        identity.user_id,
        identity.username,
        company_id,
        token_manager,
        resolver
    )
    db.commit()
    return result
