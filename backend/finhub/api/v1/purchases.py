"""
Accounts Payable API Routes
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from finhub.api.deps import PageParams, get_audit_service
from finhub.core.database import get_db
from finhub.core.security import Identity, PermissionChecker
from finhub.schemas import (
    ApPaymentCreate, ApPaymentResponse, BillCreate, BillDetail, BillResponse,
    BillUpdate, DocumentStatusEnum, Page
)
from finhub.services.audit_service import AuditService
from finhub.services.purchase_service import BillPaymentService, BillService

router = APIRouter(prefix="/ap", tags=["Accounts Payable"])


@router.get("/bills", response_model=Page[BillResponse])
async def list_bills(
    status: Optional[DocumentStatusEnum] = None,
    vendor_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    paging: PageParams = Depends(),
    identity: Identity = Depends(PermissionChecker(["ap.read"])),
    db: Session = Depends(get_db)
):
    """List bills of the current company, newest first"""
    bills, meta = BillService(db).list(
        identity.company_id,
        status=status.value if status else None,
        counterparty_id=vendor_id,
        from_date=from_date,
        to_date=to_date,
        page=paging.page,
        limit=paging.limit
    )
    return {"items": bills, "meta": meta}


@router.get("/bills/{bill_id}", response_model=BillDetail)
async def get_bill(
    bill_id: int,
    identity: Identity = Depends(PermissionChecker(["ap.read"])),
    db: Session = Depends(get_db)
):
    return BillService(db).get(bill_id, identity.company_id)


@router.post("/bills", response_model=BillResponse, status_code=201)
async def create_bill(
    bill_data: BillCreate,
    identity: Identity = Depends(PermissionChecker(["ap.write"])),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    bill = BillService(db, audit=audit).create(bill_data, identity.company_id, identity.user_id)
    db.commit()
    db.refresh(bill)
    return bill


@router.put("/bills/{bill_id}", response_model=BillResponse)
async def update_bill(
    bill_id: int,
    bill_data: BillUpdate,
    identity: Identity = Depends(PermissionChecker(["ap.write"])),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    bill = BillService(db, audit=audit).update(bill_id, identity.company_id, bill_data, identity.user_id)
    db.commit()
    db.refresh(bill)
    return bill


@router.put("/bills/{bill_id}/void", response_model=BillResponse)
async def void_bill(
    bill_id: int,
    identity: Identity = Depends(PermissionChecker(["ap.write"])),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    bill = BillService(db, audit=audit).void(bill_id, identity.company_id, identity.user_id)
    db.commit()
    db.refresh(bill)
    return bill


@router.post("/payments", response_model=ApPaymentResponse, status_code=201)
async def record_payment(
    payment_data: ApPaymentCreate,
    identity: Identity = Depends(PermissionChecker(["ap.write"])),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """Record a payment made against a bill"""
    payment = BillPaymentService(db, audit=audit).apply_payment(
        payment_data, identity.company_id, identity.user_id
    )
    db.commit()
    db.refresh(payment)
    return payment
