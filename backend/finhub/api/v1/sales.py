"""
Accounts Receivable API Routes
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from finhub.api.deps import PageParams, get_audit_service
from finhub.core.database import get_db
from finhub.core.security import Identity, PermissionChecker
from finhub.schemas import (
    ArPaymentCreate, ArPaymentResponse, DocumentStatusEnum, InvoiceCreate,
    InvoiceDetail, InvoiceResponse, InvoiceUpdate, Page
)
from finhub.services.audit_service import AuditService
from finhub.services.sales_service import InvoicePaymentService, InvoiceService

router = APIRouter(prefix="/ar", tags=["Accounts Receivable"])


@router.get("/invoices", response_model=Page[InvoiceResponse])
async def list_invoices(
    status: Optional[DocumentStatusEnum] = None,
    customer_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    paging: PageParams = Depends(),
    identity: Identity = Depends(PermissionChecker(["ar.read"])),
    db: Session = Depends(get_db)
):
    """List invoices of the current company, newest first"""
    invoices, meta = InvoiceService(db).list(
        identity.company_id,
        status=status.value if status else None,
        counterparty_id=customer_id,
        from_date=from_date,
        to_date=to_date,
        page=paging.page,
        limit=paging.limit
    )
    return {"items": invoices, "meta": meta}


@router.get("/invoices/{invoice_id}", response_model=InvoiceDetail)
async def get_invoice(
    invoice_id: int,
    identity: Identity = Depends(PermissionChecker(["ar.read"])),
    db: Session = Depends(get_db)
):
    """Get an invoice with its payments"""
    return InvoiceService(db).get(invoice_id, identity.company_id)


@router.post("/invoices", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    invoice_data: InvoiceCreate,
    identity: Identity = Depends(PermissionChecker(["ar.write"])),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """Create an invoice; number, tax and total are computed"""
    invoice = InvoiceService(db, audit=audit).create(invoice_data, identity.company_id, identity.user_id)
    db.commit()
    db.refresh(invoice)
    return invoice


@router.put("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    invoice_data: InvoiceUpdate,
    identity: Identity = Depends(PermissionChecker(["ar.write"])),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    invoice = InvoiceService(db, audit=audit).update(
        invoice_id, identity.company_id, invoice_data, identity.user_id
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.put("/invoices/{invoice_id}/void", response_model=InvoiceResponse)
async def void_invoice(
    invoice_id: int,
    identity: Identity = Depends(PermissionChecker(["ar.write"])),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    invoice = InvoiceService(db, audit=audit).void(invoice_id, identity.company_id, identity.user_id)
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post("/payments", response_model=ArPaymentResponse, status_code=201)
async def record_payment(
    payment_data: ArPaymentCreate,
    identity: Identity = Depends(PermissionChecker(["ar.write"])),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """Record a payment received against an invoice"""
    payment = InvoicePaymentService(db, audit=audit).apply_payment(
        payment_data, identity.company_id, identity.user_id
    )
    db.commit()
    db.refresh(payment)
    return payment
