"""
CRM API Routes - Customers and Vendors
"""
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from finhub.api.deps import PageParams
from finhub.core.database import get_db
from finhub.core.security import Identity, PermissionChecker
from finhub.schemas import (
    CustomerCreate, CustomerResponse, CustomerUpdate, Page,
    VendorCreate, VendorResponse, VendorUpdate
)
from finhub.services.crm_service import CustomerService, VendorService

router = APIRouter(tags=["CRM"])

PartnerStatusFilter = Optional[Literal["ACTIVE", "INACTIVE"]]


# ==================== CUSTOMERS ====================

@router.get("/customers", response_model=Page[CustomerResponse])
async def list_customers(
    search: Optional[str] = None,
    status: PartnerStatusFilter = None,
    paging: PageParams = Depends(),
    identity: Identity = Depends(PermissionChecker(["customer.read"])),
    db: Session = Depends(get_db)
):
    customers, meta = CustomerService(db).list(
        identity.company_id, search=search, status=status, page=paging.page, limit=paging.limit
    )
    return {"items": customers, "meta": meta}


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int,
    identity: Identity = Depends(PermissionChecker(["customer.read"])),
    db: Session = Depends(get_db)
):
    return CustomerService(db).get(customer_id, identity.company_id)


@router.post("/customers", response_model=CustomerResponse, status_code=201)
async def create_customer(
    customer_data: CustomerCreate,
    identity: Identity = Depends(PermissionChecker(["customer.write"])),
    db: Session = Depends(get_db)
):
    """Create a customer; the code is assigned automatically"""
    customer = CustomerService(db).create(customer_data, identity.company_id)
    db.commit()
    db.refresh(customer)
    return customer


@router.put("/customers/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: int,
    customer_data: CustomerUpdate,
    identity: Identity = Depends(PermissionChecker(["customer.write"])),
    db: Session = Depends(get_db)
):
    customer = CustomerService(db).update(customer_id, identity.company_id, customer_data)
    db.commit()
    db.refresh(customer)
    return customer


# ==================== VENDORS ====================

@router.get("/vendors", response_model=Page[VendorResponse])
async def list_vendors(
    search: Optional[str] = None,
    status: PartnerStatusFilter = None,
    paging: PageParams = Depends(),
    identity: Identity = Depends(PermissionChecker(["vendor.read"])),
    db: Session = Depends(get_db)
):
    vendors, meta = VendorService(db).list(
        identity.company_id, search=search, status=status, page=paging.page, limit=paging.limit
    )
    return {"items": vendors, "meta": meta}


@router.get("/vendors/{vendor_id}", response_model=VendorResponse)
async def get_vendor(
    vendor_id: int,
    identity: Identity = Depends(PermissionChecker(["vendor.read"])),
    db: Session = Depends(get_db)
):
    return VendorService(db).get(vendor_id, identity.company_id)


@router.post("/vendors", response_model=VendorResponse, status_code=201)
async def create_vendor(
    vendor_data: VendorCreate,
    identity: Identity = Depends(PermissionChecker(["vendor.write"])),
    db: Session = Depends(get_db)
):
    """Create a vendor; the code is assigned automatically"""
    vendor = VendorService(db).create(vendor_data, identity.company_id)
    db.commit()
    db.refresh(vendor)
    return vendor


@router.put("/vendors/{vendor_id}", response_model=VendorResponse)
async def update_vendor(
    vendor_id: int,
    vendor_data: VendorUpdate,
    identity: Identity = Depends(PermissionChecker(["vendor.write"])),
    db: Session = Depends(get_db)
):
    vendor = VendorService(db).update(vendor_id, identity.company_id, vendor_data)
    db.commit()
    db.refresh(vendor)
    return vendor
