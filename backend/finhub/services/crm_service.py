"""
CRM Service - Business Logic for Customers and Vendors
"""
from typing import Optional, List, Tuple
from decimal import Decimal
import re

from sqlalchemy import or_
from sqlalchemy.orm import Session

from finhub.core.exceptions import NotFound
from finhub.core.pagination import paginate
from finhub.models import Customer, Vendor, PartnerStatus
from finhub.schemas import CustomerCreate, CustomerUpdate, VendorCreate, VendorUpdate


class PartnerService:
    """Shared list/get/create/update for tenant-owned counterparties"""

    model = None
    code_field = ""
    name_field = ""
    code_prefix = ""
    label = ""

    def __init__(self, db: Session):
        self.db = db

    @property
    def code_column(self):
        return getattr(self.model, self.code_field)

    def get_by_id(self, partner_id: int, company_id: int):
        return self.db.query(self.model).filter(
            self.model.id == partner_id,
            self.model.company_id == company_id
        ).first()

    def get(self, partner_id: int, company_id: int):
        partner = self.get_by_id(partner_id, company_id)
        if not partner:
            raise NotFound(f"{self.label} not found")
        return partner

    def list(
        self,
        company_id: int,
        search: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List, dict]:
        query = self.db.query(self.model).filter(self.model.company_id == company_id)

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                getattr(self.model, self.name_field).ilike(pattern),
                self.code_column.ilike(pattern),
                self.model.contact_person.ilike(pattern),
                self.model.tax_id.contains(search)
            ))
        if status:
            query = query.filter(self.model.status == status)

        return paginate(query.order_by(self.model.created_at.desc(), self.model.id.desc()), page, limit)

    def next_code(self, company_id: int) -> str:
        """``PREFIX-NNNN``, one past the highest code the tenant already has"""
        codes = self.db.query(self.code_column)\
            .filter(self.model.company_id == company_id)\
            .all()
        pattern = re.compile(rf"^{self.code_prefix}-(\d+)$")
        highest = 0
        for (code,) in codes:
            match = pattern.match(code or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return f"{self.code_prefix}-{highest + 1:04d}"

    def create(self, partner_data, company_id: int):
        data = partner_data.model_dump()
        partner = self.model(
            company_id=company_id,
            status=PartnerStatus.ACTIVE.value,
            **{self.code_field: self.next_code(company_id)},
            **{key: value for key, value in data.items() if value is not None}
        )
        if partner.payment_terms is None:
            partner.payment_terms = 30
        if partner.credit_limit is None:
            partner.credit_limit = Decimal("0.00")

        self.db.add(partner)
        self.db.flush()
        return partner

    def update(self, partner_id: int, company_id: int, partner_data):
        partner = self.get(partner_id, company_id)

        update_data = partner_data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(partner, key, value)

        self.db.flush()
        return partner


class CustomerService(PartnerService):
    model = Customer
    code_field = "customer_code"
    name_field = "customer_name"
    code_prefix = "C"
    label = "Customer"

    def create(self, customer_data: CustomerCreate, company_id: int) -> Customer:
        return super().create(customer_data, company_id)

    def update(self, customer_id: int, company_id: int, customer_data: CustomerUpdate) -> Customer:
        return super().update(customer_id, company_id, customer_data)


class VendorService(PartnerService):
    model = Vendor
    code_field = "vendor_code"
    name_field = "vendor_name"
    code_prefix = "V"
    label = "Vendor"

    def create(self, vendor_data: VendorCreate, company_id: int) -> Vendor:
        return super().create(vendor_data, company_id)

    def update(self, vendor_id: int, company_id: int, vendor_data: VendorUpdate) -> Vendor:
        return super().update(vendor_id, company_id, vendor_data)
