"""
Financial Document Engine - shared lifecycle of AR invoices and AP bills
"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
import logging

from sqlalchemy.orm import Session, selectinload

from finhub.core.exceptions import InvalidStatus, NotFound, ValidationError
from finhub.core.pagination import paginate
from finhub.models import Company, DocumentStatus
from finhub.services.audit_service import AuditAction, AuditService
from finhub.services.sequence_service import DocumentNumberService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Statuses a document may be created with
CREATABLE_STATUSES = {DocumentStatus.DRAFT.value, DocumentStatus.ISSUED.value}


def calculate_tax(subtotal, tax_rate) -> Decimal:
    """
    Tax in currency units for a rate in percentage points:
    round_half_up(subtotal * rate) / 100.
    """
    scaled = (Decimal(subtotal) * Decimal(tax_rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return (scaled / Decimal(100)).quantize(CENT)


def calculate_totals(subtotal, tax_rate) -> Tuple[Decimal, Decimal]:
    """(tax_amount, total_amount)"""
    tax_amount = calculate_tax(subtotal, tax_rate)
    return tax_amount, (Decimal(subtotal) + tax_amount).quantize(CENT)


class DocumentService:
    """
    Create, read, update and void for one document type.

    Subclasses bind the model, its number/date/counterparty columns, the
    number prefix and the counterparty service.
    """

    model = None
    number_field = ""
    date_field = ""
    counterparty_field = ""
    counterparty_service_class = None
    prefix = ""
    label = "Document"

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)
        self.numbers = DocumentNumberService(db)

    @property
    def resource_type(self) -> str:
        return self.model.__name__

    def get_by_id(self, document_id: int, company_id: int, for_update: bool = False):
        query = self.db.query(self.model).filter(
            self.model.id == document_id,
            self.model.company_id == company_id
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get(self, document_id: int, company_id: int):
        document = self.db.query(self.model)\
            .options(selectinload(self.model.payments))\
            .filter(self.model.id == document_id, self.model.company_id == company_id)\
            .first()
        if not document:
            raise NotFound(f"{self.label} not found")
        return document

    def list(
        self,
        company_id: int,
        status: Optional[str] = None,
        counterparty_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List, dict]:
        query = self.db.query(self.model).filter(self.model.company_id == company_id)
        date_column = getattr(self.model, self.date_field)

        if status:
            query = query.filter(self.model.status == status)
        if counterparty_id:
            query = query.filter(getattr(self.model, self.counterparty_field) == counterparty_id)
        if from_date:
            query = query.filter(date_column >= from_date)
        if to_date:
            query = query.filter(date_column <= to_date)

        return paginate(query.order_by(self.model.created_at.desc(), self.model.id.desc()), page, limit)

    def _get_company(self, company_id: int) -> Company:
        company = self.db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise NotFound("Company not found")
        return company

    def _check_counterparty(self, counterparty_id: int, company_id: int):
        service = self.counterparty_service_class(self.db)
        if not service.get_by_id(counterparty_id, company_id):
            raise NotFound(f"{service.label} not found")

    def create(self, document_data, company_id: int, actor_id: Optional[int] = None):
        data = document_data.model_dump()
        company = self._get_company(company_id)
        self._check_counterparty(data[self.counterparty_field], company_id)

        status = data.get("status") or DocumentStatus.DRAFT.value
        if status not in CREATABLE_STATUSES:
            raise ValidationError(f"A {self.label.lower()} cannot be created with status {status}")

        document_date = data[self.date_field]
        number = self.numbers.next_number(
            company_id,
            self.prefix,
            document_date.year,
            number_column=getattr(self.model, self.number_field),
            company_column=self.model.company_id
        )

        subtotal = Decimal(data["subtotal"]).quantize(CENT)
        tax_amount, total_amount = calculate_totals(subtotal, company.tax_rate)

        document = self.model(
            company_id=company_id,
            due_date=data["due_date"],
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=total_amount,
            paid_amount=Decimal("0.00"),
            currency=data.get("currency") or company.default_currency,
            status=status,
            description=data.get("description"),
            notes=data.get("notes"),
            created_by=actor_id,
            **{
                self.number_field: number,
                self.date_field: document_date,
                self.counterparty_field: data[self.counterparty_field],
            }
        )
        self.db.add(document)
        self.db.flush()

        self.audit.log(
            action=AuditAction.CREATE,
            resource_type=self.resource_type,
            resource_id=document.id,
            description=f"{self.label} {number} created",
            new_values={"number": number, "subtotal": subtotal, "total_amount": total_amount, "status": status},
            user_id=actor_id,
            company_id=company_id
        )
        logger.info(f"{self.label} {number} created for company {company_id} total={total_amount}")
        return document

    def update(self, document_id: int, company_id: int, document_data, actor_id: Optional[int] = None):
        document = self.get_by_id(document_id, company_id)
        if not document:
            raise NotFound(f"{self.label} not found")
        if document.status == DocumentStatus.VOID.value:
            raise InvalidStatus(f"Cannot update a voided {self.label.lower()}")
        if document.status == DocumentStatus.PAID.value:
            raise InvalidStatus(f"Cannot update a paid {self.label.lower()}")

        update_data = document_data.model_dump(exclude_unset=True)
        old_values = {key: getattr(document, key) for key in update_data}

        settled = False
        if update_data.get("subtotal") is not None:
            company = self._get_company(company_id)
            subtotal = Decimal(update_data.pop("subtotal")).quantize(CENT)
            tax_amount, total_amount = calculate_totals(subtotal, company.tax_rate)
            paid_amount = document.paid_amount or Decimal("0.00")
            if total_amount < paid_amount:
                raise ValidationError(
                    f"Total {total_amount} would fall below the {paid_amount} already paid",
                    details={"paid_amount": str(paid_amount), "total_amount": str(total_amount)}
                )
            document.subtotal = subtotal
            document.tax_amount, document.total_amount = tax_amount, total_amount
            settled = paid_amount > 0 and total_amount == paid_amount
        else:
            update_data.pop("subtotal", None)

        counterparty_id = update_data.pop(self.counterparty_field, None)
        if counterparty_id is not None:
            self._check_counterparty(counterparty_id, company_id)
            setattr(document, self.counterparty_field, counterparty_id)

        for key in (self.date_field, "due_date", "status"):
            if update_data.get(key) is not None:
                setattr(document, key, update_data[key])
        for key in ("description", "notes"):
            if key in update_data:
                setattr(document, key, update_data[key])
        if settled:
            document.status = DocumentStatus.PAID.value

        self.db.flush()
        self.audit.log(
            action=AuditAction.UPDATE,
            resource_type=self.resource_type,
            resource_id=document.id,
            old_values=old_values,
            new_values=document_data.model_dump(exclude_unset=True),
            user_id=actor_id,
            company_id=company_id
        )
        return document

    def void(self, document_id: int, company_id: int, actor_id: Optional[int] = None):
        document = self.get_by_id(document_id, company_id)
        if not document:
            raise NotFound(f"{self.label} not found")
        if document.status == DocumentStatus.VOID.value:
            raise InvalidStatus(f"{self.label} is already voided")
        if document.status == DocumentStatus.PAID.value:
            raise InvalidStatus(f"Cannot void a fully paid {self.label.lower()}")

        old_status = document.status
        document.status = DocumentStatus.VOID.value
        self.db.flush()

        number = getattr(document, self.number_field)
        self.audit.log(
            action=AuditAction.VOID,
            resource_type=self.resource_type,
            resource_id=document.id,
            description=f"{self.label} {number} voided",
            old_values={"status": old_status},
            new_values={"status": document.status},
            user_id=actor_id,
            company_id=company_id
        )
        logger.info(f"{self.label} {number} voided in company {company_id}")
        return document
