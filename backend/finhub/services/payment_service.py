"""
Payment Application Service - records payments against AR invoices / AP bills
"""
from decimal import Decimal
from typing import Optional
import logging

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from finhub.core.exceptions import (
    ConcurrentModification, InvalidStatus, NotFound, Overpayment, ValidationError
)
from finhub.models import DocumentStatus, PaymentMethod
from finhub.services.audit_service import AuditService
from finhub.services.document_service import CENT

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Applies one payment to one document.

    The document row is read with a row lock and carries a version counter,
    so the payment insert and the paid amount/status update either both
    commit or neither does, and two interleaved payments cannot both succeed.
    """

    document_service_class = None
    payment_model = None
    document_field = ""
    audit_action = ""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)
        self.documents = self.document_service_class(db, audit=self.audit)

    def apply_payment(self, payment_data, company_id: int, actor_id: Optional[int] = None):
        data = payment_data.model_dump()
        amount = Decimal(data["amount"]).quantize(CENT)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")

        label = self.documents.label
        document = self.documents.get_by_id(data[self.document_field], company_id, for_update=True)
        if not document:
            raise NotFound(f"{label} not found")
        if document.status == DocumentStatus.VOID.value:
            raise InvalidStatus(f"Cannot pay a voided {label.lower()}")
        if document.status == DocumentStatus.PAID.value:
            raise InvalidStatus(f"{label} is already fully paid")

        remaining = document.remaining_amount
        if amount > remaining:
            raise Overpayment(
                f"Payment amount exceeds remaining balance of {remaining}",
                details={"remaining_amount": str(remaining)}
            )

        method = data.get("payment_method") or PaymentMethod.BANK_TRANSFER
        payment = self.payment_model(
            payment_date=data["payment_date"],
            amount=amount,
            payment_method=PaymentMethod(method).value,
            reference_no=data.get("reference_no"),
            notes=data.get("notes"),
            company_id=company_id,
            created_by=actor_id,
            **{self.document_field: document.id}
        )
        self.db.add(payment)

        document.paid_amount = (Decimal(document.paid_amount) + amount).quantize(CENT)
        if document.paid_amount >= Decimal(document.total_amount):
            document.status = DocumentStatus.PAID.value
        else:
            document.status = DocumentStatus.PARTIALLY_PAID.value

        try:
            self.db.flush()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent payment on {label.lower()} {document.id} rejected")
            raise ConcurrentModification()

        number = getattr(document, self.documents.number_field)
        self.audit.log(
            action=self.audit_action,
            resource_type=self.payment_model.__name__,
            resource_id=payment.id,
            description=f"Payment of {amount} applied to {label.lower()} {number}",
            new_values={
                "amount": amount,
                "paid_amount": document.paid_amount,
                "status": document.status,
            },
            user_id=actor_id,
            company_id=company_id
        )
        logger.info(f"Payment {amount} applied to {number}; status {document.status}")
        return payment
