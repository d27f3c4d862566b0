"""
Purchase Service - AP Bills and Payments Made
"""
from finhub.models import ApBill, ApPayment
from finhub.schemas import ApPaymentCreate, BillCreate, BillUpdate
from finhub.services.audit_service import AuditAction
from finhub.services.crm_service import VendorService
from finhub.services.document_service import DocumentService
from finhub.services.payment_service import PaymentService


class BillService(DocumentService):
    model = ApBill
    number_field = "bill_number"
    date_field = "bill_date"
    counterparty_field = "vendor_id"
    counterparty_service_class = VendorService
    prefix = "BIL"
    label = "Bill"

    def create(self, bill_data: BillCreate, company_id: int, actor_id: int = None) -> ApBill:
        return super().create(bill_data, company_id, actor_id)

    def update(self, bill_id: int, company_id: int, bill_data: BillUpdate, actor_id: int = None) -> ApBill:
        return super().update(bill_id, company_id, bill_data, actor_id)


class BillPaymentService(PaymentService):
    document_service_class = BillService
    payment_model = ApPayment
    document_field = "bill_id"
    audit_action = AuditAction.PAYMENT_MADE

    def apply_payment(self, payment_data: ApPaymentCreate, company_id: int, actor_id: int = None) -> ApPayment:
        return super().apply_payment(payment_data, company_id, actor_id)
