"""
Sales Service - AR Invoices and Payments Received
"""
from finhub.models import ArInvoice, ArPayment
from finhub.schemas import ArPaymentCreate, InvoiceCreate, InvoiceUpdate
from finhub.services.audit_service import AuditAction
from finhub.services.crm_service import CustomerService
from finhub.services.document_service import DocumentService
from finhub.services.payment_service import PaymentService


class InvoiceService(DocumentService):
    model = ArInvoice
    number_field = "invoice_number"
    date_field = "invoice_date"
    counterparty_field = "customer_id"
    counterparty_service_class = CustomerService
    prefix = "INV"
    label = "Invoice"

    def create(self, invoice_data: InvoiceCreate, company_id: int, actor_id: int = None) -> ArInvoice:
        return super().create(invoice_data, company_id, actor_id)

    def update(self, invoice_id: int, company_id: int, invoice_data: InvoiceUpdate,
               actor_id: int = None) -> ArInvoice:
        return super().update(invoice_id, company_id, invoice_data, actor_id)


class InvoicePaymentService(PaymentService):
    document_service_class = InvoiceService
    payment_model = ArPayment
    document_field = "invoice_id"
    audit_action = AuditAction.PAYMENT_RECEIVED

    def apply_payment(self, payment_data: ArPaymentCreate, company_id: int, actor_id: int = None) -> ArPayment:
        return super().apply_payment(payment_data, company_id, actor_id)
