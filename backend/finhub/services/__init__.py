# Services Package
from finhub.services.audit_service import AuditService, AuditAction
from finhub.services.auth_service import AuthService
from finhub.services.company_service import CompanyService
from finhub.services.user_service import UserService
from finhub.services.permission_service import (
    PermissionCache, PermissionResolver, PermissionService, RoleService,
    seed_permissions, seed_roles
)
from finhub.services.crm_service import CustomerService, VendorService
from finhub.services.sequence_service import DocumentNumberService
from finhub.services.document_service import calculate_tax, calculate_totals
from finhub.services.sales_service import InvoiceService, InvoicePaymentService
from finhub.services.purchase_service import BillService, BillPaymentService

__all__ = [
    'AuditService',
    'AuditAction',
    'AuthService',
    'CompanyService',
    'UserService',
    'PermissionCache',
    'PermissionResolver',
    'PermissionService',
    'RoleService',
    'seed_permissions',
    'seed_roles',
    'CustomerService',
    'VendorService',
    'DocumentNumberService',
    'calculate_tax',
    'calculate_totals',
    'InvoiceService',
    'InvoicePaymentService',
    'BillService',
    'BillPaymentService',
]
