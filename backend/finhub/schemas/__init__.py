"""
Pydantic Schemas for API Validation
"""
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Generic, List, Literal, Optional, TypeVar
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


# ==================== ENUMS ====================

class UserStatusEnum(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    LOCKED = "LOCKED"


class DocumentStatusEnum(str, Enum):
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"


class PaymentMethodEnum(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    OTHER = "OTHER"


# Statuses a caller may set directly on create/update
EditableStatus = Literal["DRAFT", "ISSUED"]


# ==================== COMMON ====================

class MessageResponse(BaseModel):
    message: str


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    items: List[T]
    meta: PaginationMeta


# ==================== COMPANY SCHEMAS ====================

class CompanyCreate(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=200)
    short_name: Optional[str] = Field(None, max_length=50)
    tax_id: Optional[str] = Field(None, pattern=r"^\d{8}$")
    representative: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    fax: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    email: Optional[EmailStr] = None
    default_currency: Optional[str] = Field(None, min_length=3, max_length=3)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    fiscal_year_start: Optional[int] = Field(None, ge=1, le=12)


class CompanyUpdate(BaseModel):
    company_name: Optional[str] = Field(None, min_length=1, max_length=200)
    short_name: Optional[str] = Field(None, max_length=50)
    tax_id: Optional[str] = Field(None, pattern=r"^\d{8}$")
    representative: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    fax: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    email: Optional[EmailStr] = None
    default_currency: Optional[str] = Field(None, min_length=3, max_length=3)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    fiscal_year_start: Optional[int] = Field(None, ge=1, le=12)
    status: Optional[Literal["ACTIVE", "INACTIVE"]] = None


class CompanyResponse(BaseModel):
    id: int
    company_name: str
    short_name: Optional[str] = None
    tax_id: Optional[str] = None
    representative: Optional[str] = None
    phone: Optional[str] = None
    fax: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    default_currency: str
    tax_rate: Decimal
    fiscal_year_start: int
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CompanyMembershipResponse(CompanyResponse):
    is_default: bool


class SwitchCompanyResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    company: CompanyResponse
    permissions: List[str]


# ==================== AUTH SCHEMAS ====================

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class UserSummary(BaseModel):
    id: int
    username: str
    email: str
    display_name: str
    status: str

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserSummary
    company: CompanyResponse
    companies: List[CompanyMembershipResponse]
    permissions: List[str]


class RefreshResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    permissions: List[str]


class MeResponse(BaseModel):
    user_id: int
    username: str
    company_id: int
    permissions: List[str]


# ==================== USER & ROLE SCHEMAS ====================

class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    display_name: str = Field(..., min_length=1, max_length=100)
    company_id: Optional[int] = None
    role_ids: Optional[List[int]] = None


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    status: Optional[Literal["ACTIVE", "INACTIVE"]] = None
    password: Optional[str] = Field(None, min_length=8, max_length=128)


class RoleSummary(BaseModel):
    role_id: int
    role_name: str


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    display_name: str
    status: str
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserWithRoles(UserResponse):
    roles: List[RoleSummary] = []


class AssignRolesRequest(BaseModel):
    company_id: int
    role_ids: List[int] = Field(..., min_length=1)


class RoleCreate(BaseModel):
    role_name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    permission_codes: List[str] = []


class RolePermissionsUpdate(BaseModel):
    permission_codes: List[str]


class RoleResponse(BaseModel):
    id: int
    role_name: str
    description: Optional[str] = None
    is_system: bool
    company_id: Optional[int] = None
    permission_codes: List[str] = []

    model_config = ConfigDict(from_attributes=True)


# ==================== CUSTOMER / VENDOR SCHEMAS ====================

class PartnerBase(BaseModel):
    short_name: Optional[str] = Field(None, max_length=50)
    tax_id: Optional[str] = Field(None, max_length=20)
    contact_person: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    fax: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    payment_terms: Optional[int] = Field(None, ge=0)
    credit_limit: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class CustomerCreate(PartnerBase):
    customer_name: str = Field(..., min_length=1, max_length=200)


class CustomerUpdate(PartnerBase):
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[Literal["ACTIVE", "INACTIVE"]] = None


class CustomerResponse(BaseModel):
    id: int
    customer_code: str
    customer_name: str
    short_name: Optional[str] = None
    tax_id: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    payment_terms: int
    credit_limit: Decimal
    notes: Optional[str] = None
    status: str
    company_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VendorCreate(PartnerBase):
    vendor_name: str = Field(..., min_length=1, max_length=200)


class VendorUpdate(PartnerBase):
    vendor_name: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[Literal["ACTIVE", "INACTIVE"]] = None


class VendorResponse(BaseModel):
    id: int
    vendor_code: str
    vendor_name: str
    short_name: Optional[str] = None
    tax_id: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    payment_terms: int
    credit_limit: Decimal
    notes: Optional[str] = None
    status: str
    company_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== AR INVOICE SCHEMAS ====================

class InvoiceCreate(BaseModel):
    customer_id: int
    invoice_date: date
    due_date: date
    subtotal: Decimal = Field(..., ge=0, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    status: Optional[EditableStatus] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    customer_id: Optional[int] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    subtotal: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    status: Optional[EditableStatus] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class ArPaymentCreate(BaseModel):
    invoice_id: int
    payment_date: date
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: Optional[PaymentMethodEnum] = None
    reference_no: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class ArPaymentResponse(BaseModel):
    id: int
    invoice_id: int
    payment_date: date
    amount: Decimal
    payment_method: str
    reference_no: Optional[str] = None
    notes: Optional[str] = None
    company_id: int
    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    customer_id: int
    invoice_date: date
    due_date: date
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    currency: str
    status: str
    description: Optional[str] = None
    notes: Optional[str] = None
    company_id: int
    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceDetail(InvoiceResponse):
    payments: List[ArPaymentResponse] = []


# ==================== AP BILL SCHEMAS ====================

class BillCreate(BaseModel):
    vendor_id: int
    bill_date: date
    due_date: date
    subtotal: Decimal = Field(..., ge=0, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    status: Optional[EditableStatus] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class BillUpdate(BaseModel):
    vendor_id: Optional[int] = None
    bill_date: Optional[date] = None
    due_date: Optional[date] = None
    subtotal: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    status: Optional[EditableStatus] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class ApPaymentCreate(BaseModel):
    bill_id: int
    payment_date: date
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: Optional[PaymentMethodEnum] = None
    reference_no: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class ApPaymentResponse(BaseModel):
    id: int
    bill_id: int
    payment_date: date
    amount: Decimal
    payment_method: str
    reference_no: Optional[str] = None
    notes: Optional[str] = None
    company_id: int
    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BillResponse(BaseModel):
    id: int
    bill_number: str
    vendor_id: int
    bill_date: date
    due_date: date
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    currency: str
    status: str
    description: Optional[str] = None
    notes: Optional[str] = None
    company_id: int
    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BillDetail(BillResponse):
    payments: List[ApPaymentResponse] = []


# ==================== AUDIT SCHEMAS ====================

class AuditLogResponse(BaseModel):
    id: int
    action: str
    resource_type: str
    resource_id: Optional[int] = None
    description: Optional[str] = None
    user_id: Optional[int] = None
    username: Optional[str] = None
    company_id: Optional[int] = None
    ip_address: Optional[str] = None
    request_path: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
