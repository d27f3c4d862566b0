"""
SQLAlchemy Models for FinHub
"""
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
import enum

from finhub.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==================== ENUMS ====================

class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    LOCKED = "LOCKED"


class CompanyStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class PartnerStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class DocumentStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"


class PaymentMethod(str, enum.Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    OTHER = "OTHER"


# ==================== ASSOCIATION TABLES ====================

class RolePermission(Base):
    """Association table for Role-Permission many-to-many"""
    __tablename__ = 'role_permissions'

    id = Column(Integer, primary_key=True)
    role_id = Column(Integer, ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    permission_id = Column(Integer, ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    role = relationship("Role", back_populates="permission_links")
    permission = relationship("Permission", back_populates="role_links")

    __table_args__ = (
        UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )


class UserCompany(Base):
    """Membership of a user in a company; at most one default per user"""
    __tablename__ = 'user_companies'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="memberships")
    company = relationship("Company", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint('user_id', 'company_id', name='uq_user_company'),
    )


class UserCompanyRole(Base):
    """Role granted to a user within one company"""
    __tablename__ = 'user_company_roles'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    role_id = Column(Integer, ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="role_assignments")
    role = relationship("Role", back_populates="user_assignments")
    company = relationship("Company")

    __table_args__ = (
        UniqueConstraint('user_id', 'role_id', 'company_id', name='uq_user_company_role'),
        Index('ix_user_company_roles_user_company', 'user_id', 'company_id'),
    )


# ==================== CORE MODELS ====================

class Company(Base):
    """Tenant: owns its partners, documents and tax configuration"""
    __tablename__ = 'companies'

    id = Column(Integer, primary_key=True)
    company_name = Column(String(200), nullable=False)
    short_name = Column(String(50), nullable=True)
    tax_id = Column(String(20), nullable=True)
    representative = Column(String(50), nullable=True)
    phone = Column(String(20), nullable=True)
    fax = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    email = Column(String(100), nullable=True)
    default_currency = Column(String(3), nullable=False, default="TWD")
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("5.00"))
    fiscal_year_start = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=CompanyStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    memberships = relationship("UserCompany", back_populates="company", cascade="all, delete-orphan")
    customers = relationship("Customer", back_populates="company", cascade="all, delete-orphan")
    vendors = relationship("Vendor", back_populates="company", cascade="all, delete-orphan")
    ar_invoices = relationship("ArInvoice", back_populates="company", cascade="all, delete-orphan")
    ap_bills = relationship("ApBill", back_populates="company", cascade="all, delete-orphan")


class User(Base):
    """User account"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    username = Column(String(50), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(100), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE.value)
    failed_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    memberships = relationship("UserCompany", back_populates="user", cascade="all, delete-orphan")
    role_assignments = relationship("UserCompanyRole", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    @property
    def default_membership(self):
        """Default membership, else the first one, else None"""
        memberships = sorted(self.memberships, key=lambda m: m.id)
        for membership in memberships:
            if membership.is_default:
                return membership
        return memberships[0] if memberships else None


class Permission(Base):
    """Atomic capability code, grouped by module"""
    __tablename__ = 'permissions'

    id = Column(Integer, primary_key=True)
    permission_code = Column(String(50), nullable=False, unique=True)
    permission_name = Column(String(100), nullable=False)
    module = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    role_links = relationship("RolePermission", back_populates="permission", cascade="all, delete-orphan")


class Role(Base):
    """Named bundle of permissions; system-defined or tenant-created"""
    __tablename__ = 'roles'

    id = Column(Integer, primary_key=True)
    role_name = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    permission_links = relationship("RolePermission", back_populates="role", cascade="all, delete-orphan")
    user_assignments = relationship("UserCompanyRole", back_populates="role", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('role_name', 'company_id', name='uq_role_name_company'),
    )

    @property
    def permission_codes(self):
        return sorted(link.permission.permission_code for link in self.permission_links)


# ==================== PARTNERS ====================

class Customer(Base):
    """Customer"""
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True)
    customer_code = Column(String(20), nullable=False)
    customer_name = Column(String(200), nullable=False)
    short_name = Column(String(50), nullable=True)
    tax_id = Column(String(20), nullable=True)
    contact_person = Column(String(50), nullable=True)
    phone = Column(String(20), nullable=True)
    fax = Column(String(20), nullable=True)
    email = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)
    payment_terms = Column(Integer, nullable=False, default=30)
    credit_limit = Column(Numeric(15, 2), default=Decimal("0.00"))
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=PartnerStatus.ACTIVE.value)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="customers")
    invoices = relationship("ArInvoice", back_populates="customer")

    __table_args__ = (
        UniqueConstraint('company_id', 'customer_code', name='uq_customer_code'),
        Index('ix_customers_company_id', 'company_id'),
    )


class Vendor(Base):
    """Vendor/Supplier"""
    __tablename__ = 'vendors'

    id = Column(Integer, primary_key=True)
    vendor_code = Column(String(20), nullable=False)
    vendor_name = Column(String(200), nullable=False)
    short_name = Column(String(50), nullable=True)
    tax_id = Column(String(20), nullable=True)
    contact_person = Column(String(50), nullable=True)
    phone = Column(String(20), nullable=True)
    fax = Column(String(20), nullable=True)
    email = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)
    payment_terms = Column(Integer, nullable=False, default=30)
    credit_limit = Column(Numeric(15, 2), default=Decimal("0.00"))
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=PartnerStatus.ACTIVE.value)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="vendors")
    bills = relationship("ApBill", back_populates="vendor")

    __table_args__ = (
        UniqueConstraint('company_id', 'vendor_code', name='uq_vendor_code'),
        Index('ix_vendors_company_id', 'company_id'),
    )


# ==================== ACCOUNTS RECEIVABLE ====================

class ArInvoice(Base):
    """Accounts receivable invoice"""
    __tablename__ = 'ar_invoices'

    id = Column(Integer, primary_key=True)
    invoice_number = Column(String(20), nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    subtotal = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    paid_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default=DocumentStatus.DRAFT.value)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    customer = relationship("Customer", back_populates="invoices")
    company = relationship("Company", back_populates="ar_invoices")
    created_by_user = relationship("User")
    payments = relationship("ArPayment", back_populates="invoice", order_by="ArPayment.payment_date.desc()")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint('company_id', 'invoice_number', name='uq_ar_invoice_number'),
        Index('ix_ar_invoices_company_id', 'company_id'),
    )

    @property
    def remaining_amount(self) -> Decimal:
        return Decimal(self.total_amount) - Decimal(self.paid_amount)


class ArPayment(Base):
    """Payment received against an AR invoice; never edited once recorded"""
    __tablename__ = 'ar_payments'

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey('ar_invoices.id'), nullable=False)
    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.BANK_TRANSFER.value)
    reference_no = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    invoice = relationship("ArInvoice", back_populates="payments")


# ==================== ACCOUNTS PAYABLE ====================

class ApBill(Base):
    """Accounts payable bill"""
    __tablename__ = 'ap_bills'

    id = Column(Integer, primary_key=True)
    bill_number = Column(String(20), nullable=False)
    bill_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    subtotal = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    paid_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default=DocumentStatus.DRAFT.value)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    vendor = relationship("Vendor", back_populates="bills")
    company = relationship("Company", back_populates="ap_bills")
    created_by_user = relationship("User")
    payments = relationship("ApPayment", back_populates="bill", order_by="ApPayment.payment_date.desc()")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint('company_id', 'bill_number', name='uq_ap_bill_number'),
        Index('ix_ap_bills_company_id', 'company_id'),
    )

    @property
    def remaining_amount(self) -> Decimal:
        return Decimal(self.total_amount) - Decimal(self.paid_amount)


class ApPayment(Base):
    """Payment made against an AP bill; never edited once recorded"""
    __tablename__ = 'ap_payments'

    id = Column(Integer, primary_key=True)
    bill_id = Column(Integer, ForeignKey('ap_bills.id'), nullable=False)
    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.BANK_TRANSFER.value)
    reference_no = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    bill = relationship("ApBill", back_populates="payments")


# ==================== NUMBERING ====================

class DocumentSequence(Base):
    """Per-company, per-year counter backing document numbers"""
    __tablename__ = 'document_sequences'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    prefix = Column(String(10), nullable=False)
    year = Column(Integer, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('company_id', 'prefix', 'year', name='uq_document_sequence'),
    )


# ==================== AUDIT ====================

class AuditLog(Base):
    """Audit trail of sensitive operations"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    old_values = Column(Text, nullable=True)
    new_values = Column(Text, nullable=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    username = Column(String(50), nullable=True)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='SET NULL'), nullable=True)
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(String(500), nullable=True)
    request_path = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="success")
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index('ix_audit_logs_company_created', 'company_id', 'created_at'),
    )
