"""
Company Service - Tenants, Memberships and Company Switching
"""
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy.orm import Session, joinedload

from finhub.core.config import Settings, settings
from finhub.core.exceptions import NoAccess, NotFound
from finhub.core.security import TokenManager
from finhub.models import Company, CompanyStatus, Role, UserCompany, UserCompanyRole
from finhub.schemas import CompanyCreate, CompanyUpdate
from finhub.services.audit_service import AuditAction, AuditService
from finhub.services.auth_service import company_payload
from finhub.services.permission_service import PermissionResolver

logger = logging.getLogger(__name__)

COMPANY_ADMIN_ROLE = "Company Admin"


class CompanyService:
    def __init__(self, db: Session, config: Settings = settings, audit: Optional[AuditService] = None):
        self.db = db
        self.config = config
        self.audit = audit or AuditService(db)

    def get_by_id(self, company_id: int) -> Optional[Company]:
        return self.db.query(Company).filter(Company.id == company_id).first()

    def get_membership(self, user_id: int, company_id: int) -> Optional[UserCompany]:
        return self.db.query(UserCompany).filter(
            UserCompany.user_id == user_id,
            UserCompany.company_id == company_id
        ).first()

    def list_companies(self, user_id: int) -> List[dict]:
        memberships = self.db.query(UserCompany)\
            .join(Company, Company.id == UserCompany.company_id)\
            .options(joinedload(UserCompany.company))\
            .filter(UserCompany.user_id == user_id)\
            .order_by(Company.company_name)\
            .all()
        return [company_payload(m) for m in memberships]

    def get_company(self, company_id: int, user_id: int) -> Company:
        if not self.get_membership(user_id, company_id):
            raise NotFound("Company not found")
        company = self.get_by_id(company_id)
        if not company:
            raise NotFound("Company not found")
        return company

    def create_company(self, company_data: CompanyCreate, creator_user_id: int,
                       resolver: PermissionResolver) -> Company:
        """
        Create a tenant, add the creator as a (non-default) member and grant
        them Company Admin when that role is seeded.
        """
        data = company_data.model_dump()
        company = Company(
            company_name=data["company_name"],
            short_name=data.get("short_name"),
            tax_id=data.get("tax_id"),
            representative=data.get("representative"),
            phone=data.get("phone"),
            fax=data.get("fax"),
            address=data.get("address"),
            email=data.get("email"),
            default_currency=data.get("default_currency") or self.config.DEFAULT_CURRENCY,
            tax_rate=data["tax_rate"] if data.get("tax_rate") is not None else Decimal(self.config.DEFAULT_TAX_RATE),
            fiscal_year_start=data.get("fiscal_year_start") or 1,
            status=CompanyStatus.ACTIVE.value
        )
        self.db.add(company)
        self.db.flush()

        self.db.add(UserCompany(user_id=creator_user_id, company_id=company.id, is_default=False))

        admin_role = self.db.query(Role).filter(
            Role.role_name == COMPANY_ADMIN_ROLE,
            Role.company_id.is_(None)
        ).first()
        if admin_role:
            self.db.add(UserCompanyRole(
                user_id=creator_user_id,
                role_id=admin_role.id,
                company_id=company.id
            ))
        else:
            logger.warning(f"'{COMPANY_ADMIN_ROLE}' role missing; company {company.id} created without admin grant")

        self.db.flush()
        resolver.invalidate_on_commit(self.db, [(creator_user_id, company.id)])

        self.audit.log(
            action=AuditAction.COMPANY_CREATED,
            resource_type="Company",
            resource_id=company.id,
            description=f"Company '{company.company_name}' created",
            new_values={"company_name": company.company_name, "tax_rate": company.tax_rate},
            user_id=creator_user_id,
            company_id=company.id
        )
        return company

    def update_company(self, company_id: int, user_id: int, company_data: CompanyUpdate) -> Company:
        company = self.get_company(company_id, user_id)

        update_data = company_data.model_dump(exclude_unset=True)
        old_values = {key: getattr(company, key) for key in update_data}
        for key, value in update_data.items():
            setattr(company, key, value)

        self.db.flush()
        self.audit.log(
            action=AuditAction.UPDATE,
            resource_type="Company",
            resource_id=company.id,
            old_values=old_values,
            new_values=update_data,
            user_id=user_id,
            company_id=company.id
        )
        return company

    def switch_company(self, user_id: int, username: str, target_company_id: int,
                       token_manager: TokenManager, resolver: PermissionResolver) -> dict:
        """
        Make ``target_company_id`` the user's default and issue an access
        token scoped to it. The user's membership rows stay locked until the
        caller commits, so concurrent switches serialize.
        """
        memberships = self.db.query(UserCompany)\
            .filter(UserCompany.user_id == user_id)\
            .order_by(UserCompany.id)\
            .with_for_update()\
            .all()

        target = next((m for m in memberships if m.company_id == target_company_id), None)
        if target is None:
            raise NoAccess()

        for membership in memberships:
            membership.is_default = membership is target
        self.db.flush()

        permissions = resolver.resolve(self.db, user_id, target_company_id)
        company = self.get_by_id(target_company_id)

        self.audit.log(
            action=AuditAction.COMPANY_SWITCHED,
            resource_type="Company",
            resource_id=target_company_id,
            description=f"User '{username}' switched to company {target_company_id}",
            user_id=user_id,
            username=username,
            company_id=target_company_id
        )
        logger.info(f"User {user_id} switched to company {target_company_id}")

        return {
            "access_token": token_manager.create_access_token(user_id, target_company_id, username),
            "token_type": "bearer",
            "company": company,
            "permissions": sorted(permissions),
        }
