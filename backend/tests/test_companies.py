"""
Company creation, membership-scoped reads and company switching.
"""
from decimal import Decimal

import pytest

from finhub.core.exceptions import NoAccess, NotFound
from finhub.models import AuditLog, UserCompany
from finhub.schemas import CompanyCreate, CompanyUpdate
from finhub.services.company_service import CompanyService

from conftest import add_membership, make_company, make_user


class TestCompanyCrud:

    def test_create_grants_company_admin_to_creator(self, db, tenant, resolver):
        company = CompanyService(db).create_company(
            CompanyCreate(company_name="Beta Ltd"), tenant.admin.id, resolver
        )
        db.commit()

        assert company.default_currency == "TWD"
        assert company.tax_rate == Decimal("5")
        assert company.fiscal_year_start == 1

        membership = db.query(UserCompany).filter(
            UserCompany.user_id == tenant.admin.id, UserCompany.company_id == company.id
        ).one()
        assert membership.is_default is False
        assert "company.manage" in resolver.resolve(db, tenant.admin.id, company.id)

        entry = db.query(AuditLog).filter(AuditLog.action == "COMPANY_CREATED").one()
        assert entry.resource_id == company.id

    def test_create_with_explicit_settings(self, db, tenant, resolver):
        company = CompanyService(db).create_company(
            CompanyCreate(company_name="Gamma", default_currency="USD", tax_rate=Decimal("0"), fiscal_year_start=4),
            tenant.admin.id,
            resolver
        )

        assert company.default_currency == "USD"
        assert company.tax_rate == Decimal("0")
        assert company.fiscal_year_start == 4

    def test_create_drops_stale_cached_permissions(self, db, tenant, resolver):
        service = CompanyService(db)
        company = service.create_company(CompanyCreate(company_name="Delta"), tenant.admin.id, resolver)
        resolver.cache.set(tenant.admin.id, company.id + 1, frozenset())

        second = service.create_company(CompanyCreate(company_name="Epsilon"), tenant.admin.id, resolver)

        assert second.id == company.id + 1
        assert "ar.write" in resolver.resolve(db, tenant.admin.id, second.id)

    def test_list_only_member_companies(self, db, tenant, other_tenant):
        zeta = make_company(db, "Zeta")
        add_membership(db, tenant.admin, zeta)

        companies = CompanyService(db).list_companies(tenant.admin.id)

        assert [c["company_name"] for c in companies] == ["Acme Trading", "Zeta"]
        assert [c["is_default"] for c in companies] == [True, False]

    def test_non_member_cannot_read_or_update(self, db, tenant, other_tenant):
        service = CompanyService(db)

        with pytest.raises(NotFound):
            service.get_company(other_tenant.company.id, tenant.admin.id)
        with pytest.raises(NotFound):
            service.update_company(other_tenant.company.id, tenant.admin.id, CompanyUpdate(phone="123"))

    def test_update(self, db, tenant):
        company = CompanyService(db).update_company(
            tenant.company.id, tenant.admin.id, CompanyUpdate(tax_rate=Decimal("10.00"), short_name="Acme")
        )

        assert company.tax_rate == Decimal("10.00")
        assert company.short_name == "Acme"
        assert company.company_name == "Acme Trading"


class TestSwitchCompany:

    def test_switch_moves_default_and_scopes_token(self, db, tenant, token_manager, resolver):
        second = make_company(db, "Second Co")
        add_membership(db, tenant.admin, second, roles=["Viewer"])

        result = CompanyService(db).switch_company(
            tenant.admin.id, "admin", second.id, token_manager, resolver
        )
        db.commit()

        claims = token_manager.decode_access_token(result["access_token"])
        assert claims["company_id"] == second.id
        assert result["company"].id == second.id
        assert result["permissions"] == ["ap.read", "ar.read", "customer.read", "vendor.read"]

        defaults = {
            m.company_id: m.is_default
            for m in db.query(UserCompany).filter(UserCompany.user_id == tenant.admin.id)
        }
        assert defaults == {tenant.company.id: False, second.id: True}

    def test_switch_without_membership(self, db, tenant, other_tenant, token_manager, resolver):
        with pytest.raises(NoAccess):
            CompanyService(db).switch_company(
                tenant.admin.id, "admin", other_tenant.company.id, token_manager, resolver
            )

    def test_switch_only_touches_acting_user(self, db, tenant, token_manager, resolver):
        second = make_company(db, "Second Co")
        add_membership(db, tenant.admin, second)
        colleague = make_user(db, "colleague", tenant.company, roles=["Viewer"])
        add_membership(db, colleague, second)

        CompanyService(db).switch_company(tenant.admin.id, "admin", second.id, token_manager, resolver)
        db.commit()

        colleague_defaults = {
            m.company_id: m.is_default
            for m in db.query(UserCompany).filter(UserCompany.user_id == colleague.id)
        }
        assert colleague_defaults == {tenant.company.id: True, second.id: False}

    def test_switch_to_current_company_is_idempotent(self, db, tenant, token_manager, resolver):
        result = CompanyService(db).switch_company(
            tenant.admin.id, "admin", tenant.company.id, token_manager, resolver
        )

        assert result["company"].id == tenant.company.id
        assert db.query(UserCompany).filter(
            UserCompany.user_id == tenant.admin.id, UserCompany.is_default.is_(True)
        ).count() == 1

    def test_switch_is_audited(self, db, tenant, token_manager, resolver):
        second = make_company(db, "Second Co")
        add_membership(db, tenant.admin, second)

        CompanyService(db).switch_company(tenant.admin.id, "admin", second.id, token_manager, resolver)

        entry = db.query(AuditLog).filter(AuditLog.action == "COMPANY_SWITCHED").one()
        assert entry.user_id == tenant.admin.id
        assert entry.company_id == second.id
