"""
User administration, role assignment and role permission edits.
"""
import pytest
from sqlalchemy.orm import sessionmaker

from finhub.core.exceptions import Duplicate, InvalidStatus, NotFound, ValidationError
from finhub.models import Permission, Role, UserCompany, UserCompanyRole, UserStatus
from finhub.schemas import UserCreate, UserUpdate
from finhub.services.permission_service import RoleService, seed_permissions, seed_roles
from finhub.services.user_service import UserService

from conftest import get_role, make_company, make_user


def new_user(**overrides):
    data = {
        "username": "bob",
        "email": "bob@example.com",
        "password": "Password1!",
        "display_name": "Bob",
    }
    data.update(overrides)
    return UserCreate(**data)


class TestUserService:

    def test_create_with_company_and_roles(self, db, tenant):
        clerk = get_role(db, "AR Clerk")

        user = UserService(db).create_user(
            new_user(company_id=tenant.company.id, role_ids=[clerk.id]), tenant.admin.id
        )
        db.commit()

        detail = UserService(db).get_user(user.id, tenant.company.id)
        assert detail["username"] == "bob"
        assert detail["status"] == "ACTIVE"
        assert detail["roles"] == [{"role_id": clerk.id, "role_name": "AR Clerk"}]
        assert db.query(UserCompany).filter(UserCompany.user_id == user.id).one().is_default is True

    def test_duplicate_username_and_email(self, db, tenant):
        with pytest.raises(Duplicate):
            UserService(db).create_user(new_user(username="admin"))
        with pytest.raises(Duplicate):
            UserService(db).create_user(new_user(email="admin@example.com"))

    def test_unknown_role(self, db, tenant):
        with pytest.raises(NotFound):
            UserService(db).create_user(new_user(company_id=tenant.company.id, role_ids=[9999]))

    def test_user_outside_company_is_hidden(self, db, tenant, other_tenant):
        with pytest.raises(NotFound):
            UserService(db).get_user(other_tenant.admin.id, tenant.company.id)

    def test_list_search_and_pagination(self, db, tenant):
        make_user(db, "carol", tenant.company)
        make_user(db, "dave", tenant.company)
        make_user(db, "outsider")

        users, meta = UserService(db).list_users(tenant.company.id)
        assert meta["total"] == 3
        assert {u["username"] for u in users} == {"admin", "carol", "dave"}

        found, meta = UserService(db).list_users(tenant.company.id, search="car")
        assert [u["username"] for u in found] == ["carol"]

        page, meta = UserService(db).list_users(tenant.company.id, page=2, limit=2)
        assert len(page) == 1
        assert meta["total_pages"] == 2

    def test_reactivation_clears_lockout(self, db, tenant):
        tenant.admin.status = UserStatus.LOCKED.value
        tenant.admin.failed_attempts = 5
        db.flush()

        detail = UserService(db).update_user(
            tenant.admin.id, tenant.company.id, UserUpdate(status="ACTIVE", display_name="Boss")
        )

        assert detail["status"] == "ACTIVE"
        assert detail["display_name"] == "Boss"
        assert tenant.admin.failed_attempts == 0
        assert tenant.admin.locked_until is None

    def test_update_email_clash(self, db, tenant):
        make_user(db, "carol", tenant.company)

        with pytest.raises(Duplicate):
            UserService(db).update_user(tenant.admin.id, tenant.company.id, UserUpdate(email="carol@example.com"))


class TestRoleAssignment:

    def test_assign_replaces_roles_and_invalidates_cache(self, db, tenant, resolver):
        user = make_user(db, "carol", tenant.company, roles=["Viewer"])
        assert "ar.write" not in resolver.resolve(db, user.id, tenant.company.id)

        assigned = UserService(db).assign_roles(
            user.id, tenant.company.id, [get_role(db, "AR Clerk").id], resolver, tenant.admin.id
        )

        assert assigned == [{"role_id": get_role(db, "AR Clerk").id, "role_name": "AR Clerk"}]
        assert resolver.resolve(db, user.id, tenant.company.id) == frozenset(
            {"customer.read", "customer.write", "ar.read", "ar.write"}
        )

    def test_assign_in_new_company_adds_membership(self, db, tenant, resolver):
        user = make_user(db, "carol", tenant.company, roles=["Viewer"])
        second = make_company(db, "Second Co")

        UserService(db).assign_roles(user.id, second.id, [get_role(db, "AP Clerk").id], resolver)

        membership = db.query(UserCompany).filter(
            UserCompany.user_id == user.id, UserCompany.company_id == second.id
        ).one()
        assert membership.is_default is False
        assert "ap.write" in resolver.resolve(db, user.id, second.id)
        assert "ap.write" not in resolver.resolve(db, user.id, tenant.company.id)

    def test_assign_does_not_touch_other_companies(self, db, tenant, resolver):
        user = make_user(db, "carol", tenant.company, roles=["AR Clerk"])
        second = make_company(db, "Second Co")

        UserService(db).assign_roles(user.id, second.id, [get_role(db, "Viewer").id], resolver)

        assert "ar.write" in resolver.resolve(db, user.id, tenant.company.id)

    def test_assign_to_unknown_user(self, db, tenant, resolver):
        with pytest.raises(NotFound):
            UserService(db).assign_roles(9999, tenant.company.id, [get_role(db, "Viewer").id], resolver)

    def test_resolve_before_commit_does_not_outlive_the_commit(self, file_engine, resolver):
        Session = sessionmaker(bind=file_engine, autocommit=False, autoflush=False)
        setup = Session()
        seed_permissions(setup)
        seed_roles(setup)
        company = make_company(setup)
        user = make_user(setup, "carol", company, roles=["Viewer"])
        setup.commit()
        user_id, company_id = user.id, company.id
        clerk_id = get_role(setup, "AR Clerk").id
        setup.close()

        writer, reader = Session(), Session()
        try:
            UserService(writer).assign_roles(user_id, company_id, [clerk_id], resolver)

            # Another request resolves from the last committed rows
            assert "ar.write" not in resolver.resolve(reader, user_id, company_id)

            writer.commit()
            assert "ar.write" in resolver.resolve(reader, user_id, company_id)
        finally:
            writer.close()
            reader.close()

    def test_role_edit_before_commit_does_not_outlive_the_commit(self, file_engine, resolver):
        Session = sessionmaker(bind=file_engine, autocommit=False, autoflush=False)
        setup = Session()
        seed_permissions(setup)
        seed_roles(setup)
        company = make_company(setup)
        role = RoleService(setup).create(company.id, "Collector", permission_codes=["ar.read"])
        user = make_user(setup, "carol", company)
        setup.add(UserCompanyRole(user_id=user.id, role_id=role.id, company_id=company.id))
        setup.commit()
        user_id, company_id, role_id = user.id, company.id, role.id
        setup.close()

        writer, reader = Session(), Session()
        try:
            RoleService(writer).update_permissions(role_id, company_id, ["ar.read", "ar.write"], resolver)
            assert resolver.resolve(reader, user_id, company_id) == frozenset({"ar.read"})

            writer.commit()
            assert resolver.resolve(reader, user_id, company_id) == frozenset({"ar.read", "ar.write"})
        finally:
            writer.close()
            reader.close()


class TestRoles:

    def test_custom_role_permissions_update_invalidates_holders(self, db, tenant, other_tenant, resolver):
        role = RoleService(db).create(tenant.company.id, "Collector", permission_codes=["ar.read"])
        user = make_user(db, "carol", tenant.company)
        UserService(db).assign_roles(user.id, tenant.company.id, [role.id], resolver)
        assert resolver.resolve(db, user.id, tenant.company.id) == frozenset({"ar.read"})

        RoleService(db).update_permissions(role.id, tenant.company.id, ["ar.read", "ar.write"], resolver)

        assert resolver.resolve(db, user.id, tenant.company.id) == frozenset({"ar.read", "ar.write"})

    def test_system_roles_are_read_only(self, db, tenant, resolver):
        with pytest.raises(InvalidStatus):
            RoleService(db).update_permissions(get_role(db, "Viewer").id, tenant.company.id, ["ar.write"], resolver)

    def test_roles_of_other_companies_are_hidden(self, db, tenant, other_tenant, resolver):
        role = RoleService(db).create(other_tenant.company.id, "Collector")

        with pytest.raises(NotFound):
            RoleService(db).update_permissions(role.id, tenant.company.id, ["ar.read"], resolver)
        assert role.id not in [r.id for r in RoleService(db).list_roles(tenant.company.id)]

    def test_duplicate_role_name(self, db, tenant):
        with pytest.raises(Duplicate):
            RoleService(db).create(tenant.company.id, "Viewer")

    def test_unknown_permission_code(self, db, tenant):
        with pytest.raises(ValidationError) as exc_info:
            RoleService(db).create(tenant.company.id, "Odd", permission_codes=["ar.read", "gl.post"])
        assert exc_info.value.details == {"permission_codes": ["gl.post"]}

    def test_seeding_is_idempotent(self, db):
        role_ids = {r.role_name: r.id for r in db.query(Role).all()}

        seed_permissions(db)
        seed_roles(db)

        assert db.query(Permission).count() == 10
        assert {r.role_name: r.id for r in db.query(Role).all()} == role_ids
        assert len(get_role(db, "System Admin").permission_links) == 10
