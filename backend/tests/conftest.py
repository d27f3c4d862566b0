"""
Pytest fixtures for the FinHub backend test suite.

Provides:
- In-memory SQLite sessions with permissions and system roles seeded
- A manual clock shared by the token manager, revocation list and cache
- Company / user / customer / vendor factories
- A TestClient bound to the same session and clock
"""
import os

# Cheap hashing and an in-memory default engine for the whole run
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from finhub.core.clock import ManualClock
from finhub.core.config import settings
from finhub.core.database import get_db, init_db
from finhub.core.security import TokenManager, TokenRevocationList, get_password_hash
from finhub.main import create_app
from finhub.models import (
    Company, Customer, Role, User, UserCompany, UserCompanyRole, Vendor
)
from finhub.services.auth_service import AuthService
from finhub.services.permission_service import (
    PermissionCache, PermissionResolver, seed_permissions, seed_roles
)

PASSWORD = "Secret123!"
START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite for tests that need independent connections"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'finhub_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_permissions(session)
    seed_roles(session)
    yield session
    session.close()


# =============================================================================
# App-scoped components
# =============================================================================

@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def token_manager(clock):
    return TokenManager(settings, clock)


@pytest.fixture
def revocation_list(clock):
    return TokenRevocationList(clock)


@pytest.fixture
def resolver(clock):
    return PermissionResolver(PermissionCache(settings.PERMISSION_CACHE_TTL_SECONDS, clock))


@pytest.fixture
def auth_service(db, token_manager, revocation_list, resolver, clock):
    return AuthService(db, token_manager, revocation_list, resolver, clock)


# =============================================================================
# Factories
# =============================================================================

def get_role(db, role_name):
    return db.query(Role).filter(Role.role_name == role_name, Role.company_id.is_(None)).one()


def make_company(db, company_name="Acme Trading", tax_rate=Decimal("5.00"), currency="TWD"):
    company = Company(company_name=company_name, tax_rate=tax_rate, default_currency=currency)
    db.add(company)
    db.flush()
    return company


def make_user(db, username, company=None, roles=(), is_default=True, password=PASSWORD):
    user = User(
        username=username,
        email=f"{username}@example.com",
        display_name=username.title(),
        hashed_password=get_password_hash(password),
    )
    db.add(user)
    db.flush()

    if company is not None:
        db.add(UserCompany(user=user, company=company, is_default=is_default))
        for role_name in roles:
            db.add(UserCompanyRole(user=user, role=get_role(db, role_name), company=company))
        db.flush()
    return user


def add_membership(db, user, company, roles=(), is_default=False):
    db.add(UserCompany(user=user, company=company, is_default=is_default))
    for role_name in roles:
        db.add(UserCompanyRole(user=user, role=get_role(db, role_name), company=company))
    db.flush()


def make_customer(db, company, name="Globex", code="C-0001"):
    customer = Customer(customer_code=code, customer_name=name, company_id=company.id)
    db.add(customer)
    db.flush()
    return customer


def make_vendor(db, company, name="Initech", code="V-0001"):
    vendor = Vendor(vendor_code=code, vendor_name=name, company_id=company.id)
    db.add(vendor)
    db.flush()
    return vendor


@pytest.fixture
def tenant(db):
    """One company with an admin, a customer and a vendor"""
    company = make_company(db)
    admin = make_user(db, "admin", company, roles=["Company Admin"])
    customer = make_customer(db, company)
    vendor = make_vendor(db, company)
    db.commit()
    return SimpleNamespace(company=company, admin=admin, customer=customer, vendor=vendor)


@pytest.fixture
def other_tenant(db):
    company = make_company(db, "Umbrella Corp")
    owner = make_user(db, "umbrella", company, roles=["Company Admin"])
    customer = make_customer(db, company, name="Umbrella Client")
    vendor = make_vendor(db, company, name="Umbrella Supplier")
    db.commit()
    return SimpleNamespace(company=company, admin=owner, customer=customer, vendor=vendor)


def invoice_payload(customer_id, subtotal="1000.00", invoice_date=date(2026, 3, 1), **extra):
    payload = {
        "customer_id": customer_id,
        "invoice_date": invoice_date,
        "due_date": date(2026, 3, 31),
        "subtotal": Decimal(subtotal),
    }
    payload.update(extra)
    return payload


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def app(db, clock, token_manager, revocation_list, resolver):
    app = create_app(clock=clock)
    app.state.token_manager = token_manager
    app.state.revocation_list = revocation_list
    app.state.permission_resolver = resolver

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    # Not used as a context manager: the lifespan would seed the default engine
    return TestClient(app)


def login(client, username, password=PASSWORD):
    response = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}
