"""
Database Configuration
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator

from finhub.core.config import settings

db_url = settings.database_url

engine = create_engine(
    db_url,
    connect_args={"check_same_thread": False, "timeout": 30} if "sqlite" in db_url else {},
    echo=settings.DEBUG
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base model
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.
    Uncommitted work is rolled back when the session is closed.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database tables"""
    # Import all models to register them with Base
    from finhub.models import (  # noqa: F401
        User, Company, UserCompany, Permission, Role, RolePermission, UserCompanyRole,
        Customer, Vendor, ArInvoice, ArPayment, ApBill, ApPayment,
        DocumentSequence, AuditLog
    )
    Base.metadata.create_all(bind=bind or engine)
