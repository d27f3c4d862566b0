"""
Audit Logging Service
Records the audit trail of sensitive operations
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import Optional, List, Dict, Tuple
from datetime import date, datetime, time, timedelta, timezone
import json
import logging

from finhub.core.pagination import paginate
from finhub.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Constants for audit actions"""
    # Authentication
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"

    # Tenancy
    COMPANY_SWITCHED = "COMPANY_SWITCHED"
    COMPANY_CREATED = "COMPANY_CREATED"

    # CRUD Operations
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    VOID = "VOID"

    # Financial Operations
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_MADE = "PAYMENT_MADE"

    # User Management
    ROLE_ASSIGNED = "ROLE_ASSIGNED"


class AuditService:
    """Service for recording and retrieving audit logs"""

    def __init__(
        self,
        db: Session,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_path: Optional[str] = None
    ):
        self.db = db
        self.ip_address = ip_address
        self.user_agent = user_agent
        self.request_path = request_path

    def log(
        self,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        description: Optional[str] = None,
        old_values: Optional[Dict] = None,
        new_values: Optional[Dict] = None,
        user_id: Optional[int] = None,
        username: Optional[str] = None,
        company_id: Optional[int] = None,
        status: str = "success",
        error_message: Optional[str] = None
    ) -> AuditLog:
        """
        Create an audit log entry in the current transaction.

        Args:
            action: The action being performed (use AuditAction constants)
            resource_type: Type of resource being affected (e.g., 'ArInvoice', 'User')
            resource_id: ID of the affected resource
            description: Human-readable description of the action
            old_values: Values before the change (for updates)
            new_values: Values after the change
            user_id: ID of the acting user
            username: Username (stored separately in case user is deleted)
            company_id: Tenant context
            status: 'success' or 'failure'
            error_message: Error message if status is not success
        """
        audit_log = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            old_values=json.dumps(old_values, default=str) if old_values else None,
            new_values=json.dumps(new_values, default=str) if new_values else None,
            user_id=user_id,
            username=username,
            company_id=company_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            request_path=self.request_path,
            status=status,
            error_message=error_message
        )

        self.db.add(audit_log)
        self.db.flush()

        logger.info(
            f"Audit: {action} {resource_type}(id={resource_id}) by user={username} "
            f"company={company_id} status={status}"
        )
        return audit_log

    def get_logs(
        self,
        company_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        page: int = 1,
        limit: int = 50
    ) -> Tuple[List[AuditLog], dict]:
        """Audit logs of a company, newest first, with pagination meta"""
        query = self.db.query(AuditLog).filter(AuditLog.company_id == company_id)

        if start_date:
            query = query.filter(AuditLog.created_at >= _start_of(start_date))
        if end_date:
            query = query.filter(AuditLog.created_at < _start_of(end_date) + timedelta(days=1))
        if user_id:
            query = query.filter(AuditLog.user_id == user_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)

        return paginate(query.order_by(desc(AuditLog.created_at), desc(AuditLog.id)), page, limit)


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)
