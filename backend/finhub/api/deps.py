"""
Shared API dependencies
"""
from fastapi import Depends, Query, Request
from sqlalchemy.orm import Session

from finhub.core.database import get_db
from finhub.core.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from finhub.services.audit_service import AuditService


def get_client_info(request: Request) -> tuple:
    """Extract client IP and user agent from request"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    elif request.client:
        ip_address = request.client.host
    else:
        ip_address = "unknown"

    user_agent = request.headers.get("User-Agent", "")[:500]
    return ip_address, user_agent


def get_audit_service(request: Request, db: Session = Depends(get_db)) -> AuditService:
    """Audit writer bound to the request's session and client details"""
    ip_address, user_agent = get_client_info(request)
    return AuditService(db, ip_address=ip_address, user_agent=user_agent, request_path=str(request.url.path))


class PageParams:
    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    ):
        self.page = page
        self.limit = limit
