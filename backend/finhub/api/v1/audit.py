"""
Audit Log API Routes
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from finhub.api.deps import PageParams
from finhub.core.database import get_db
from finhub.core.security import Identity, PermissionChecker
from finhub.schemas import AuditLogResponse, Page
from finhub.services.audit_service import AuditService

router = APIRouter(prefix="/audit-logs", tags=["Audit"])


@router.get("", response_model=Page[AuditLogResponse])
async def list_audit_logs(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    paging: PageParams = Depends(),
    identity: Identity = Depends(PermissionChecker(["user.manage"])),
    db: Session = Depends(get_db)
):
    """Audit trail of the current company, newest first"""
    logs, meta = AuditService(db).get_logs(
        identity.company_id,
        start_date=start_date,
        end_date=end_date,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        page=paging.page,
        limit=paging.limit
    )
    return {"items": logs, "meta": meta}
