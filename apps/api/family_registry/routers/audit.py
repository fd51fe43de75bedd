from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from family_registry.core.auth import Principal, require_admin
from family_registry.core.db import get_db
from family_registry.core.errors import unwrap
from family_registry.schemas.audit import AuditEntryListResponse, AuditEntryResponse
from family_registry.services.audit import list_audit_entries

router = APIRouter(prefix="/v1/audit", tags=["audit"])


@router.get("", response_model=AuditEntryListResponse)
def list_audit_events(
    entity_type: str | None = None,
    entity_id: int | None = None,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    entries = unwrap(list_audit_entries(db, entity_type, entity_id))
    return AuditEntryListResponse(items=[AuditEntryResponse.model_validate(e, from_attributes=True) for e in entries])
