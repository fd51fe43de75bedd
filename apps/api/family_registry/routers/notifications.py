from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from family_registry.core.auth import Principal, get_principal
from family_registry.core.db import get_db
from family_registry.core.errors import unwrap
from family_registry.schemas.notifications import MarkAllReadResponse, NotificationListResponse, NotificationResponse
from family_registry.services import notifications

router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    items = unwrap(notifications.get_notifications(db, principal.id, unread_only=unread_only))
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(item, from_attributes=True) for item in items],
        unread_count=sum(1 for item in items if not item.read),
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    notification = unwrap(notifications.mark_notification_as_read(db, notification_id, principal.id))
    return NotificationResponse.model_validate(notification, from_attributes=True)


@router.post("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return MarkAllReadResponse(updated=unwrap(notifications.mark_all_notifications_as_read(db, principal.id)))
