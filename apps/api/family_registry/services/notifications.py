from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from family_registry.core.errors import store_operation
from family_registry.core.outcome import ErrorKind, Outcome
from family_registry.models.entities import Notification, NotificationTypeEnum, PriorityEnum

logger = logging.getLogger(__name__)

NOTIFICATION_PAGE_SIZE = 50


def notify(
    db: Session,
    *,
    user_id: int,
    type: NotificationTypeEnum,
    title: str,
    message: str,
    priority: PriorityEnum = PriorityEnum.medium,
    payload: dict[str, Any] | None = None,
) -> Notification | None:
    # Best effort: the triggering mutation is already committed.
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        priority=priority,
        payload=json.dumps(payload or {}, default=str),
    )
    try:
        db.add(notification)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("failed to emit %s notification for member %s", type.value, user_id)
        return None
    return notification


@store_operation("get_notifications")
def get_notifications(db: Session, user_id: int, unread_only: bool = False) -> Outcome[list[Notification]]:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    rows = db.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(NOTIFICATION_PAGE_SIZE)
    ).scalars().all()
    return Outcome.success(list(rows))


@store_operation("mark_notification_as_read")
def mark_notification_as_read(db: Session, notification_id: int, user_id: int) -> Outcome[Notification]:
    notification = db.get(Notification, notification_id)
    if notification is None:
        return Outcome.failure(ErrorKind.not_found, "notification not found")
    if notification.user_id != user_id:
        return Outcome.failure(ErrorKind.forbidden, "notification belongs to another member")
    if not notification.read:
        notification.read = True
        notification.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)
    return Outcome.success(notification)


@store_operation("mark_all_notifications_as_read")
def mark_all_notifications_as_read(db: Session, user_id: int) -> Outcome[int]:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True, read_at=datetime.now(timezone.utc))
    )
    db.commit()
    return Outcome.success(result.rowcount or 0)
