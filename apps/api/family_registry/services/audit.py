from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from family_registry.core.errors import store_operation
from family_registry.core.outcome import Outcome
from family_registry.models.entities import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    *,
    actor_member_id: int | None,
    entity_type: str,
    entity_id: int,
    action: str,
    old: dict[str, Any] | None = None,
    new: dict[str, Any] | None = None,
) -> AuditLog | None:
    """
    Append one audit entry in its own commit.

    Called after the audited mutation has been committed, so a failure here is
    logged and dropped instead of undoing the change.
    """
    entry = AuditLog(
        actor_member_id=actor_member_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        changes_json=json.dumps({"old": old, "new": new}, default=str),
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("failed to write audit entry %s %s:%s", action, entity_type, entity_id)
        return None
    return entry


@store_operation("list_audit_entries")
def list_audit_entries(
    db: Session,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> Outcome[list[AuditLog]]:
    query = select(AuditLog)
    if entity_type is not None:
        query = query.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)
    rows = db.execute(query.order_by(AuditLog.id.desc()).limit(limit)).scalars().all()
    return Outcome.success(list(rows))
