from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class AuditEntryResponse(BaseModel):
    id: int
    actor_member_id: int | None
    entity_type: str
    entity_id: int
    action: str
    changes: dict[str, Any] = Field(validation_alias="changes_json")
    created_at: datetime

    @field_validator("changes", mode="before")
    @classmethod
    def _decode_changes(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value


class AuditEntryListResponse(BaseModel):
    items: list[AuditEntryResponse]
