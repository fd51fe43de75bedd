from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    priority: str
    read: bool
    read_at: datetime | None
    payload: dict[str, Any]
    created_at: datetime

    @field_validator("payload", mode="before")
    @classmethod
    def _decode_payload(cls, value):
        if isinstance(value, str):
            return json.loads(value or "{}")
        return value or {}


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int
