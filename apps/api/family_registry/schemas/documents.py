from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class DocumentResponse(BaseModel):
    id: int
    title: str
    document_type: str
    description: str
    file_name: str
    file_size: int
    mime_type: str
    uploaded_by_id: int
    owner_id: int | None
    family_member_id: int | None
    is_public: bool
    created_at: datetime


class DocumentListResponse(BaseModel):
    items: list[DocumentResponse]
