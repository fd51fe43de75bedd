from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class StatusUpdate(BaseModel):
    status: str = Field(pattern="^(pending|verified|rejected)$")
    force: bool = False


class DashboardStatsResponse(BaseModel):
    total_members: int
    total_families: int
    total_tree_nodes: int
    pending_verifications: int
    total_documents: int


class FamilySummaryResponse(BaseModel):
    id: int
    name: str
    family_code: str
    is_active: bool
    member_count: int
    created_at: datetime


class FamilySummaryListResponse(BaseModel):
    items: list[FamilySummaryResponse]
