from __future__ import annotations

import json
from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class FamilyTreeResponse(BaseModel):
    id: int
    name: str
    description: str
    family_code: str
    root_member_id: int | None
    is_active: bool
    member_count: int
    created_at: datetime


class NodeMemberResponse(BaseModel):
    id: int
    login_id: str
    full_name: str
    gender: str | None
    place_of_birth: str | None
    relationship_to_root: str | None
    verification_status: str


class NodeResponse(BaseModel):
    id: int
    family_tree_id: int
    member_id: int
    position_x: float
    position_y: float
    width: int
    height: int
    color: str
    visibility: str
    member: NodeMemberResponse


class NodeListResponse(BaseModel):
    items: list[NodeResponse]


class ConnectionCreate(BaseModel):
    family_tree_id: int
    source_node_id: int
    target_node_id: int
    relationship_type: str | None = None
    relationship_label: str | None = Field(default=None, max_length=100)
    source_handle: str | None = Field(default=None, max_length=64)
    target_handle: str | None = Field(default=None, max_length=64)


class ConnectionUpdate(BaseModel):
    relationship_type: str | None = None
    relationship_label: str | None = Field(default=None, max_length=100)


class ConnectionResponse(BaseModel):
    id: int
    family_tree_id: int
    source_node_id: int
    target_node_id: int
    source_handle: str | None
    target_handle: str | None
    relationship_type: str
    relationship_label: str
    color: str
    style: str
    thickness: int
    created_by_id: int
    updated_by_id: int | None
    updated_at: datetime


class GraphResponse(BaseModel):
    tree: FamilyTreeResponse
    nodes: list[NodeResponse]
    connections: list[ConnectionResponse]


class EnsureNodesResponse(BaseModel):
    family_code: str
    created: int
    existing: int
    restored: int


class NodePosition(BaseModel):
    node_id: int
    x: float
    y: float


class LayoutUpdate(BaseModel):
    positions: list[NodePosition] = Field(min_length=1)


class LayoutResponse(BaseModel):
    updated: int


class SelectionEntryResponse(BaseModel):
    member_id: int
    node_id: int
    full_name: str
    relationship: str | None
    is_root_member: bool
    display_name: str


class SelectionResponse(BaseModel):
    items: list[SelectionEntryResponse]


class MemberCacheResponse(BaseModel):
    family_code: str
    member_ids: list[int]
    member_count: int
    stats: dict[str, int]

    @field_validator("member_ids", "stats", mode="before")
    @classmethod
    def _decode_json(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value


class SweepResponse(BaseModel):
    processed: int
    errors: int
    total: int
