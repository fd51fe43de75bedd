from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from sqlalchemy.orm import Session

from family_registry.core.auth import Principal, get_principal
from family_registry.core.db import get_db
from family_registry.core.errors import unwrap
from family_registry.schemas.family_tree import NodeListResponse, NodeResponse, SelectionEntryResponse, SelectionResponse
from family_registry.schemas.members import JoinFamilyRequest, MemberResponse
from family_registry.services import family_tree, members
from family_registry.services.access import can_access_user_data, is_same_family, require_same_family

router = APIRouter(prefix="/v1/members", tags=["members"])


@router.get("/search", response_model=NodeListResponse)
def search_members(
    family_tree_id: int,
    query: str | None = None,
    relationship: str | None = None,
    gender: str | None = None,
    location: str | None = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    require_same_family(principal, unwrap(family_tree.tree_family_code(db, family_tree_id)))
    filters = family_tree.MemberSearchFilters(query=query, relationship=relationship, gender=gender, location=location)
    nodes = unwrap(family_tree.search_family_members(db, family_tree_id, filters))
    return NodeListResponse(items=[NodeResponse.model_validate(node, from_attributes=True) for node in nodes])


@router.get("/selection", response_model=SelectionResponse)
def members_for_selection(
    family_tree_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    require_same_family(principal, unwrap(family_tree.tree_family_code(db, family_tree_id)))
    entries = unwrap(family_tree.get_family_members_for_selection(db, family_tree_id))
    return SelectionResponse(
        items=[SelectionEntryResponse.model_validate(entry, from_attributes=True) for entry in entries]
    )


@router.post("/join", response_model=MemberResponse)
def join_family(
    payload: JoinFamilyRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    member = unwrap(members.join_family(db, principal.id, payload.family_code, payload.relationship))
    return MemberResponse.model_validate(member, from_attributes=True)


@router.post("/leave", response_model=MemberResponse)
def leave_family(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    member = unwrap(members.leave_family(db, principal.id))
    return MemberResponse.model_validate(member, from_attributes=True)


@router.put("/me/avatar", status_code=204)
async def upload_avatar(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    data = await file.read()
    unwrap(members.set_avatar(db, principal.id, data, file.content_type or ""))
    return Response(status_code=204)


@router.get("/{member_id}/avatar")
def get_avatar(
    member_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    member = unwrap(members.get_member(db, member_id))
    if not (can_access_user_data(principal, member_id) or is_same_family(principal, member.family_code)):
        raise HTTPException(status_code=403, detail="not a member of this family")
    data, mime_type = unwrap(members.get_avatar(db, member_id))
    return Response(content=data, media_type=mime_type)
