from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from family_registry.core.auth import Principal, require_admin
from family_registry.core.db import get_db
from family_registry.core.errors import unwrap
from family_registry.schemas.admin import (
    DashboardStatsResponse,
    FamilySummaryListResponse,
    FamilySummaryResponse,
    StatusUpdate,
)
from family_registry.schemas.family_tree import SweepResponse
from family_registry.schemas.members import MemberListResponse, MemberResponse
from family_registry.services import family_tree, members

router = APIRouter(prefix="/v1/admin", tags=["admin"])


def _member_list(items) -> MemberListResponse:
    return MemberListResponse(items=[MemberResponse.model_validate(item, from_attributes=True) for item in items])


@router.get("/users", response_model=MemberListResponse)
def list_users(status: str | None = None, db: Session = Depends(get_db), _: Principal = Depends(require_admin)):
    return _member_list(unwrap(members.list_members(db, status)))


@router.get("/users/pending", response_model=MemberListResponse)
def pending_users(db: Session = Depends(get_db), _: Principal = Depends(require_admin)):
    return _member_list(unwrap(members.get_pending_users(db)))


@router.post("/users/{member_id}/status", response_model=MemberResponse)
def update_status(
    member_id: int,
    payload: StatusUpdate,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    member = unwrap(members.update_member_status(db, member_id, payload.status, admin.id, force=payload.force))
    return MemberResponse.model_validate(member, from_attributes=True)


@router.get("/stats", response_model=DashboardStatsResponse)
def dashboard_stats(db: Session = Depends(get_db), _: Principal = Depends(require_admin)):
    return DashboardStatsResponse.model_validate(unwrap(members.get_dashboard_stats(db)), from_attributes=True)


@router.get("/families", response_model=FamilySummaryListResponse)
def list_families(db: Session = Depends(get_db), _: Principal = Depends(require_admin)):
    families = unwrap(family_tree.list_families(db))
    return FamilySummaryListResponse(
        items=[FamilySummaryResponse.model_validate(item, from_attributes=True) for item in families]
    )


@router.get("/families/{family_code}/members", response_model=MemberListResponse)
def family_members(
    family_code: str,
    status: str | None = None,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    return _member_list(unwrap(family_tree.get_family_members_admin(db, family_code, status)))


@router.post("/member-arrays/refresh", response_model=SweepResponse)
def refresh_member_arrays(db: Session = Depends(get_db), _: Principal = Depends(require_admin)):
    return SweepResponse.model_validate(unwrap(family_tree.refresh_all_member_arrays(db)), from_attributes=True)
