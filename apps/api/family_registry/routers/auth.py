from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from family_registry.core.auth import Principal, get_principal
from family_registry.core.config import settings
from family_registry.core.db import get_db
from family_registry.core.errors import unwrap
from family_registry.core.security import create_session_token
from family_registry.models.entities import GenderEnum
from family_registry.schemas.members import (
    CredentialCheckResponse,
    ExistsResponse,
    FamilyCodeResponse,
    LoginRequest,
    MemberResponse,
    RegisterRequest,
    SessionResponse,
)
from family_registry.services import members

router = APIRouter(prefix="/v1/auth", tags=["auth"])


@router.post("/register", response_model=MemberResponse, status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    member = unwrap(
        members.register_member(
            db,
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            phone=payload.phone,
            gender=GenderEnum(payload.gender) if payload.gender else None,
            date_of_birth=payload.date_of_birth,
            place_of_birth=payload.place_of_birth,
            family_code=payload.family_code,
            relationship=payload.relationship,
        )
    )
    return MemberResponse.model_validate(member, from_attributes=True)


@router.post("/login", response_model=SessionResponse)
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)):
    member = unwrap(members.sign_in(db, payload.login_id, payload.password))
    token = create_session_token(member.id, member.role.value, member.family_code)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_days * 24 * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.app_env == "production",
    )
    return SessionResponse(member=MemberResponse.model_validate(member, from_attributes=True), token=token)


@router.post("/validate", response_model=CredentialCheckResponse)
def validate_credentials(payload: LoginRequest, db: Session = Depends(get_db)):
    """Checks credentials without opening a session, so pending members can see their status."""
    member = unwrap(members.sign_in(db, payload.login_id, payload.password, allow_unverified=True))
    return CredentialCheckResponse(
        valid=True, verification_status=member.verification_status.value, role=member.role.value
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(response: Response):
    response.delete_cookie(settings.session_cookie_name)


@router.get("/me", response_model=MemberResponse)
def get_me(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    member = unwrap(members.get_member(db, principal.id))
    return MemberResponse.model_validate(member, from_attributes=True)


@router.get("/check-email", response_model=ExistsResponse)
def check_email(email: str, db: Session = Depends(get_db)):
    return ExistsResponse(exists=unwrap(members.check_email_exists(db, email)))


@router.get("/check-login-id", response_model=ExistsResponse)
def check_login_id(login_id: str, db: Session = Depends(get_db)):
    return ExistsResponse(exists=unwrap(members.check_login_id_exists(db, login_id)))


@router.get("/family-code/{family_code}", response_model=FamilyCodeResponse)
def describe_family_code(family_code: str, db: Session = Depends(get_db)):
    info = unwrap(members.describe_family_code(db, family_code))
    return FamilyCodeResponse.model_validate(info, from_attributes=True)
