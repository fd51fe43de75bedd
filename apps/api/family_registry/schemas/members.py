from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    full_name: str = Field(min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    gender: str | None = Field(default=None, pattern="^(male|female|other)$")
    date_of_birth: date | None = None
    place_of_birth: str | None = Field(default=None, max_length=255)
    family_code: str | None = Field(default=None, max_length=32)
    relationship: str | None = Field(default=None, max_length=64)


class LoginRequest(BaseModel):
    login_id: str = Field(min_length=1, description="Login id or email address")
    password: str = Field(min_length=1)


class MemberResponse(BaseModel):
    id: int
    login_id: str
    email: EmailStr
    full_name: str
    phone: str | None
    gender: str | None
    date_of_birth: date | None
    place_of_birth: str | None
    relationship_to_root: str | None
    role: str
    family_code: str | None
    verification_status: str
    joined_family_at: datetime | None
    verified_at: datetime | None
    created_at: datetime


class MemberListResponse(BaseModel):
    items: list[MemberResponse]


class SessionResponse(BaseModel):
    member: MemberResponse
    token: str


class CredentialCheckResponse(BaseModel):
    valid: bool
    verification_status: str
    role: str


class ExistsResponse(BaseModel):
    exists: bool


class FamilyCodeResponse(BaseModel):
    family_code: str
    exists: bool
    family_name: str | None = None
    root_member_name: str | None = None


class JoinFamilyRequest(BaseModel):
    family_code: str = Field(min_length=1, max_length=32)
    relationship: str | None = Field(default=None, max_length=64)
