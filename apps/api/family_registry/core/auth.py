from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Cookie, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from family_registry.core.config import settings
from family_registry.core.db import get_db
from family_registry.core.security import InvalidSessionToken, decode_session_token
from family_registry.models.entities import Member, RoleEnum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    id: int
    role: RoleEnum
    family_code: str | None

    @property
    def is_admin(self) -> bool:
        return self.role == RoleEnum.admin


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def get_principal(
    db: Session = Depends(get_db),
    auth_token: str | None = Cookie(default=None, alias=settings.session_cookie_name),
    authorization: str | None = Header(default=None),
) -> Principal:
    """
    Auth boundary.

    The session token is a signed JWT set as an HTTP-only cookie at sign-in (API
    clients may send it as a Bearer token instead). Role and family code are
    re-read from the member row so a join/leave takes effect before the token
    is reissued.
    """
    token = auth_token or _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="authentication required")
    try:
        claims = decode_session_token(token)
    except InvalidSessionToken as exc:
        logger.info("rejected session token: %s", exc)
        raise HTTPException(status_code=401, detail="invalid or expired session") from None

    member = db.get(Member, int(claims["sub"]))
    if member is None:
        raise HTTPException(status_code=401, detail="invalid or expired session")
    return Principal(id=member.id, role=member.role, family_code=member.family_code)


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="admin access required")
    return principal
