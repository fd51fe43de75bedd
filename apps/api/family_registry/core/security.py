from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from family_registry.core.config import settings


# bcrypt refuses longer inputs.
MAX_PASSWORD_BYTES = 72


class InvalidSessionToken(Exception):
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


def create_session_token(
    member_id: int,
    role: str,
    family_code: str | None,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.session_ttl_days))
    claims: dict[str, Any] = {
        "sub": str(member_id),
        "role": role,
        "family_code": family_code,
        "exp": expire,
    }
    return jwt.encode(claims, settings.session_secret, algorithm=settings.session_algorithm)


def decode_session_token(token: str) -> dict[str, Any]:
    """Return the verified claims; expired or tampered tokens raise InvalidSessionToken."""
    try:
        claims = jwt.decode(token, settings.session_secret, algorithms=[settings.session_algorithm])
    except JWTError as exc:
        raise InvalidSessionToken(str(exc)) from exc
    subject = claims.get("sub")
    if not subject or not str(subject).isdigit():
        raise InvalidSessionToken("token subject missing")
    return claims
