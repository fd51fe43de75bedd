from __future__ import annotations

from fastapi import HTTPException

from family_registry.core.auth import Principal


def normalize_family_code(family_code: str | None) -> str | None:
    if family_code is None:
        return None
    code = family_code.strip().upper()
    return code or None


def can_access_user_data(principal: Principal, target_user_id: int) -> bool:
    if principal.is_admin:
        return True
    return principal.id == target_user_id


def is_same_family(principal: Principal, family_code: str | None) -> bool:
    if principal.is_admin:
        return True
    own = normalize_family_code(principal.family_code)
    target = normalize_family_code(family_code)
    if own is None or target is None:
        return False
    return own == target


def require_same_family(principal: Principal, family_code: str | None) -> Principal:
    if not is_same_family(principal, family_code):
        raise HTTPException(status_code=403, detail="not a member of this family")
    return principal
