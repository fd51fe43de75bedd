from datetime import timedelta

import pytest
from fastapi import HTTPException

from family_registry.core.auth import Principal
from family_registry.core.security import create_session_token
from family_registry.models.entities import RoleEnum
from family_registry.services.access import (
    can_access_user_data,
    is_same_family,
    normalize_family_code,
    require_same_family,
)


def _citizen(member_id=1, family_code="FAM123"):
    return Principal(id=member_id, role=RoleEnum.citizen, family_code=family_code)


def _admin():
    return Principal(id=99, role=RoleEnum.admin, family_code=None)


def test_normalize_family_code():
    assert normalize_family_code("  fam123 ") == "FAM123"
    assert normalize_family_code("   ") is None
    assert normalize_family_code(None) is None


def test_user_data_access_is_self_or_admin():
    assert can_access_user_data(_citizen(1), 1)
    assert not can_access_user_data(_citizen(1), 2)
    assert can_access_user_data(_admin(), 2)


def test_same_family_compares_codes_case_insensitively():
    assert is_same_family(_citizen(family_code="FAM123"), "fam123")
    assert not is_same_family(_citizen(family_code="FAM123"), "FAM999")


def test_same_family_is_false_when_either_code_missing():
    assert not is_same_family(_citizen(family_code=None), "FAM123")
    assert not is_same_family(_citizen(family_code="FAM123"), None)
    assert not is_same_family(_citizen(family_code=None), None)


def test_admin_is_exempt_from_family_scoping():
    assert is_same_family(_admin(), "FAM999")
    assert is_same_family(_admin(), None)


def test_require_same_family_raises_forbidden():
    with pytest.raises(HTTPException) as exc_info:
        require_same_family(_citizen(family_code="FAM123"), "FAM999")
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "not a member of this family"


def test_family_tree_endpoint_requires_session(client, fam123):
    assert client.get("/v1/family-tree/FAM123").status_code == 401

    bad = client.get("/v1/family-tree/FAM123", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


def test_expired_session_is_rejected(client, fam123):
    _, asha, _ = fam123
    token = create_session_token(asha.id, "citizen", "FAM123", expires_delta=timedelta(seconds=-5))
    response = client.get("/v1/family-tree/FAM123", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_session_for_deleted_member_is_rejected(client):
    token = create_session_token(4242, "citizen", "FAM123")
    response = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_other_family_is_forbidden_but_admin_is_not(client, factory, fam123):
    outsider = factory.member("zed@example.com", "Zed", family_code="FAM999")
    admin = factory.member("root@example.com", "Registry Admin", role="admin")
    _, asha, _ = fam123

    assert client.get("/v1/family-tree/FAM123", headers=factory.headers(outsider)).status_code == 403
    assert client.get("/v1/family-tree/fam123", headers=factory.headers(asha)).status_code == 200
    assert client.get("/v1/family-tree/FAM123", headers=factory.headers(admin)).status_code == 200


def test_family_code_is_reread_from_member_row(client, db_session, factory, fam123):
    _, _, bala = fam123
    headers = factory.headers(bala)
    bala.family_code = None
    db_session.commit()

    # The token still carries FAM123 but the member has since left.
    assert client.get("/v1/family-tree/FAM123", headers=headers).status_code == 403
