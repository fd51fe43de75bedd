from sqlalchemy import func, select

from family_registry.models.entities import FamilyTree, FamilyTreeNode, Member, Notification, NotificationTypeEnum

PASSWORD = "secret123"


def _register(client, **overrides):
    payload = {"email": "new@example.com", "password": "hunter22", "full_name": "Nila Iyer"}
    payload.update(overrides)
    return client.post("/v1/auth/register", json=payload)


def test_register_creates_pending_member_and_new_family(client, db_session):
    response = _register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["login_id"].startswith("BV")
    assert len(body["login_id"]) == 8
    assert body["verification_status"] == "pending"
    assert body["family_code"].startswith("BV")

    tree = db_session.execute(select(FamilyTree).where(FamilyTree.family_code == body["family_code"])).scalar_one()
    assert tree.name == "Nila Iyer's Family Tree"
    assert tree.created_by_id == body["id"]
    assert tree.root_member_id is None
    # Nodes are materialized lazily.
    assert db_session.execute(select(func.count(FamilyTreeNode.id))).scalar_one() == 0


def test_register_rejects_duplicate_email(client):
    assert _register(client).status_code == 201
    duplicate = _register(client, email="NEW@example.com", full_name="Someone Else")
    assert duplicate.status_code == 409


def test_register_rejects_password_longer_than_bcrypt_accepts(client, db_session):
    assert _register(client, password="x" * 100).status_code == 400
    # Length is measured in UTF-8 bytes, not characters.
    assert _register(client, password="\u00e9" * 40).status_code == 400
    assert db_session.execute(select(func.count(Member.id))).scalar_one() == 0
    assert _register(client, password="x" * 72).status_code == 201


def test_register_into_existing_family(client, db_session, fam123):
    _, asha, _ = fam123

    unknown = _register(client, family_code="NOPE00", relationship="daughter")
    assert unknown.status_code == 404

    missing_relationship = _register(client, family_code="FAM123")
    assert missing_relationship.status_code == 400

    joined = _register(client, family_code="fam123", relationship="daughter")
    assert joined.status_code == 201
    assert joined.json()["family_code"] == "FAM123"
    assert joined.json()["relationship_to_root"] == "daughter"

    notes = db_session.execute(select(Notification).where(Notification.user_id == asha.id)).scalars().all()
    assert len(notes) == 1
    assert notes[0].type == NotificationTypeEnum.member_added


def test_login_requires_verification(client, fam123):
    _, asha, bala = fam123

    pending = client.post("/v1/auth/login", json={"login_id": bala.login_id, "password": PASSWORD})
    assert pending.status_code == 403

    check = client.post("/v1/auth/validate", json={"login_id": bala.login_id, "password": PASSWORD})
    assert check.status_code == 200
    assert check.json() == {"valid": True, "verification_status": "pending", "role": "citizen"}

    wrong = client.post("/v1/auth/login", json={"login_id": asha.login_id, "password": "nope"})
    assert wrong.status_code == 401


def test_login_sets_session_cookie(client, fam123):
    _, asha, _ = fam123

    response = client.post("/v1/auth/login", json={"login_id": "ASHA@example.com", "password": PASSWORD})
    assert response.status_code == 200
    assert "auth-token" in response.cookies

    me = client.get("/v1/auth/me")
    assert me.status_code == 200
    assert me.json()["id"] == asha.id

    assert client.post("/v1/auth/logout").status_code == 204
    client.cookies.clear()
    assert client.get("/v1/auth/me").status_code == 401


def test_login_by_login_id_is_case_insensitive(client, fam123):
    _, asha, _ = fam123
    response = client.post("/v1/auth/login", json={"login_id": asha.login_id.lower(), "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["member"]["email"] == "asha@example.com"


def test_admin_login_ignores_verification_status(client, factory):
    admin = factory.member("root@example.com", "Registry Admin", role="admin", status="pending")
    response = client.post("/v1/auth/login", json={"login_id": admin.login_id, "password": PASSWORD})
    assert response.status_code == 200


def test_existence_probes(client, fam123):
    _, asha, _ = fam123
    assert client.get("/v1/auth/check-email", params={"email": "Asha@Example.com"}).json() == {"exists": True}
    assert client.get("/v1/auth/check-email", params={"email": "nobody@example.com"}).json() == {"exists": False}
    assert client.get("/v1/auth/check-login-id", params={"login_id": asha.login_id}).json() == {"exists": True}


def test_describe_family_code(client, fam123):
    known = client.get("/v1/auth/family-code/fam123")
    assert known.status_code == 200
    assert known.json() == {
        "family_code": "FAM123",
        "exists": True,
        "family_name": "Asha Rao's Family Tree",
        "root_member_name": "Asha Rao",
    }

    unknown = client.get("/v1/auth/family-code/zzz999")
    assert unknown.json()["exists"] is False


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
