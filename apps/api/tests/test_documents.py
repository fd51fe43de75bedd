import pytest

from family_registry.core.config import settings
from family_registry.services.family_tree import ensure_nodes_for_family, list_graph


@pytest.fixture
def nodes(db_session, fam123):
    ensure_nodes_for_family(db_session, "FAM123")
    return {node.member_id: node.id for node in list_graph(db_session, "FAM123").data.nodes}


def _upload(client, headers, **fields):
    data = {"title": "Birth record", "document_type": "birth_certificate"}
    data.update({key: str(value) for key, value in fields.items()})
    return client.post(
        "/v1/documents/upload",
        files={"file": ("record.pdf", b"%PDF-1.4 data", "application/pdf")},
        data=data,
        headers=headers,
    )


def test_upload_personal_document(client, factory, fam123):
    _, asha, _ = fam123
    response = _upload(client, factory.headers(asha))
    assert response.status_code == 201
    body = response.json()
    assert body["owner_id"] == asha.id
    assert body["family_member_id"] is None
    assert body["file_size"] == len(b"%PDF-1.4 data")
    assert body["mime_type"] == "application/pdf"


def test_upload_validation(client, factory, fam123, monkeypatch):
    _, asha, _ = fam123
    headers = factory.headers(asha)

    assert _upload(client, headers, title="").status_code == 400
    assert _upload(client, headers, document_type="passport").status_code == 400
    assert _upload(client, headers, family_member_id=4242).status_code == 404

    monkeypatch.setattr(settings, "max_document_bytes", 4)
    assert _upload(client, headers).status_code == 400


def test_upload_for_other_family_member_is_forbidden(client, factory, fam123, nodes):
    _, _, bala = fam123
    outsider = factory.member("zed@example.com", "Zed", family_code="FAM999")
    response = _upload(client, factory.headers(outsider), family_member_id=nodes[bala.id])
    assert response.status_code == 403


def test_family_member_documents_visibility(client, factory, fam123, nodes):
    _, asha, bala = fam123
    cousin = factory.member("chitra@example.com", "Chitra Nair", family_code="FAM123", relationship="cousin")
    admin = factory.member("root@example.com", "Registry Admin", role="admin")
    bala_node = nodes[bala.id]

    private = _upload(client, factory.headers(asha), family_member_id=bala_node, title="Private")
    public = _upload(client, factory.headers(asha), family_member_id=bala_node, title="Public", is_public="true")
    assert private.status_code == 201
    assert public.json()["is_public"] is True
    assert private.json()["owner_id"] is None

    def titles(member):
        response = client.get(f"/v1/documents/member/{bala_node}", headers=factory.headers(member))
        assert response.status_code == 200
        return [item["title"] for item in response.json()["items"]]

    # Newest first; private only for uploader, represented member and admins.
    assert titles(asha) == ["Public", "Private"]
    assert titles(bala) == ["Public", "Private"]
    assert titles(admin) == ["Public", "Private"]
    assert titles(cousin) == ["Public"]

    outsider = factory.member("zed@example.com", "Zed", family_code="FAM999")
    assert client.get(f"/v1/documents/member/{bala_node}", headers=factory.headers(outsider)).status_code == 403
    assert client.get("/v1/documents/member/4242", headers=factory.headers(asha)).status_code == 404


def test_user_documents_are_private_to_owner(client, factory, fam123):
    _, asha, bala = fam123
    admin = factory.member("root@example.com", "Registry Admin", role="admin")
    outsider = factory.member("zed@example.com", "Zed", family_code="FAM999")
    _upload(client, factory.headers(asha))

    assert len(client.get(f"/v1/documents/user/{asha.id}", headers=factory.headers(asha)).json()["items"]) == 1
    # Relatives may list, but private documents are filtered out.
    relative = client.get(f"/v1/documents/user/{asha.id}", headers=factory.headers(bala))
    assert relative.status_code == 200
    assert relative.json()["items"] == []
    assert client.get(f"/v1/documents/user/{asha.id}", headers=factory.headers(outsider)).status_code == 403
    assert client.get("/v1/documents/user/4242", headers=factory.headers(bala)).status_code == 404
    assert len(client.get(f"/v1/documents/user/{asha.id}", headers=factory.headers(admin)).json()["items"]) == 1


def test_download_document(client, factory, fam123):
    _, asha, bala = fam123
    document_id = _upload(client, factory.headers(asha)).json()["id"]

    response = client.get(f"/v1/documents/{document_id}/download", headers=factory.headers(asha))
    assert response.status_code == 200
    assert response.content == b"%PDF-1.4 data"
    assert response.headers["content-type"] == "application/pdf"

    assert client.get(f"/v1/documents/{document_id}/download", headers=factory.headers(bala)).status_code == 403
    assert client.get("/v1/documents/4242/download", headers=factory.headers(asha)).status_code == 404


def test_public_personal_document_is_visible_to_family(client, factory, fam123):
    _, asha, bala = fam123
    outsider = factory.member("zed@example.com", "Zed", family_code="FAM999")
    uploaded = _upload(client, factory.headers(asha), title="Wedding photo", document_type="photo", is_public="true")
    document_id = uploaded.json()["id"]

    listing = client.get(f"/v1/documents/user/{asha.id}", headers=factory.headers(bala))
    assert listing.status_code == 200
    assert [item["title"] for item in listing.json()["items"]] == ["Wedding photo"]
    assert client.get(f"/v1/documents/{document_id}/download", headers=factory.headers(bala)).status_code == 200

    assert client.get(f"/v1/documents/user/{asha.id}", headers=factory.headers(outsider)).status_code == 403
    assert client.get(f"/v1/documents/{document_id}/download", headers=factory.headers(outsider)).status_code == 403
