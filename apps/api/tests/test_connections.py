import json

import pytest
from sqlalchemy import select

from family_registry.models.entities import AuditLog, Connection
from family_registry.services.family_tree import ensure_nodes_for_family, list_graph


@pytest.fixture
def graph(db_session, factory, fam123):
    tree, asha, bala = fam123
    ensure_nodes_for_family(db_session, "FAM123")
    nodes = {node.member_id: node.id for node in list_graph(db_session, "FAM123").data.nodes}
    return tree, asha, bala, nodes[asha.id], nodes[bala.id]


def _edge(tree_id, source, target, **overrides):
    payload = {
        "family_tree_id": tree_id,
        "source_node_id": source,
        "target_node_id": target,
        "relationship_type": "parent-child",
        "relationship_label": "Mother",
    }
    payload.update(overrides)
    return payload


def test_create_connection_and_list_graph(client, factory, graph):
    tree, asha, _, asha_node, bala_node = graph
    headers = factory.headers(asha)

    created = client.post("/v1/connections", json=_edge(tree.id, asha_node, bala_node), headers=headers)
    assert created.status_code == 201
    body = created.json()
    assert body["relationship_type"] == "parent-child"
    assert body["created_by_id"] == asha.id

    duplicate = client.post("/v1/connections", json=_edge(tree.id, asha_node, bala_node), headers=headers)
    assert duplicate.status_code == 409

    graph_response = client.get("/v1/family-tree/FAM123/graph", headers=headers)
    assert graph_response.status_code == 200
    assert len(graph_response.json()["nodes"]) == 2
    assert [edge["id"] for edge in graph_response.json()["connections"]] == [body["id"]]


def test_create_connection_validation(client, db_session, factory, graph):
    tree, asha, _, asha_node, bala_node = graph
    headers = factory.headers(asha)

    no_label = client.post("/v1/connections", json=_edge(tree.id, asha_node, bala_node, relationship_label=""), headers=headers)
    assert no_label.status_code == 400

    bad_type = client.post(
        "/v1/connections", json=_edge(tree.id, asha_node, bala_node, relationship_type="enemy"), headers=headers
    )
    assert bad_type.status_code == 400

    self_loop = client.post("/v1/connections", json=_edge(tree.id, asha_node, asha_node), headers=headers)
    assert self_loop.status_code == 400

    missing = client.post("/v1/connections", json=_edge(tree.id, asha_node, 9999), headers=headers)
    assert missing.status_code == 404

    other = factory.member("zed@example.com", "Zed", family_code="FAM999")
    factory.tree("FAM999", created_by=other, root=other)
    ensure_nodes_for_family(db_session, "FAM999")
    foreign_node = list_graph(db_session, "FAM999").data.nodes[0].id
    cross = client.post("/v1/connections", json=_edge(tree.id, asha_node, foreign_node), headers=headers)
    assert cross.status_code == 400


def test_connection_writes_are_family_scoped(client, db_session, factory, graph):
    tree, asha, _, asha_node, bala_node = graph
    outsider = factory.member("zed@example.com", "Zed", family_code="FAM999")
    created = client.post("/v1/connections", json=_edge(tree.id, asha_node, bala_node), headers=factory.headers(asha))
    connection_id = created.json()["id"]

    forbidden_create = client.post(
        "/v1/connections", json=_edge(tree.id, asha_node, bala_node, relationship_label="Son"),
        headers=factory.headers(outsider),
    )
    assert forbidden_create.status_code == 403

    forbidden = client.patch(
        f"/v1/connections/{connection_id}",
        json={"relationship_type": "sibling", "relationship_label": "Brother"},
        headers=factory.headers(outsider),
    )
    assert forbidden.status_code == 403
    assert client.delete(f"/v1/connections/{connection_id}", headers=factory.headers(outsider)).status_code == 403

    unchanged = db_session.get(Connection, connection_id)
    assert unchanged.relationship_label == "Mother"


def test_update_and_delete_connection_are_audited(client, db_session, factory, graph):
    tree, asha, bala, asha_node, bala_node = graph
    created = client.post("/v1/connections", json=_edge(tree.id, asha_node, bala_node), headers=factory.headers(asha))
    connection_id = created.json()["id"]

    updated = client.patch(
        f"/v1/connections/{connection_id}",
        json={"relationship_type": "parent-child", "relationship_label": "Parent"},
        headers=factory.headers(bala),
    )
    assert updated.status_code == 200
    assert updated.json()["relationship_label"] == "Parent"
    assert updated.json()["updated_by_id"] == bala.id

    half = client.patch(
        f"/v1/connections/{connection_id}", json={"relationship_type": "spouse"}, headers=factory.headers(bala)
    )
    assert half.status_code == 400

    assert client.delete(f"/v1/connections/{connection_id}", headers=factory.headers(asha)).status_code == 204

    entries = db_session.execute(
        select(AuditLog).where(AuditLog.entity_type == "connection").order_by(AuditLog.id)
    ).scalars().all()
    assert [entry.action for entry in entries] == ["create", "update", "delete"]
    update_changes = json.loads(entries[1].changes_json)
    assert update_changes["old"]["relationship_label"] == "Mother"
    assert update_changes["new"]["relationship_label"] == "Parent"
    assert entries[1].actor_member_id == bala.id


def test_unknown_connection_is_not_found(client, factory, graph):
    _, asha, _, _, _ = graph
    headers = factory.headers(asha)
    assert client.patch(
        "/v1/connections/4242", json={"relationship_type": "spouse", "relationship_label": "Wife"}, headers=headers
    ).status_code == 404
    assert client.delete("/v1/connections/4242", headers=headers).status_code == 404


def test_save_layout(client, db_session, factory, graph):
    tree, asha, _, asha_node, bala_node = graph
    headers = factory.headers(asha)

    saved = client.put(
        "/v1/family-tree/FAM123/layout",
        json={"positions": [{"node_id": asha_node, "x": 10, "y": 20}, {"node_id": bala_node, "x": 300, "y": 20}]},
        headers=headers,
    )
    assert saved.status_code == 200
    assert saved.json() == {"updated": 2}

    db_session.expire_all()
    nodes = {node.id: node for node in list_graph(db_session, "FAM123").data.nodes}
    assert (nodes[asha_node].position_x, nodes[asha_node].position_y) == (10, 20)

    other = factory.member("zed@example.com", "Zed", family_code="FAM999")
    factory.tree("FAM999", created_by=other, root=other)
    ensure_nodes_for_family(db_session, "FAM999")
    foreign_node = list_graph(db_session, "FAM999").data.nodes[0].id
    rejected = client.put(
        "/v1/family-tree/FAM123/layout",
        json={"positions": [{"node_id": foreign_node, "x": 0, "y": 0}]},
        headers=headers,
    )
    assert rejected.status_code == 400


def test_ensure_nodes_endpoint(client, factory, fam123):
    _, asha, _ = fam123
    response = client.post("/v1/family-tree/FAM123/ensure-nodes", headers=factory.headers(asha))
    assert response.status_code == 200
    assert response.json() == {"family_code": "FAM123", "created": 2, "existing": 0, "restored": 0}


def test_member_search_endpoint(client, factory, fam123):
    tree, asha, bala = fam123
    headers = factory.headers(asha)
    client.post("/v1/family-tree/FAM123/ensure-nodes", headers=headers)

    found = client.get("/v1/members/search", params={"family_tree_id": tree.id, "query": "bala"}, headers=headers)
    assert found.status_code == 200
    assert [item["member"]["id"] for item in found.json()["items"]] == [bala.id]

    selection = client.get("/v1/members/selection", params={"family_tree_id": tree.id}, headers=headers)
    assert selection.json()["items"][0]["display_name"] == "Asha Rao (Root Member)"

    outsider = factory.member("zed@example.com", "Zed", family_code="FAM999")
    denied = client.get("/v1/members/search", params={"family_tree_id": tree.id}, headers=factory.headers(outsider))
    assert denied.status_code == 403
