from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from family_registry.core.auth import Principal, get_principal
from family_registry.core.db import get_db
from family_registry.core.errors import unwrap
from family_registry.models.entities import FamilyTree
from family_registry.schemas.family_tree import (
    ConnectionCreate,
    ConnectionResponse,
    ConnectionUpdate,
    EnsureNodesResponse,
    FamilyTreeResponse,
    GraphResponse,
    LayoutResponse,
    LayoutUpdate,
    MemberCacheResponse,
    NodeResponse,
)
from family_registry.services import family_tree
from family_registry.services.access import require_same_family

router = APIRouter(prefix="/v1/family-tree", tags=["family-tree"])
connections_router = APIRouter(prefix="/v1/connections", tags=["family-tree"])


def _require_tree(db: Session, principal: Principal, family_code: str) -> FamilyTree:
    require_same_family(principal, family_code)
    tree = unwrap(family_tree.get_family_tree_by_code(db, family_code))
    if tree is None:
        raise HTTPException(status_code=404, detail="family tree not found")
    return tree


@router.get("/{family_code}", response_model=FamilyTreeResponse)
def get_tree(family_code: str, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    tree = _require_tree(db, principal, family_code)
    return FamilyTreeResponse.model_validate(tree, from_attributes=True)


@router.get("/{family_code}/graph", response_model=GraphResponse)
def get_graph(family_code: str, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    require_same_family(principal, family_code)
    graph = unwrap(family_tree.list_graph(db, family_code))
    return GraphResponse(
        tree=FamilyTreeResponse.model_validate(graph.tree, from_attributes=True),
        nodes=[NodeResponse.model_validate(node, from_attributes=True) for node in graph.nodes],
        connections=[ConnectionResponse.model_validate(edge, from_attributes=True) for edge in graph.connections],
    )


@router.post("/{family_code}/ensure-nodes", response_model=EnsureNodesResponse)
def ensure_nodes(family_code: str, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    require_same_family(principal, family_code)
    result = unwrap(family_tree.ensure_nodes_for_family(db, family_code))
    return EnsureNodesResponse.model_validate(result, from_attributes=True)


@router.put("/{family_code}/layout", response_model=LayoutResponse)
def save_layout(
    family_code: str,
    payload: LayoutUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    tree = _require_tree(db, principal, family_code)
    positions = [(item.node_id, item.x, item.y) for item in payload.positions]
    return LayoutResponse(updated=unwrap(family_tree.save_layout(db, tree.id, positions)))


@router.post("/{family_code}/member-arrays", response_model=MemberCacheResponse)
def refresh_member_arrays(
    family_code: str, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)
):
    tree = _require_tree(db, principal, family_code)
    cache = unwrap(family_tree.update_family_member_arrays(db, tree.family_code))
    return MemberCacheResponse(
        family_code=tree.family_code, member_ids=cache.member_ids, member_count=cache.member_count, stats=cache.stats
    )


@connections_router.post("", response_model=ConnectionResponse, status_code=201)
def create_connection(
    payload: ConnectionCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    require_same_family(principal, unwrap(family_tree.tree_family_code(db, payload.family_tree_id)))
    connection = unwrap(
        family_tree.create_connection(
            db,
            family_tree_id=payload.family_tree_id,
            source_node_id=payload.source_node_id,
            target_node_id=payload.target_node_id,
            relationship_type=payload.relationship_type,
            relationship_label=payload.relationship_label,
            acting_member_id=principal.id,
            source_handle=payload.source_handle,
            target_handle=payload.target_handle,
        )
    )
    return ConnectionResponse.model_validate(connection, from_attributes=True)


@connections_router.patch("/{connection_id}", response_model=ConnectionResponse)
def update_connection(
    connection_id: int,
    payload: ConnectionUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    require_same_family(principal, unwrap(family_tree.connection_family_code(db, connection_id)))
    connection = unwrap(
        family_tree.update_connection(
            db,
            connection_id,
            relationship_type=payload.relationship_type,
            relationship_label=payload.relationship_label,
            acting_member_id=principal.id,
        )
    )
    return ConnectionResponse.model_validate(connection, from_attributes=True)


@connections_router.delete("/{connection_id}", status_code=204)
def delete_connection(
    connection_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    require_same_family(principal, unwrap(family_tree.connection_family_code(db, connection_id)))
    unwrap(family_tree.delete_connection(db, connection_id, acting_member_id=principal.id))
