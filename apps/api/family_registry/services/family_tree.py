from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from family_registry.core.errors import store_operation
from family_registry.core.outcome import ErrorKind, Outcome
from family_registry.models.entities import (
    Connection,
    FamilyTree,
    FamilyTreeNode,
    GenderEnum,
    Member,
    NodeVisibilityEnum,
    RelationshipTypeEnum,
    VerificationStatusEnum,
)
from family_registry.services.access import normalize_family_code
from family_registry.services.audit import record_audit

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
GRID_COLUMNS = 5
GRID_DX = 250
GRID_DY = 150
ROOT_NODE_COLOR = "#e3f2fd"
MEMBER_NODE_COLOR = "#fff3e0"


@dataclass(frozen=True)
class EnsureNodesResult:
    family_code: str
    created: int = 0
    existing: int = 0
    restored: int = 0


@dataclass(frozen=True)
class MemberSearchFilters:
    query: str | None = None
    relationship: str | None = None
    gender: str | None = None
    location: str | None = None


@dataclass(frozen=True)
class SelectionEntry:
    member_id: int
    node_id: int
    full_name: str
    relationship: str | None
    is_root_member: bool
    display_name: str


@dataclass(frozen=True)
class MemberCache:
    member_ids: list[int]
    member_count: int
    stats: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class SweepResult:
    processed: int
    errors: int
    total: int


@dataclass(frozen=True)
class FamilySummary:
    id: int
    name: str
    family_code: str
    is_active: bool
    member_count: int
    created_at: datetime


@dataclass(frozen=True)
class NodeScope:
    node_id: int
    member_id: int
    family_tree_id: int
    family_code: str


@dataclass(frozen=True)
class TreeGraph:
    tree: FamilyTree
    nodes: list[FamilyTreeNode]
    connections: list[Connection]


def _tree_by_code(db: Session, family_code: str | None) -> FamilyTree | None:
    code = normalize_family_code(family_code)
    if code is None:
        return None
    return db.execute(select(FamilyTree).where(FamilyTree.family_code == code)).scalar_one_or_none()


def _bound_members(db: Session, family_code: str) -> list[Member]:
    return list(
        db.execute(
            select(Member)
            .where(Member.family_code == family_code)
            .order_by(Member.joined_family_at.asc(), Member.id.asc())
        ).scalars().all()
    )


def _tree_nodes(db: Session, tree_id: int) -> list[FamilyTreeNode]:
    return list(
        db.execute(
            select(FamilyTreeNode).where(FamilyTreeNode.family_tree_id == tree_id).order_by(FamilyTreeNode.id.asc())
        ).scalars().all()
    )


def _connection_snapshot(connection: Connection) -> dict:
    return {
        "family_tree_id": connection.family_tree_id,
        "source_node_id": connection.source_node_id,
        "target_node_id": connection.target_node_id,
        "relationship_type": connection.relationship_type.value,
        "relationship_label": connection.relationship_label,
    }


def _validate_relationship(
    relationship_type: str | None, relationship_label: str | None
) -> Outcome[tuple[RelationshipTypeEnum, str]]:
    label = (relationship_label or "").strip()
    if not relationship_type or not label:
        return Outcome.failure(ErrorKind.invalid_input, "relationship type and label are both required")
    try:
        rel_type = RelationshipTypeEnum(relationship_type)
    except ValueError:
        return Outcome.failure(ErrorKind.invalid_input, f"unknown relationship type: {relationship_type}")
    return Outcome.success((rel_type, label))


def refresh_tree_state(db: Session, tree: FamilyTree) -> None:
    """
    Re-derive root and active flag from the members bound to the tree.

    The root is the earliest-joined verified member; a tree with no
    non-rejected member left is deactivated. Node colors follow the root.
    Caller commits.
    """
    members = _bound_members(db, tree.family_code)
    current_root = next((m for m in members if m.id == tree.root_member_id), None)
    if current_root is None or current_root.verification_status != VerificationStatusEnum.verified:
        verified = [m for m in members if m.verification_status == VerificationStatusEnum.verified]
        tree.root_member_id = verified[0].id if verified else None
    tree.is_active = any(m.verification_status != VerificationStatusEnum.rejected for m in members)
    for node in _tree_nodes(db, tree.id):
        node.color = ROOT_NODE_COLOR if node.member_id == tree.root_member_id else MEMBER_NODE_COLOR


def project_member_cache(nodes: Iterable[FamilyTreeNode]) -> MemberCache:
    """Pure projection of the denormalized member cache from a tree's node set."""
    visible = sorted((node for node in nodes if node.is_visible), key=lambda node: node.member_id)
    members = [node.member for node in visible]
    stats = {
        "total": len(members),
        "verified": sum(1 for m in members if m.verification_status == VerificationStatusEnum.verified),
        "pending": sum(1 for m in members if m.verification_status == VerificationStatusEnum.pending),
        "male": sum(1 for m in members if m.gender == GenderEnum.male),
        "female": sum(1 for m in members if m.gender == GenderEnum.female),
        "other": sum(1 for m in members if m.gender in (GenderEnum.other, None)),
    }
    return MemberCache(member_ids=[node.member_id for node in visible], member_count=len(visible), stats=stats)


def write_member_cache(db: Session, tree: FamilyTree) -> MemberCache:
    cache = project_member_cache(_tree_nodes(db, tree.id))
    tree.member_ids = json.dumps(cache.member_ids)
    tree.member_count = cache.member_count
    tree.member_stats = json.dumps(cache.stats)
    tree.members_refreshed_at = datetime.now(timezone.utc)
    return cache


@store_operation("get_family_tree_by_code")
def get_family_tree_by_code(db: Session, family_code: str | None) -> Outcome[FamilyTree | None]:
    return Outcome.success(_tree_by_code(db, family_code))


def _missing_members(db: Session, tree: FamilyTree) -> list[Member]:
    have_node = set(
        db.execute(select(FamilyTreeNode.member_id).where(FamilyTreeNode.family_tree_id == tree.id)).scalars().all()
    )
    return [member for member in _bound_members(db, tree.family_code) if member.id not in have_node]


def _insert_node(db: Session, tree_id: int, member_id: int, *, is_root: bool) -> bool:
    """
    Create the node for (tree, member); False when another writer got there first.

    The unique constraint on (family_tree_id, member_id) is the only guard.
    """
    slot = db.execute(
        select(func.count(FamilyTreeNode.id)).where(FamilyTreeNode.family_tree_id == tree_id)
    ).scalar_one()
    db.add(
        FamilyTreeNode(
            family_tree_id=tree_id,
            member_id=member_id,
            position_x=(slot % GRID_COLUMNS) * GRID_DX,
            position_y=(slot // GRID_COLUMNS) * GRID_DY,
            color=ROOT_NODE_COLOR if is_root else MEMBER_NODE_COLOR,
        )
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("node for member %s in tree %s already created concurrently", member_id, tree_id)
        return False
    return True


@store_operation("ensure_nodes_for_family")
def ensure_nodes_for_family(db: Session, family_code: str) -> Outcome[EnsureNodesResult]:
    tree = _tree_by_code(db, family_code)
    if tree is None:
        return Outcome.failure(ErrorKind.not_found, "family tree not found")
    tree_id, root_id, code = tree.id, tree.root_member_id, tree.family_code

    created_for: set[int] = set()
    for member_id in [member.id for member in _missing_members(db, tree)]:
        if _insert_node(db, tree_id, member_id, is_root=member_id == root_id):
            created_for.add(member_id)

    # Nodes that lost the insert race above are counted here as existing.
    existing = restored = 0
    bound_ids = {member.id for member in _bound_members(db, code)}
    for node in _tree_nodes(db, tree_id):
        if node.member_id not in bound_ids or node.member_id in created_for:
            continue
        if node.visibility == NodeVisibilityEnum.hidden:
            node.visibility = NodeVisibilityEnum.visible
            restored += 1
        else:
            existing += 1
    created = len(created_for)

    tree = db.get(FamilyTree, tree_id)
    write_member_cache(db, tree)
    db.commit()
    logger.info("ensured nodes for %s: created=%s existing=%s restored=%s", code, created, existing, restored)
    return Outcome.success(EnsureNodesResult(family_code=code, created=created, existing=existing, restored=restored))


@store_operation("search_family_members")
def search_family_members(
    db: Session, family_tree_id: int, filters: MemberSearchFilters | None = None
) -> Outcome[list[FamilyTreeNode]]:
    filters = filters or MemberSearchFilters()
    tree = db.get(FamilyTree, family_tree_id)
    if tree is None:
        return Outcome.success([])

    query = (
        select(FamilyTreeNode)
        .join(Member, Member.id == FamilyTreeNode.member_id)
        .where(
            FamilyTreeNode.family_tree_id == tree.id,
            FamilyTreeNode.visibility == NodeVisibilityEnum.visible,
            Member.family_code == tree.family_code,
        )
    )
    ordering = [Member.full_name.asc(), Member.id.asc()]
    text = (filters.query or "").strip().lower()
    if text:
        query = query.where(
            func.lower(Member.full_name).contains(text, autoescape=True)
            | func.lower(Member.login_id).contains(text, autoescape=True)
            | func.lower(Member.email).contains(text, autoescape=True)
        )
        ordering.insert(0, case((func.lower(Member.full_name).startswith(text, autoescape=True), 0), else_=1))
    if filters.relationship:
        query = query.where(func.lower(Member.relationship_to_root) == filters.relationship.strip().lower())
    if filters.gender:
        try:
            gender = GenderEnum(filters.gender.strip().lower())
        except ValueError:
            return Outcome.failure(ErrorKind.invalid_input, f"unknown gender: {filters.gender}")
        query = query.where(Member.gender == gender)
    if filters.location:
        query = query.where(
            func.lower(Member.place_of_birth).contains(filters.location.strip().lower(), autoescape=True)
        )

    nodes = db.execute(query.order_by(*ordering).limit(SEARCH_LIMIT)).scalars().unique().all()
    return Outcome.success(list(nodes))


@store_operation("get_family_members_for_selection")
def get_family_members_for_selection(db: Session, family_tree_id: int) -> Outcome[list[SelectionEntry]]:
    tree = db.get(FamilyTree, family_tree_id)
    if tree is None or not tree.is_active:
        return Outcome.success([])

    nodes = db.execute(
        select(FamilyTreeNode)
        .join(Member, Member.id == FamilyTreeNode.member_id)
        .where(
            FamilyTreeNode.family_tree_id == tree.id,
            FamilyTreeNode.visibility == NodeVisibilityEnum.visible,
            Member.family_code == tree.family_code,
            Member.verification_status != VerificationStatusEnum.rejected,
        )
    ).scalars().unique().all()

    entries = []
    for node in nodes:
        is_root = node.member_id == tree.root_member_id
        entries.append(
            SelectionEntry(
                member_id=node.member_id,
                node_id=node.id,
                full_name=node.member.full_name,
                relationship=node.member.relationship_to_root,
                is_root_member=is_root,
                display_name=f"{node.member.full_name} (Root Member)" if is_root else node.member.full_name,
            )
        )
    entries.sort(key=lambda entry: (not entry.is_root_member, entry.full_name.lower(), entry.member_id))
    return Outcome.success(entries)


@store_operation("tree_family_code")
def tree_family_code(db: Session, family_tree_id: int) -> Outcome[str]:
    tree = db.get(FamilyTree, family_tree_id)
    if tree is None:
        return Outcome.failure(ErrorKind.not_found, "family tree not found")
    return Outcome.success(tree.family_code)


@store_operation("connection_family_code")
def connection_family_code(db: Session, connection_id: int) -> Outcome[str]:
    row = db.execute(
        select(FamilyTree.family_code)
        .join(Connection, Connection.family_tree_id == FamilyTree.id)
        .where(Connection.id == connection_id)
    ).scalar_one_or_none()
    if row is None:
        return Outcome.failure(ErrorKind.not_found, "connection not found")
    return Outcome.success(row)


@store_operation("node_scope")
def node_scope(db: Session, node_id: int) -> Outcome[NodeScope]:
    row = db.execute(
        select(FamilyTreeNode, FamilyTree.family_code)
        .join(FamilyTree, FamilyTree.id == FamilyTreeNode.family_tree_id)
        .where(FamilyTreeNode.id == node_id)
    ).first()
    if row is None:
        return Outcome.failure(ErrorKind.not_found, "family member not found")
    node, family_code = row
    return Outcome.success(
        NodeScope(node_id=node.id, member_id=node.member_id, family_tree_id=node.family_tree_id, family_code=family_code)
    )


@store_operation("create_connection")
def create_connection(
    db: Session,
    *,
    family_tree_id: int,
    source_node_id: int,
    target_node_id: int,
    relationship_type: str | None,
    relationship_label: str | None,
    acting_member_id: int,
    source_handle: str | None = None,
    target_handle: str | None = None,
) -> Outcome[Connection]:
    checked = _validate_relationship(relationship_type, relationship_label)
    if not checked.ok:
        return checked
    rel_type, label = checked.data
    if source_node_id == target_node_id:
        return Outcome.failure(ErrorKind.invalid_input, "a member cannot be connected to themselves")

    source = db.get(FamilyTreeNode, source_node_id)
    target = db.get(FamilyTreeNode, target_node_id)
    if source is None or target is None:
        return Outcome.failure(ErrorKind.not_found, "connection endpoint not found")
    if source.family_tree_id != family_tree_id or target.family_tree_id != family_tree_id:
        return Outcome.failure(ErrorKind.invalid_input, "both endpoints must belong to the same family tree")

    connection = Connection(
        family_tree_id=family_tree_id,
        source_node_id=source_node_id,
        target_node_id=target_node_id,
        source_handle=source_handle,
        target_handle=target_handle,
        relationship_type=rel_type,
        relationship_label=label,
        created_by_id=acting_member_id,
        updated_by_id=acting_member_id,
    )
    db.add(connection)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return Outcome.failure(ErrorKind.conflict, "this relationship already exists")
    db.refresh(connection)

    record_audit(
        db,
        actor_member_id=acting_member_id,
        entity_type="connection",
        entity_id=connection.id,
        action="create",
        new=_connection_snapshot(connection),
    )
    return Outcome.success(connection)


@store_operation("update_connection")
def update_connection(
    db: Session,
    connection_id: int,
    *,
    relationship_type: str | None,
    relationship_label: str | None,
    acting_member_id: int,
) -> Outcome[Connection]:
    connection = db.get(Connection, connection_id)
    if connection is None:
        return Outcome.failure(ErrorKind.not_found, "connection not found")
    checked = _validate_relationship(relationship_type, relationship_label)
    if not checked.ok:
        return checked
    rel_type, label = checked.data

    old = _connection_snapshot(connection)
    connection.relationship_type = rel_type
    connection.relationship_label = label
    connection.updated_by_id = acting_member_id
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return Outcome.failure(ErrorKind.conflict, "this relationship already exists")
    db.refresh(connection)

    record_audit(
        db,
        actor_member_id=acting_member_id,
        entity_type="connection",
        entity_id=connection.id,
        action="update",
        old=old,
        new=_connection_snapshot(connection),
    )
    return Outcome.success(connection)


@store_operation("delete_connection")
def delete_connection(db: Session, connection_id: int, *, acting_member_id: int) -> Outcome[int]:
    connection = db.get(Connection, connection_id)
    if connection is None:
        return Outcome.failure(ErrorKind.not_found, "connection not found")
    old = _connection_snapshot(connection)
    db.delete(connection)
    db.commit()

    record_audit(
        db,
        actor_member_id=acting_member_id,
        entity_type="connection",
        entity_id=connection_id,
        action="delete",
        old=old,
    )
    return Outcome.success(connection_id)


@store_operation("list_graph")
def list_graph(db: Session, family_code: str) -> Outcome[TreeGraph]:
    tree = _tree_by_code(db, family_code)
    if tree is None:
        return Outcome.failure(ErrorKind.not_found, "family tree not found")
    nodes = [node for node in _tree_nodes(db, tree.id) if node.is_visible]
    visible_ids = {node.id for node in nodes}
    connections = db.execute(
        select(Connection).where(Connection.family_tree_id == tree.id).order_by(Connection.id.asc())
    ).scalars().all()
    edges = [c for c in connections if c.source_node_id in visible_ids and c.target_node_id in visible_ids]
    return Outcome.success(TreeGraph(tree=tree, nodes=nodes, connections=edges))


@store_operation("save_layout")
def save_layout(db: Session, family_tree_id: int, positions: list[tuple[int, float, float]]) -> Outcome[int]:
    nodes = {node.id: node for node in _tree_nodes(db, family_tree_id)}
    unknown = [node_id for node_id, _, _ in positions if node_id not in nodes]
    if unknown:
        return Outcome.failure(ErrorKind.invalid_input, f"nodes not in this family tree: {unknown}")
    for node_id, x, y in positions:
        nodes[node_id].position_x = x
        nodes[node_id].position_y = y
    db.commit()
    return Outcome.success(len(positions))


@store_operation("update_family_member_arrays")
def update_family_member_arrays(db: Session, family_code: str) -> Outcome[MemberCache]:
    tree = _tree_by_code(db, family_code)
    if tree is None:
        return Outcome.failure(ErrorKind.not_found, "family tree not found")
    cache = write_member_cache(db, tree)
    db.commit()
    return Outcome.success(cache)


@store_operation("refresh_all_member_arrays")
def refresh_all_member_arrays(db: Session) -> Outcome[SweepResult]:
    codes = db.execute(select(FamilyTree.family_code).order_by(FamilyTree.id.asc())).scalars().all()
    processed = errors = 0
    for code in codes:
        try:
            tree = _tree_by_code(db, code)
            write_member_cache(db, tree)
            db.commit()
            processed += 1
        except SQLAlchemyError:
            db.rollback()
            logger.exception("failed to refresh member arrays for family %s", code)
            errors += 1
    return Outcome.success(SweepResult(processed=processed, errors=errors, total=len(codes)))


@store_operation("list_families")
def list_families(db: Session) -> Outcome[list[FamilySummary]]:
    visible_counts = (
        select(FamilyTreeNode.family_tree_id, func.count(FamilyTreeNode.id).label("member_count"))
        .where(FamilyTreeNode.visibility == NodeVisibilityEnum.visible)
        .group_by(FamilyTreeNode.family_tree_id)
        .subquery()
    )
    rows = db.execute(
        select(FamilyTree, func.coalesce(visible_counts.c.member_count, 0))
        .outerjoin(visible_counts, visible_counts.c.family_tree_id == FamilyTree.id)
        .order_by(FamilyTree.created_at.desc(), FamilyTree.id.desc())
    ).all()
    return Outcome.success(
        [
            FamilySummary(
                id=tree.id,
                name=tree.name,
                family_code=tree.family_code,
                is_active=tree.is_active,
                member_count=count,
                created_at=tree.created_at,
            )
            for tree, count in rows
        ]
    )


@store_operation("get_family_members_admin")
def get_family_members_admin(
    db: Session, family_code: str, status: str | None = None
) -> Outcome[list[Member]]:
    tree = _tree_by_code(db, family_code)
    if tree is None:
        return Outcome.failure(ErrorKind.not_found, "family not found")
    query = select(Member).where(Member.family_code == tree.family_code)
    if status:
        try:
            query = query.where(Member.verification_status == VerificationStatusEnum(status))
        except ValueError:
            return Outcome.failure(ErrorKind.invalid_input, f"unknown status: {status}")
    rows = db.execute(query.order_by(Member.created_at.desc(), Member.id.desc())).scalars().all()
    return Outcome.success(list(rows))
