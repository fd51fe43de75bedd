from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from family_registry.core.config import settings
from family_registry.core.errors import store_operation
from family_registry.core.outcome import ErrorKind, Outcome
from family_registry.core.security import MAX_PASSWORD_BYTES, hash_password, verify_password
from family_registry.models.entities import (
    Document,
    FamilyTree,
    FamilyTreeNode,
    GenderEnum,
    Member,
    NodeVisibilityEnum,
    NotificationTypeEnum,
    PriorityEnum,
    RoleEnum,
    VerificationStatusEnum,
)
from family_registry.services.access import normalize_family_code
from family_registry.services.audit import record_audit
from family_registry.services.family_tree import refresh_tree_state, write_member_cache
from family_registry.services.notifications import notify

logger = logging.getLogger(__name__)

CODE_PREFIX = "BV"
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_ATTEMPTS = 5


@dataclass(frozen=True)
class FamilyCodeInfo:
    family_code: str
    exists: bool
    family_name: str | None = None
    root_member_name: str | None = None


@dataclass(frozen=True)
class DashboardStats:
    total_members: int
    total_families: int
    total_tree_nodes: int
    pending_verifications: int
    total_documents: int


def _random_code() -> str:
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))


def _unique_code(db: Session, column) -> str | None:
    for _ in range(CODE_ATTEMPTS):
        candidate = _random_code()
        if db.execute(select(func.count()).where(column == candidate)).scalar_one() == 0:
            return candidate
    return None


def _tree_for(db: Session, family_code: str | None) -> FamilyTree | None:
    code = normalize_family_code(family_code)
    if code is None:
        return None
    return db.execute(select(FamilyTree).where(FamilyTree.family_code == code)).scalar_one_or_none()


def _node_for(db: Session, tree_id: int, member_id: int) -> FamilyTreeNode | None:
    return db.execute(
        select(FamilyTreeNode).where(FamilyTreeNode.family_tree_id == tree_id, FamilyTreeNode.member_id == member_id)
    ).scalar_one_or_none()


def _notify_root_of_join(db: Session, tree: FamilyTree, member: Member) -> None:
    if tree.root_member_id is None or tree.root_member_id == member.id:
        return
    notify(
        db,
        user_id=tree.root_member_id,
        type=NotificationTypeEnum.member_added,
        title="New Family Member",
        message=f"{member.full_name} has joined your family tree as {member.relationship_to_root}.",
        payload={"member_id": member.id, "family_code": tree.family_code},
    )


def _detach_from_family(db: Session, member: Member) -> FamilyTree | None:
    """Unbind the member, hide its node and re-derive the tree state. Caller commits."""
    tree = _tree_for(db, member.family_code)
    member.family_code = None
    member.joined_family_at = None
    db.flush()
    if tree is None:
        return None
    node = _node_for(db, tree.id, member.id)
    if node is not None and node.visibility == NodeVisibilityEnum.visible:
        node.visibility = NodeVisibilityEnum.hidden
    db.flush()
    refresh_tree_state(db, tree)
    write_member_cache(db, tree)
    return tree


@store_operation("register_member")
def register_member(
    db: Session,
    *,
    email: str,
    password: str,
    full_name: str,
    phone: str | None = None,
    gender: GenderEnum | None = None,
    date_of_birth: date | None = None,
    place_of_birth: str | None = None,
    family_code: str | None = None,
    relationship: str | None = None,
) -> Outcome[Member]:
    """
    Create a pending citizen.

    With a family code the member joins that family (which must exist and needs a
    declared relationship); without one a fresh code and tree are created with the
    member as founder. No tree node is created here; nodes are materialized lazily
    by ensure_nodes_for_family.
    """
    email = email.strip().lower()
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return Outcome.failure(ErrorKind.invalid_input, f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    if db.execute(select(Member.id).where(Member.email == email)).first() is not None:
        return Outcome.failure(ErrorKind.conflict, "email already registered")

    login_id = _unique_code(db, Member.login_id)
    if login_id is None:
        return Outcome.failure(ErrorKind.conflict, "could not allocate a unique login id")

    relationship = (relationship or "").strip() or None
    code = normalize_family_code(family_code)
    tree = None
    if code is not None:
        tree = _tree_for(db, code)
        if tree is None:
            return Outcome.failure(ErrorKind.not_found, f"family code {code} does not exist")
        if relationship is None:
            return Outcome.failure(ErrorKind.invalid_input, "relationship is required when joining a family")
    else:
        code = _unique_code(db, FamilyTree.family_code)
        if code is None:
            return Outcome.failure(ErrorKind.conflict, "could not allocate a unique family code")

    member = Member(
        login_id=login_id,
        email=email,
        password_hash=hash_password(password),
        full_name=full_name.strip(),
        phone=phone,
        gender=gender,
        date_of_birth=date_of_birth,
        place_of_birth=place_of_birth,
        relationship_to_root=relationship,
        role=RoleEnum.citizen,
        family_code=code,
        joined_family_at=datetime.now(timezone.utc),
        verification_status=VerificationStatusEnum.pending,
    )
    db.add(member)
    try:
        db.flush()
        if tree is None:
            tree = FamilyTree(
                name=f"{member.full_name}'s Family Tree",
                description=f"Family tree for {member.full_name}",
                family_code=code,
                created_by_id=member.id,
            )
            db.add(tree)
            joined_existing = False
        else:
            tree.is_active = True
            joined_existing = True
        db.commit()
    except IntegrityError:
        db.rollback()
        return Outcome.failure(ErrorKind.conflict, "email, login id or family code already taken")
    db.refresh(member)
    logger.info("registered member %s in family %s", member.login_id, code)

    if joined_existing:
        _notify_root_of_join(db, tree, member)
    return Outcome.success(member)


@store_operation("sign_in")
def sign_in(db: Session, login_id: str, password: str, allow_unverified: bool = False) -> Outcome[Member]:
    identifier = (login_id or "").strip()
    if "@" in identifier:
        query = select(Member).where(Member.email == identifier.lower())
    else:
        query = select(Member).where(Member.login_id == identifier.upper())
    member = db.execute(query).scalar_one_or_none()
    if member is None or not verify_password(password, member.password_hash):
        return Outcome.failure(ErrorKind.invalid_credential, "invalid login id or password")
    if (
        member.role != RoleEnum.admin
        and member.verification_status != VerificationStatusEnum.verified
        and not allow_unverified
    ):
        return Outcome.failure(
            ErrorKind.account_not_verified, f"account is {member.verification_status.value}, not verified"
        )
    return Outcome.success(member)


@store_operation("check_email_exists")
def check_email_exists(db: Session, email: str) -> Outcome[bool]:
    row = db.execute(select(Member.id).where(Member.email == email.strip().lower())).first()
    return Outcome.success(row is not None)


@store_operation("check_login_id_exists")
def check_login_id_exists(db: Session, login_id: str) -> Outcome[bool]:
    row = db.execute(select(Member.id).where(Member.login_id == login_id.strip().upper())).first()
    return Outcome.success(row is not None)


@store_operation("describe_family_code")
def describe_family_code(db: Session, family_code: str) -> Outcome[FamilyCodeInfo]:
    code = normalize_family_code(family_code)
    if code is None:
        return Outcome.failure(ErrorKind.invalid_input, "family code is required")
    tree = _tree_for(db, code)
    if tree is None:
        return Outcome.success(FamilyCodeInfo(family_code=code, exists=False))
    root = db.get(Member, tree.root_member_id) if tree.root_member_id else None
    return Outcome.success(
        FamilyCodeInfo(
            family_code=code,
            exists=True,
            family_name=tree.name,
            root_member_name=root.full_name if root else None,
        )
    )


@store_operation("get_member")
def get_member(db: Session, member_id: int) -> Outcome[Member]:
    member = db.get(Member, member_id)
    if member is None:
        return Outcome.failure(ErrorKind.not_found, "member not found")
    return Outcome.success(member)


@store_operation("update_member_status")
def update_member_status(
    db: Session,
    member_id: int,
    new_status: str,
    acting_admin_id: int,
    force: bool = False,
) -> Outcome[Member]:
    try:
        target = VerificationStatusEnum(new_status)
    except ValueError:
        return Outcome.failure(ErrorKind.invalid_input, f"unknown status: {new_status}")
    member = db.get(Member, member_id)
    if member is None:
        return Outcome.failure(ErrorKind.not_found, "member not found")

    previous = member.verification_status
    if previous == target:
        return Outcome.success(member)
    if previous != VerificationStatusEnum.pending and not (force or settings.allow_status_re_review):
        return Outcome.failure(
            ErrorKind.invalid_transition, f"cannot change status from {previous.value} to {target.value}"
        )

    member.verification_status = target
    if target == VerificationStatusEnum.verified:
        member.verified_at = datetime.now(timezone.utc)
        member.verified_by_id = acting_admin_id
    db.flush()

    family_code = member.family_code
    if target == VerificationStatusEnum.rejected and not settings.rejected_members_keep_family_code:
        _detach_from_family(db, member)
    else:
        tree = _tree_for(db, family_code)
        if tree is not None:
            refresh_tree_state(db, tree)
            write_member_cache(db, tree)
    db.commit()
    db.refresh(member)
    logger.info("member %s status %s -> %s by %s", member_id, previous.value, target.value, acting_admin_id)

    if target == VerificationStatusEnum.verified:
        title, message = "Account Verified", "Your account has been verified. You can now sign in."
    elif target == VerificationStatusEnum.rejected:
        title, message = "Account Verification Rejected", "Your account verification was rejected."
    else:
        title, message = "Account Under Review", "Your account has been returned to review."
    notify(
        db,
        user_id=member.id,
        type=NotificationTypeEnum.verification,
        title=title,
        message=message,
        priority=PriorityEnum.high,
        payload={"status": target.value},
    )
    record_audit(
        db,
        actor_member_id=acting_admin_id,
        entity_type="member",
        entity_id=member.id,
        action="status_change",
        old={"verification_status": previous.value, "family_code": family_code},
        new={"verification_status": target.value, "family_code": member.family_code},
    )
    return Outcome.success(member)


@store_operation("join_family")
def join_family(db: Session, member_id: int, family_code: str, relationship: str | None) -> Outcome[Member]:
    member = db.get(Member, member_id)
    if member is None:
        return Outcome.failure(ErrorKind.not_found, "member not found")
    relationship = (relationship or "").strip()
    if not relationship:
        return Outcome.failure(ErrorKind.invalid_input, "relationship is required when joining a family")
    tree = _tree_for(db, family_code)
    if tree is None:
        return Outcome.failure(ErrorKind.not_found, "family code does not exist")
    if member.family_code == tree.family_code:
        return Outcome.success(member)
    if member.family_code is not None:
        return Outcome.failure(ErrorKind.conflict, "leave your current family before joining another")

    member.family_code = tree.family_code
    member.relationship_to_root = relationship
    member.joined_family_at = datetime.now(timezone.utc)
    db.flush()
    node = _node_for(db, tree.id, member.id)
    if node is not None and node.visibility == NodeVisibilityEnum.hidden:
        node.visibility = NodeVisibilityEnum.visible
    db.flush()
    refresh_tree_state(db, tree)
    write_member_cache(db, tree)
    db.commit()
    db.refresh(member)
    logger.info("member %s joined family %s", member_id, tree.family_code)

    _notify_root_of_join(db, tree, member)
    record_audit(
        db,
        actor_member_id=member.id,
        entity_type="member",
        entity_id=member.id,
        action="join_family",
        old={"family_code": None},
        new={"family_code": tree.family_code, "relationship": relationship},
    )
    return Outcome.success(member)


@store_operation("leave_family")
def leave_family(db: Session, member_id: int) -> Outcome[Member]:
    member = db.get(Member, member_id)
    if member is None:
        return Outcome.failure(ErrorKind.not_found, "member not found")
    if member.family_code is None:
        return Outcome.failure(ErrorKind.not_in_family, "you are not a member of any family")

    family_code = member.family_code
    tree = _detach_from_family(db, member)
    db.commit()
    db.refresh(member)
    logger.info(
        "member %s left family %s (tree active=%s)", member_id, family_code, tree.is_active if tree else None
    )

    record_audit(
        db,
        actor_member_id=member.id,
        entity_type="member",
        entity_id=member.id,
        action="leave_family",
        old={"family_code": family_code},
        new={"family_code": None},
    )
    return Outcome.success(member)


@store_operation("list_members")
def list_members(db: Session, status: str | None = None) -> Outcome[list[Member]]:
    query = select(Member)
    if status:
        try:
            query = query.where(Member.verification_status == VerificationStatusEnum(status))
        except ValueError:
            return Outcome.failure(ErrorKind.invalid_input, f"unknown status: {status}")
    rows = db.execute(query.order_by(Member.created_at.desc(), Member.id.desc())).scalars().all()
    return Outcome.success(list(rows))


@store_operation("get_pending_users")
def get_pending_users(db: Session) -> Outcome[list[Member]]:
    rows = db.execute(
        select(Member)
        .where(Member.role == RoleEnum.citizen, Member.verification_status == VerificationStatusEnum.pending)
        .order_by(Member.created_at.asc(), Member.id.asc())
    ).scalars().all()
    return Outcome.success(list(rows))


@store_operation("get_dashboard_stats")
def get_dashboard_stats(db: Session) -> Outcome[DashboardStats]:
    def count(query) -> int:
        return db.execute(query).scalar_one()

    return Outcome.success(
        DashboardStats(
            total_members=count(select(func.count(Member.id)).where(Member.role == RoleEnum.citizen)),
            total_families=count(select(func.count(FamilyTree.id))),
            total_tree_nodes=count(
                select(func.count(FamilyTreeNode.id)).where(FamilyTreeNode.visibility == NodeVisibilityEnum.visible)
            ),
            pending_verifications=count(
                select(func.count(Member.id)).where(
                    Member.role == RoleEnum.citizen, Member.verification_status == VerificationStatusEnum.pending
                )
            ),
            total_documents=count(select(func.count(Document.id))),
        )
    )


@store_operation("set_avatar")
def set_avatar(db: Session, member_id: int, avatar_data: bytes, mime_type: str) -> Outcome[Member]:
    member = db.get(Member, member_id)
    if member is None:
        return Outcome.failure(ErrorKind.not_found, "member not found")
    if not avatar_data:
        return Outcome.failure(ErrorKind.invalid_input, "avatar image is empty")
    if not mime_type.startswith("image/"):
        return Outcome.failure(ErrorKind.invalid_input, "avatar must be an image")
    member.avatar_data = avatar_data
    member.avatar_mime = mime_type
    db.commit()
    return Outcome.success(member)


@store_operation("get_avatar")
def get_avatar(db: Session, member_id: int) -> Outcome[tuple[bytes, str]]:
    member = db.get(Member, member_id)
    if member is None or not member.avatar_data:
        return Outcome.failure(ErrorKind.not_found, "avatar not found")
    return Outcome.success((member.avatar_data, member.avatar_mime or "application/octet-stream"))
