from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SqlEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from family_registry.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoleEnum(str, Enum):
    citizen = "citizen"
    admin = "admin"


class VerificationStatusEnum(str, Enum):
    pending = "pending"
    verified = "verified"
    rejected = "rejected"


class GenderEnum(str, Enum):
    male = "male"
    female = "female"
    other = "other"


class NodeVisibilityEnum(str, Enum):
    visible = "visible"
    hidden = "hidden"
    removed = "removed"


class RelationshipTypeEnum(str, Enum):
    parent_child = "parent-child"
    spouse = "spouse"
    sibling = "sibling"
    grandparent_grandchild = "grandparent-grandchild"
    uncle_nephew = "uncle-nephew"
    cousin = "cousin"
    in_law = "in-law"
    step_family = "step-family"
    adopted = "adopted"
    guardian_ward = "guardian-ward"
    friend = "friend"
    business = "business"
    other = "other"


class NotificationTypeEnum(str, Enum):
    verification = "verification"
    member_added = "member_added"
    system = "system"
    family_update = "family_update"


class PriorityEnum(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class DocumentTypeEnum(str, Enum):
    aadhaar = "aadhaar"
    voter_id = "voter_id"
    birth_certificate = "birth_certificate"
    photo = "photo"
    certificate = "certificate"
    other = "other"


def _values_enum(enum_cls: type[Enum], name: str) -> SqlEnum:
    return SqlEnum(enum_cls, name=name, values_callable=lambda cls: [item.value for item in cls])


relationship_type_sql_enum = _values_enum(RelationshipTypeEnum, "relationshiptypeenum")


class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    login_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32))
    gender: Mapped[GenderEnum | None] = mapped_column(SqlEnum(GenderEnum))
    date_of_birth: Mapped[date | None] = mapped_column(Date)
    place_of_birth: Mapped[str | None] = mapped_column(String(255))
    relationship_to_root: Mapped[str | None] = mapped_column(String(64))
    role: Mapped[RoleEnum] = mapped_column(SqlEnum(RoleEnum), nullable=False, default=RoleEnum.citizen)
    family_code: Mapped[str | None] = mapped_column(String(32), index=True)
    joined_family_at: Mapped[datetime | None] = mapped_column(DateTime)
    verification_status: Mapped[VerificationStatusEnum] = mapped_column(
        SqlEnum(VerificationStatusEnum), nullable=False, default=VerificationStatusEnum.pending
    )
    verified_at: Mapped[datetime | None] = mapped_column(DateTime)
    verified_by_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    avatar_data: Mapped[bytes | None] = mapped_column(LargeBinary)
    avatar_mime: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class FamilyTree(Base):
    __tablename__ = "family_trees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    family_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    root_member_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    created_by_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Derived from visible nodes by family_tree.project_member_cache; never written elsewhere.
    member_count: Mapped[int] = mapped_column(Integer, default=0)
    member_ids: Mapped[str] = mapped_column(Text, default="[]")
    member_stats: Mapped[str] = mapped_column(Text, default="{}")
    members_refreshed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class FamilyTreeNode(Base):
    __tablename__ = "family_tree_nodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    family_tree_id: Mapped[int] = mapped_column(ForeignKey("family_trees.id", ondelete="CASCADE"), nullable=False)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False)
    position_x: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    position_y: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    width: Mapped[int] = mapped_column(Integer, default=200)
    height: Mapped[int] = mapped_column(Integer, default=100)
    color: Mapped[str] = mapped_column(String(16), default="#ffffff")
    visibility: Mapped[NodeVisibilityEnum] = mapped_column(
        SqlEnum(NodeVisibilityEnum), nullable=False, default=NodeVisibilityEnum.visible
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    member: Mapped[Member] = relationship(lazy="joined")
    family_tree: Mapped[FamilyTree] = relationship()

    __table_args__ = (UniqueConstraint("family_tree_id", "member_id", name="uq_node_tree_member"),)

    @property
    def is_visible(self) -> bool:
        return self.visibility == NodeVisibilityEnum.visible


class Connection(Base):
    __tablename__ = "family_tree_connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    family_tree_id: Mapped[int] = mapped_column(ForeignKey("family_trees.id", ondelete="CASCADE"), nullable=False)
    source_node_id: Mapped[int] = mapped_column(ForeignKey("family_tree_nodes.id"), nullable=False)
    target_node_id: Mapped[int] = mapped_column(ForeignKey("family_tree_nodes.id"), nullable=False)
    source_handle: Mapped[str | None] = mapped_column(String(64))
    target_handle: Mapped[str | None] = mapped_column(String(64))
    relationship_type: Mapped[RelationshipTypeEnum] = mapped_column(relationship_type_sql_enum, nullable=False)
    relationship_label: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(16), default="#666666")
    style: Mapped[str] = mapped_column(String(16), default="solid")
    thickness: Mapped[int] = mapped_column(Integer, default=2)
    created_by_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False)
    updated_by_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "family_tree_id",
            "source_node_id",
            "target_node_id",
            "relationship_type",
            "relationship_label",
            name="uq_connection_edge",
        ),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False)
    type: Mapped[NotificationTypeEnum] = mapped_column(SqlEnum(NotificationTypeEnum), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[PriorityEnum] = mapped_column(SqlEnum(PriorityEnum), default=PriorityEnum.medium)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime)
    payload: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    document_type: Mapped[DocumentTypeEnum] = mapped_column(SqlEnum(DocumentTypeEnum), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    file_data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    uploaded_by_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    family_member_id: Mapped[int | None] = mapped_column(ForeignKey("family_tree_nodes.id"))
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint(
            "(owner_id IS NULL) <> (family_member_id IS NULL)",
            name="ck_document_single_scope",
        ),
    )

    owner: Mapped[Member | None] = relationship(foreign_keys=[owner_id])
    family_member: Mapped[FamilyTreeNode | None] = relationship()


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_member_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    changes_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


Index("ix_members_status", Member.verification_status)
Index("ix_members_role_status", Member.role, Member.verification_status)
Index("ix_family_trees_active", FamilyTree.is_active)
Index("ix_nodes_tree", FamilyTreeNode.family_tree_id)
Index("ix_nodes_member", FamilyTreeNode.member_id)
Index("ix_connections_tree", Connection.family_tree_id)
Index("ix_notifications_user_read", Notification.user_id, Notification.read)
Index("ix_notifications_created", Notification.created_at)
Index("ix_documents_owner", Document.owner_id)
Index("ix_documents_family_member", Document.family_member_id)
Index("ix_documents_uploaded_by", Document.uploaded_by_id)
Index("ix_audit_entity", AuditLog.entity_type, AuditLog.entity_id)
