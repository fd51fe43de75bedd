"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

role_enum = sa.Enum("citizen", "admin", name="roleenum")
status_enum = sa.Enum("pending", "verified", "rejected", name="verificationstatusenum")
gender_enum = sa.Enum("male", "female", "other", name="genderenum")
visibility_enum = sa.Enum("visible", "hidden", "removed", name="nodevisibilityenum")
relationship_type_enum = sa.Enum(
    "parent-child",
    "spouse",
    "sibling",
    "grandparent-grandchild",
    "uncle-nephew",
    "cousin",
    "in-law",
    "step-family",
    "adopted",
    "guardian-ward",
    "friend",
    "business",
    "other",
    name="relationshiptypeenum",
)
notification_type_enum = sa.Enum(
    "verification", "member_added", "system", "family_update", name="notificationtypeenum"
)
priority_enum = sa.Enum("low", "medium", "high", name="priorityenum")
document_type_enum = sa.Enum(
    "aadhaar", "voter_id", "birth_certificate", "photo", "certificate", "other", name="documenttypeenum"
)


def upgrade() -> None:
    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("login_id", sa.String(length=32), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("gender", gender_enum, nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("place_of_birth", sa.String(length=255), nullable=True),
        sa.Column("relationship_to_root", sa.String(length=64), nullable=True),
        sa.Column("role", role_enum, nullable=False),
        sa.Column("family_code", sa.String(length=32), nullable=True),
        sa.Column("joined_family_at", sa.DateTime(), nullable=True),
        sa.Column("verification_status", status_enum, nullable=False),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("verified_by_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("avatar_data", sa.LargeBinary(), nullable=True),
        sa.Column("avatar_mime", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_members_family_code", "members", ["family_code"])
    op.create_index("ix_members_status", "members", ["verification_status"])
    op.create_index("ix_members_role_status", "members", ["role", "verification_status"])

    op.create_table(
        "family_trees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("family_code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("root_member_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("member_count", sa.Integer(), nullable=True),
        sa.Column("member_ids", sa.Text(), nullable=True),
        sa.Column("member_stats", sa.Text(), nullable=True),
        sa.Column("members_refreshed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_family_trees_active", "family_trees", ["is_active"])

    op.create_table(
        "family_tree_nodes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "family_tree_id", sa.Integer(), sa.ForeignKey("family_trees.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("position_x", sa.Float(), nullable=False),
        sa.Column("position_y", sa.Float(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("color", sa.String(length=16), nullable=True),
        sa.Column("visibility", visibility_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("family_tree_id", "member_id", name="uq_node_tree_member"),
    )
    op.create_index("ix_nodes_tree", "family_tree_nodes", ["family_tree_id"])
    op.create_index("ix_nodes_member", "family_tree_nodes", ["member_id"])

    op.create_table(
        "family_tree_connections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "family_tree_id", sa.Integer(), sa.ForeignKey("family_trees.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("source_node_id", sa.Integer(), sa.ForeignKey("family_tree_nodes.id"), nullable=False),
        sa.Column("target_node_id", sa.Integer(), sa.ForeignKey("family_tree_nodes.id"), nullable=False),
        sa.Column("source_handle", sa.String(length=64), nullable=True),
        sa.Column("target_handle", sa.String(length=64), nullable=True),
        sa.Column("relationship_type", relationship_type_enum, nullable=False),
        sa.Column("relationship_label", sa.String(length=100), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=True),
        sa.Column("style", sa.String(length=16), nullable=True),
        sa.Column("thickness", sa.Integer(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("updated_by_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            "family_tree_id",
            "source_node_id",
            "target_node_id",
            "relationship_type",
            "relationship_label",
            name="uq_connection_edge",
        ),
    )
    op.create_index("ix_connections_tree", "family_tree_connections", ["family_tree_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("type", notification_type_enum, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("priority", priority_enum, nullable=True),
        sa.Column("read", sa.Boolean(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])
    op.create_index("ix_notifications_created", "notifications", ["created_at"])

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("document_type", document_type_enum, nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("file_data", sa.LargeBinary(), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=False),
        sa.Column("uploaded_by_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("family_member_id", sa.Integer(), sa.ForeignKey("family_tree_nodes.id"), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("(owner_id IS NULL) <> (family_member_id IS NULL)", name="ck_document_single_scope"),
    )
    op.create_index("ix_documents_owner", "documents", ["owner_id"])
    op.create_index("ix_documents_family_member", "documents", ["family_member_id"])
    op.create_index("ix_documents_uploaded_by", "documents", ["uploaded_by_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_member_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("changes_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_audit_entity", "audit_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("documents")
    op.drop_table("notifications")
    op.drop_table("family_tree_connections")
    op.drop_table("family_tree_nodes")
    op.drop_table("family_trees")
    op.drop_table("members")
    for enum in (
        document_type_enum,
        priority_enum,
        notification_type_enum,
        relationship_type_enum,
        visibility_enum,
        gender_enum,
        status_enum,
        role_enum,
    ):
        enum.drop(op.get_bind(), checkfirst=True)
