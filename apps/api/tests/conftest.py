import itertools
import os
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from family_registry.core.db import get_db  # noqa: E402
from family_registry.core.security import create_session_token, hash_password  # noqa: E402
from family_registry.main import app  # noqa: E402
from family_registry.models.base import Base  # noqa: E402
from family_registry.models.entities import (  # noqa: E402
    FamilyTree,
    FamilyTreeNode,
    GenderEnum,
    Member,
    NodeVisibilityEnum,
    RoleEnum,
    VerificationStatusEnum,
)

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


class Factory:
    """Seeds rows directly; join times increase with every member so root order is deterministic."""

    def __init__(self, db):
        self.db = db
        self._seq = itertools.count(1)

    def member(
        self,
        email,
        full_name=None,
        *,
        family_code=None,
        status="verified",
        role="citizen",
        relationship=None,
        gender=None,
        place_of_birth=None,
    ):
        n = next(self._seq)
        member = Member(
            login_id=f"BV{n:06d}",
            email=email,
            password_hash=PASSWORD_HASH,
            full_name=full_name or email.split("@")[0].title(),
            gender=GenderEnum(gender) if gender else None,
            place_of_birth=place_of_birth,
            relationship_to_root=relationship,
            role=RoleEnum(role),
            family_code=family_code,
            joined_family_at=datetime(2024, 1, 1) + timedelta(minutes=n) if family_code else None,
            verification_status=VerificationStatusEnum(status),
        )
        self.db.add(member)
        self.db.commit()
        self.db.refresh(member)
        return member

    def tree(self, family_code, *, created_by, root=None, name=None):
        tree = FamilyTree(
            name=name or f"{created_by.full_name}'s Family Tree",
            family_code=family_code,
            created_by_id=created_by.id,
            root_member_id=root.id if root else None,
        )
        self.db.add(tree)
        self.db.commit()
        self.db.refresh(tree)
        return tree

    def node(self, tree, member, visibility="visible"):
        node = FamilyTreeNode(
            family_tree_id=tree.id,
            member_id=member.id,
            visibility=NodeVisibilityEnum(visibility),
        )
        self.db.add(node)
        self.db.commit()
        self.db.refresh(node)
        return node

    def headers(self, member):
        token = create_session_token(member.id, member.role.value, member.family_code)
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


@pytest.fixture
def fam123(factory):
    """Family FAM123: verified root Asha, pending son Bala."""
    asha = factory.member("asha@example.com", "Asha Rao", family_code="FAM123", gender="female", place_of_birth="Pune")
    bala = factory.member(
        "bala@example.com",
        "Bala Rao",
        family_code="FAM123",
        status="pending",
        relationship="son",
        gender="male",
        place_of_birth="Mumbai",
    )
    tree = factory.tree("FAM123", created_by=asha, root=asha)
    return tree, asha, bala
