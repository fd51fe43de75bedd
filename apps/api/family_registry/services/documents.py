from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from family_registry.core.auth import Principal
from family_registry.core.config import settings
from family_registry.core.errors import store_operation
from family_registry.core.outcome import ErrorKind, Outcome
from family_registry.models.entities import Document, DocumentTypeEnum, FamilyTreeNode
from family_registry.services.access import can_access_user_data, is_same_family

logger = logging.getLogger(__name__)


def _represented_member_id(document: Document) -> int | None:
    return document.family_member.member_id if document.family_member is not None else None


def is_document_visible(principal: Principal, document: Document) -> bool:
    """Non-public documents are only shown to admins, the uploader, the owner and the member a node represents."""
    if principal.is_admin or document.is_public:
        return True
    return principal.id in (document.uploaded_by_id, document.owner_id, _represented_member_id(document))


def filter_visible_documents(principal: Principal, documents: Iterable[Document]) -> list[Document]:
    return [document for document in documents if is_document_visible(principal, document)]


def can_view_document(principal: Principal, document: Document) -> bool:
    if principal.is_admin:
        return True
    if document.owner_id is not None:
        in_scope = (
            can_access_user_data(principal, document.owner_id)
            or document.uploaded_by_id == principal.id
            or (document.is_public and is_same_family(principal, document.owner.family_code))
        )
    else:
        in_scope = is_same_family(principal, document.family_member.family_tree.family_code)
    return in_scope and is_document_visible(principal, document)


@store_operation("upload_document")
def upload_document(
    db: Session,
    *,
    uploader_id: int,
    title: str | None,
    document_type: str | None,
    file_data: bytes | None,
    file_name: str,
    mime_type: str,
    description: str = "",
    family_member_id: int | None = None,
    is_public: bool = False,
) -> Outcome[Document]:
    title = (title or "").strip()
    if not title or not document_type or not file_data:
        return Outcome.failure(ErrorKind.invalid_input, "title, document type and file are required")
    try:
        doc_type = DocumentTypeEnum(document_type)
    except ValueError:
        return Outcome.failure(ErrorKind.invalid_input, f"unknown document type: {document_type}")
    if len(file_data) > settings.max_document_bytes:
        return Outcome.failure(
            ErrorKind.invalid_input, f"file exceeds the {settings.max_document_bytes} byte upload limit"
        )
    if family_member_id is not None and db.get(FamilyTreeNode, family_member_id) is None:
        return Outcome.failure(ErrorKind.not_found, "family member not found")

    document = Document(
        title=title,
        document_type=doc_type,
        description=description or "",
        file_data=file_data,
        file_name=file_name,
        file_size=len(file_data),
        mime_type=mime_type or "application/octet-stream",
        uploaded_by_id=uploader_id,
        owner_id=None if family_member_id is not None else uploader_id,
        family_member_id=family_member_id,
        is_public=is_public,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    logger.info("document %s uploaded by member %s (%s bytes)", document.id, uploader_id, document.file_size)
    return Outcome.success(document)


@store_operation("get_user_documents")
def get_user_documents(db: Session, user_id: int) -> Outcome[list[Document]]:
    rows = db.execute(
        select(Document).where(Document.owner_id == user_id).order_by(Document.created_at.desc(), Document.id.desc())
    ).scalars().all()
    return Outcome.success(list(rows))


@store_operation("get_family_member_documents")
def get_family_member_documents(db: Session, family_member_id: int) -> Outcome[list[Document]]:
    rows = db.execute(
        select(Document)
        .where(Document.family_member_id == family_member_id)
        .order_by(Document.created_at.desc(), Document.id.desc())
    ).scalars().all()
    return Outcome.success(list(rows))


@store_operation("get_document")
def get_document(db: Session, document_id: int) -> Outcome[Document]:
    document = db.get(Document, document_id)
    if document is None:
        return Outcome.failure(ErrorKind.not_found, "document not found")
    return Outcome.success(document)
