from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from sqlalchemy.orm import Session

from family_registry.core.auth import Principal, get_principal
from family_registry.core.db import get_db
from family_registry.core.errors import unwrap
from family_registry.schemas.documents import DocumentListResponse, DocumentResponse
from family_registry.services import documents, family_tree, members
from family_registry.services.access import can_access_user_data, require_same_family

router = APIRouter(prefix="/v1/documents", tags=["documents"])


def _document_list(items) -> DocumentListResponse:
    return DocumentListResponse(items=[DocumentResponse.model_validate(item, from_attributes=True) for item in items])


@router.post("/upload", response_model=DocumentResponse, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    title: str = Form(""),
    document_type: str = Form(""),
    description: str = Form(""),
    is_public: bool = Form(False),
    family_member_id: int | None = Form(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    if family_member_id is not None:
        require_same_family(principal, unwrap(family_tree.node_scope(db, family_member_id)).family_code)
    data = await file.read()
    document = unwrap(
        documents.upload_document(
            db,
            uploader_id=principal.id,
            title=title,
            document_type=document_type,
            file_data=data,
            file_name=file.filename or "upload",
            mime_type=file.content_type or "application/octet-stream",
            description=description,
            family_member_id=family_member_id,
            is_public=is_public,
        )
    )
    return DocumentResponse.model_validate(document, from_attributes=True)


@router.get("/user/{user_id}", response_model=DocumentListResponse)
def user_documents(user_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    # Relatives get through here; only public documents survive the filter below.
    if not can_access_user_data(principal, user_id):
        require_same_family(principal, unwrap(members.get_member(db, user_id)).family_code)
    items = unwrap(documents.get_user_documents(db, user_id))
    return _document_list(documents.filter_visible_documents(principal, items))


@router.get("/member/{family_member_id}", response_model=DocumentListResponse)
def family_member_documents(
    family_member_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    require_same_family(principal, unwrap(family_tree.node_scope(db, family_member_id)).family_code)
    items = unwrap(documents.get_family_member_documents(db, family_member_id))
    return _document_list(documents.filter_visible_documents(principal, items))


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    document = unwrap(documents.get_document(db, document_id))
    if not documents.can_view_document(principal, document):
        raise HTTPException(status_code=403, detail="you cannot access this document")
    return Response(
        content=document.file_data,
        media_type=document.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{document.file_name}"'},
    )
