# portal/routers/documents.py
# Document upload, listing, deletion (admin) and signed downloads (any role)
# Downloads redirect to a short-lived Supabase Storage URL
# RELEVANT FILES: ../utils/documents.py, ../storage.py, ../schemas.py

from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..auth import Identity
from ..deps import get_current_identity, get_session, require_admin
from ..schemas import BaseResponse, DocumentDeleteStatus, DocumentResponse
from ..storage import BlobStore, get_blob_store
from ..utils.client_admin import get_client_for_user
from ..utils.documents import (
    delete_document,
    get_download_link,
    list_documents,
    to_document_response,
    upload_document,
)

logger = logging.getLogger(__name__)

admin_router = APIRouter(
    prefix="/api/admin/documents",
    tags=["documents"],
    dependencies=[Depends(require_admin)],
)

download_router = APIRouter(prefix="/api/documents", tags=["documents"])


@admin_router.get("", response_model=List[DocumentResponse])
async def list_all_documents(
    client_id: Optional[str] = Query(None, alias="clientId"),
    session: AsyncSession = Depends(get_session),
):
    """Documents, newest first, optionally for one client"""
    return [to_document_response(d) for d in await list_documents(session, client_id)]


@admin_router.post("/upload", response_model=DocumentResponse)
async def upload(
    file: UploadFile = File(...),
    client_id: str = Form(..., alias="clientId", min_length=1),
    sub_service_id: str = Form(..., alias="subServiceId", min_length=1),
    session: AsyncSession = Depends(get_session),
    store: BlobStore = Depends(get_blob_store),
):
    """Store a file for a client under one of its sub-services"""
    data = await file.read()
    document = await upload_document(
        session,
        store,
        client_id=client_id,
        sub_service_id=sub_service_id,
        file_name=file.filename or "file",
        data=data,
        content_type=file.content_type,
    )
    return to_document_response(document)


@admin_router.delete("/{document_id}", response_model=BaseResponse)
async def remove_document(
    document_id: str,
    session: AsyncSession = Depends(get_session),
    store: BlobStore = Depends(get_blob_store),
):
    """
    Delete the stored file and the record.
    A file that could not be removed is reported so it can be cleaned up.
    """
    outcome = await delete_document(session, store, document_id)
    if outcome.status == DocumentDeleteStatus.PARTIAL_FAILURE:
        return BaseResponse(
            success=True,
            message="Document record deleted; stored file could not be removed",
            data={"status": outcome.status.value, "orphanedKey": outcome.storage_key},
        )
    return BaseResponse(
        success=True, message="Document deleted", data={"status": outcome.status.value}
    )


@download_router.get("/{document_id}/download")
async def download(
    document_id: str,
    identity: Identity = Depends(get_current_identity),
    session: AsyncSession = Depends(get_session),
    store: BlobStore = Depends(get_blob_store),
):
    """
    Redirect to a signed URL (about 60 seconds) for the document.
    Clients may only fetch their own documents.
    """
    owner_client_id = None
    if not identity.is_admin:
        client = await get_client_for_user(session, identity.user_id)
        owner_client_id = client.id

    url = await get_download_link(session, store, document_id, owner_client_id)
    return RedirectResponse(url=url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
